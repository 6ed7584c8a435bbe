from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Literal

EventKind = Literal["field", "all"]

# Literal event name of the all-fields event and the wildcard keyed key.
WILDCARD = "*"


@dataclass(frozen=True, slots=True)
class EventKey:
    """
    Address of a store event.

    Two kinds exist:
      - "field": `<field>:updated`, scoped to one top-level field
      - "all":   `*`, carries every patch of an update

    Keys are built once per field when a store is set up and are used as
    registry keys by the bus, so no event names are formatted on the
    update path.
    """

    kind: EventKind
    field: str | None = None

    SUFFIX: ClassVar[str] = ":updated"

    def __post_init__(self) -> None:
        if self.kind == "field" and not self.field:
            raise ValueError("field event requires a non-empty field name")
        if self.kind == "all" and self.field is not None:
            raise ValueError("the all-fields event has no field")

    @classmethod
    def for_field(cls, field: str) -> EventKey:
        return cls(kind="field", field=field)

    @classmethod
    def parse(cls, event: str | EventKey) -> EventKey:
        """
        Accept either an EventKey or its literal name (`*` / `<field>:updated`).
        """
        if isinstance(event, EventKey):
            return event
        if not isinstance(event, str):
            raise TypeError(f"event must be str or EventKey, got {type(event).__name__}")
        if event == WILDCARD:
            return ALL_FIELDS
        if event.endswith(cls.SUFFIX) and len(event) > len(cls.SUFFIX):
            return cls.for_field(event[: -len(cls.SUFFIX)])
        raise ValueError(f"invalid event name {event!r}: expected '*' or '<field>:updated'")

    @property
    def is_field(self) -> bool:
        return self.kind == "field"

    def __str__(self) -> str:
        if self.kind == "all":
            return WILDCARD
        return f"{self.field}{self.SUFFIX}"


ALL_FIELDS = EventKey(kind="all")
