from __future__ import annotations

from enum import StrEnum
from typing import Any, Callable, Mapping, Optional, TypeAlias, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from patchroute.core.events.patches import ItemId, Patches

State: TypeAlias = dict[str, Any]
Mutator: TypeAlias = Callable[[State], Any]

GetItemIdFunction: TypeAlias = Callable[[Any], Optional[ItemId]]
# field -> identity function, or nested config for the field's items/keys
ItemIdConfig: TypeAlias = Mapping[str, Union[GetItemIdFunction, "ItemIdConfig"]]

CreateFunction: TypeAlias = Callable[[State, Mutator, Optional[ItemIdConfig]], tuple[State, Patches]]


class FieldKind(StrEnum):
    PRIMITIVE = "primitive"
    ORDERED = "ordered"
    KEYED = "keyed"


class StoreSchema(BaseModel):
    """
    Field name -> kind, fixed for the lifetime of a store.

    A field that is absent from the schema is treated as non-ordered.
    """

    model_config = ConfigDict(frozen=True)

    fields: dict[str, FieldKind] = Field(default_factory=dict)

    @classmethod
    def infer(cls, state: Mapping[str, Any]) -> StoreSchema:
        """
        Classify each field of an initial state by its value shape.
        """
        return cls(fields={name: _kind_of(value) for name, value in state.items()})

    def kind(self, field: str) -> FieldKind | None:
        return self.fields.get(field)

    def is_ordered(self, field: str) -> bool:
        return self.fields.get(field) == FieldKind.ORDERED

    def ordered_fields(self) -> frozenset[str]:
        return frozenset(f for f, k in self.fields.items() if k == FieldKind.ORDERED)


def _kind_of(value: Any) -> FieldKind:
    if isinstance(value, list):
        return FieldKind.ORDERED
    if isinstance(value, Mapping):
        return FieldKind.KEYED
    return FieldKind.PRIMITIVE


class StoreOptions(BaseModel):
    """
    Construction options of an ObservableStore.

    - get_item_id: identity functions for ordered fields (nested configs allowed)
    - create_function: PatchSource override (default: PatchRecorder)
    - field_kinds: explicit field classification (default: inferred from state)
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    get_item_id: Optional[dict[str, Any]] = None
    create_function: Optional[Callable[..., Any]] = None
    field_kinds: Optional[StoreSchema] = None

    @field_validator("get_item_id", mode="before")
    @classmethod
    def _validate_item_id_config(cls, value: Any) -> Any:
        if value is None:
            return None
        _check_item_id_config(value, path=())
        return dict(value)

    def merged(self, overrides: StoreOptions | None) -> StoreOptions:
        """
        Options with `overrides` applied on top (unset override fields keep ours).
        """
        if overrides is None:
            return self
        update = {name: getattr(overrides, name) for name in overrides.model_fields_set}
        return self.model_copy(update=update)

    def item_id_function(self, field: str) -> GetItemIdFunction | None:
        """
        The identity function of a top-level field, if one is configured.
        """
        if self.get_item_id is None:
            return None
        fn = self.get_item_id.get(field)
        return fn if callable(fn) else None


def _check_item_id_config(config: Any, *, path: tuple[str, ...]) -> None:
    if not isinstance(config, Mapping):
        where = ".".join(path) or "get_item_id"
        raise ValueError(f"{where} must be a mapping of field -> identity function")
    for name, entry in config.items():
        if not isinstance(name, str):
            raise ValueError(f"get_item_id keys must be field names, got {name!r}")
        if callable(entry):
            continue
        _check_item_id_config(entry, path=(*path, name))
