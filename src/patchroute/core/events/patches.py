from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable, Literal, TypeAlias

PatchOp = Literal["add", "replace", "remove"]

# Path segment: a mapping key or a list index.
Key: TypeAlias = Hashable
PatchPath: TypeAlias = tuple[Key, ...]

# Logical identity of an ordered-collection item.
ItemId: TypeAlias = str | int


@dataclass(frozen=True, slots=True)
class Patch:
    """
    One structural change produced by an update.

    - path[0] is the top-level field that changed
    - value is set for add/replace, old_value for replace/remove
    - id is the identity of the list item whose property changed (if any)
    """

    op: PatchOp
    path: PatchPath
    value: Any = None
    old_value: Any = None
    id: ItemId | None = None

    @property
    def field(self) -> Key:
        if not self.path:
            raise RuntimeError("patch has an empty path")
        return self.path[0]

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"op": self.op, "path": list(self.path)}
        if self.op in ("add", "replace"):
            d["value"] = self.value
        if self.op in ("replace", "remove"):
            d["old_value"] = self.old_value
        if self.id is not None:
            d["id"] = self.id
        return d


Patches: TypeAlias = list[Patch]
