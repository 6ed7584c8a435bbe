from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Hashable, Iterable

from patchroute.core.events.patches import Patch


@dataclass(frozen=True, slots=True)
class LengthReduction:
    old_length: int
    new_length: int

    def removed_keys(self) -> range:
        """
        Indices that existed before the reduction and no longer do.
        """
        return range(self.new_length, self.old_length)


@dataclass(slots=True)
class PatchGroups:
    """
    Patches of one update partitioned by top-level field.

    - all: field -> every patch under the field (first-seen field order)
    - top_level: field -> patches with a path of length 1 or 2
    - replaced_fields: fields whose whole value was replaced
    - length_reductions: field -> shrink recorded via a `length` patch
    """

    all: dict[Hashable, list[Patch]] = field(default_factory=dict)
    top_level: dict[Hashable, list[Patch]] = field(default_factory=dict)
    replaced_fields: set[Hashable] = field(default_factory=set)
    length_reductions: dict[Hashable, LengthReduction] = field(default_factory=dict)


def group_patches_by_field(patches: Iterable[Patch]) -> PatchGroups:
    """
    Group one update's patches by their top-level field in a single pass.

    Raises RuntimeError on a patch with an empty path: the root state is
    never replaced by an update, so such a patch means the PatchSource is
    broken.
    """
    groups = PatchGroups()

    for patch in patches:
        path = patch.path
        if len(path) == 0:
            raise RuntimeError(
                f"invariant violated: patch with empty path ({patch.op}); "
                "the root state cannot be replaced by an update"
            )

        field_key = patch.field

        if len(path) == 1:
            groups.replaced_fields.add(field_key)

        reduction = _length_reduction(patch)
        if reduction is not None:
            groups.length_reductions[field_key] = reduction

        if len(path) <= 2:
            groups.top_level.setdefault(field_key, []).append(patch)

        groups.all.setdefault(field_key, []).append(patch)

    return groups


def extract_keys_from_patches(patches: Iterable[Patch], *, is_ordered: bool) -> dict[Hashable, None]:
    """
    Keys whose keyed listeners must fire for one field's patches.

    Ordered fields are addressed by item identity (patch.id) only; other
    fields by the second path segment. The result is an insertion-ordered
    set (dict keys).
    """
    keys: dict[Hashable, None] = {}
    for patch in patches:
        if is_ordered:
            # 0 and "" are valid identities
            if patch.id is not None:
                keys[patch.id] = None
        elif len(patch.path) > 1:
            keys[patch.path[1]] = None
    return keys


def _length_reduction(patch: Patch) -> LengthReduction | None:
    if len(patch.path) != 2 or patch.path[1] != "length" or patch.op != "replace":
        return None
    old, new = patch.old_value, patch.value
    if not (_is_number(old) and _is_number(new)):
        return None
    if new >= old:
        return None
    return LengthReduction(old_length=int(old), new_length=int(new))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
