from __future__ import annotations

import dataclasses
from typing import Any, Mapping

import structlog

from patchroute.core.events.patches import Patch, PatchPath, Patches
from patchroute.core.store.options import GetItemIdFunction, ItemIdConfig, Mutator, State
from patchroute.recorder.draft import UNTOUCHED, DraftDict, DraftList, finalize, make_draft, new_clock

log = structlog.get_logger()


class PatchRecorder:
    """
    Default PatchSource: applies a mutation to a draft and records patches.

    The draft is a copy of the current state made of DraftDict/DraftList
    containers, which stamp the first write to each key (or list) with a
    shared clock. After `mutate(draft)` returns, the draft is compared
    against the untouched state:

      - a container still holding the copy of its previous value was
        mutated in place, so it is diffed recursively
      - a container that was reassigned is recorded as one `replace`
      - list growth is one `add` per new index; shrink is one `remove` per
        dropped index (highest first) or, with array_length_assignment,
        one `replace` of `(..., "length")`

    Patches come out in the order the mutation first wrote to their
    location, so fields and keys are seen in first-touched order. Patches
    of one list share that list's stamp and keep their index order.

    Patches recorded inside a list item that was mutated in place carry
    the item identity when the list has an identity function. Identity
    functions run on the mutated item, and any exception they (or the
    mutation) raise propagates to the caller.
    """

    def __init__(self, *, array_length_assignment: bool = False) -> None:
        self._array_length_assignment = array_length_assignment

    def __call__(
        self,
        state: State,
        mutate: Mutator,
        get_item_id: ItemIdConfig | None = None,
    ) -> tuple[State, Patches]:
        if not isinstance(state, dict):
            raise TypeError(f"state must be a dict, got {type(state).__name__}")

        copies: dict[int, Any] = {}
        draft = make_draft(state, copies, new_clock())
        mutate(draft)

        diff = _Diff(copies=copies, array_length_assignment=self._array_length_assignment)
        diff.mapping(state, draft, (), get_item_id)

        done: dict[int, Any] = {}
        new_state = finalize(draft, done)
        patches = diff.ordered(done)
        log.debug("recorder.recorded", patches=len(patches))
        return new_state, patches


def record_patches(
    state: State,
    mutate: Mutator,
    get_item_id: ItemIdConfig | None = None,
    *,
    array_length_assignment: bool = False,
) -> tuple[State, Patches]:
    return PatchRecorder(array_length_assignment=array_length_assignment)(state, mutate, get_item_id)


class _Diff:
    def __init__(self, *, copies: dict[int, Any], array_length_assignment: bool) -> None:
        self._copies = copies
        self._array_length_assignment = array_length_assignment
        self.out: Patches = []
        self._order: list[float] = []

    def ordered(self, done: dict[int, Any]) -> Patches:
        """
        Recorded patches sorted by write order, with plain container values.
        """
        ranked = sorted(range(len(self.out)), key=self._order.__getitem__)
        return [_plain(self.out[i], done) for i in ranked]

    def _emit(self, patch: Patch, order: float) -> None:
        self.out.append(patch)
        self._order.append(order)

    def value(self, old: Any, new: Any, path: PatchPath, config: Any, order: float) -> None:
        if _is_container(old) and _is_container(new):
            if self._copies.get(id(old)) is not new:
                self._emit(Patch(op="replace", path=path, value=new, old_value=old), order)
            elif isinstance(new, dict):
                self.mapping(old, new, path, config)
            else:
                self.sequence(old, new, path, config)
            return

        if not _same_value(old, new):
            self._emit(Patch(op="replace", path=path, value=new, old_value=old), order)

    def mapping(self, old: dict, new: dict, path: PatchPath, config: Any) -> None:
        order_of = new.order_of if isinstance(new, DraftDict) else _untouched

        for key, old_value in old.items():
            if key not in new:
                self._emit(Patch(op="remove", path=(*path, key), old_value=old_value), order_of(key))
                continue
            self.value(old_value, new[key], (*path, key), _child_config(config, key), order_of(key))

        for key, new_value in new.items():
            if key not in old:
                self._emit(Patch(op="add", path=(*path, key), value=new_value), order_of(key))

    def sequence(self, old: list, new: list, path: PatchPath, config: Any) -> None:
        # An identity function applies to the items; a nested config to
        # the items' own fields.
        identify: GetItemIdFunction | None = config if callable(config) else None
        item_config = None if callable(config) else config
        order = new.order() if isinstance(new, DraftList) else UNTOUCHED

        common = min(len(old), len(new))
        for i in range(common):
            start = len(self.out)
            self.value(old[i], new[i], (*path, i), item_config, order)
            if identify is not None and len(self.out) > start and _mutated_in_place(self.out, start, path):
                self._tag(start, identify(new[i]))

        for i in range(common, len(new)):
            self._emit(Patch(op="add", path=(*path, i), value=new[i]), order)

        if len(new) < len(old):
            if self._array_length_assignment:
                self._emit(
                    Patch(op="replace", path=(*path, "length"), value=len(new), old_value=len(old)),
                    order,
                )
            else:
                for i in range(len(old) - 1, len(new) - 1, -1):
                    self._emit(Patch(op="remove", path=(*path, i), old_value=old[i]), order)

    def _tag(self, start: int, item_id: Any) -> None:
        if item_id is None:
            return
        for j in range(start, len(self.out)):
            # the innermost identity wins
            if self.out[j].id is None:
                self.out[j] = dataclasses.replace(self.out[j], id=item_id)


def _plain(patch: Patch, done: dict[int, Any]) -> Patch:
    if not _is_container(patch.value):
        return patch
    return dataclasses.replace(patch, value=finalize(patch.value, done))


def _untouched(key: Any) -> float:
    return UNTOUCHED


def _mutated_in_place(out: Patches, start: int, list_path: PatchPath) -> bool:
    # A single patch at the item's own path is a whole-item replacement.
    return not (len(out) - start == 1 and len(out[start].path) == len(list_path) + 1)


def _child_config(config: Any, key: Any) -> Any:
    if isinstance(config, Mapping):
        return config.get(key)
    return None


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def _same_value(a: Any, b: Any) -> bool:
    if a is b:
        return True
    # 1, 1.0 and True compare equal but are different values
    return type(a) is type(b) and a == b
