from __future__ import annotations

import copy
from itertools import count
from typing import Any, Iterator

# Order of a write nothing recorded (e.g. an in-place change to a leaf object).
UNTOUCHED = float("inf")


class DraftDict(dict):
    """
    dict that stamps each key with the clock tick of its first write.
    """

    __slots__ = ("_clock", "touched")

    def __init__(self, clock: Iterator[int]) -> None:
        super().__init__()
        self._clock = clock
        self.touched: dict[Any, int] = {}

    def _touch(self, key: Any) -> None:
        if key not in self.touched:
            self.touched[key] = next(self._clock)

    def order_of(self, key: Any) -> float:
        return self.touched.get(key, UNTOUCHED)

    def __setitem__(self, key: Any, value: Any) -> None:
        self._touch(key)
        super().__setitem__(key, value)

    def __delitem__(self, key: Any) -> None:
        self._touch(key)
        super().__delitem__(key)

    def pop(self, key: Any, *default: Any) -> Any:
        if key in self:
            self._touch(key)
        return super().pop(key, *default)

    def popitem(self) -> tuple[Any, Any]:
        key, value = super().popitem()
        self._touch(key)
        return key, value

    def setdefault(self, key: Any, default: Any = None) -> Any:
        if key not in self:
            self._touch(key)
        return super().setdefault(key, default)

    def update(self, *args: Any, **kwargs: Any) -> None:
        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def clear(self) -> None:
        for key in self:
            self._touch(key)
        super().clear()

    def __ior__(self, other: Any) -> DraftDict:
        self.update(other)
        return self


class DraftList(list):
    """
    list that stamps the clock tick of its first structural write.
    """

    __slots__ = ("_clock", "touched_at")

    def __init__(self, clock: Iterator[int]) -> None:
        super().__init__()
        self._clock = clock
        self.touched_at: int | None = None

    def _touch(self) -> None:
        if self.touched_at is None:
            self.touched_at = next(self._clock)

    def order(self) -> float:
        return UNTOUCHED if self.touched_at is None else self.touched_at

    def __setitem__(self, index: Any, value: Any) -> None:
        self._touch()
        super().__setitem__(index, value)

    def __delitem__(self, index: Any) -> None:
        self._touch()
        super().__delitem__(index)

    def __iadd__(self, other: Any) -> DraftList:
        self._touch()
        return super().__iadd__(other)

    def __imul__(self, n: Any) -> DraftList:
        self._touch()
        return super().__imul__(n)

    def append(self, value: Any) -> None:
        self._touch()
        super().append(value)

    def extend(self, values: Any) -> None:
        self._touch()
        super().extend(values)

    def insert(self, index: Any, value: Any) -> None:
        self._touch()
        super().insert(index, value)

    def pop(self, index: Any = -1) -> Any:
        self._touch()
        return super().pop(index)

    def remove(self, value: Any) -> None:
        self._touch()
        super().remove(value)

    def clear(self) -> None:
        self._touch()
        super().clear()

    def sort(self, *args: Any, **kwargs: Any) -> None:
        self._touch()
        super().sort(*args, **kwargs)

    def reverse(self) -> None:
        self._touch()
        super().reverse()


def make_draft(value: Any, copies: dict[int, Any], clock: Iterator[int]) -> Any:
    """
    Copy `value` into drafts, recording each copy in `copies` by id(original).

    Plain dicts and lists become DraftDict/DraftList; anything else is
    deep-copied with the same memo, so shared references stay shared.
    """
    key = id(value)
    if key in copies:
        return copies[key]

    if type(value) is dict:
        draft = DraftDict(clock)
        copies[key] = draft
        for k, v in value.items():
            dict.__setitem__(draft, k, make_draft(v, copies, clock))
        return draft

    if type(value) is list:
        items = DraftList(clock)
        copies[key] = items
        list.extend(items, (make_draft(v, copies, clock) for v in value))
        return items

    return copy.deepcopy(value, copies)


def new_clock() -> Iterator[int]:
    return count()


def finalize(value: Any, done: dict[int, Any]) -> Any:
    """
    Replace drafts by plain dicts/lists, reachable through new containers too.
    """
    key = id(value)
    if key in done:
        return done[key]

    if isinstance(value, DraftDict):
        out: dict = {}
        done[key] = out
        for k, v in dict.items(value):
            out[k] = finalize(v, done)
        return out

    if isinstance(value, DraftList):
        items: list = []
        done[key] = items
        items.extend(finalize(v, done) for v in list.__iter__(value))
        return items

    if type(value) is dict:
        done[key] = value
        for k, v in list(value.items()):
            plain = finalize(v, done)
            if plain is not v:
                value[k] = plain
        return value

    if type(value) is list:
        done[key] = value
        for i, v in enumerate(value):
            plain = finalize(v, done)
            if plain is not v:
                value[i] = plain
        return value

    return value
