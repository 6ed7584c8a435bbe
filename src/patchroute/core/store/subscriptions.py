from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Hashable, Iterator, Sequence, TypeAlias

from patchroute.core.events.bus import Unsubscribe
from patchroute.core.events.keys import EventKey
from patchroute.core.events.patches import ItemId

if TYPE_CHECKING:
    from patchroute.core.store.store import ObservableStore

ValueCallback: TypeAlias = Callable[[Any], None]
Subscribe: TypeAlias = Callable[[ValueCallback], Unsubscribe]


class _FieldMap(Mapping):
    """
    Read-only field -> handler mapping, fixed at store construction.
    """

    def __init__(self, store: ObservableStore, fields: Sequence[str]) -> None:
        self._store = store
        self._fields = tuple(fields)

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def _check(self, field: str) -> None:
        if field not in self._fields:
            raise KeyError(field)


class FieldSubscriptions(_FieldMap):
    """
    `subscriptions[field](callback)`: value callbacks for a field.

    The callback receives the current value immediately and the new value
    after every update touching the field.
    """

    def __getitem__(self, field: str) -> Subscribe:
        self._check(field)
        store = self._store

        def subscribe(callback: ValueCallback) -> Unsubscribe:
            callback(store.get(field))
            return store.on(EventKey.for_field(field), lambda _patches: callback(store.get(field)))

        return subscribe


class KeySubscriptions(_FieldMap):
    """
    `key_subscriptions[field](key)(callback)`: value callbacks for one key
    of a non-ordered field. The callback receives the field's value.
    """

    def __getitem__(self, field: str) -> Callable[[Hashable], Subscribe]:
        self._check(field)
        store = self._store

        def for_key(key: Hashable) -> Subscribe:
            def subscribe(callback: ValueCallback) -> Unsubscribe:
                callback(store.get(field))
                return store.on_key(EventKey.for_field(field), key, lambda *_: callback(store.get(field)))

            return subscribe

        return for_key


class ItemIdSubscriptions(_FieldMap):
    """
    `item_id_subscriptions[field](item_id)(callback)`: value callbacks for
    one item of an ordered field with an identity function.
    """

    def __getitem__(self, field: str) -> Callable[[ItemId], Subscribe]:
        self._check(field)
        store = self._store

        def for_item(item_id: ItemId) -> Subscribe:
            def subscribe(callback: ValueCallback) -> Unsubscribe:
                callback(store.get(field))
                return store.on_item_id(EventKey.for_field(field), item_id, lambda *_: callback(store.get(field)))

            return subscribe

        return for_item
