from __future__ import annotations

from typing import Any, Callable, Hashable

import structlog

from patchroute.core.events.bus import Unsubscribe
from patchroute.core.events.keys import EventKey
from patchroute.core.events.patches import Patches
from patchroute.core.store.options import Mutator
from patchroute.core.store.store import ObservableStore

log = structlog.get_logger()

ChangeCallback = Callable[[], None]


class _Accessor:
    """
    A readable, subscribable slice of a store.

    The store listener is attached when the first subscriber arrives and
    detached when the last one leaves.
    """

    def __init__(self, store: ObservableStore) -> None:
        self._store = store
        self._subscribers: list[ChangeCallback] = []
        self._detach: Unsubscribe | None = None

    @property
    def active(self) -> bool:
        return self._detach is not None

    def subscribe(self, on_change: ChangeCallback) -> Unsubscribe:
        if not callable(on_change):
            raise TypeError("on_change must be callable")
        if self._detach is None:
            self._detach = self._attach(self._notify)
        self._subscribers.append(on_change)

        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            removed = True
            self._subscribers.remove(on_change)
            if not self._subscribers and self._detach is not None:
                detach, self._detach = self._detach, None
                detach()

        return unsubscribe

    def _notify(self, *_: Any) -> None:
        for callback in tuple(self._subscribers):
            callback()

    def _attach(self, handler: Callable[..., None]) -> Unsubscribe:
        raise NotImplementedError

    def get(self) -> Any:
        raise NotImplementedError


class FieldAccessor(_Accessor):
    def __init__(self, store: ObservableStore, field: str) -> None:
        super().__init__(store)
        self.field = field

    def _attach(self, handler: Callable[..., None]) -> Unsubscribe:
        return self._store.on(EventKey.for_field(self.field), handler)

    def get(self) -> Any:
        return self._store.get(self.field)


class KeyedAccessor(_Accessor):
    """
    One key of a field: a mapping key for non-ordered fields, an item
    identity for ordered fields (which requires an identity function).
    """

    def __init__(self, store: ObservableStore, field: str, key: Hashable) -> None:
        super().__init__(store)
        self.field = field
        self.key = key

    def _attach(self, handler: Callable[..., None]) -> Unsubscribe:
        event = EventKey.for_field(self.field)
        if self._store.is_ordered(self.field):
            return self._store.on_item_id(event, self.key, handler)
        return self._store.on_key(event, self.key, handler)

    def get(self) -> Any:
        value = self._store.get(self.field)
        if self._store.is_ordered(self.field):
            identify = _identity(self._store, self.field)
            if identify is None or not isinstance(value, list):
                return None
            for item in value:
                if identify(item) == self.key:
                    return item
            return None
        if isinstance(value, dict):
            return value.get(self.key)
        return None


class StoreBridge:
    """
    Explicit subscribe/read accessor pairs for UI framework adapters.

    Accessors are cached per field and per (field, key), so every reader
    of the same slice shares one store listener.

    Example:
        bridge = StoreBridge(store)
        todo = bridge.keyed("todos", "t1")
        unsubscribe = todo.subscribe(lambda: render(todo.get()))
    """

    def __init__(self, store: ObservableStore) -> None:
        self._store = store
        self._fields: dict[str, FieldAccessor] = {}
        self._keyed: dict[tuple[str, Hashable], KeyedAccessor] = {}

    @property
    def store(self) -> ObservableStore:
        return self._store

    def field(self, name: str) -> FieldAccessor:
        accessor = self._fields.get(name)
        if accessor is None:
            accessor = FieldAccessor(self._store, name)
            self._fields[name] = accessor
            log.debug("bridge.accessor_created", field=name)
        return accessor

    def keyed(self, field: str, key: Hashable) -> KeyedAccessor:
        accessor = self._keyed.get((field, key))
        if accessor is None:
            accessor = KeyedAccessor(self._store, field, key)
            self._keyed[(field, key)] = accessor
            log.debug("bridge.accessor_created", field=field, key=key)
        return accessor

    def update(self, mutate: Mutator) -> Patches:
        return self._store.update(mutate)

    def get_state(self) -> dict[str, Any]:
        return self._store.get_state()


def _identity(store: ObservableStore, field: str) -> Callable[[Any], Any] | None:
    config = store.get_item_id_config()
    if not config:
        return None
    fn = config.get(field)
    return fn if callable(fn) else None
