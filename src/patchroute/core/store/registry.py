from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock, RLock
from typing import Any

import structlog

from patchroute.core.events.patches import Patches
from patchroute.core.store.options import Mutator
from patchroute.core.store.store import ObservableStore

log = structlog.get_logger()


@dataclass(slots=True)
class StoreHandle:
    """
    A named store plus the lock that serializes access to it.

    ObservableStore assumes a stable state reference for the whole of one
    update, so concurrent callers must go through the handle. The lock is
    re-entrant: listeners may update the same store from inside a callback.
    """

    name: str
    store: ObservableStore
    created_at_utc: datetime
    updated_at_utc: datetime
    update_count: int = 0
    _lock: RLock = field(default_factory=RLock, repr=False)

    def update(self, mutate: Mutator) -> Patches:
        with self._lock:
            patches = self.store.update(mutate)
            self.update_count += 1
            self.updated_at_utc = datetime.now(timezone.utc)
        return patches

    def get_state(self) -> dict[str, Any]:
        with self._lock:
            return self.store.get_state()

    def get(self, field: str) -> Any:
        with self._lock:
            return self.store.get(field)


class StoreRegistry:
    """
    Thread-safe registry of named stores.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._stores: dict[str, StoreHandle] = {}

    def register(self, name: str, store: ObservableStore) -> StoreHandle:
        if not name:
            raise ValueError("store name must be non-empty")
        now = datetime.now(timezone.utc)
        handle = StoreHandle(name=name, store=store, created_at_utc=now, updated_at_utc=now)
        with self._lock:
            if name in self._stores:
                raise ValueError(f"store already registered: {name}")
            self._stores[name] = handle
        log.info("registry.registered", store=name, fields=len(store.get_state()))
        return handle

    def unregister(self, name: str) -> None:
        with self._lock:
            if self._stores.pop(name, None) is None:
                raise KeyError(name)
        log.info("registry.unregistered", store=name)

    def get(self, name: str) -> StoreHandle | None:
        with self._lock:
            return self._stores.get(name)

    def list(self) -> list[StoreHandle]:
        with self._lock:
            items = list(self._stores.values())
        items.sort(key=lambda h: h.name)
        return items

    def clear(self) -> None:
        with self._lock:
            self._stores.clear()
