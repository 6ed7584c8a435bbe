"""Patch-driven event routing for observable state stores."""

from __future__ import annotations

__version__ = "0.1.0"

from patchroute.bridge.accessors import FieldAccessor, KeyedAccessor, StoreBridge  # noqa: E402
from patchroute.core.events.keys import ALL_FIELDS, WILDCARD, EventKey  # noqa: E402
from patchroute.core.events.patches import Patch, Patches  # noqa: E402
from patchroute.core.store.options import FieldKind, StoreOptions, StoreSchema  # noqa: E402
from patchroute.core.store.store import ObservableStore, create_store, create_store_factory  # noqa: E402
from patchroute.recorder.diff import PatchRecorder, record_patches  # noqa: E402

__all__ = [
    "ALL_FIELDS",
    "WILDCARD",
    "EventKey",
    "FieldAccessor",
    "FieldKind",
    "KeyedAccessor",
    "ObservableStore",
    "Patch",
    "PatchRecorder",
    "Patches",
    "StoreBridge",
    "StoreOptions",
    "StoreSchema",
    "create_store",
    "create_store_factory",
    "record_patches",
]
