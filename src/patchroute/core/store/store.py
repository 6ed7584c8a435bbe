from __future__ import annotations

from typing import Any, Callable, Hashable

import structlog

from patchroute.core.config.settings import settings
from patchroute.core.events.bus import Handler, KeyedEventBus, Unsubscribe
from patchroute.core.events.keys import ALL_FIELDS, EventKey
from patchroute.core.events.patches import ItemId, Patches
from patchroute.core.store.grouping import extract_keys_from_patches, group_patches_by_field
from patchroute.core.store.options import (
    CreateFunction,
    ItemIdConfig,
    Mutator,
    State,
    StoreOptions,
    StoreSchema,
)
from patchroute.core.store.subscriptions import (
    FieldSubscriptions,
    ItemIdSubscriptions,
    KeySubscriptions,
)
from patchroute.recorder.diff import PatchRecorder

log = structlog.get_logger()

PatchesHandler = Callable[[Patches], None]


class ObservableStore:
    """
    State container that routes the patches of each update to subscribers.

    Every update emits, in order:
      1. `*` with the full patch list (even when empty)
      2. `<field>:updated` once per changed field, in first-seen order,
         with every patch under that field
      3. keyed events for that field, one per changed key, each with the
         field's full patch list

    Keyed events use the second path segment for non-ordered fields and
    the item identity (patch.id) for ordered fields. Ordered fields without
    an identity function never emit keyed events. When a non-ordered field
    is replaced wholesale, every key with a registered listener fires.

    Field kinds are fixed at construction (explicit schema, else inferred
    from the initial state) and are never re-derived.

    Example:
        store = create_store({"count": 0, "users": {}})
        store.on("count:updated", print)
        store.update(lambda s: s.update(count=s["count"] + 1))
    """

    def __init__(self, state: State, options: StoreOptions | None = None) -> None:
        if not isinstance(state, dict):
            raise TypeError(f"state must be a dict of fields, got {type(state).__name__}")

        self._state: State = state
        self._options = options if options is not None else StoreOptions()
        self._create: CreateFunction = self._options.create_function or PatchRecorder(
            array_length_assignment=settings.array_length_assignment
        )
        self._bus = KeyedEventBus()

        schema = self._options.field_kinds or StoreSchema.infer(state)
        self._schema = schema
        self._ordered_fields = schema.ordered_fields()

        fields = list(dict.fromkeys([*state.keys(), *schema.fields.keys()]))
        self._events: dict[Hashable, EventKey] = {f: EventKey.for_field(f) for f in fields}

        self.subscriptions = FieldSubscriptions(self, fields)
        self.key_subscriptions = KeySubscriptions(
            self, [f for f in fields if f not in self._ordered_fields]
        )
        self.item_id_subscriptions = ItemIdSubscriptions(
            self, [f for f in fields if f in self._ordered_fields and self._options.item_id_function(f)]
        )

    # ---------- Update ----------

    def update(self, mutate: Mutator) -> Patches:
        """
        Apply `mutate` to the state and notify subscribers.

        Returns the patch list produced by the PatchSource, unfiltered.
        """
        new_state, patches = self._create(self._state, mutate, self._options.get_item_id)
        self._state = new_state

        groups = group_patches_by_field(patches)
        log.debug("store.update", patches=len(patches), fields=len(groups.all))

        self._bus.emit(ALL_FIELDS, patches)

        for field, field_patches in groups.all.items():
            event = self._event_for(field)

            self._bus.emit(event, field_patches)

            # keyed work only when someone listens by key
            if not self._bus.has_keyed_listeners(event):
                continue

            is_ordered = field in self._ordered_fields
            if is_ordered and self._options.item_id_function(field) is None:
                continue

            changed = extract_keys_from_patches(field_patches, is_ordered=is_ordered)

            if not is_ordered:
                if field in groups.replaced_fields:
                    for key in self._bus.keyed_listener_keys(event):
                        changed[key] = None

                reduction = groups.length_reductions.get(field)
                if reduction is not None:
                    for index in reduction.removed_keys():
                        changed[index] = None

            if changed:
                log.debug("store.keyed_emit", event_key=str(event), keys=len(changed))
            for key in changed:
                self._bus.emit_keyed(event, key, field_patches)

        return patches

    # ---------- Reads ----------

    def get(self, field: str) -> Any:
        return self._state[field]

    def get_state(self) -> State:
        """
        A shallow copy of the current state (a new dict on every call).
        """
        return dict(self._state)

    def get_item_id_config(self) -> ItemIdConfig | None:
        return self._options.get_item_id

    @property
    def schema(self) -> StoreSchema:
        return self._schema

    def is_ordered(self, field: str) -> bool:
        return field in self._ordered_fields

    # ---------- Field / wildcard events ----------

    def on(self, event: str | EventKey, callback: PatchesHandler) -> Unsubscribe:
        return self._bus.on(self._resolve(event), callback)

    def off(self, event: str | EventKey, callback: PatchesHandler) -> None:
        self._bus.off(self._resolve(event), callback)

    def once(self, event: str | EventKey, callback: PatchesHandler) -> Unsubscribe:
        return self._bus.once(self._resolve(event), callback)

    # ---------- Keyed events: keyed-collection fields ----------

    def on_key(self, event: str | EventKey, key: Hashable, callback: Handler) -> Unsubscribe:
        """
        Listen to one key (or `*`) of a field.

        Fires when the key is updated or deleted, or when the whole field
        is replaced. A `*` callback receives (key, patches). Since `*` is
        the wildcard, a data key literally named "*" can only be observed
        through a `*` callback.
        """
        return self._bus.on_keyed(self._resolve_field(event), key, callback)

    def off_key(self, event: str | EventKey, key: Hashable, callback: Handler) -> None:
        self._bus.off_keyed(self._resolve_field(event), key, callback)

    def once_key(self, event: str | EventKey, key: Hashable, callback: Handler) -> Unsubscribe:
        return self._bus.once_keyed(self._resolve_field(event), key, callback)

    # ---------- Keyed events: ordered fields with identity ----------

    def on_item_id(self, event: str | EventKey, item_id: ItemId, callback: Handler) -> Unsubscribe:
        """
        Listen to one item identity (or `*`) of an ordered field.

        Fires only when a property of an existing item changes in place;
        never on item removal or on replacement of the item or the field.
        """
        key = self._resolve_field(event)
        self._require_item_id(key, "on_item_id")
        return self._bus.on_keyed(key, item_id, callback)

    def off_item_id(self, event: str | EventKey, item_id: ItemId, callback: Handler) -> None:
        self._bus.off_keyed(self._resolve_field(event), item_id, callback)

    def once_item_id(self, event: str | EventKey, item_id: ItemId, callback: Handler) -> Unsubscribe:
        key = self._resolve_field(event)
        self._require_item_id(key, "once_item_id")
        return self._bus.once_keyed(key, item_id, callback)

    # ---------- Internal helpers ----------

    def _event_for(self, field: Hashable) -> EventKey:
        event = self._events.get(field)
        if event is None:
            # field added after construction
            event = EventKey.for_field(str(field))
            self._events[field] = event
        return event

    def _resolve(self, event: str | EventKey) -> EventKey:
        key = EventKey.parse(event)
        if key.is_field:
            return self._event_for(key.field)
        return key

    def _resolve_field(self, event: str | EventKey) -> EventKey:
        key = self._resolve(event)
        if not key.is_field:
            raise ValueError(f"keyed subscriptions need a field event, got {str(key)!r}")
        return key

    def _require_item_id(self, event: EventKey, method: str) -> None:
        field = event.field
        if self._options.item_id_function(field) is None:
            raise ValueError(
                f"{method} requires get_item_id configuration for field '{field}'. "
                f"Configure it when creating the store: "
                f"create_store(state, get_item_id={{'{field}': lambda item: item['id']}})"
            )


def create_store(
    state: State,
    *,
    get_item_id: ItemIdConfig | None = None,
    create_function: CreateFunction | None = None,
    schema: StoreSchema | None = None,
) -> ObservableStore:
    """
    Create an ObservableStore over `state`.

    Example:
        store = create_store(
            {"todos": [{"id": "t1", "done": False}]},
            get_item_id={"todos": lambda item: item["id"]},
        )
    """
    return ObservableStore(state, _options(get_item_id, create_function, schema))


def create_store_factory(
    *,
    get_item_id: ItemIdConfig | None = None,
    create_function: CreateFunction | None = None,
    schema: StoreSchema | None = None,
) -> Callable[..., ObservableStore]:
    """
    A create_store variant with default options; per-call options win.
    """
    defaults = _options(get_item_id, create_function, schema)

    def factory(
        state: State,
        *,
        get_item_id: ItemIdConfig | None = None,
        create_function: CreateFunction | None = None,
        schema: StoreSchema | None = None,
    ) -> ObservableStore:
        overrides = _options(get_item_id, create_function, schema)
        return ObservableStore(state, defaults.merged(overrides))

    return factory


def _options(
    get_item_id: ItemIdConfig | None,
    create_function: CreateFunction | None,
    schema: StoreSchema | None,
) -> StoreOptions:
    values: dict[str, Any] = {}
    if get_item_id is not None:
        values["get_item_id"] = get_item_id
    if create_function is not None:
        values["create_function"] = create_function
    if schema is not None:
        values["field_kinds"] = schema
    return StoreOptions(**values)


