from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, Hashable, TypeAlias

import structlog

from patchroute.core.events.keys import WILDCARD, EventKey

log = structlog.get_logger()

Handler: TypeAlias = Callable[..., None]
Unsubscribe: TypeAlias = Callable[[], None]


@dataclass(slots=True)
class _Listener:
    handler: Handler
    once: bool = False


@dataclass(frozen=True)
class Subscription:
    """
    Represents a subscription of a handler to an event (and optionally a key).

    Calling it removes the handler; calling it twice is harmless.
    """

    event: EventKey
    handler: Handler
    bus: "KeyedEventBus"
    key: Hashable | None = None

    def __call__(self) -> None:
        if self.key is None:
            self.bus.off(self.event, self.handler)
        else:
            self.bus.off_keyed(self.event, self.key, self.handler)


class KeyedEventBus:
    """
    Deterministic synchronous event bus with keyed sub-channels.

    - emit(event, payload) dispatches to plain handlers of `event`
    - emit_keyed(event, key, payload) dispatches to handlers of `key`,
      then to the `*` handlers of `event` with (key, payload)
    - dispatch order is subscription order
    - handlers run over a snapshot, so (un)subscribing during dispatch
      affects the next emission only
    - handler failures are fail-fast (raised to the emitter)

    `*` is reserved as the wildcard key: a data key equal to "*" reaches
    only the wildcard handlers, which receive ("*", payload).
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[EventKey, list[_Listener]] = defaultdict(list)
        self._keyed: DefaultDict[EventKey, dict[Hashable, list[_Listener]]] = defaultdict(dict)

    # ---------- Plain events ----------

    def on(self, event: EventKey, handler: Handler) -> Subscription:
        return self._add(event, handler, once=False)

    def once(self, event: EventKey, handler: Handler) -> Subscription:
        return self._add(event, handler, once=True)

    def off(self, event: EventKey, handler: Handler) -> None:
        listeners = self._handlers.get(event)
        if not listeners:
            return
        _remove_handler(listeners, handler)
        if not listeners:
            del self._handlers[event]

    def emit(self, event: EventKey, payload: Any) -> None:
        listeners = self._handlers.get(event)
        if not listeners:
            return
        for listener in tuple(listeners):
            if listener.once and not self._consume(listeners, listener):
                continue
            listener.handler(payload)
        # a handler may have replaced the list via off() + on()
        if not listeners and self._handlers.get(event) is listeners:
            del self._handlers[event]

    # ---------- Keyed events ----------

    def on_keyed(self, event: EventKey, key: Hashable, handler: Handler) -> Subscription:
        return self._add_keyed(event, key, handler, once=False)

    def once_keyed(self, event: EventKey, key: Hashable, handler: Handler) -> Subscription:
        return self._add_keyed(event, key, handler, once=True)

    def off_keyed(self, event: EventKey, key: Hashable, handler: Handler) -> None:
        by_key = self._keyed.get(event)
        if not by_key:
            return
        listeners = by_key.get(key)
        if not listeners:
            return
        _remove_handler(listeners, handler)
        self._prune(event, key)

    def emit_keyed(self, event: EventKey, key: Hashable, payload: Any) -> None:
        by_key = self._keyed.get(event)
        if not by_key:
            return

        specific = by_key.get(key) if key != WILDCARD else None
        if specific:
            for listener in tuple(specific):
                if listener.once and not self._consume(specific, listener):
                    continue
                listener.handler(payload)
            self._prune(event, key)

        wildcard = by_key.get(WILDCARD)
        if wildcard:
            for listener in tuple(wildcard):
                if listener.once and not self._consume(wildcard, listener):
                    continue
                listener.handler(key, payload)
            self._prune(event, WILDCARD)

    # ---------- Introspection ----------

    def has_keyed_listeners(self, event: EventKey) -> bool:
        by_key = self._keyed.get(event)
        return bool(by_key) and any(by_key.values())

    def keyed_listener_keys(self, event: EventKey) -> tuple[Hashable, ...]:
        """
        Keys that currently have at least one listener (wildcard excluded).
        """
        by_key = self._keyed.get(event)
        if not by_key:
            return ()
        return tuple(k for k, listeners in by_key.items() if listeners and k != WILDCARD)

    def listener_count(self, event: EventKey) -> int:
        plain = len(self._handlers.get(event, ()))
        keyed = sum(len(v) for v in self._keyed.get(event, {}).values())
        return plain + keyed

    # ---------- Internal helpers ----------

    def _add(self, event: EventKey, handler: Handler, *, once: bool) -> Subscription:
        if not callable(handler):
            raise TypeError("handler must be callable")
        self._handlers[event].append(_Listener(handler=handler, once=once))
        log.debug("bus.subscribed", event_key=str(event), once=once, handler=getattr(handler, "__name__", "handler"))
        return Subscription(event=event, handler=handler, bus=self)

    def _add_keyed(self, event: EventKey, key: Hashable, handler: Handler, *, once: bool) -> Subscription:
        if not callable(handler):
            raise TypeError("handler must be callable")
        if key is None:
            raise ValueError("key must not be None")
        self._keyed[event].setdefault(key, []).append(_Listener(handler=handler, once=once))
        log.debug("bus.subscribed_keyed", event_key=str(event), key=key, once=once)
        return Subscription(event=event, handler=handler, bus=self, key=key)

    @staticmethod
    def _consume(listeners: list[_Listener], listener: _Listener) -> bool:
        # A once-listener already removed by an earlier handler must not fire.
        for i, current in enumerate(listeners):
            if current is listener:
                del listeners[i]
                return True
        return False

    def _prune(self, event: EventKey, key: Hashable) -> None:
        by_key = self._keyed.get(event)
        if by_key is None:
            return
        if key in by_key and not by_key[key]:
            del by_key[key]
        if not by_key:
            del self._keyed[event]


def _remove_handler(listeners: list[_Listener], handler: Handler) -> None:
    # Remove the first registration of `handler` (plain or once).
    for i, listener in enumerate(listeners):
        if listener.handler == handler:
            del listeners[i]
            return
