from __future__ import annotations

import pytest
import structlog

from patchroute.core.events.bus import KeyedEventBus
from patchroute.core.events.keys import ALL_FIELDS, EventKey
from patchroute.core.logging.setup import configure_logging

USER = EventKey.for_field("user")


class Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def make(self, tag: str):
        def handler(*args) -> None:
            self.calls.append((tag, *args))

        handler.__name__ = tag
        return handler


def test_event_key_parsing() -> None:
    assert EventKey.parse("*") is ALL_FIELDS
    assert EventKey.parse("user:updated") == USER
    assert EventKey.parse(USER) is USER
    assert str(USER) == "user:updated"
    assert str(ALL_FIELDS) == "*"

    with pytest.raises(ValueError):
        EventKey.parse("user")
    with pytest.raises(ValueError):
        EventKey.parse(":updated")
    with pytest.raises(TypeError):
        EventKey.parse(42)  # type: ignore[arg-type]


def test_emit_dispatches_in_subscription_order() -> None:
    bus = KeyedEventBus()
    rec = Recorder()
    bus.on(USER, rec.make("a"))
    bus.on(USER, rec.make("b"))
    bus.on(ALL_FIELDS, rec.make("all"))

    bus.emit(USER, "p")

    assert rec.calls == [("a", "p"), ("b", "p")]


def test_once_fires_a_single_time_and_can_be_cancelled() -> None:
    bus = KeyedEventBus()
    rec = Recorder()
    bus.once(USER, rec.make("once"))
    cancel = bus.once(USER, rec.make("cancelled"))
    cancel()

    bus.emit(USER, 1)
    bus.emit(USER, 2)

    assert rec.calls == [("once", 1)]
    assert bus.listener_count(USER) == 0


def test_off_and_unsubscribe() -> None:
    bus = KeyedEventBus()
    rec = Recorder()
    a = rec.make("a")
    b = rec.make("b")
    bus.on(USER, a)
    unsubscribe = bus.on(USER, b)

    bus.off(USER, a)
    unsubscribe()
    unsubscribe()  # idempotent

    bus.emit(USER, 1)
    assert rec.calls == []


def test_unsubscribing_during_dispatch_applies_to_next_emission() -> None:
    bus = KeyedEventBus()
    rec = Recorder()
    subs = {}

    def first(payload) -> None:
        rec.calls.append(("first", payload))
        subs["second"]()

    bus.on(USER, first)
    subs["second"] = bus.on(USER, rec.make("second"))

    bus.emit(USER, 1)
    bus.emit(USER, 2)

    assert rec.calls == [("first", 1), ("second", 1), ("first", 2)]


def test_keyed_emit_calls_specific_then_wildcard_with_key() -> None:
    bus = KeyedEventBus()
    rec = Recorder()
    bus.on_keyed(USER, "*", rec.make("any"))
    bus.on_keyed(USER, "name", rec.make("name"))
    bus.on_keyed(USER, "age", rec.make("age"))

    bus.emit_keyed(USER, "name", ["patch"])

    assert rec.calls == [("name", ["patch"]), ("any", "name", ["patch"])]


def test_keyed_once_and_off() -> None:
    bus = KeyedEventBus()
    rec = Recorder()
    age = rec.make("age")
    bus.once_keyed(USER, "name", rec.make("name"))
    bus.on_keyed(USER, "age", age)
    bus.off_keyed(USER, "age", age)

    bus.emit_keyed(USER, "name", 1)
    bus.emit_keyed(USER, "name", 2)
    bus.emit_keyed(USER, "age", 3)

    assert rec.calls == [("name", 1)]


def test_keyed_introspection() -> None:
    bus = KeyedEventBus()
    assert not bus.has_keyed_listeners(USER)
    assert bus.keyed_listener_keys(USER) == ()

    handler = Recorder().make("h")
    bus.on_keyed(USER, "name", handler)
    bus.on_keyed(USER, 0, handler)
    bus.on_keyed(USER, "*", handler)

    assert bus.has_keyed_listeners(USER)
    assert bus.keyed_listener_keys(USER) == ("name", 0)

    bus.off_keyed(USER, "name", handler)
    bus.off_keyed(USER, 0, handler)
    bus.off_keyed(USER, "*", handler)

    assert not bus.has_keyed_listeners(USER)

    # plain listeners do not count as keyed ones
    bus.on(USER, handler)
    assert not bus.has_keyed_listeners(USER)


def test_rejects_bad_registrations() -> None:
    bus = KeyedEventBus()
    with pytest.raises(TypeError):
        bus.on(USER, "not callable")  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        bus.on_keyed(USER, None, lambda p: None)


def test_handler_errors_propagate_to_emitter() -> None:
    bus = KeyedEventBus()

    def boom(payload) -> None:
        raise RuntimeError("listener failed")

    bus.on(USER, boom)
    with pytest.raises(RuntimeError, match="listener failed"):
        bus.emit(USER, 1)


def test_handler_can_unsubscribe_itself_and_subscribe_a_replacement() -> None:
    bus = KeyedEventBus()
    rec = Recorder()
    second = rec.make("second")

    def first(payload) -> None:
        rec.calls.append(("first", payload))
        bus.off(USER, first)
        bus.on(USER, second)

    bus.on(USER, first)

    bus.emit(USER, 1)
    bus.emit(USER, 2)

    assert rec.calls == [("first", 1), ("second", 2)]
    assert bus.listener_count(USER) == 1


def test_keyed_handler_can_resubscribe_during_dispatch() -> None:
    bus = KeyedEventBus()
    rec = Recorder()
    second = rec.make("second")

    def first(payload) -> None:
        rec.calls.append(("first", payload))
        bus.off_keyed(USER, "name", first)
        bus.on_keyed(USER, "name", second)

    bus.on_keyed(USER, "name", first)

    bus.emit_keyed(USER, "name", 1)
    bus.emit_keyed(USER, "name", 2)

    assert rec.calls == [("first", 1), ("second", 2)]
    assert bus.keyed_listener_keys(USER) == ("name",)


def test_literal_star_key_reaches_wildcard_handlers_only() -> None:
    bus = KeyedEventBus()
    rec = Recorder()
    bus.on_keyed(USER, "*", rec.make("any"))

    bus.emit_keyed(USER, "*", "p")

    assert rec.calls == [("any", "*", "p")]


def test_subscriptions_log_with_debug_logging_enabled() -> None:
    configure_logging(level="DEBUG", json=False)
    try:
        bus = KeyedEventBus()
        rec = Recorder()
        unsubscribe = bus.on(USER, rec.make("plain"))
        bus.once_keyed(USER, 0, rec.make("keyed"))

        bus.emit(USER, 1)
        bus.emit_keyed(USER, 0, 2)
        unsubscribe()

        assert rec.calls == [("plain", 1), ("keyed", 2)]
    finally:
        structlog.reset_defaults()
