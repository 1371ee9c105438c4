"""
Tests for typed event parsing and the event bus.
"""

import asyncio

from realtime_translator.events import (
    ConversationItemCreated,
    EventBus,
    RealtimeEvent,
    TextDelta,
    UnknownEvent,
    parse_event,
)


def test_known_types_are_typed():
    event = parse_event({"type": "response.text.delta", "item_id": "a1", "delta": "hi"})
    assert isinstance(event, TextDelta)
    assert event.delta == "hi"


def test_unknown_type_keeps_payload():
    event = parse_event({"type": "rate_limits.updated", "rate_limits": [{"name": "tokens"}]})
    assert isinstance(event, UnknownEvent)
    assert event.type == "rate_limits.updated"
    assert event.model_dump()["rate_limits"] == [{"name": "tokens"}]


def test_malformed_known_type_falls_back_to_unknown():
    event = parse_event({"type": "conversation.item.created"})
    assert not isinstance(event, ConversationItemCreated)
    assert isinstance(event, UnknownEvent)


def test_realtime_event_sources():
    assert RealtimeEvent.server({"type": "session.created"}).source == "server"
    client_event = RealtimeEvent.client({"type": "response.create"})
    assert client_event.source == "client"
    assert client_event.count is None
    assert client_event.time is not None


def test_bus_runs_handlers_in_order_and_awaits_coroutines():
    bus = EventBus()
    seen = []

    async def slow(payload):
        await asyncio.sleep(0)
        seen.append(("slow", payload))

    bus.on("x", slow)
    bus.on("x", lambda payload: seen.append(("fast", payload)))
    asyncio.run(bus.dispatch("x", 1))

    assert seen == [("slow", 1), ("fast", 1)]


def test_failing_handler_does_not_stop_others(caplog):
    bus = EventBus()
    seen = []

    def broken(payload):
        raise RuntimeError("nope")

    bus.on("x", broken)
    bus.on("x", seen.append)
    asyncio.run(bus.dispatch("x", "payload"))

    assert seen == ["payload"]
    assert "Handler for 'x' failed" in caplog.text


def test_unsubscribe_and_clear():
    bus = EventBus()
    unsubscribe = bus.on("x", print)
    bus.on("y", print)
    unsubscribe()
    assert bus.handler_count("x") == 0
    assert bus.handler_count() == 1
    bus.clear()
    assert bus.handler_count() == 0
