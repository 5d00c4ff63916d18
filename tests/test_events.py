"""Tests for the event stream framing and terminal semantics."""

import json

import pytest

from conftest import collect_events
from storefront.events import EventKind, EventStream, encode_frame


def test_frame_format():
    frame = encode_frame(EventKind.STATUS, {"message": "🎨 Generating storefront code..."})

    text = frame.decode("utf-8")
    assert text.startswith("data: ")
    assert text.endswith("\n\n")
    assert json.loads(text[6:]) == {"event": "status", "message": "🎨 Generating storefront code..."}


@pytest.mark.asyncio
async def test_frames_are_delivered_in_emit_order():
    events = EventStream()
    events.status("one")
    events.text("a", "a")
    events.tokens(10, 5)
    events.complete(conversationId="c1", files=[])

    decoded = await collect_events(events)

    assert [e["event"] for e in decoded] == ["status", "text", "tokens", "complete"]
    assert decoded[2] == {"event": "tokens", "input": 10, "output": 5}


@pytest.mark.asyncio
async def test_exactly_one_terminal_event():
    events = EventStream()
    assert events.error("Generation failed", "boom") is True
    assert events.complete(conversationId="c1") is False
    assert events.status("late") is False

    decoded = await collect_events(events)

    assert decoded == [{"event": "error", "message": "Generation failed", "details": "boom"}]
    assert events.terminated and events.closed


@pytest.mark.asyncio
async def test_error_without_details_omits_field():
    events = EventStream()
    events.error("Generation failed")
    decoded = await collect_events(events)
    assert "details" not in decoded[0]


@pytest.mark.asyncio
async def test_close_is_idempotent_and_drops_later_frames():
    events = EventStream()
    events.status("before")
    events.close()
    events.close()

    assert events.status("after") is False
    assert not events.terminated
    assert [e["message"] for e in await collect_events(events)] == ["before"]


@pytest.mark.asyncio
async def test_thinking_start_has_no_payload():
    events = EventStream()
    events.thinking_start()
    events.close()
    assert await collect_events(events) == [{"event": "thinking_start"}]
