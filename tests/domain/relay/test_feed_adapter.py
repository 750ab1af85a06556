"""Tests for FeedAdapter normalization, lifecycle and teardown."""

import asyncio

import pytest

from app.domain.relay.feed_adapter import FeedAdapter, is_streak_in_progress, normalize_event
from app.domain.relay.feed_events import ChatMessage, GiftEvent, Terminated, ViewerCount
from app.services.feed.feed_client import (
    RAW_CHAT,
    RAW_ERROR,
    RAW_GIFT,
    RAW_STREAM_END,
    RAW_VIEWERS,
    RawFeedEvent,
)
from app.utils.app_errors import AppError
from tests.fixtures.relay_fakes import ScriptedFeedClient, settle


class Recorder:
    def __init__(self):
        self.events = []
        self.terminations = []

    async def on_event(self, event):
        self.events.append(event)

    async def on_terminate(self, reason):
        self.terminations.append(reason)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def client() -> ScriptedFeedClient:
    return ScriptedFeedClient("alice")


@pytest.fixture
async def opened(client, recorder) -> FeedAdapter:
    adapter = FeedAdapter(client, connect_timeout=1.0)
    result = await adapter.open(recorder.on_event, recorder.on_terminate)
    assert result.connected
    return adapter


class TestNormalizeEvent:
    def test_chat(self):
        event = normalize_event(
            RawFeedEvent(RAW_CHAT, {"uniqueId": "bob", "comment": "hi", "profilePictureUrl": "http://p/b.png"})
        )

        assert event == ChatMessage(sender_id="bob", text="hi", avatar_url="http://p/b.png")

    def test_viewers(self):
        assert normalize_event(RawFeedEvent(RAW_VIEWERS, {"viewerCount": 42})) == ViewerCount(count=42)

    def test_stream_end(self):
        assert isinstance(normalize_event(RawFeedEvent(RAW_STREAM_END, {})), Terminated)

    def test_unknown_kind_is_dropped(self):
        assert normalize_event(RawFeedEvent("like", {"likeCount": 3})) is None

    def test_mid_streak_gift_is_dropped(self):
        raw = RawFeedEvent(RAW_GIFT, {"uniqueId": "bob", "giftName": "Rose", "giftType": 1, "repeatEnd": False})

        assert normalize_event(raw) is None

    def test_streak_gift_without_end_flag_is_dropped(self):
        assert is_streak_in_progress({"giftType": 1}) is True
        assert normalize_event(RawFeedEvent(RAW_GIFT, {"uniqueId": "bob", "giftType": 1})) is None

    def test_streak_ended_gift_is_forwarded(self):
        raw = RawFeedEvent(
            RAW_GIFT,
            {
                "uniqueId": "bob",
                "giftName": "Rose",
                "giftType": 1,
                "repeatEnd": True,
                "repeatCount": 7,
                "giftPictureUrl": "http://g/rose.png",
            },
        )

        assert normalize_event(raw) == GiftEvent(
            sender_id="bob", gift_name="Rose", repeat_count=7, icon="http://g/rose.png"
        )

    def test_non_streak_gift_is_forwarded(self):
        event = normalize_event(RawFeedEvent(RAW_GIFT, {"uniqueId": "bob", "giftName": "Lion", "giftType": 2}))

        assert event == GiftEvent(sender_id="bob", gift_name="Lion", repeat_count=1)


class TestOpen:
    async def test_connect_refused(self, recorder):
        adapter = FeedAdapter(ScriptedFeedClient("ghost", refuse="ghost is offline"), connect_timeout=1.0)

        result = await adapter.open(recorder.on_event, recorder.on_terminate)

        assert result.connected is False
        assert result.reason == "ghost is offline"
        assert recorder.terminations == []

    async def test_connect_timeout(self, recorder):
        client = ScriptedFeedClient("slow", gate=asyncio.Event())
        adapter = FeedAdapter(client, connect_timeout=0.05)

        result = await adapter.open(recorder.on_event, recorder.on_terminate)
        await settle()

        assert result.connected is False
        assert "timed out" in result.reason
        assert client.disconnect_calls == 1

    async def test_open_twice_raises(self, opened, recorder):
        with pytest.raises(AppError):
            await opened.open(recorder.on_event, recorder.on_terminate)

    async def test_close_before_open_fails_open(self, client, recorder):
        adapter = FeedAdapter(client, connect_timeout=1.0)
        adapter.close()

        result = await adapter.open(recorder.on_event, recorder.on_terminate)

        assert result.connected is False
        assert client.connected is False


class TestStreaming:
    async def test_events_forwarded_in_order(self, opened, client, recorder):
        client.push(RAW_CHAT, uniqueId="bob", comment="hi")
        client.push(RAW_VIEWERS, viewerCount=10)
        client.push(RAW_GIFT, uniqueId="bob", giftName="Rose", giftType=1, repeatEnd=False, repeatCount=1)
        client.push(RAW_GIFT, uniqueId="bob", giftName="Rose", giftType=1, repeatEnd=True, repeatCount=5)
        await settle()

        assert recorder.events == [
            ChatMessage(sender_id="bob", text="hi"),
            ViewerCount(count=10),
            GiftEvent(sender_id="bob", gift_name="Rose", repeat_count=5),
        ]

    async def test_runtime_error_keeps_session_open(self, opened, client, recorder):
        client.push(RAW_ERROR, message="websocket hiccup")
        client.push(RAW_CHAT, uniqueId="bob", comment="still here")
        await settle()

        assert recorder.events == [ChatMessage(sender_id="bob", text="still here")]
        assert recorder.terminations == []
        assert opened.terminated is False

    async def test_failing_handler_does_not_stop_feed(self, client):
        delivered = []

        async def on_event(event):
            delivered.append(event)
            if len(delivered) == 1:
                raise RuntimeError("subscriber went away")

        async def on_terminate(reason):
            pass

        adapter = FeedAdapter(client, connect_timeout=1.0)
        await adapter.open(on_event, on_terminate)
        client.push(RAW_CHAT, uniqueId="a", comment="1")
        client.push(RAW_CHAT, uniqueId="b", comment="2")
        await settle()

        assert len(delivered) == 2


class TestTermination:
    async def test_stream_end_event_terminates_once(self, opened, client, recorder):
        client.push(RAW_STREAM_END)
        client.end()
        await settle()

        assert recorder.terminations == ["stream_end"]
        assert opened.terminated is True
        assert client.disconnect_calls == 1

    async def test_exhausted_stream_terminates(self, opened, client, recorder):
        client.end()
        await settle()

        assert recorder.terminations == ["stream_end"]

    async def test_stream_failure_terminates_with_error(self, opened, client, recorder):
        client.fail(ConnectionResetError("reset by peer"))
        await settle()

        assert len(recorder.terminations) == 1
        assert recorder.terminations[0].startswith("error:")

    async def test_no_events_after_termination(self, opened, client, recorder):
        client.push(RAW_STREAM_END)
        client.push(RAW_CHAT, uniqueId="bob", comment="late")
        await settle()

        assert recorder.events == []


class TestClose:
    async def test_close_is_idempotent(self, opened, client, recorder):
        opened.close()
        opened.close()
        await settle()

        assert opened.closed is True
        assert client.disconnect_calls == 1

    async def test_close_suppresses_terminate_and_events(self, opened, client, recorder):
        opened.close()
        client.push(RAW_CHAT, uniqueId="bob", comment="after close")
        client.end()
        await settle()

        assert recorder.events == []
        assert recorder.terminations == []

    async def test_close_after_termination_disconnects_once(self, opened, client, recorder):
        client.end()
        await settle()
        opened.close()
        await settle()

        assert recorder.terminations == ["stream_end"]
        assert client.disconnect_calls == 1
