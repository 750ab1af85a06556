"""Synthetic live feed used when DEMO_MODE is enabled."""

import asyncio
from collections.abc import AsyncIterator

from loguru import logger

from .feed_client import RAW_CHAT, RAW_GIFT, RAW_VIEWERS, FeedConnectError, RawFeedEvent

_DEMO_USERS = ["demo_alice", "demo_bob", "demo_carol"]


class DemoFeedClient:
    """Emits a repeating chat / gift streak / viewer count cycle.

    Targets starting with "offline" refuse to connect, which exercises the
    connect-failure path without the live platform.
    """

    def __init__(self, target: str, *, interval: float = 2.0):
        self.target = target
        self._interval = interval
        self._connected = False
        self._stopped = asyncio.Event()

    async def connect(self) -> None:
        if self.target.lower().startswith("offline"):
            raise FeedConnectError(f"{self.target} is not live")
        self._connected = True
        logger.info("DEMO_MODE feed connected to {}", self.target)

    def _cycle(self, tick: int) -> list[RawFeedEvent]:
        user = _DEMO_USERS[tick % len(_DEMO_USERS)]
        events = [
            RawFeedEvent(RAW_CHAT, {"uniqueId": user, "comment": f"hello #{tick}", "profilePictureUrl": None}),
            RawFeedEvent(RAW_VIEWERS, {"viewerCount": 100 + tick}),
        ]
        if tick % 3 == 2:
            gift = {"uniqueId": user, "giftName": "Rose", "giftType": 1, "giftPictureUrl": None}
            events.append(RawFeedEvent(RAW_GIFT, {**gift, "repeatCount": 1, "repeatEnd": False}))
            events.append(RawFeedEvent(RAW_GIFT, {**gift, "repeatCount": 3, "repeatEnd": True}))
        return events

    async def stream(self) -> AsyncIterator[RawFeedEvent]:
        tick = 0
        while self._connected and not self._stopped.is_set():
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self._interval)
                return
            except asyncio.TimeoutError:
                pass
            for event in self._cycle(tick):
                yield event
            tick += 1

    async def disconnect(self) -> None:
        self._stopped.set()
        self._connected = False
