"""TikTok LIVE feed client built on the TikTokLive library.

Platform events are bridged from TikTokLive listeners into a queue and exposed
as RawFeedEvent with the platform's field names.
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Any

from loguru import logger
from TikTokLive import TikTokLiveClient
from TikTokLive.events import (
    CommentEvent,
    DisconnectEvent,
    GiftEvent,
    LiveEndEvent,
    RoomUserSeqEvent,
)

from .feed_client import (
    RAW_CHAT,
    RAW_GIFT,
    RAW_STREAM_END,
    RAW_VIEWERS,
    FeedConnectError,
    RawFeedEvent,
)

_END = object()


def _dig(obj: Any, *path: str, default: Any = None) -> Any:
    for name in path:
        if obj is None:
            return default
        obj = getattr(obj, name, None)
    return default if obj is None else obj


def _first_url(image: Any) -> str | None:
    urls = _dig(image, "m_urls") or _dig(image, "url_list") or []
    return urls[0] if urls else None


class FeedStreamError(Exception):
    """The platform connection failed after it was established."""


class TikTokFeedClient:
    def __init__(self, target: str):
        self.target = target
        self._client = TikTokLiveClient(unique_id=target)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._client.add_listener(CommentEvent, self._on_comment)
        self._client.add_listener(GiftEvent, self._on_gift)
        self._client.add_listener(RoomUserSeqEvent, self._on_room_user)
        self._client.add_listener(LiveEndEvent, self._on_end)
        self._client.add_listener(DisconnectEvent, self._on_end)

    async def connect(self) -> None:
        try:
            self._task = await self._client.start()
        except Exception as exc:
            raise FeedConnectError(f"{type(exc).__name__}: {exc}") from exc
        self._task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            self._queue.put_nowait(_END)
            return
        exc = task.exception()
        self._queue.put_nowait(FeedStreamError(str(exc)) if exc else _END)

    async def _on_comment(self, event: CommentEvent) -> None:
        self._queue.put_nowait(RawFeedEvent(RAW_CHAT, {
            "uniqueId": _dig(event, "user", "unique_id", default=""),
            "comment": _dig(event, "comment", default=""),
            "profilePictureUrl": _first_url(_dig(event, "user", "avatar_thumb")),
        }))

    async def _on_gift(self, event: GiftEvent) -> None:
        streakable = bool(_dig(event, "gift", "streakable", default=False))
        self._queue.put_nowait(RawFeedEvent(RAW_GIFT, {
            "uniqueId": _dig(event, "user", "unique_id", default=""),
            "giftName": _dig(event, "gift", "name", default=""),
            "repeatCount": _dig(event, "repeat_count", default=1),
            "repeatEnd": bool(_dig(event, "repeat_end", default=False)),
            "giftType": 1 if streakable else 0,
            "giftPictureUrl": _first_url(_dig(event, "gift", "image")),
        }))

    async def _on_room_user(self, event: RoomUserSeqEvent) -> None:
        count = _dig(event, "m_total") or _dig(event, "total") or 0
        self._queue.put_nowait(RawFeedEvent(RAW_VIEWERS, {"viewerCount": count}))

    async def _on_end(self, event: Any) -> None:
        self._queue.put_nowait(RawFeedEvent(RAW_STREAM_END, {"event": type(event).__name__}))

    async def stream(self) -> AsyncIterator[RawFeedEvent]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, FeedStreamError):
                raise item
            yield item

    async def disconnect(self) -> None:
        if self._task is None:
            return
        logger.info("Disconnecting TikTok feed {}", self.target)
        await self._client.disconnect()
