"""Feed adapter: one upstream live feed subscription behind a typed, idempotent interface."""

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger
from pydantic import ValidationError

from app.services.feed.feed_client import (
    RAW_CHAT,
    RAW_ERROR,
    RAW_GIFT,
    RAW_STREAM_END,
    RAW_VIEWERS,
    FeedClient,
    FeedConnectError,
    RawFeedEvent,
)
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .feed_events import ChatMessage, FeedEvent, ForwardedEvent, GiftEvent, Terminated, ViewerCount
from .relay_models import OpenResult

# giftType value of gifts that can be sent as a streak (combo)
STREAK_GIFT_TYPE = 1

TERMINATE_STREAM_END = "stream_end"

OnEvent = Callable[[ForwardedEvent], Awaitable[None]]
OnTerminate = Callable[[str], Awaitable[None]]

_background_tasks: set[asyncio.Task] = set()


def is_streak_in_progress(payload: dict) -> bool:
    """A streakable gift is only final once the platform flags repeatEnd."""
    return payload.get("giftType") == STREAK_GIFT_TYPE and not payload.get("repeatEnd", False)


def normalize_event(raw: RawFeedEvent) -> FeedEvent | None:
    """Map a raw platform event to the relay's event types.

    Returns None for events that must not reach the subscriber (mid-streak gifts,
    unknown kinds).
    """
    payload = raw.payload

    if raw.kind == RAW_CHAT:
        return ChatMessage(
            sender_id=str(payload.get("uniqueId") or ""),
            text=str(payload.get("comment") or ""),
            avatar_url=payload.get("profilePictureUrl"),
        )

    if raw.kind == RAW_GIFT:
        if is_streak_in_progress(payload):
            return None
        return GiftEvent(
            sender_id=str(payload.get("uniqueId") or ""),
            gift_name=str(payload.get("giftName") or ""),
            repeat_count=int(payload.get("repeatCount") or 1),
            icon=payload.get("giftPictureUrl"),
        )

    if raw.kind == RAW_VIEWERS:
        return ViewerCount(count=int(payload.get("viewerCount") or 0))

    if raw.kind == RAW_STREAM_END:
        return Terminated(reason=TERMINATE_STREAM_END)

    return None


def _spawn(coro) -> None:
    task = asyncio.get_running_loop().create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


class FeedAdapter:
    """Wraps a FeedClient for a single open/close lifecycle.

    on_terminate fires at most once, when the broadcast ends or the stream fails,
    and never after close(). close() is idempotent and returns without waiting for
    the upstream disconnect, which runs in the background.
    """

    def __init__(self, client: FeedClient, *, connect_timeout: float):
        self.target = client.target
        self._client = client
        self._connect_timeout = connect_timeout
        self._on_event: OnEvent | None = None
        self._on_terminate: OnTerminate | None = None
        self._pump_task: asyncio.Task | None = None
        self._opened = False
        self._closed = False
        self._terminated = False
        self._released = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def terminated(self) -> bool:
        return self._terminated

    async def open(self, on_event: OnEvent, on_terminate: OnTerminate) -> OpenResult:
        """Connect upstream once, without retries, bounded by the connect timeout."""
        if self._opened:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg=f"Feed for {self.target} already opened",
                status_code=HttpStatusCode.BAD_REQUEST,
            )
        self._opened = True

        if self._closed:
            return OpenResult.failed("closed before connect")

        try:
            await asyncio.wait_for(self._client.connect(), timeout=self._connect_timeout)
        except asyncio.TimeoutError:
            logger.warning("Feed connect to {} timed out after {}s", self.target, self._connect_timeout)
            self._release()
            return OpenResult.failed(f"connect timed out after {self._connect_timeout:g}s")
        except FeedConnectError as exc:
            logger.info("Feed connect to {} refused: {}", self.target, exc)
            self._release()
            return OpenResult.failed(str(exc) or type(exc).__name__)
        except Exception as exc:
            logger.warning("Feed connect to {} failed: {}: {}", self.target, type(exc).__name__, exc)
            self._release()
            return OpenResult.failed(f"{type(exc).__name__}: {exc}")

        if self._closed:
            logger.info("Feed {} closed while connecting", self.target)
            return OpenResult.failed("closed while connecting")

        self._on_event = on_event
        self._on_terminate = on_terminate
        self._pump_task = asyncio.create_task(self._pump(), name=f"feed:{self.target}")
        logger.info("Feed connected to {}", self.target)
        return OpenResult.ok()

    async def _pump(self) -> None:
        reason = TERMINATE_STREAM_END
        try:
            async for raw in self._client.stream():
                if self._closed:
                    return

                if raw.kind == RAW_ERROR:
                    # Non-fatal; the platform client recovers on its own
                    logger.warning("Feed {} reported runtime error: {}", self.target, raw.payload)
                    continue

                try:
                    event = normalize_event(raw)
                except (ValidationError, ValueError, TypeError) as exc:
                    logger.warning("Dropping malformed {} event from {}: {}", raw.kind, self.target, exc)
                    continue

                if event is None:
                    continue
                if isinstance(event, Terminated):
                    reason = event.reason
                    break

                await self._deliver(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Feed {} stream failed", self.target)
            reason = f"error: {type(exc).__name__}: {exc}"

        await self._terminate(reason)

    async def _deliver(self, event: ForwardedEvent) -> None:
        if self._closed or self._on_event is None:
            return
        try:
            await self._on_event(event)
        except Exception:
            logger.exception("Event handler failed for feed {}", self.target)

    async def _terminate(self, reason: str) -> None:
        if self._closed or self._terminated:
            return
        self._terminated = True
        logger.info("Feed {} terminated: {}", self.target, reason)

        try:
            if self._on_terminate is not None:
                await self._on_terminate(reason)
        except Exception:
            logger.exception("Terminate handler failed for feed {}", self.target)
        finally:
            self._release()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._pump_task is not None and not self._pump_task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if self._pump_task is not current:
                self._pump_task.cancel()

        self._release()
        logger.info("Feed {} closed", self.target)

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        _spawn(self._disconnect())

    async def _disconnect(self) -> None:
        try:
            await self._client.disconnect()
        except Exception as exc:
            logger.warning("Feed {} disconnect failed: {}: {}", self.target, type(exc).__name__, exc)
