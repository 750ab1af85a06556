"""Upstream live feed client interface."""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol

# Raw event kinds emitted by feed clients
RAW_CHAT = "chat"
RAW_GIFT = "gift"
RAW_VIEWERS = "viewers"
RAW_STREAM_END = "stream_end"
RAW_ERROR = "error"


@dataclass(frozen=True)
class RawFeedEvent:
    """Untyped event as produced by the live platform client.

    Payload keys follow the platform's naming (uniqueId, comment, giftType, ...).
    """

    kind: str
    payload: dict[str, Any] = field(default_factory=dict)


class FeedConnectError(Exception):
    """Upstream refused or failed the connection (offline, unknown target, network)."""


class FeedClient(Protocol):
    """One non-restartable subscription to a live broadcast."""

    target: str

    async def connect(self) -> None:
        """Connect upstream. Raises FeedConnectError on failure."""
        ...

    def stream(self) -> AsyncIterator[RawFeedEvent]:
        """Yield raw events until the broadcast ends or the client disconnects."""
        ...

    async def disconnect(self) -> None: ...

