"""Typed upstream events delivered by the feed adapter."""

from typing import Literal

from pydantic import BaseModel


class ChatMessage(BaseModel):
    kind: Literal["chat"] = "chat"
    sender_id: str
    text: str
    avatar_url: str | None = None


class GiftEvent(BaseModel):
    kind: Literal["gift"] = "gift"
    sender_id: str
    gift_name: str
    repeat_count: int = 1
    icon: str | None = None


class ViewerCount(BaseModel):
    kind: Literal["viewers"] = "viewers"
    count: int


class Terminated(BaseModel):
    kind: Literal["terminated"] = "terminated"
    reason: str


FeedEvent = ChatMessage | GiftEvent | ViewerCount | Terminated

# Events forwarded to the subscriber through on_event
ForwardedEvent = ChatMessage | GiftEvent | ViewerCount
