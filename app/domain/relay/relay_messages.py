"""Subscriber and administrator message names and payloads."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .feed_events import ChatMessage, ForwardedEvent, GiftEvent, ViewerCount
from .relay_models import AccessDecision

# Inbound
START_MONITORING = "start_monitoring"
ADMIN_LOGIN = "admin_login"
ADMIN_TOGGLE_BLOCK = "admin_toggle_block"

# Outbound
CONNECTION_STATUS = "connection_status"
SERVER_NEW_CHAT = "server_new_chat"
SERVER_NEW_GIFT = "server_new_gift"
SERVER_UPDATE_VIEWERS = "server_update_viewers"
SERVER_DISCONNECTED = "server_disconnected"
LOGIN_RES = "login_res"
ADMIN_UPDATE_LIST = "admin_update_list"

MSG_BLOCKED = "Your IP is blocked. Please contact the administrator."
MSG_TRIAL_OVER = "Your 24 hour trial is over. Please upgrade to keep monitoring."
MSG_STORAGE_ERROR = "Database error. Please retry in a moment."
MSG_CONNECT_FAILED = "Target is offline or the username is wrong."
MSG_STREAM_ENDED = "The live stream has ended."
MSG_FORCED_BLOCK = "Your IP has been blocked by the administrator."


class OutModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ConnectionStatusOut(OutModel):
    success: bool
    msg: str | None = None
    is_trial_over: bool | None = Field(default=None, alias="isTrialOver")
    debug: str | None = None


class ChatOut(OutModel):
    username: str
    comment: str
    profile_pic: str | None = Field(default=None, alias="profilePic")


class GiftOut(OutModel):
    username: str
    gift_name: str = Field(alias="giftName")
    count: int
    gift_icon: str | None = Field(default=None, alias="giftIcon")


class ViewersOut(OutModel):
    count: int


class DisconnectedOut(OutModel):
    msg: str


class LoginResOut(OutModel):
    success: bool


_DENIAL_MESSAGES = {
    AccessDecision.BLOCKED: MSG_BLOCKED,
    AccessDecision.TRIAL_EXPIRED: MSG_TRIAL_OVER,
    AccessDecision.STORAGE_ERROR: MSG_STORAGE_ERROR,
}


def denial_status(decision: AccessDecision) -> ConnectionStatusOut:
    """Denials tell expiry apart from blocks and from generic failures."""
    return ConnectionStatusOut(
        success=False,
        msg=_DENIAL_MESSAGES.get(decision, MSG_STORAGE_ERROR),
        is_trial_over=decision is AccessDecision.TRIAL_EXPIRED,
    )


def event_message(event: ForwardedEvent) -> tuple[str, OutModel]:
    if isinstance(event, ChatMessage):
        return SERVER_NEW_CHAT, ChatOut(
            username=event.sender_id, comment=event.text, profile_pic=event.avatar_url
        )
    if isinstance(event, GiftEvent):
        return SERVER_NEW_GIFT, GiftOut(
            username=event.sender_id,
            gift_name=event.gift_name,
            count=event.repeat_count,
            gift_icon=event.icon,
        )
    if isinstance(event, ViewerCount):
        return SERVER_UPDATE_VIEWERS, ViewersOut(count=event.count)
    raise TypeError(f"Unsupported feed event: {type(event).__name__}")
