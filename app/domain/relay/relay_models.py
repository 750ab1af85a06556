"""Relay domain models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field


class AccessDecision(str, Enum):
    """Outcome of an identity access check."""

    ALLOWED = "allowed"
    BLOCKED = "blocked"
    TRIAL_EXPIRED = "trial_expired"
    STORAGE_ERROR = "storage_error"

    def __str__(self) -> str:
        return self.value

    @property
    def allowed(self) -> bool:
        return self is AccessDecision.ALLOWED


class FeedHandle(Protocol):
    """Anything owning an upstream subscription that can be torn down."""

    def close(self) -> None: ...


@dataclass(frozen=True)
class OpenResult:
    """Result of opening an upstream feed."""

    connected: bool
    reason: str | None = None

    @classmethod
    def ok(cls) -> "OpenResult":
        return cls(connected=True)

    @classmethod
    def failed(cls, reason: str) -> "OpenResult":
        return cls(connected=False, reason=reason)


@dataclass(frozen=True)
class LiveSession:
    """One subscriber connection paired with one open upstream feed."""

    connection_id: str
    identity: str
    target: str
    feed: FeedHandle
    started_at: datetime


class AdminModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class IdentityView(AdminModel):
    identity: str
    trial_start: datetime = Field(alias="trialStart")
    blocked: bool


class SessionView(AdminModel):
    connection_id: str = Field(alias="connectionId")
    identity: str
    target: str
    started_at: datetime = Field(alias="startedAt")

    @classmethod
    def from_session(cls, session: LiveSession) -> "SessionView":
        return cls(
            connection_id=session.connection_id,
            identity=session.identity,
            target=session.target,
            started_at=session.started_at,
        )


class AdminSnapshot(AdminModel):
    """All known identities (newest trial first) plus all live sessions."""

    identities: list[IdentityView]
    sessions: list[SessionView]
