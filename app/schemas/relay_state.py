"""Relay connection states."""

from enum import Enum


class RelayState(str, Enum):
    """Per-connection relay lifecycle states.

    State Transition Flow:

    IDLE → REQUESTING → ACTIVE → CLOSED
              ↓    ↑                ↓
            CLOSED  └── (re-request) ┘

    State Descriptions:
    - IDLE: Connection open, no monitoring request yet.
    - REQUESTING: A monitoring request is being checked and the upstream feed opened.
    - ACTIVE: Upstream feed connected, events are forwarded to the subscriber.
    - CLOSED: Request denied, upstream ended, subscriber left or identity blocked.

    A fresh monitoring request moves any state except REQUESTING back to REQUESTING;
    a request issued while REQUESTING supersedes the pending one.
    """

    IDLE = "idle"
    REQUESTING = "requesting"
    ACTIVE = "active"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


__all__ = ["RelayState"]
