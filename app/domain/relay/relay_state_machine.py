"""Relay state machine for per-connection state transitions."""

from app.schemas import RelayState


class RelayStateMachine:
    """State machine for relay connections.

    State flow with triggers:
    - IDLE (connection opened) -> REQUESTING (start_monitoring) | CLOSED (disconnect)
    - REQUESTING -> ACTIVE (access allowed, upstream connected)
                 | CLOSED (access denied, identity blocked, disconnect)
                 | IDLE (upstream connect failed)
                 | REQUESTING (newer request supersedes the pending one)
    - ACTIVE -> CLOSED (stream ended, disconnect, identity blocked)
             | REQUESTING (new target requested)
    - CLOSED -> REQUESTING (fresh request on the same connection)
    """

    TRANSITIONS: dict[RelayState, set[RelayState]] = {
        RelayState.IDLE: {RelayState.REQUESTING, RelayState.CLOSED},
        RelayState.REQUESTING: {
            RelayState.REQUESTING,
            RelayState.ACTIVE,
            RelayState.CLOSED,
            RelayState.IDLE,
        },
        RelayState.ACTIVE: {RelayState.REQUESTING, RelayState.CLOSED},
        RelayState.CLOSED: {RelayState.REQUESTING},
    }

    @classmethod
    def can_transition(cls, current: RelayState, new: RelayState) -> bool:
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def get_valid_transitions(cls, state: RelayState) -> set[RelayState]:
        return cls.TRANSITIONS.get(state, set())

    @classmethod
    def get_valid_sources(cls, target: RelayState) -> set[RelayState]:
        """Get all states that can transition to the target state."""
        return {state for state, targets in cls.TRANSITIONS.items() if target in targets}
