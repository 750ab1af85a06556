"""Relay controller: per-connection monitoring protocol and session teardown."""

import hmac
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from loguru import logger

from app.domain.utils.clock import utc_now
from app.schemas import RelayState
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .admin_view import AdminViewBuilder
from .feed_adapter import FeedAdapter
from .feed_events import ForwardedEvent
from .identity_ledger import IdentityLedger
from .relay_messages import (
    ADMIN_UPDATE_LIST,
    CONNECTION_STATUS,
    LOGIN_RES,
    MSG_CONNECT_FAILED,
    MSG_FORCED_BLOCK,
    MSG_STREAM_ENDED,
    SERVER_DISCONNECTED,
    ConnectionStatusOut,
    DisconnectedOut,
    LoginResOut,
    denial_status,
    event_message,
)
from .relay_models import AccessDecision, LiveSession
from .relay_state_machine import RelayStateMachine
from .session_registry import SessionRegistry


class RelayNotifier(Protocol):
    """Delivers one outbound message to one connection."""

    async def emit(self, connection_id: str, event: str, data: Any) -> None: ...


@dataclass
class _Connection:
    connection_id: str
    identity: str
    state: RelayState = RelayState.IDLE
    request_seq: int = 0
    is_admin: bool = False

    def begin_request(self) -> int:
        self.request_seq += 1
        return self.request_seq

    def supersede(self) -> None:
        self.request_seq += 1

    def is_current(self, seq: int) -> bool:
        return self.request_seq == seq


class RelayController:
    """Owns the per-connection relay state machine.

    Transitions are triggered from three sources only: subscriber requests,
    upstream feed callbacks and administrative actions. Every teardown goes
    through the registry's atomic removal so a session is closed once.
    """

    def __init__(
        self,
        ledger: IdentityLedger,
        registry: SessionRegistry,
        feed_factory: Callable[[str], FeedAdapter],
        notifier: RelayNotifier,
        *,
        admin_password: str,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._ledger = ledger
        self._registry = registry
        self._feed_factory = feed_factory
        self._notifier = notifier
        self._admin_password = admin_password
        self._clock = clock
        self._admin_view = AdminViewBuilder(ledger, registry)
        self._connections: dict[str, _Connection] = {}

    # ==================== CONNECTIONS ====================

    def connect(self, connection_id: str, identity: str) -> None:
        self._connections[connection_id] = _Connection(connection_id=connection_id, identity=identity)
        logger.info("Connection {} opened from {}", connection_id, identity)

    def state_of(self, connection_id: str) -> RelayState | None:
        conn = self._connections.get(connection_id)
        return conn.state if conn else None

    @property
    def session_count(self) -> int:
        return len(self._registry)

    def is_admin(self, connection_id: str) -> bool:
        conn = self._connections.get(connection_id)
        return bool(conn and conn.is_admin)

    async def disconnect(self, connection_id: str) -> None:
        """Subscriber went away: drop its pending request and its session."""
        conn = self._connections.pop(connection_id, None)
        if conn is not None:
            conn.supersede()
            self._transition(conn, RelayState.CLOSED)

        session = self._registry.remove(connection_id)
        if session is not None:
            session.feed.close()
            logger.info("Connection {} left, closed feed {}", connection_id, session.target)
            await self.broadcast_admin_snapshot()

        logger.info("Connection {} closed", connection_id)

    # ==================== MONITORING ====================

    async def start_monitoring(self, connection_id: str, target: str | None) -> None:
        target = (target or "").strip() if isinstance(target, str) else ""
        if not target:
            logger.debug("Ignoring empty monitoring request on {}", connection_id)
            return

        conn = self._connections.get(connection_id)
        if conn is None:
            logger.warning("Monitoring request from unknown connection {}", connection_id)
            return

        seq = conn.begin_request()
        self._transition(conn, RelayState.REQUESTING)
        logger.info("Connection {} ({}) requests {}", connection_id, conn.identity, target)

        decision = await self._ledger.check_access(conn.identity)
        if not conn.is_current(seq):
            logger.info("Request {}#{} for {} superseded during access check", connection_id, seq, target)
            return

        if not decision.allowed:
            logger.info("Access denied for {} on {}: {}", conn.identity, connection_id, decision)
            # A denied switch leaves the running session in place
            if self._registry.get(connection_id) is not None:
                self._transition(conn, RelayState.ACTIVE)
            else:
                self._transition(conn, RelayState.CLOSED)
            await self._emit(connection_id, CONNECTION_STATUS, denial_status(decision).payload())
            return

        previous = self._registry.remove(connection_id)
        if previous is not None:
            previous.feed.close()
            logger.info("Connection {} switching from {} to {}", connection_id, previous.target, target)

        adapter = self._feed_factory(target)

        async def on_event(event: ForwardedEvent) -> None:
            await self._forward(connection_id, adapter, event)

        async def on_terminate(reason: str) -> None:
            await self._on_upstream_terminated(connection_id, adapter, reason)

        result = await adapter.open(on_event, on_terminate)

        if not conn.is_current(seq):
            adapter.close()
            logger.info("Discarding feed {} for superseded request {}#{}", target, connection_id, seq)
            return

        if not result.connected:
            self._transition(conn, RelayState.IDLE)
            await self._emit(
                connection_id,
                CONNECTION_STATUS,
                ConnectionStatusOut(success=False, msg=MSG_CONNECT_FAILED, debug=result.reason).payload(),
            )
            if previous is not None:
                await self.broadcast_admin_snapshot()
            return

        self._registry.put(
            connection_id,
            LiveSession(
                connection_id=connection_id,
                identity=conn.identity,
                target=target,
                feed=adapter,
                started_at=self._clock(),
            ),
        )
        self._transition(conn, RelayState.ACTIVE)
        logger.info("Connection {} now relaying {}", connection_id, target)

        await self._emit(connection_id, CONNECTION_STATUS, ConnectionStatusOut(success=True).payload())
        await self.broadcast_admin_snapshot()

    async def _forward(self, connection_id: str, adapter: FeedAdapter, event: ForwardedEvent) -> None:
        session = self._registry.get(connection_id)
        if session is None or session.feed is not adapter:
            return
        name, message = event_message(event)
        await self._emit(connection_id, name, message.payload())

    async def _on_upstream_terminated(self, connection_id: str, adapter: FeedAdapter, reason: str) -> None:
        session = self._registry.remove(connection_id, feed=adapter)
        if session is None:
            # Already torn down by a disconnect, a block or a newer request
            return

        conn = self._connections.get(connection_id)
        if conn is not None and conn.state == RelayState.ACTIVE:
            self._transition(conn, RelayState.CLOSED)

        logger.info("Upstream {} ended for {}: {}", session.target, connection_id, reason)
        await self._emit(connection_id, SERVER_DISCONNECTED, DisconnectedOut(msg=MSG_STREAM_ENDED).payload())
        await self.broadcast_admin_snapshot()

    # ==================== ADMIN ====================

    async def admin_login(self, connection_id: str, password: Any) -> bool:
        conn = self._connections.get(connection_id)
        if conn is None:
            return False

        success = (
            bool(self._admin_password)
            and isinstance(password, str)
            and hmac.compare_digest(password.encode(), self._admin_password.encode())
        )
        if not success:
            logger.warning("Failed admin login on {} from {}", connection_id, conn.identity)
            await self._emit(connection_id, LOGIN_RES, LoginResOut(success=False).payload())
            return False

        conn.is_admin = True
        logger.info("Admin login on {} from {}", connection_id, conn.identity)
        await self._emit(connection_id, LOGIN_RES, LoginResOut(success=True).payload())

        try:
            snapshot = await self._admin_view.build_snapshot()
        except AppError as exc:
            logger.error("Cannot build admin snapshot for {}: {} {}", connection_id, exc.errcode, exc.erresid)
            return True
        await self._emit(connection_id, ADMIN_UPDATE_LIST, snapshot.model_dump(mode="json", by_alias=True))
        return True

    async def admin_toggle_block(self, connection_id: str, identity: Any) -> bool | None:
        """Flip the block flag of an identity; blocking severs all of its sessions.

        Returns the new block state, or None when the request was rejected.
        """
        if not self.is_admin(connection_id):
            logger.warning("Block toggle from unauthenticated connection {}", connection_id)
            return None
        if not isinstance(identity, str) or not identity:
            logger.warning("Block toggle with invalid identity {!r} on {}", identity, connection_id)
            return None

        try:
            blocked = await self._ledger.toggle_block(identity)
        except AppError as exc:
            logger.warning("Block toggle on {} failed: {} {}", identity, exc.errcode, exc.errmesg)
            return None

        if blocked:
            await self._sever_identity(identity)

        await self.broadcast_admin_snapshot()
        return blocked

    async def _sever_identity(self, identity: str) -> None:
        pending = [
            conn for conn in self._connections.values()
            if conn.identity == identity and conn.state == RelayState.REQUESTING
        ]
        for conn in pending:
            conn.supersede()
            self._transition(conn, RelayState.CLOSED)

        removed = self._registry.remove_where(lambda s: s.identity == identity)
        for session in removed:
            session.feed.close()
            conn = self._connections.get(session.connection_id)
            if conn is not None and conn.state == RelayState.ACTIVE:
                self._transition(conn, RelayState.CLOSED)

        # Feeds are all closed before any subscriber is told
        for conn in pending:
            await self._emit(
                conn.connection_id,
                CONNECTION_STATUS,
                denial_status(AccessDecision.BLOCKED).payload(),
            )
        for session in removed:
            logger.info("Severed {} ({}) from {}", session.connection_id, identity, session.target)
            await self._emit(
                session.connection_id,
                SERVER_DISCONNECTED,
                DisconnectedOut(msg=MSG_FORCED_BLOCK).payload(),
            )

    async def broadcast_admin_snapshot(self) -> None:
        admin_ids = [c.connection_id for c in self._connections.values() if c.is_admin]
        if not admin_ids:
            return

        try:
            snapshot = await self._admin_view.build_snapshot()
        except AppError as exc:
            logger.error("Skipping admin broadcast: {} {}", exc.errcode, exc.erresid)
            return

        data = snapshot.model_dump(mode="json", by_alias=True)
        for admin_id in admin_ids:
            await self._emit(admin_id, ADMIN_UPDATE_LIST, data)

    # ==================== INTERNALS ====================

    def _transition(self, conn: _Connection, new_state: RelayState) -> None:
        if conn.state == new_state and new_state != RelayState.REQUESTING:
            return
        if not RelayStateMachine.can_transition(conn.state, new_state):
            raise AppError(
                errcode=AppErrorCode.E_INVALID_STATE_TRANSITION,
                errmesg=f"Invalid relay transition on {conn.connection_id}: {conn.state} -> {new_state}",
                status_code=HttpStatusCode.CONFLICT,
            )
        logger.debug("Connection {}: {} -> {}", conn.connection_id, conn.state, new_state)
        conn.state = new_state

    async def _emit(self, connection_id: str, event: str, data: Any) -> None:
        await self._notifier.emit(connection_id, event, data)
