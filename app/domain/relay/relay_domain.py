"""Relay domain service wiring."""

from app.app_config import get_app_environ_config
from app.services.feed import create_feed_client

from .feed_adapter import FeedAdapter
from .identity_ledger import IdentityLedger
from .identity_store import BeanieIdentityStore
from .relay_controller import RelayController, RelayNotifier
from .session_registry import SessionRegistry


def create_feed_adapter(target: str) -> FeedAdapter:
    cfg = get_app_environ_config()
    return FeedAdapter(
        create_feed_client(target),
        connect_timeout=cfg.FEED_CONNECT_TIMEOUT_SECONDS,
    )


def build_relay_controller(notifier: RelayNotifier) -> RelayController:
    """Assemble the controller over the Mongo-backed ledger and a fresh registry."""
    cfg = get_app_environ_config()
    return RelayController(
        ledger=IdentityLedger(BeanieIdentityStore()),
        registry=SessionRegistry(),
        feed_factory=create_feed_adapter,
        notifier=notifier,
        admin_password=cfg.ADMIN_PASSWORD,
    )
