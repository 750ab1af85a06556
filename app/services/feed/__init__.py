"""Upstream live feed clients."""

from app.app_config import get_app_environ_config

from .feed_client import FeedClient, FeedConnectError, RawFeedEvent


def create_feed_client(target: str) -> FeedClient:
    """Build the feed client for a target: synthetic in DEMO_MODE, TikTok LIVE otherwise."""
    cfg = get_app_environ_config()
    if cfg.DEMO_MODE:
        from .demo_client import DemoFeedClient

        return DemoFeedClient(target, interval=cfg.FEED_DEMO_EVENT_INTERVAL_SECONDS)

    from .tiktok_client import TikTokFeedClient

    return TikTokFeedClient(target)


__all__ = ["FeedClient", "FeedConnectError", "RawFeedEvent", "create_feed_client"]
