from pydantic import BaseModel

from app.shared.config import config


class AppEnvironConfig(BaseModel):
    DEBUG: bool = config.get("DEBUG", "false").strip().lower() == "true"  # type: ignore

    # Public demo switch: when enabled, the feed client generates synthetic events
    # instead of reaching the live platform.
    DEMO_MODE: bool = config.get("DEMO_MODE", "true").strip().lower() == "true"  # type: ignore

    # Shared administrator secret, compared by equality on admin_login
    ADMIN_PASSWORD: str = config.get("ADMIN_PASSWORD", "").strip()  # type: ignore

    # Upstream feed configuration
    FEED_CONNECT_TIMEOUT_SECONDS: float = float(
        (config.get("FEED_CONNECT_TIMEOUT_SECONDS") or "").strip() or 20
    )
    FEED_DEMO_EVENT_INTERVAL_SECONDS: float = float(
        (config.get("FEED_DEMO_EVENT_INTERVAL_SECONDS") or "").strip() or 2
    )

    # Server configuration
    API_HOST: str = config.get("API_HOST", "0.0.0.0").strip()  # type: ignore
    API_PORT: int = int((config.get("API_PORT") or config.get("PORT") or "").strip() or 3000)
    API_CORS_ORIGINS: list[str] = [
        x.strip() for x in (config.get("API_CORS_ORIGINS") or "*").split(",") if x.strip()
    ]

    # Observability
    LOGFIRE_ENABLE: bool = config.get("LOGFIRE_ENABLE", "false").strip().lower() == "true"  # type: ignore
    LOGFIRE_TOKEN: str | None = (config.get("LOGFIRE_TOKEN") or "").strip() or None

    # Identity storage
    MONGO_DATABASE: str = config.get("MONGO_DATABASE", "relay").strip()  # type: ignore


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
