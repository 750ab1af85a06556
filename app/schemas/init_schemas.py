from loguru import logger

from app.app_config import get_app_environ_config
from app.schemas.init import init_beanie_odm
from app.shared.storage.mongo import get_mongo_manager

RELAY_MONGO_LABEL = "relay_primary"


async def init_schema():
    """Bind the document models to the relay database, creating their indexes."""
    manager = get_mongo_manager()
    # Fall back to the default connection when no dedicated relay database is configured
    label = RELAY_MONGO_LABEL if manager.has_label(RELAY_MONGO_LABEL) else None
    db = manager.get_client(label).get_default_database(default=get_app_environ_config().MONGO_DATABASE)
    logger.info("Initializing identity storage on database {}", db.name)
    await init_beanie_odm(db)


if __name__ == "__main__":
    import asyncio

    asyncio.run(init_schema())
