"""Database connection and initialization."""

from loguru import logger
from mongoengine import connect

from ..config import config
from ..models import ApiEvent


def init_database() -> None:
    """Initialize MongoDB connection and the event indexes."""
    if not config.mongodb_url:
        raise ValueError("MONGODB_URL environment variable is required")

    logger.info("Connecting to MongoDB")

    try:
        connect(
            host=config.mongodb_url,
            uuidRepresentation="standard",
            serverSelectionTimeoutMS=(
                config.mongodb_server_selection_timeout_ms
            ),
        )
        ApiEvent.ensure_indexes()
        logger.info("Successfully connected to MongoDB")
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise
