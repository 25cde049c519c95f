"""
tsrag - MongoDB Client
=======================
Module-level singleton ``AsyncIOMotorClient`` shared by the chunk store
and the conversation store, plus collection accessors.

The client is created lazily on first use and survives for the process
lifetime; ``close_mongo_client`` releases it on shutdown.
"""

from __future__ import annotations

import motor.motor_asyncio

from tsrag.config.settings import settings
from tsrag.src.utils.logger import get_logger

logger = get_logger(__name__)

_mongo_client: motor.motor_asyncio.AsyncIOMotorClient | None = None


def get_mongo_client() -> motor.motor_asyncio.AsyncIOMotorClient:
    """Return (or create) the module-level async MongoDB client."""
    global _mongo_client
    if _mongo_client is None:
        _mongo_client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI.get_secret_value(), serverSelectionTimeoutMS=int(settings.UPSTREAM_TIMEOUT_SECONDS * 1000))
        logger.info("MongoDB async client created (singleton).")
    return _mongo_client


def get_database() -> motor.motor_asyncio.AsyncIOMotorDatabase:
    return get_mongo_client()[settings.MONGO_DB_NAME]


def get_embeddings_collection() -> motor.motor_asyncio.AsyncIOMotorCollection:
    return get_database()[settings.EMBEDDINGS_COLLECTION]


def get_conversations_collection() -> motor.motor_asyncio.AsyncIOMotorCollection:
    return get_database()[settings.CONVERSATIONS_COLLECTION]


def close_mongo_client() -> None:
    """Close the singleton client, if one was opened."""
    global _mongo_client
    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None
        logger.info("MongoDB connection closed.")
