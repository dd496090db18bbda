from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from supplychat.core.config import Settings
from supplychat.repositories.conversation_repository import ConversationRepository
from supplychat.repositories.message_repository import MessageRepository
from supplychat.utils.logger import get_logger


logger = get_logger(__name__)


async def connect_to_mongo(settings: Settings) -> AsyncIOMotorClient:
    client = AsyncIOMotorClient(
        settings.MONGO_URL,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
    )
    logger.info(f"MongoDB client created for database '{settings.MONGO_DB_NAME}'")
    return client


async def close_mongo_connection(client: AsyncIOMotorClient) -> None:
    client.close()
    logger.info("MongoDB client closed")


def get_database(client: AsyncIOMotorClient, settings: Settings) -> AsyncIOMotorDatabase:
    return client[settings.MONGO_DB_NAME]


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await ConversationRepository(db).ensure_indexes()
    await MessageRepository(db).ensure_indexes()


def mongo_db_dependency(request: Request) -> AsyncIOMotorDatabase:
    return request.app.state.db
