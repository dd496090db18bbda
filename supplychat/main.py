from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorDatabase

from supplychat.core.config import Settings, get_settings
from supplychat.database.connection import (
    close_mongo_connection,
    connect_to_mongo,
    ensure_indexes,
    get_database,
    mongo_db_dependency,
)
from supplychat.middleware.error_handler import register_exception_handlers
from supplychat.routers.chat import router as chat_router
from supplychat.routers.conversations import router as conversations_router
from supplychat.routers.presence import router as presence_router
from supplychat.services.chat_service import ChatService
from supplychat.services.identity import IdentityResolver
from supplychat.utils.errors import storage_errors
from supplychat.utils.logger import get_logger, setup_logging
from supplychat.utils.realtime_bus import create_bus
from supplychat.utils.websocket_manager import ConnectionManager


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[AsyncIOMotorDatabase] = None,
    identity_resolver: Optional[IdentityResolver] = None,
) -> FastAPI:
    """
    Build the API. ``database`` replaces the MongoDB connection (tests pass an
    in-memory one); ``identity_resolver`` labels conversations for listing.
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
        client = None
        db = database
        if db is None:
            client = await connect_to_mongo(settings)
            db = get_database(client, settings)
        await ensure_indexes(db)

        bus = create_bus(settings)
        app.state.db = db
        app.state.chat_service = ChatService.from_database(db, bus, settings, identity_resolver=identity_resolver)
        app.state.connections = ConnectionManager()
        try:
            yield
        finally:
            logger.info("Shutting down")
            await bus.close()
            if client is not None:
                await close_mongo_connection(client)

    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(conversations_router)
    app.include_router(chat_router)
    app.include_router(presence_router)

    @app.get("/")
    async def root(db: AsyncIOMotorDatabase = Depends(mongo_db_dependency)):
        with storage_errors("list collections"):
            collections = await db.list_collection_names()
        return {"app": settings.APP_NAME, "version": settings.APP_VERSION, "collections": collections}

    return app


app = create_app()
