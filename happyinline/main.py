from contextlib import asynccontextmanager

from fastapi import FastAPI

from happyinline.config import LOG_LEVEL
from happyinline.database.connection import close_mongo_connection, connect_to_mongo, get_database
from happyinline.repositories.conversation_repository import ConversationRepository
from happyinline.repositories.message_repository import MessageRepository
from happyinline.routers.chat import router as chat_router
from happyinline.routers.conversations import router as conversations_router
from happyinline.routers.devices import router as devices_router
from happyinline.routers.presence import router as presence_router
from happyinline.services.chat_service import drain_notifications
from happyinline.utils.logging_config import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):

    setup_logging(LOG_LEVEL)
    await connect_to_mongo()
    db = get_database()
    await MessageRepository(db).ensure_indexes()
    await ConversationRepository(db).ensure_indexes()
    try:
        yield
    finally:
        await drain_notifications()
        await close_mongo_connection()


app = FastAPI(title="Happy InLine Messaging", lifespan=lifespan)


app.include_router(conversations_router)
app.include_router(chat_router)
app.include_router(devices_router)
app.include_router(presence_router)


@app.get("/")
async def root():

    return {"status": "ok"}
