"""FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from onlyif_messaging.config import Settings, get_settings
from onlyif_messaging.database.connection import MongoConnection
from onlyif_messaging.repositories.conversation_repository import ConversationRepository
from onlyif_messaging.repositories.memory import (
    InMemoryConversationRepository,
    InMemoryMessageRepository,
    InMemoryParticipantRegistry,
)
from onlyif_messaging.repositories.message_repository import MessageRepository
from onlyif_messaging.repositories.participant_repository import ParticipantRepository
from onlyif_messaging.routers.conversations import router as conversations_router
from onlyif_messaging.routers.health import router as health_router
from onlyif_messaging.routers.messages import router as messages_router
from onlyif_messaging.schemas.common import ErrorResponse
from onlyif_messaging.services.chat_service import ChatService
from onlyif_messaging.services.demo import SellerDemoFallback, seed_demo_data
from onlyif_messaging.utils.errors import MessagingError, UpstreamUnavailable
from onlyif_messaging.utils.logger import configure_logging


logger = logging.getLogger(__name__)


async def _open_mongo_stores(app: FastAPI, settings: Settings) -> MongoConnection:
    mongo = MongoConnection(settings)
    db = await mongo.connect()
    app.state.conversation_repo = ConversationRepository(db)
    app.state.message_repo = MessageRepository(db)
    app.state.participants = ParticipantRepository(db)
    try:
        await app.state.conversation_repo.ensure_indexes()
        await app.state.message_repo.ensure_indexes()
    except UpstreamUnavailable:
        logger.exception("Index creation failed; continuing, requests will report 503 until MongoDB is reachable.")
    return mongo


async def _open_memory_stores(app: FastAPI, settings: Settings) -> None:
    state = app.state
    if getattr(state, "conversation_repo", None) is None:
        state.conversation_repo = InMemoryConversationRepository()
    if getattr(state, "message_repo", None) is None:
        state.message_repo = InMemoryMessageRepository()
    if getattr(state, "participants", None) is None:
        state.participants = InMemoryParticipantRegistry()
    if settings.demo_mode:
        await seed_demo_data(state.conversation_repo, state.message_repo, state.participants)


def create_app(
    settings: Optional[Settings] = None,
    *,
    conversation_repo=None,
    message_repo=None,
    participants=None,
) -> FastAPI:
    """Build the API.

    Stores passed in here replace the in-memory defaults, which is how tests
    inject their own. With ``storage_backend="mongo"`` the MongoDB
    repositories are opened in the lifespan instead.
    """

    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        mongo = None
        if settings.storage_backend == "mongo":
            mongo = await _open_mongo_stores(app, settings)
        else:
            await _open_memory_stores(app, settings)
        app.state.chat_service = ChatService(
            app.state.message_repo,
            app.state.conversation_repo,
            app.state.participants,
            fallback=SellerDemoFallback() if settings.demo_mode else None,
            trust_declared_roles=settings.trust_declared_roles,
        )
        logger.info("%s started with %s storage", settings.app_name, settings.storage_backend)
        try:
            yield
        finally:
            if mongo is not None:
                await mongo.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.conversation_repo = conversation_repo
    app.state.message_repo = message_repo
    app.state.participants = participants

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MessagingError, _messaging_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(conversations_router)
    app.include_router(messages_router)
    app.include_router(health_router)
    return app


async def _messaging_error_handler(request: Request, exc: MessagingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=ErrorResponse(error=exc.message).model_dump())


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return JSONResponse(status_code=400, content=ErrorResponse(error="; ".join(problems) or "Invalid request").model_dump())


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=ErrorResponse(error="Internal server error").model_dump())


app = create_app()
