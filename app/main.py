"""
FastAPI application factory

`create_app()` wires routers, middleware, exception handlers and the per-app
ConnectionManager. `app` is the instance uvicorn serves (`uvicorn app.main:app`).
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

from app.api.dm.ws import router as dm_ws_router
from app.api.router import api_router
from app.core.config import settings
from app.core.errors import (
    AppError,
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.core.logging import RequestIDMiddleware, RequestLoggingMiddleware, get_logger, setup_logging
from app.infra.db import close_db_connection, create_all_tables
from app.services.connection_manager import ConnectionManager

logger = get_logger(__name__)

API_DESCRIPTION = """
Friend requests and direct messages.

* Friend requests are sent by username and accepted or declined by the receiver.
* Messages (text or image) are stored first, then pushed to every live WebSocket
  connection of both participants.
* Authenticate with `POST /login`; send the token as `Authorization: Bearer <token>`,
  or as `?token=` on `/dm/ws`.
"""

TAGS = [
    {"name": "auth", "description": "Sign-up and login."},
    {"name": "profile", "description": "The caller's own profile."},
    {"name": "friend", "description": "Friend requests and friend lists."},
    {"name": "dm", "description": "Direct message history and sending."},
    {"name": "dm-ws", "description": "Live direct message delivery."},
    {"name": "health", "description": "Liveness and connection counts."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if settings.db_create_all:
        await create_all_tables()
    logger.info("app.startup", env=settings.env)

    yield

    stats = app.state.connection_manager.get_stats()
    logger.info("app.shutdown", open_connections=stats["active_connections_count"])
    await close_db_connection()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Chat Backend",
        description=API_DESCRIPTION,
        version="0.1.0",
        openapi_tags=TAGS,
        openapi_url=f"{settings.api_prefix}/openapi.json",
        swagger_ui_parameters={"persistAuthorization": True},
        lifespan=lifespan,
    )

    app.state.connection_manager = ConnectionManager()

    # added last runs first: the request id is bound before request logging
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_credentials,
        allow_methods=settings.cors_methods,
        allow_headers=settings.cors_headers,
    )

    # the socket path is fixed for clients, independent of api_prefix
    app.include_router(dm_ws_router)
    app.include_router(api_router, prefix=settings.api_prefix)

    app.add_exception_handler(AppError, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    return app


app = create_app()
