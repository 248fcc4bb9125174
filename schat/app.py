from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import anyio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from tortoise.contrib.fastapi import register_tortoise

from .config import Settings
from .gateway import TortoiseGateway
from .registry import ConnectionRegistry
from .relay import PresenceRelay
from .routers import auth as auth_router
from .routers import chats as chats_router
from .routers import users as users_router
from .routers import websockets as ws_router

TORTOISE_MODULES = {"models": ["schat.models"]}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Optional[Settings] = None, *, register_db: bool = True) -> FastAPI:
    """Build the application with its own connection registry and relay.

    ``register_db=False`` leaves Tortoise initialisation to the caller (tests
    that manage their own database).
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Created here rather than at import; uploads also create it on demand.
        await anyio.Path(settings.uploads_dir).mkdir(parents=True, exist_ok=True)
        yield
        # Offline announcements from sockets torn down at shutdown must reach the database first.
        await app.state.relay.drain()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    # Allow all origins by default – restrict via SCHAT_CORS_ORIGINS in production.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    gateway = TortoiseGateway()
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.registry = ConnectionRegistry()
    app.state.relay = PresenceRelay(app.state.registry, gateway, typing_timeout=settings.typing_timeout)

    # Register routers
    app.include_router(auth_router.router)
    app.include_router(users_router.router)
    app.include_router(chats_router.router)
    app.include_router(ws_router.router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    # -----------------------------
    # Uploaded images
    # -----------------------------

    app.mount("/uploads", StaticFiles(directory=settings.uploads_dir, check_dir=False), name="uploads")

    # -----------------------------
    # Database (Tortoise ORM)
    # -----------------------------

    if register_db:
        register_tortoise(
            app,
            db_url=settings.db_url,
            modules=TORTOISE_MODULES,
            generate_schemas=settings.generate_schemas,
            add_exception_handlers=True,
        )

    return app


__all__ = ["create_app", "configure_logging", "TORTOISE_MODULES"]
