"""ASGI entry point: ``uvicorn schat.main:app``."""
from __future__ import annotations

from .app import configure_logging, create_app
from .config import Settings

settings = Settings()
configure_logging(settings.log_level)

app = create_app(settings)

__all__ = ["app"]
