"""Accessors for the per-application runtime singletons.

The registry, relay and gateway are created once by ``create_app`` and hung
on ``app.state``; routers reach them through these helpers instead of
importing module-level globals, so every app instance (and every test) gets
its own registry.
"""
from __future__ import annotations

from starlette.requests import HTTPConnection

from .config import Settings
from .gateway import TortoiseGateway
from .relay import PresenceRelay


def get_relay(conn: HTTPConnection) -> PresenceRelay:
    return conn.app.state.relay


def get_gateway(conn: HTTPConnection) -> TortoiseGateway:
    return conn.app.state.gateway


def get_settings(conn: HTTPConnection) -> Settings:
    return conn.app.state.settings


__all__ = ["get_relay", "get_gateway", "get_settings"]
