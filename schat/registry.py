"""In-memory map of authenticated users to their live websocket connection."""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Dict, Optional

from .protocol import ServerEvent, encode_server_event

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class Connection:
    """One browser tab's websocket plus the relay state attached to it.

    ``websocket`` only needs an awaitable ``send_json(dict)``; in production
    it is a :class:`fastapi.WebSocket`.
    """

    def __init__(self, websocket: Any):
        self.websocket = websocket
        self.state = ConnectionState.UNAUTHENTICATED
        self.user_id: Optional[str] = None
        self.current_chat_id: Optional[str] = None
        # Pending "stopped typing" push for the peer of current_chat_id
        self.typing_task: Optional[asyncio.Task] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state is ConnectionState.AUTHENTICATED

    def cancel_typing_timer(self) -> None:
        if self.typing_task is not None and not self.typing_task.done():
            self.typing_task.cancel()
        self.typing_task = None

    async def send(self, event: ServerEvent) -> bool:
        """Send *event*; return False instead of raising if the socket is gone."""
        if self.state is ConnectionState.CLOSED:
            return False
        try:
            await self.websocket.send_json(encode_server_event(event))
        except Exception as exc:
            # Client disconnected unexpectedly; the receive loop will close us.
            logger.warning("send to user %s failed: %s", self.user_id, exc)
            return False
        return True

    def __repr__(self) -> str:
        return f"<Connection user={self.user_id} state={self.state.value} chat={self.current_chat_id}>"


class ConnectionRegistry:
    """``user_id`` -> :class:`Connection`, at most one entry per user.

    A second registration for the same user silently replaces the first
    (last writer wins); the replaced connection is not told.
    """

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}

    def register(self, user_id: str, connection: Connection) -> None:
        previous = self._connections.get(user_id)
        if previous is not None and previous is not connection:
            logger.info("user %s re-registered; replacing previous connection", user_id)
        self._connections[user_id] = connection

    def unregister(self, user_id: str, connection: Optional[Connection] = None) -> bool:
        """Remove *user_id*'s binding; return True if something was removed.

        With *connection*, only remove the binding if it still points at that
        connection, so a replaced tab closing late does not evict its successor.
        """
        current = self._connections.get(user_id)
        if current is None:
            return False
        if connection is not None and current is not connection:
            return False
        del self._connections[user_id]
        return True

    def lookup(self, user_id: str) -> Optional[Connection]:
        return self._connections.get(user_id)

    async def broadcast_except(self, sender_id: Optional[str], event: ServerEvent) -> int:
        """Deliver *event* to every registered connection except *sender_id*'s."""
        delivered = 0
        for user_id, connection in list(self._connections.items()):
            if user_id == sender_id:
                continue
            if await connection.send(event):
                delivered += 1
        return delivered

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)


__all__ = ["ConnectionState", "Connection", "ConnectionRegistry"]
