"""Presence & relay engine for the real-time channel.

Each websocket becomes a :class:`~schat.registry.Connection` that moves
``UNAUTHENTICATED -> AUTHENTICATED -> CLOSED``. Inbound frames are decoded
into client events and dispatched here; outbound pushes (presence, typing,
new messages) are best effort: if the target is not registered nothing is
sent and nothing is raised.

Events from one connection are handled in order because the websocket
receive loop awaits :meth:`PresenceRelay.handle_frame` before reading the
next frame. Gateway calls suspend the handler, so events from different
connections interleave freely around them.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Set, Union

from .gateway import PersistenceGateway
from .protocol import (
    AuthEvent,
    JoinChatEvent,
    NewMessageNotice,
    ProtocolError,
    TypingEvent,
    TypingNotice,
    UserStatusNotice,
    decode_client_event,
)
from .registry import Connection, ConnectionRegistry, ConnectionState
from .schemas import MessageWithSender

logger = logging.getLogger(__name__)

DEFAULT_TYPING_TIMEOUT = 3.0


class PresenceRelay:
    def __init__(
        self,
        registry: ConnectionRegistry,
        gateway: PersistenceGateway,
        typing_timeout: float = DEFAULT_TYPING_TIMEOUT,
    ):
        self.registry = registry
        self.gateway = gateway
        self.typing_timeout = typing_timeout
        # Offline announcements still running after their closing handler was cancelled
        self._pending: Set[asyncio.Task] = set()

    # ---------------------------------------------------------------------
    # Connection lifecycle
    # ---------------------------------------------------------------------

    def open(self, websocket: Any) -> Connection:
        """Wrap a freshly accepted websocket; it stays unregistered until ``auth``."""
        return Connection(websocket)

    async def handle_frame(self, connection: Connection, raw: Union[str, bytes]) -> None:
        """Decode and dispatch one inbound frame. Malformed frames are logged and dropped."""
        try:
            event = decode_client_event(raw)
        except ProtocolError as exc:
            logger.warning("dropping malformed event from %r: %s", connection, exc)
            return
        await self.dispatch(connection, event)

    async def dispatch(self, connection: Connection, event: Union[AuthEvent, JoinChatEvent, TypingEvent]) -> None:
        if connection.state is ConnectionState.CLOSED:
            return
        if isinstance(event, AuthEvent):
            await self._on_auth(connection, event)
        elif isinstance(event, JoinChatEvent):
            self._on_join_chat(connection, event)
        elif isinstance(event, TypingEvent):
            await self._on_typing(connection, event)
        else:
            raise ProtocolError(f"unhandled event type {type(event).__name__}")

    async def close(self, connection: Connection) -> None:
        """Tear down after the transport closed. Safe to call more than once."""
        if connection.state is ConnectionState.CLOSED:
            return
        was_authenticated = connection.is_authenticated
        connection.state = ConnectionState.CLOSED
        connection.cancel_typing_timer()

        user_id = connection.user_id
        if not was_authenticated or user_id is None:
            return
        if not self.registry.unregister(user_id, connection):
            # Replaced by a newer connection for the same user, which keeps the presence.
            logger.info("replaced connection for user %s closed", user_id)
            return

        logger.info("user %s disconnected", user_id)
        task = asyncio.ensure_future(self._announce_offline(user_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        # The transport owner may cancel us on disconnect; the task still runs to completion.
        await asyncio.shield(task)

    async def _announce_offline(self, user_id: str) -> None:
        last_seen = await self.gateway.update_user_online_status(user_id, False)
        await self.broadcast_status(user_id, False, last_seen=last_seen)

    async def drain(self) -> None:
        """Wait for offline announcements that outlived their connection handler."""
        if not self._pending:
            return
        results = await asyncio.gather(*list(self._pending), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("offline announcement failed: %s", result)

    # ---------------------------------------------------------------------
    # Inbound events
    # ---------------------------------------------------------------------

    async def _on_auth(self, connection: Connection, event: AuthEvent) -> None:
        if connection.is_authenticated:
            logger.debug("ignoring repeated auth on %r", connection)
            return
        user = await self.gateway.get_user_by_id(event.user_id)
        if user is None:
            logger.warning("auth for unknown user %s ignored", event.user_id)
            return
        if connection.state is ConnectionState.CLOSED:
            # Transport closed while the lookup was in flight.
            return

        user_id = str(user.id)
        connection.user_id = user_id
        connection.state = ConnectionState.AUTHENTICATED
        self.registry.register(user_id, connection)
        logger.info("user %s connected (%d online)", user_id, len(self.registry))

        last_seen = await self.gateway.update_user_online_status(user_id, True)
        await self.broadcast_status(user_id, True, last_seen=last_seen)

    def _on_join_chat(self, connection: Connection, event: JoinChatEvent) -> None:
        if not connection.is_authenticated:
            logger.debug("join_chat before auth ignored")
            return
        if connection.current_chat_id != event.chat_id:
            connection.cancel_typing_timer()
        connection.current_chat_id = event.chat_id

    async def _on_typing(self, connection: Connection, event: TypingEvent) -> None:
        if not connection.is_authenticated or connection.current_chat_id is None:
            return
        sender_id = connection.user_id
        chat_id = connection.current_chat_id

        chat = await self.gateway.get_chat_by_id(chat_id)
        if chat is None:
            return
        peer_id = chat.other_participant(sender_id)
        if peer_id is None:
            logger.warning("user %s sent typing for chat %s they are not in", sender_id, chat_id)
            return

        connection.cancel_typing_timer()
        peer = self.registry.lookup(peer_id)
        if peer is None:
            return
        await peer.send(TypingNotice(chat_id=chat_id, user_id=sender_id, is_typing=event.is_typing))
        if event.is_typing and self.typing_timeout > 0:
            connection.typing_task = asyncio.create_task(
                self._expire_typing(chat_id, sender_id, peer_id)
            )

    async def _expire_typing(self, chat_id: str, sender_id: str, peer_id: str) -> None:
        """Clear the peer's "is typing" indicator if no fresh typing event arrives in time."""
        try:
            await asyncio.sleep(self.typing_timeout)
        except asyncio.CancelledError:
            return
        peer = self.registry.lookup(peer_id)
        if peer is not None:
            await peer.send(TypingNotice(chat_id=chat_id, user_id=sender_id, is_typing=False))

    # ---------------------------------------------------------------------
    # Outbound pushes
    # ---------------------------------------------------------------------

    async def broadcast_status(self, user_id: str, is_online: bool, last_seen: Optional[datetime] = None) -> int:
        """Tell every other connected user that *user_id* went online/offline."""
        notice = UserStatusNotice(
            user_id=user_id,
            is_online=is_online,
            last_seen=last_seen or datetime.now(timezone.utc),
        )
        return await self.registry.broadcast_except(user_id, notice)

    async def push_new_message(self, recipient_id: str, message: MessageWithSender) -> bool:
        """Push a freshly persisted message to *recipient_id* if they are connected.

        Returns True if it was handed to the recipient's socket. No fallback
        delivery is attempted otherwise; the recipient sees the message on
        their next fetch.
        """
        connection = self.registry.lookup(str(recipient_id))
        if connection is None:
            return False
        return await connection.send(NewMessageNotice(message=message))


__all__ = ["PresenceRelay", "DEFAULT_TYPING_TIMEOUT"]
