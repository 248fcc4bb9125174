"""Persistence gateway: every database read/write the service performs.

Routers and the relay never touch the ORM directly; they go through a
:class:`PersistenceGateway`. :class:`TortoiseGateway` is the real one, tests
substitute in-memory fakes for the relay.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from tortoise.expressions import Q

from .auth_utils import hash_password
from .constants import HANDLE_ALPHABET, HANDLE_LENGTH, HANDLE_PREFIX, MESSAGE_PAGE_SIZE, SEARCH_LIMIT
from .constants import MESSAGE_STATUSES, MESSAGE_TYPES
from .models import Chat, Message, User
from .schemas import ChatWithDetails, LastMessage, UserPublic

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _valid_id(value: Any) -> Optional[str]:
    """Return *value* as a canonical UUID string, or None if it is not one."""
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError):
        return None


class PersistenceGateway(Protocol):
    """The subset of storage the relay engine depends on."""

    async def get_chat_by_id(self, chat_id: str) -> Optional[Chat]: ...

    async def get_user_by_id(self, user_id: str) -> Optional[User]: ...

    async def update_user_online_status(self, user_id: str, is_online: bool) -> Optional[datetime]: ...


class TortoiseGateway:
    """Tortoise ORM implementation of the storage operations."""

    # -------------------- Users -------------------- #

    async def create_user(self, username: str, email: str, password: str) -> User:
        user = await User.create(
            username=username,
            email=email.lower(),
            password_hash=hash_password(password),
            handle=await self._unused_handle(),
        )
        logger.info("created user %s (%s)", user.id, user.handle)
        return user

    async def _unused_handle(self) -> str:
        while True:
            handle = HANDLE_PREFIX + "".join(secrets.choice(HANDLE_ALPHABET) for _ in range(HANDLE_LENGTH))
            if not await User.filter(handle=handle).exists():
                return handle

    async def get_user_by_email(self, email: str) -> Optional[User]:
        return await User.filter(email=email.lower()).first()

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        key = _valid_id(user_id)
        if key is None:
            return None
        return await User.filter(id=key).first()

    async def search_users(self, query: str, exclude_user_id: str) -> List[User]:
        """Exact (case-insensitive) handle match if there is one, else partial handle/username matches."""
        term = query.strip()
        if not term:
            return []
        others = User.exclude(id=exclude_user_id)
        exact = await others.filter(handle__iexact=term).first()
        if exact is not None:
            return [exact]
        return await (
            others.filter(Q(handle__icontains=term) | Q(username__icontains=term))
            .order_by("handle")
            .limit(SEARCH_LIMIT)
        )

    async def update_user_online_status(self, user_id: str, is_online: bool) -> Optional[datetime]:
        """Store the presence flag; return the ``last_seen`` written, or None for a malformed id."""
        key = _valid_id(user_id)
        if key is None:
            return None
        now = utcnow()
        await User.filter(id=key).update(is_online=is_online, last_seen=now, updated_at=now)
        return now

    async def update_user_profile(self, user: User, updates: Dict[str, Any]) -> User:
        for field, value in updates.items():
            setattr(user, field, value)
        await user.save()
        return user

    # -------------------- Chats -------------------- #

    async def get_chat_by_id(self, chat_id: str) -> Optional[Chat]:
        key = _valid_id(chat_id)
        if key is None:
            return None
        return await Chat.filter(id=key).first()

    async def get_or_create_chat(self, user1_id: str, user2_id: str) -> Chat:
        existing = await Chat.filter(
            Q(user1_id=user1_id, user2_id=user2_id) | Q(user1_id=user2_id, user2_id=user1_id)
        ).first()
        if existing is not None:
            return existing
        return await Chat.create(user1_id=user1_id, user2_id=user2_id)

    async def get_user_chats(self, user_id: str) -> List[ChatWithDetails]:
        """Chats of *user_id*, most recently active first, with the other user, last message and unread count."""
        chats = await (
            Chat.filter(Q(user1_id=user_id) | Q(user2_id=user_id))
            .prefetch_related("user1", "user2")
            .order_by("-updated_at")
        )
        result: List[ChatWithDetails] = []
        for chat in chats:
            other = chat.user2 if str(chat.user1_id) == str(user_id) else chat.user1
            last = await Message.filter(chat_id=chat.id).order_by("-created_at").first()
            unread = await (
                Message.filter(chat_id=chat.id, status__not="read")
                .exclude(sender_id=user_id)
                .count()
            )
            result.append(
                ChatWithDetails(
                    id=chat.id,
                    user1_id=chat.user1_id,
                    user2_id=chat.user2_id,
                    created_at=chat.created_at,
                    updated_at=chat.updated_at,
                    other_user=UserPublic.model_validate(other),
                    last_message=LastMessage.model_validate(last) if last else None,
                    unread_count=unread,
                )
            )
        return result

    # -------------------- Messages -------------------- #

    async def create_message(
        self, chat_id: str, sender_id: str, content: str, message_type: str = "text"
    ) -> Message:
        if message_type not in MESSAGE_TYPES:
            raise ValueError(f"unknown message type {message_type!r}")
        message = await Message.create(
            chat_id=chat_id,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
        )
        await Chat.filter(id=chat_id).update(updated_at=utcnow())
        return message

    async def get_chat_messages(self, chat_id: str, limit: int = MESSAGE_PAGE_SIZE) -> List[Message]:
        return await (
            Message.filter(chat_id=chat_id)
            .prefetch_related("sender")
            .order_by("created_at")
            .limit(limit)
        )

    async def get_message_by_id(self, message_id: str) -> Optional[Message]:
        key = _valid_id(message_id)
        if key is None:
            return None
        return await Message.filter(id=key).prefetch_related("chat").first()

    async def update_message_status(self, message_id: str, status: str) -> bool:
        if status not in MESSAGE_STATUSES:
            raise ValueError(f"unknown message status {status!r}")
        key = _valid_id(message_id)
        if key is None:
            return False
        updated = await Message.filter(id=key).update(status=status, updated_at=utcnow())
        return bool(updated)

    async def mark_messages_as_read(self, chat_id: str, reader_id: str) -> int:
        """Mark every message in *chat_id* not sent by *reader_id* as read."""
        return await (
            Message.filter(chat_id=chat_id, status__not="read")
            .exclude(sender_id=reader_id)
            .update(status="read", updated_at=utcnow())
        )


__all__ = ["PersistenceGateway", "TortoiseGateway", "utcnow"]
