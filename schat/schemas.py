"""Pydantic data schemas used across the backend service.

REST payloads and the records embedded in real-time events live here so
routers, the gateway and the relay all serialise users, chats and messages
the same way. Field names are snake_case in Python and camelCase on the
wire.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# -----------------------------
# Records
# -----------------------------

class UserPublic(CamelModel):
    """A user as any other user may see it. There is deliberately no password field."""

    id: UUID
    username: str
    email: str
    handle: str
    profile_image_url: Optional[str] = None
    status: Optional[str] = None
    is_online: bool = False
    last_seen: Optional[datetime] = None
    created_at: Optional[datetime] = None


class MessageOut(CamelModel):
    id: UUID
    chat_id: UUID
    sender_id: UUID
    content: str
    message_type: str = "text"
    status: str = "sent"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MessageWithSender(MessageOut):
    sender: Optional[UserPublic] = None


class ChatOut(CamelModel):
    id: UUID
    user1_id: UUID
    user2_id: UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LastMessage(CamelModel):
    id: UUID
    content: str
    sender_id: UUID
    created_at: Optional[datetime] = None


class ChatWithDetails(ChatOut):
    other_user: UserPublic
    last_message: Optional[LastMessage] = None
    unread_count: int = 0


# -----------------------------
# REST request / response models
# -----------------------------

class SignupRequest(CamelModel):
    username: str = Field(min_length=1, max_length=50)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=6)
    confirm_password: str

    @model_validator(mode="after")
    def _passwords_match(self) -> "SignupRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class LoginRequest(CamelModel):
    email: str
    password: str = Field(min_length=6)


class AuthResponse(CamelModel):
    message: str
    user: UserPublic


class UpdateProfileRequest(CamelModel):
    """Only these fields may be changed; id, email, password and handle are fixed."""

    username: Optional[str] = Field(default=None, min_length=1, max_length=50)
    status: Optional[str] = Field(default=None, max_length=100)
    profile_image_url: Optional[str] = None


class CreateChatRequest(CamelModel):
    other_user_id: Optional[str] = None


__all__ = [
    # records
    "CamelModel",
    "UserPublic",
    "MessageOut",
    "MessageWithSender",
    "ChatOut",
    "LastMessage",
    "ChatWithDetails",
    # requests / responses
    "SignupRequest",
    "LoginRequest",
    "AuthResponse",
    "UpdateProfileRequest",
    "CreateChatRequest",
]
