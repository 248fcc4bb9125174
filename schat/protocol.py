"""Real-time wire protocol: one JSON object per websocket text frame.

Client events are decoded into a closed union discriminated on ``type``;
anything else (bad JSON, unknown ``type``, missing fields) raises
:class:`ProtocolError`. Server events are pydantic models encoded with
camelCase keys.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from .schemas import CamelModel, MessageWithSender


class ProtocolError(ValueError):
    """Raised when an inbound frame is not a valid client event."""


# -----------------------------
# Client -> server
# -----------------------------

class AuthEvent(CamelModel):
    type: Literal["auth"]
    user_id: str = Field(min_length=1)


class JoinChatEvent(CamelModel):
    type: Literal["join_chat"]
    chat_id: str = Field(min_length=1)


class TypingEvent(CamelModel):
    type: Literal["typing"]
    # The relay scopes typing to the connection's joined chat; the client
    # still sends the chat id it believes it is in.
    chat_id: Optional[str] = None
    is_typing: bool


ClientEvent = Annotated[
    Union[AuthEvent, JoinChatEvent, TypingEvent],
    Field(discriminator="type"),
]

_client_event_adapter: TypeAdapter = TypeAdapter(ClientEvent)


def decode_client_event(raw: Union[str, bytes]) -> Union[AuthEvent, JoinChatEvent, TypingEvent]:
    """Parse one inbound frame into a client event."""
    try:
        return _client_event_adapter.validate_json(raw)
    except ValidationError as exc:
        raise ProtocolError(_describe(exc)) from exc


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ())) or "frame"
    return f"{loc}: {first.get('msg', 'invalid')}"


# -----------------------------
# Server -> client
# -----------------------------

class NewMessageNotice(CamelModel):
    type: Literal["new_message"] = "new_message"
    message: MessageWithSender


class TypingNotice(CamelModel):
    type: Literal["typing"] = "typing"
    chat_id: str
    user_id: str
    is_typing: bool


class UserStatusNotice(CamelModel):
    type: Literal["user_status"] = "user_status"
    user_id: str
    is_online: bool
    last_seen: datetime


ServerEvent = Union[NewMessageNotice, TypingNotice, UserStatusNotice]


def encode_server_event(event: ServerEvent) -> Dict[str, Any]:
    """Return the JSON-ready dict for *event* (camelCase keys, ISO timestamps)."""
    return event.model_dump(mode="json", by_alias=True)


__all__ = [
    "ProtocolError",
    "AuthEvent",
    "JoinChatEvent",
    "TypingEvent",
    "ClientEvent",
    "decode_client_event",
    "NewMessageNotice",
    "TypingNotice",
    "UserStatusNotice",
    "ServerEvent",
    "encode_server_event",
]
