from __future__ import annotations

import logging
import secrets
import time
from pathlib import PurePath
from typing import List, Optional

import anyio
from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, UploadFile, status

from ..auth_utils import get_current_user
from ..config import Settings
from ..gateway import TortoiseGateway
from ..models import Chat, User
from ..relay import PresenceRelay
from ..schemas import ChatOut, ChatWithDetails, CreateChatRequest, MessageOut, MessageWithSender
from ..state import get_gateway, get_relay, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chats"])


async def _chat_for_participant(chat_id: str, user: User, gateway: TortoiseGateway) -> Chat:
    chat = await gateway.get_chat_by_id(chat_id)
    if chat is None or not chat.has_participant(str(user.id)):
        raise HTTPException(status_code=403, detail="Access denied")
    return chat


async def _store_upload(upload: UploadFile, settings: Settings) -> str:
    """Save an image upload under ``uploads_dir`` and return its public URL."""
    if not (upload.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image uploads are allowed")
    data = await upload.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large")

    suffix = PurePath(upload.filename or "").suffix.lower()
    filename = f"file-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{suffix}"
    target = anyio.Path(settings.uploads_dir)
    await target.mkdir(parents=True, exist_ok=True)
    await (target / filename).write_bytes(data)
    logger.info("stored upload %s (%d bytes)", filename, len(data))
    return f"/uploads/{filename}"


# ---------------------------------------------------------------------------
# Chats
# ---------------------------------------------------------------------------


@router.get("/chats", response_model=List[ChatWithDetails])
async def list_chats(
    current_user: User = Depends(get_current_user),
    gateway: TortoiseGateway = Depends(get_gateway),
):
    return await gateway.get_user_chats(str(current_user.id))


@router.post("/chats", response_model=ChatOut)
async def create_chat(
    req: CreateChatRequest = Body(default=CreateChatRequest()),
    current_user: User = Depends(get_current_user),
    gateway: TortoiseGateway = Depends(get_gateway),
):
    if not req.other_user_id:
        raise HTTPException(status_code=400, detail="otherUserId is required")
    other = await gateway.get_user_by_id(req.other_user_id)
    if other is None:
        raise HTTPException(status_code=404, detail="User not found")
    if other.id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot start a chat with yourself")
    chat = await gateway.get_or_create_chat(str(current_user.id), str(other.id))
    return ChatOut.model_validate(chat)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@router.get("/chats/{chat_id}/messages", response_model=List[MessageWithSender])
async def list_messages(
    chat_id: str,
    current_user: User = Depends(get_current_user),
    gateway: TortoiseGateway = Depends(get_gateway),
):
    chat = await _chat_for_participant(chat_id, current_user, gateway)
    messages = await gateway.get_chat_messages(str(chat.id))
    return [MessageWithSender.model_validate(m) for m in messages]


@router.post("/chats/{chat_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(
    chat_id: str,
    content: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    current_user: User = Depends(get_current_user),
    gateway: TortoiseGateway = Depends(get_gateway),
    relay: PresenceRelay = Depends(get_relay),
    settings: Settings = Depends(get_settings),
):
    chat = await _chat_for_participant(chat_id, current_user, gateway)
    if file is None and not content:
        raise HTTPException(status_code=400, detail="Message content or file is required")

    if file is not None:
        body, message_type = await _store_upload(file, settings), "image"
    else:
        body, message_type = content, "text"

    sender_id = str(current_user.id)
    message = await gateway.create_message(str(chat.id), sender_id, body, message_type)
    message.sender = current_user

    # Push to the other participant if they have a live connection.
    recipient_id = chat.other_participant(sender_id)
    if await relay.push_new_message(recipient_id, MessageWithSender.model_validate(message)):
        await gateway.update_message_status(str(message.id), "delivered")
        message.status = "delivered"
    return MessageOut.model_validate(message)


@router.patch("/messages/{message_id}/read")
async def mark_message_read(
    message_id: str,
    current_user: User = Depends(get_current_user),
    gateway: TortoiseGateway = Depends(get_gateway),
):
    message = await gateway.get_message_by_id(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    if not message.chat.has_participant(str(current_user.id)):
        raise HTTPException(status_code=403, detail="Access denied")
    await gateway.update_message_status(message_id, "read")
    return {"message": "Message marked as read"}


@router.patch("/chats/{chat_id}/read")
async def mark_chat_read(
    chat_id: str,
    current_user: User = Depends(get_current_user),
    gateway: TortoiseGateway = Depends(get_gateway),
):
    chat = await _chat_for_participant(chat_id, current_user, gateway)
    await gateway.mark_messages_as_read(str(chat.id), str(current_user.id))
    return {"message": "Messages marked as read"}
