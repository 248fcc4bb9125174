from tortoise import fields
from tortoise.models import Model
import uuid

from .constants import DEFAULT_USER_STATUS


class User(Model):
    """User account; ``is_online``/``last_seen`` are kept current by the relay."""

    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    username = fields.CharField(max_length=50, index=True)
    email = fields.CharField(max_length=255, unique=True)
    password_hash = fields.CharField(max_length=128)
    # Public "SCHAT_XXXXXX" identifier users share to find each other
    handle = fields.CharField(max_length=16, unique=True)
    profile_image_url = fields.TextField(null=True)
    status = fields.CharField(max_length=100, default=DEFAULT_USER_STATUS)
    is_online = fields.BooleanField(default=False)
    last_seen = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "users"


class Chat(Model):
    """One-on-one conversation between ``user1`` and ``user2``."""

    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    user1 = fields.ForeignKeyField("models.User", related_name="chats_as_user1")
    user2 = fields.ForeignKeyField("models.User", related_name="chats_as_user2")
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "chats"

    def participant_ids(self) -> tuple:
        return str(self.user1_id), str(self.user2_id)

    def has_participant(self, user_id: str) -> bool:
        return str(user_id) in self.participant_ids()

    def other_participant(self, user_id: str):
        """Return the id of the participant that is not *user_id* (None if *user_id* is not in the chat)."""
        first, second = self.participant_ids()
        if str(user_id) == first:
            return second
        if str(user_id) == second:
            return first
        return None


class Message(Model):
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    chat = fields.ForeignKeyField("models.Chat", related_name="messages", on_delete=fields.CASCADE)
    sender = fields.ForeignKeyField("models.User", related_name="sent_messages")
    # Text body, or the public URL of the uploaded image for image messages
    content = fields.TextField()
    message_type = fields.CharField(max_length=16, default="text")
    status = fields.CharField(max_length=16, default="sent")
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "messages"
        ordering = ["created_at"]
