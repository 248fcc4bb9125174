"""
Shared pytest fixtures.

Relay/registry tests run against fake websockets and an in-memory gateway;
gateway and HTTP tests run against a throwaway in-memory SQLite database.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from tortoise import Tortoise, connections

from schat.app import TORTOISE_MODULES, create_app
from schat.auth_utils import pwd_context
from schat.config import Settings
from schat.gateway import TortoiseGateway
from schat.registry import ConnectionRegistry
from schat.relay import PresenceRelay

# Cheapest bcrypt cost so per-request HTTP Basic checks stay fast.
pwd_context.update(bcrypt__rounds=4)


# =============================================================================
# Fakes
# =============================================================================


class FakeWebSocket:
    """Records everything sent to it; ``broken`` makes sends fail like a dead socket."""

    def __init__(self, broken: bool = False):
        self.sent: List[dict] = []
        self.broken = broken

    async def send_json(self, data: dict) -> None:
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def of_type(self, event_type: str) -> List[dict]:
        return [e for e in self.sent if e["type"] == event_type]


class FakeUser:
    def __init__(self, user_id: str):
        self.id = uuid.UUID(user_id)


class FakeChat:
    def __init__(self, chat_id: str, user1_id: str, user2_id: str):
        self.id = chat_id
        self.user1_id = user1_id
        self.user2_id = user2_id

    def other_participant(self, user_id: str) -> Optional[str]:
        if user_id == self.user1_id:
            return self.user2_id
        if user_id == self.user2_id:
            return self.user1_id
        return None


class FakeGateway:
    """In-memory stand-in for the persistence gateway the relay depends on."""

    def __init__(self):
        self.users: Dict[str, FakeUser] = {}
        self.chats: Dict[str, FakeChat] = {}
        self.status_updates: List[tuple] = []
        self.last_seen: Dict[str, datetime] = {}
        # When set, status writes block until the event fires
        self.hold: Optional[asyncio.Event] = None
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def add_user(self) -> str:
        user_id = str(uuid.uuid4())
        self.users[user_id] = FakeUser(user_id)
        return user_id

    def add_chat(self, user1_id: str, user2_id: str) -> str:
        chat_id = str(uuid.uuid4())
        self.chats[chat_id] = FakeChat(chat_id, user1_id, user2_id)
        return chat_id

    async def get_user_by_id(self, user_id: str) -> Optional[FakeUser]:
        return self.users.get(user_id)

    async def get_chat_by_id(self, chat_id: str) -> Optional[FakeChat]:
        return self.chats.get(chat_id)

    async def update_user_online_status(self, user_id: str, is_online: bool) -> Optional[datetime]:
        if self.hold is not None:
            await self.hold.wait()
        self.status_updates.append((user_id, is_online))
        self._clock += timedelta(seconds=1)
        self.last_seen[user_id] = self._clock
        return self._clock


# =============================================================================
# Relay fixtures
# =============================================================================


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def relay(registry, gateway):
    """Relay with the typing timer disabled; timer tests build their own."""
    return PresenceRelay(registry, gateway, typing_timeout=0)


@pytest.fixture
def connect(relay):
    """Open a connection on *relay* and authenticate it as *user_id*."""

    async def _connect(user_id: str, websocket: Optional[FakeWebSocket] = None):
        ws = websocket or FakeWebSocket()
        connection = relay.open(ws)
        await relay.handle_frame(connection, f'{{"type": "auth", "userId": "{user_id}"}}')
        return connection, ws

    return _connect


# =============================================================================
# Database / HTTP fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        db_url="sqlite://:memory:",
        uploads_dir=str(tmp_path / "uploads"),
        typing_timeout=0,
    )


@pytest_asyncio.fixture
async def db():
    await Tortoise.init(db_url="sqlite://:memory:", modules=TORTOISE_MODULES)
    await Tortoise.generate_schemas()
    yield
    await connections.close_all()


@pytest.fixture
def store(db):
    return TortoiseGateway()


@pytest.fixture
def app(settings, db):
    return create_app(settings, register_db=False)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def signup(client):
    """Create an account through the API and return ``(user_json, basic_auth)``."""

    async def _signup(name: str, password: str = "secret1"):
        email = f"{name}@example.com"
        resp = await client.post(
            "/api/auth/signup",
            json={
                "username": name,
                "email": email,
                "password": password,
                "confirmPassword": password,
            },
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["user"], (email, password)

    return _signup
