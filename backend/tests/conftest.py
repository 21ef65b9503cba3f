import os

# 모듈 임포트 전에 테스트 환경 설정 (engine/redis pool이 import 시점에 만들어짐)
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CHAT_NOTIFY_REDIS", "false")
os.environ.setdefault("APP_ENV", "development")

import uuid
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from educhat.core import config
from educhat.core.exceptions import InvalidMessage, StorageUnavailable
from educhat.db.database import Base
from educhat.db.models import chat_data, user  # noqa: F401  (metadata 등록)
from educhat.db.models.chat_data import ChatMessage
from educhat.realtime.channel import Channel
from educhat.repositories.message_store import MessageStore


@pytest.fixture(autouse=True)
def dev_environment(monkeypatch):
    monkeypatch.setattr(config, "APP_ENV", "development")


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def broken_session_factory():
    """Engine without tables: every query fails at the storage layer."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return MessageStore(session_factory)


class FakeChannel(Channel):
    """In-process channel that records what it was sent."""

    def __init__(self, user_id=None, fail_on_send=False):
        super().__init__(user_id=user_id)
        self.sent = []
        self.close_code = None
        self.fail_on_send = fail_on_send
        self.before_send = None

    async def _accept(self):
        pass

    async def _send(self, payload):
        if self.before_send is not None:
            self.before_send()
        if self.fail_on_send:
            raise ConnectionResetError("peer went away")
        self.sent.append(payload)

    async def _close(self, code, reason):
        self.close_code = code


@pytest_asyncio.fixture
async def open_channel():
    async def _make(user_id=None, **kwargs):
        channel = FakeChannel(user_id=user_id, **kwargs)
        await channel.accept()
        return channel

    return _make


class InMemoryStore:
    """Stands in for MessageStore where no database is wanted."""

    def __init__(self, fail=False):
        self.fail = fail
        self.messages = []
        self._clock = datetime(2026, 1, 1, 9, 0, 0)

    async def create_message(self, sender_id, receiver_id, body, attachment_url=None):
        if self.fail:
            raise StorageUnavailable("database is down")
        if not body or not body.strip():
            raise InvalidMessage("message body must not be empty")
        self._clock += timedelta(seconds=1)
        msg = ChatMessage(
            id=str(uuid.uuid4()),
            sender_id=sender_id,
            receiver_id=receiver_id,
            message=body,
            attachment_url=attachment_url,
            read=False,
            created_at=self._clock,
        )
        self.messages.append(msg)
        return msg
