import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import select, func, or_, and_
from sqlalchemy.exc import SQLAlchemyError

from educhat.core.exceptions import InvalidMessage, MessageNotFound, NotMessageRecipient, StorageUnavailable
from educhat.db.database import AsyncSessionLocal
from educhat.db.models.chat_data import ChatMessage

logger = logging.getLogger(__name__)


def get_utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MessageStore:
    """
    채팅 메시지 영속성 관리 (append-only, read 플래그만 변경 가능)

    created_at은 이 스토어가 발급하며 항상 직전 값보다 큽니다.
    같은 sender/receiver 쌍의 메시지는 생성 순서대로 조회됩니다.
    """

    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory
        self._last_created_at: Optional[datetime] = None

    def _next_created_at(self) -> datetime:
        now = get_utc_now()
        if self._last_created_at is not None and now <= self._last_created_at:
            now = self._last_created_at + timedelta(microseconds=1)
        self._last_created_at = now
        return now

    async def get_conversation(self, user_a: str, user_b: str, bidirectional: bool = False) -> List[ChatMessage]:
        """
        user_a -> user_b 방향의 메시지를 created_at 오름차순으로 반환합니다.
        bidirectional=True이면 양방향 메시지를 모두 반환합니다.
        """
        pair = and_(ChatMessage.sender_id == user_a, ChatMessage.receiver_id == user_b)
        if bidirectional:
            pair = or_(pair, and_(ChatMessage.sender_id == user_b, ChatMessage.receiver_id == user_a))
        stmt = select(ChatMessage).where(pair).order_by(ChatMessage.created_at, ChatMessage.id)

        async with self._session_factory() as db:
            try:
                result = await db.execute(stmt)
                return list(result.scalars().all())
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"[MessageStore] 대화 조회 실패 ({user_a} -> {user_b}): {e}")
                raise StorageUnavailable("conversation lookup failed") from e

    async def create_message(
        self,
        sender_id: str,
        receiver_id: str,
        body: str,
        attachment_url: Optional[str] = None,
    ) -> ChatMessage:
        if not sender_id or not receiver_id:
            raise InvalidMessage("sender_id and receiver_id are required")
        if not isinstance(body, str) or not body.strip():
            raise InvalidMessage("message body must not be empty")

        new_msg = ChatMessage(
            id=str(uuid.uuid4()),
            sender_id=sender_id,
            receiver_id=receiver_id,
            message=body,
            attachment_url=attachment_url or None,
            read=False,
            created_at=self._next_created_at(),
        )

        # DB 세션을 이 블록 안에서만 사용하고 즉시 닫음
        async with self._session_factory() as db:
            try:
                db.add(new_msg)
                await db.commit()
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"[MessageStore] DB 저장 실패 ({sender_id} -> {receiver_id}): {e}")
                await db.rollback()
                raise StorageUnavailable("message could not be persisted") from e
        return new_msg

    async def mark_read(self, message_id: str, reader_id: Optional[str] = None) -> None:
        """
        Idempotent. Raises MessageNotFound for an unknown id, and
        NotMessageRecipient when reader_id is given and is not the receiver.
        """
        async with self._session_factory() as db:
            try:
                msg = await db.get(ChatMessage, message_id)
                if msg is None:
                    raise MessageNotFound(message_id)
                if reader_id is not None and msg.receiver_id != reader_id:
                    raise NotMessageRecipient(message_id, reader_id)
                if not msg.read:
                    msg.read = True
                    await db.commit()
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"[MessageStore] 읽음 처리 실패 ({message_id}): {e}")
                await db.rollback()
                raise StorageUnavailable("read receipt could not be stored") from e

    async def count_unread(self, receiver_id: str) -> int:
        stmt = select(func.count()).select_from(ChatMessage).where(
            ChatMessage.receiver_id == receiver_id,
            ChatMessage.read.is_(False),
        )
        async with self._session_factory() as db:
            try:
                result = await db.execute(stmt)
                return result.scalar_one()
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"[MessageStore] 안 읽은 메시지 집계 실패 ({receiver_id}): {e}")
                raise StorageUnavailable("unread count failed") from e
