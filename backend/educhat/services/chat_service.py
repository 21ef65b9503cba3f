# backend/educhat/services/chat_service.py
import logging
from typing import Awaitable, Callable, Optional, Set, Union

from educhat.core import config
from educhat.core.exceptions import ChannelError, InvalidMessage, MalformedEnvelope, StorageUnavailable
from educhat.db.models.chat_data import ChatMessage
from educhat.realtime.channel import Channel
from educhat.realtime.registry import ConnectionRegistry
from educhat.repositories.message_store import MessageStore
from educhat.schemas.chat import (
    ChatInbound,
    ChatMessageRead,
    ChatOutbound,
    PingInbound,
    PongOutbound,
    dump_envelope,
    parse_inbound,
)

logger = logging.getLogger(__name__)

DELIVERY_BROADCAST = "broadcast"
DELIVERY_TARGETED = "targeted"
DELIVERY_MODES = (DELIVERY_BROADCAST, DELIVERY_TARGETED)

Notifier = Callable[[str, dict], Awaitable[object]]


class ChatService:
    def __init__(
        self,
        store: MessageStore,
        registry: ConnectionRegistry,
        delivery_mode: str = config.CHAT_DELIVERY_MODE,
        notifier: Optional[Notifier] = None,
    ):
        if delivery_mode not in DELIVERY_MODES:
            raise ValueError(f"unknown delivery mode {delivery_mode!r}, expected one of {DELIVERY_MODES}")
        self.store = store
        self.registry = registry
        self.delivery_mode = delivery_mode
        self.notifier = notifier

    async def process_message(self, channel: Channel, raw_data: Union[str, bytes]) -> Optional[ChatMessage]:
        """
        채널로 받은 프레임을 처리합니다.
        1. 봉투(envelope) 파싱 - 잘못된 프레임은 로그만 남기고 버림
        2. ping/pong 처리
        3. chat이면 DB 저장 후 브로드캐스트
        저장된 메시지를 반환하고, 버려진 경우 None을 반환합니다.
        """
        channel.touch()
        try:
            envelope = parse_inbound(raw_data)
        except MalformedEnvelope as e:
            logger.warning(f"[ChatService] 메시지 파싱 에러 (User {channel.user_id}): {e}")
            return None

        if isinstance(envelope, PingInbound):
            try:
                await channel.send_json(dump_envelope(PongOutbound()))
            except ChannelError as e:
                logger.warning(f"[ChatService] pong 전송 실패 (User {channel.user_id}): {e}")
            return None

        if isinstance(envelope, ChatInbound):
            return await self.handle_chat(channel, envelope)

        # pong: touch()로 생존 확인만 하면 됨
        return None

    async def handle_chat(self, channel: Channel, envelope: ChatInbound) -> Optional[ChatMessage]:
        if channel.user_id is not None and envelope.sender_id != channel.user_id:
            logger.warning(
                f"[ChatService] senderId 불일치로 메시지 폐기 (channel user {channel.user_id}, "
                f"senderId {envelope.sender_id})"
            )
            return None

        try:
            new_msg = await self.store.create_message(
                envelope.sender_id,
                envelope.receiver_id,
                envelope.content,
                envelope.attachment_url,
            )
        except (StorageUnavailable, InvalidMessage) as e:
            logger.error(f"[ChatService] 메시지 저장 실패 ({envelope.sender_id} -> {envelope.receiver_id}): {e}")
            return None

        # 저장이 끝난 뒤에만 전송
        outbound = dump_envelope(ChatOutbound(data=ChatMessageRead.model_validate(new_msg)))
        delivered = await self.registry.broadcast(outbound, recipients=self.recipients_for(new_msg))
        logger.debug(f"[ChatService] 메시지 {new_msg.id} -> {delivered}개 채널 전송")

        await self.notify(new_msg)
        return new_msg

    def recipients_for(self, message: ChatMessage) -> Optional[Set[str]]:
        if self.delivery_mode == DELIVERY_TARGETED:
            return {message.sender_id, message.receiver_id}
        return None

    async def notify(self, message: ChatMessage):
        if self.notifier is None:
            return
        notification_payload = {
            "type": "CHAT_NOTIFICATION",
            "message_id": message.id,
            "from_user_id": message.sender_id,
            "message": message.message,
            "created_at": message.created_at.isoformat(),
        }
        try:
            await self.notifier(message.receiver_id, notification_payload)
        except Exception as e:
            logger.error(f"[ChatService] 알림 발행 실패 ({message.sender_id} -> {message.receiver_id}): {e}")
