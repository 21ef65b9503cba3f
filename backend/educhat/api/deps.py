from educhat.core import config
from educhat.db.database_redis import RedisManager
from educhat.realtime.registry import ConnectionRegistry
from educhat.repositories.message_store import MessageStore
from educhat.services.chat_service import ChatService

# 웹소켓 연결은 직렬화할 수 없으므로 서버 메모리에 유지
registry = ConnectionRegistry()
message_store = MessageStore()
chat_service = ChatService(
    message_store,
    registry,
    delivery_mode=config.CHAT_DELIVERY_MODE,
    notifier=RedisManager.publish_chat_notification if config.CHAT_NOTIFY_REDIS else None,
)


def get_message_store() -> MessageStore:
    return message_store


def get_chat_service() -> ChatService:
    return chat_service
