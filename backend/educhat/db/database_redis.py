import json
import logging

import redis.asyncio as redis

from educhat.core import config

logger = logging.getLogger(__name__)

# Connection Pool (Reusable)
pool = redis.ConnectionPool.from_url(config.REDIS_URL, decode_responses=True)


def chat_notification_channel(receiver_id: str) -> str:
    return f"chat:notifications:{receiver_id}"


class RedisManager:
    @staticmethod
    def get_client() -> redis.Redis:
        """
        Returns an async Redis client from the global connection pool.
        """
        return redis.Redis(connection_pool=pool)

    @staticmethod
    async def publish_chat_notification(receiver_id: str, payload: dict) -> int:
        """
        Publishes a chat notification for the receiver. Returns the number of
        subscribers that got it.
        """
        client = RedisManager.get_client()
        return await client.publish(chat_notification_channel(receiver_id), json.dumps(payload))

    @staticmethod
    async def close():
        await pool.disconnect()
