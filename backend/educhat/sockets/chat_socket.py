import asyncio
import contextlib
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from educhat.api.deps import get_chat_service
from educhat.core import config
from educhat.core.security import resolve_websocket_user
from educhat.realtime.channel import WebSocketChannel
from educhat.realtime.heartbeat import run_heartbeat
from educhat.services.chat_service import ChatService

logger = logging.getLogger(__name__)

router = APIRouter()

UNAUTHORIZED_CLOSE_CODE = 4401


@router.websocket("/ws")
async def chat_endpoint(
    websocket: WebSocket,
    token: Optional[str] = None,
    service: ChatService = Depends(get_chat_service),
):
    """
    실시간 채팅 채널.
    받은 chat 봉투는 저장 후 접속 중인 채널로 전송되고, 오류는 채널로 돌려보내지 않습니다.
    """
    user_id = resolve_websocket_user(websocket, token)
    if user_id is None:
        logger.warning("[CHAT] 인증되지 않은 연결 거부")
        await websocket.close(code=UNAUTHORIZED_CLOSE_CODE)
        return

    channel = WebSocketChannel(websocket, user_id=user_id)
    try:
        await channel.accept()
    except Exception as e:
        logger.error(f"[CHAT] 연결 실패 (User {user_id}): {e}")
        return

    registry = service.registry
    registry.register(channel)
    heartbeat_task = asyncio.create_task(
        run_heartbeat(channel, registry, config.CHAT_HEARTBEAT_INTERVAL, config.CHAT_HEARTBEAT_TIMEOUT)
    )

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw_data = message.get("text")
            if raw_data is None:
                raw_data = message.get("bytes")
            if raw_data is None:
                continue
            await service.process_message(channel, raw_data)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"[CHAT] 채널 에러 (User {user_id}): {e}")
    finally:
        heartbeat_task.cancel()
        try:
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat_task
        except Exception as e:
            logger.error(f"[CHAT] heartbeat 에러 (User {user_id}): {e}")
        registry.unregister(channel)
        channel.mark_closed()
        logger.info(f"[CHAT] 유저 {user_id} 연결 끊김.")
