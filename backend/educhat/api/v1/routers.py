# backend/educhat/api/v1/routers.py
from fastapi import APIRouter

from educhat.api.v1 import auth, chat

# 메인 API 라우터 (/v1)
api_router = APIRouter(prefix="/v1")

# 1. 인증 (세션 쿠키 + JWT)
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])

# 2. 채팅 기록 / 읽음 처리 (실시간 채널은 sockets/chat_socket.py)
api_router.include_router(chat.router, prefix="/chat", tags=["chat"])
