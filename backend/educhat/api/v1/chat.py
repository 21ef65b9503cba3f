# backend/educhat/api/v1/chat.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from educhat.api.deps import get_chat_service, get_message_store
from educhat.core.exceptions import MessageNotFound, NotMessageRecipient, StorageUnavailable
from educhat.core.security import get_current_user_id
from educhat.repositories.message_store import MessageStore
from educhat.schemas.chat import ChatMessageRead
from educhat.schemas.user import UnreadCount
from educhat.services.chat_service import ChatService

router = APIRouter()


def _storage_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Chat storage is unavailable, try again later",
    )


@router.get("/status")
async def get_chat_status(service: ChatService = Depends(get_chat_service)):
    """
    채팅 서버의 현재 상태를 확인합니다.
    """
    return {
        "status": "online",
        "active_connections": len(service.registry),
        "delivery_mode": service.delivery_mode,
    }


@router.get("/messages/{user_a}/{user_b}", response_model=List[ChatMessageRead])
async def get_conversation(
    user_a: str,
    user_b: str,
    bidirectional: bool = False,
    current_user_id: str = Depends(get_current_user_id),
    store: MessageStore = Depends(get_message_store),
):
    """user_a -> user_b 대화 기록 (bidirectional=true면 양방향)"""
    if current_user_id not in (user_a, user_b):
        raise HTTPException(status_code=403, detail="Not a participant of this conversation")
    try:
        return await store.get_conversation(user_a, user_b, bidirectional=bidirectional)
    except StorageUnavailable:
        raise _storage_unavailable()


@router.post("/messages/{message_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_message_read(
    message_id: str,
    current_user_id: str = Depends(get_current_user_id),
    store: MessageStore = Depends(get_message_store),
):
    """메시지 읽음 처리 (여러 번 호출해도 안전)"""
    try:
        await store.mark_read(message_id, reader_id=current_user_id)
    except MessageNotFound:
        raise HTTPException(status_code=404, detail="Message not found")
    except NotMessageRecipient:
        raise HTTPException(status_code=403, detail="Only the receiver can mark a message read")
    except StorageUnavailable:
        raise _storage_unavailable()
    return None


@router.get("/unread", response_model=UnreadCount)
async def get_unread_count(
    current_user_id: str = Depends(get_current_user_id),
    store: MessageStore = Depends(get_message_store),
):
    try:
        return {"count": await store.count_unread(current_user_id)}
    except StorageUnavailable:
        raise _storage_unavailable()
