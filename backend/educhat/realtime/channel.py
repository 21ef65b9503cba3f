import asyncio
import enum
import logging
import time
import uuid
from typing import Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from educhat.core.exceptions import ChannelError

logger = logging.getLogger(__name__)


class ChannelState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class Channel:
    """
    One live, full-duplex connection to a single client.

    State only moves forward: CONNECTING -> OPEN -> CLOSED. Subclasses
    provide the transport through _accept/_send/_close.
    """

    def __init__(self, user_id: Optional[str] = None):
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        self.state = ChannelState.CONNECTING
        self.last_seen = time.monotonic()
        self._send_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id[:8]} user={self.user_id} {self.state.value}>"

    @property
    def is_open(self) -> bool:
        return self.state == ChannelState.OPEN

    def touch(self):
        self.last_seen = time.monotonic()

    def mark_closed(self):
        self.state = ChannelState.CLOSED

    async def accept(self):
        if self.state != ChannelState.CONNECTING:
            raise ChannelError(f"cannot accept channel in state {self.state.value}")
        await self._accept()
        self.state = ChannelState.OPEN
        self.touch()

    async def send_json(self, payload: dict):
        if not self.is_open:
            raise ChannelError("channel is not open")
        async with self._send_lock:
            try:
                await self._send(payload)
            except Exception as e:
                self.mark_closed()
                raise ChannelError(f"send failed: {e}") from e

    async def close(self, code: int = 1000, reason: str = ""):
        if self.state == ChannelState.CLOSED:
            return
        was_open = self.is_open
        self.mark_closed()
        if was_open:
            await self._close(code, reason)

    async def _accept(self):
        raise NotImplementedError

    async def _send(self, payload: dict):
        raise NotImplementedError

    async def _close(self, code: int, reason: str):
        raise NotImplementedError


class WebSocketChannel(Channel):
    """Channel backed by a Starlette/FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket, user_id: Optional[str] = None):
        super().__init__(user_id=user_id)
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.state == ChannelState.OPEN
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def _accept(self):
        await self.websocket.accept()

    async def _send(self, payload: dict):
        await self.websocket.send_json(payload)

    async def _close(self, code: int, reason: str):
        try:
            await self.websocket.close(code=code, reason=reason)
        except RuntimeError as e:
            # 이미 닫힌 소켓
            logger.debug(f"[Channel] close ignored for {self!r}: {e}")
