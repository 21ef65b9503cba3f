"""Client side of the live chat channel.

One ChatClientSession is created per authenticated user session. It keeps a
single channel open, mirrors received messages into ``messages`` and
reconnects with exponential backoff when the channel drops. After every
(re)connect the selected conversation is re-fetched over REST so messages
lost while disconnected show up again.
"""
import asyncio
import enum
import inspect
import json
import logging
import random
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional
from urllib.parse import urlencode

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_BASE = 0.5
DEFAULT_BACKOFF_CAP = 30.0


class SessionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


def backoff_delay(
    attempt: int,
    base: float = DEFAULT_BACKOFF_BASE,
    cap: float = DEFAULT_BACKOFF_CAP,
    rng: Callable[[], float] = random.random,
) -> float:
    """Exponential backoff with full jitter: uniform in [0, min(cap, base * 2**attempt)]."""
    return rng() * min(cap, base * (2 ** attempt))


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _sort_key(message: dict):
    # 오프셋 없는 값은 UTC로 간주
    try:
        stamp = datetime.fromisoformat(message.get("createdAt", "").replace("Z", "+00:00"))
    except (AttributeError, TypeError, ValueError):
        return datetime.max.replace(tzinfo=timezone.utc)
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


class ConversationFetcher:
    """Fetches conversation history from the REST layer for catch-up."""

    def __init__(self, base_url: str, token: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=10.0)

    async def fetch(self, user_a: str, user_b: str) -> List[dict]:
        res = await self._client.get(f"/v1/chat/messages/{user_a}/{user_b}", params={"bidirectional": "true"})
        res.raise_for_status()
        return res.json()

    async def aclose(self):
        await self._client.aclose()


class ChatClientSession:
    def __init__(
        self,
        url: str,
        user_id: str,
        token: Optional[str] = None,
        fetcher: Optional[ConversationFetcher] = None,
        connect=websockets.connect,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        backoff_cap: float = DEFAULT_BACKOFF_CAP,
        rng: Callable[[], float] = random.random,
        sleep=asyncio.sleep,
    ):
        self.url = url
        self.user_id = user_id
        self.token = token
        self.state = SessionState.DISCONNECTED
        self.messages: List[dict] = []
        # UI 상태일 뿐, 수신 메시지를 거르지 않음
        self.selected_peer: Optional[str] = None

        self._fetcher = fetcher
        self._connect = connect
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        self._rng = rng
        self._sleep = sleep
        self._ws = None
        self._callbacks: List[Callable] = []
        self._closing = False
        self._attempt = 0

    @property
    def is_open(self) -> bool:
        return self.state == SessionState.OPEN

    def channel_url(self) -> str:
        if not self.token:
            return self.url
        sep = "&" if "?" in self.url else "?"
        return f"{self.url}{sep}{urlencode({'token': self.token})}"

    def on_message(self, callback: Callable) -> Callable:
        """Registers a callback for every inbound chat message. Callbacks may be async."""
        self._callbacks.append(callback)
        return callback

    def select_peer(self, peer_id: Optional[str]):
        self.selected_peer = peer_id

    async def send(self, receiver_id: str, content: str, attachment_url: Optional[str] = None) -> Optional[dict]:
        """
        Appends an optimistic copy right away, then writes the frame if the
        channel is open. When it is not open the frame is dropped.
        """
        content = content.strip()
        if not content:
            return None

        local = {
            "id": f"local-{uuid.uuid4().hex}",
            "senderId": self.user_id,
            "receiverId": receiver_id,
            "message": content,
            "attachmentUrl": attachment_url,
            "read": False,
            "createdAt": _utc_now_iso(),
            "pending": True,
        }
        self.messages.append(local)

        if not self.is_open or self._ws is None:
            logger.info(f"[ChatClient] 채널이 열려있지 않아 전송하지 않음 (to {receiver_id})")
            return local

        envelope = {
            "type": "chat",
            "senderId": self.user_id,
            "receiverId": receiver_id,
            "content": content,
            "attachmentUrl": attachment_url,
        }
        try:
            await self._ws.send(json.dumps(envelope))
        except ConnectionClosed as e:
            logger.warning(f"[ChatClient] 전송 중 연결 끊김: {e}")
        return local

    async def run(self):
        """Keeps the channel open until close() is called. A session closed before run() never connects."""
        while not self._closing:
            try:
                await self._open()
                await self._read_loop()
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.warning(f"[ChatClient] 채널 오류: {e}")
            finally:
                ws, self._ws = self._ws, None
                self.state = SessionState.DISCONNECTED
                if ws is not None:
                    await ws.close()

            if self._closing:
                break
            delay = backoff_delay(self._attempt, self._backoff_base, self._backoff_cap, self._rng)
            self._attempt += 1
            logger.info(f"[ChatClient] {delay:.2f}s 후 재연결 (시도 {self._attempt})")
            await self._sleep(delay)

    async def close(self):
        self._closing = True
        ws, self._ws = self._ws, None
        self.state = SessionState.DISCONNECTED
        if ws is not None:
            await ws.close()

    async def _open(self):
        self.state = SessionState.CONNECTING
        ws = await self._connect(self.channel_url())
        if self._closing:
            # 연결 중에 close()가 호출됨
            await ws.close()
            return
        self._ws = ws
        self.state = SessionState.OPEN
        self._attempt = 0
        logger.info("[ChatClient] 채팅 서버에 연결됨")
        await self.reconcile()

    async def _read_loop(self):
        ws = self._ws
        if ws is None:
            return
        async for raw in ws:
            await self.handle_frame(raw)

    async def handle_frame(self, raw):
        try:
            envelope = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"[ChatClient] 프레임 파싱 에러: {e}")
            return
        if not isinstance(envelope, dict):
            return

        frame_type = envelope.get("type")
        if frame_type == "chat" and isinstance(envelope.get("data"), dict):
            message = envelope["data"]
            self._apply(message)
            for callback in list(self._callbacks):
                try:
                    result = callback(message)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"[ChatClient] 메시지 콜백 에러: {e}")
        elif frame_type == "ping" and self._ws is not None:
            await self._ws.send(json.dumps({"type": "pong"}))

    async def reconcile(self):
        """Re-fetches the selected conversation and merges it by message id."""
        if self._fetcher is None or self.selected_peer is None:
            return
        try:
            history = await self._fetcher.fetch(self.user_id, self.selected_peer)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[ChatClient] 대화 기록 재조회 실패: {e}")
            return
        for message in history:
            self._apply(message)
        self.messages.sort(key=_sort_key)

    def _apply(self, message: dict):
        known: Dict[str, int] = {m.get("id"): i for i, m in enumerate(self.messages)}
        if message.get("id") in known:
            self.messages[known[message["id"]]] = message
            return

        # 서버가 돌려준 내 메시지는 낙관적 사본을 대체
        if message.get("senderId") == self.user_id:
            for i, m in enumerate(self.messages):
                if (
                    m.get("pending")
                    and m.get("receiverId") == message.get("receiverId")
                    and m.get("message") == message.get("message")
                ):
                    self.messages[i] = message
                    return
        self.messages.append(message)
