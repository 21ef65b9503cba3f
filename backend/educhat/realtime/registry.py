import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

from educhat.core.exceptions import ChannelError
from educhat.realtime.channel import Channel

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Live set of open channels used for fan-out.

    broadcast() works on a snapshot, so register/unregister may run while a
    fan-out is in flight without corrupting the iteration.
    """

    def __init__(self):
        # channel.id -> Channel
        self._channels: Dict[str, Channel] = {}

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, channel: Channel) -> bool:
        return channel.id in self._channels

    def channels(self) -> List[Channel]:
        return list(self._channels.values())

    def user_ids(self) -> Set[str]:
        return {c.user_id for c in self._channels.values() if c.user_id is not None}

    def register(self, channel: Channel):
        if not channel.is_open:
            raise ChannelError(f"only open channels can be registered: {channel!r}")
        self._channels[channel.id] = channel
        logger.info(f"[Registry] {channel!r} 등록됨. 현재 접속 채널: {len(self._channels)}")

    def unregister(self, channel: Channel) -> bool:
        """Removes the channel. Returns False if it was not registered."""
        removed = self._channels.pop(channel.id, None) is not None
        if removed:
            logger.info(f"[Registry] {channel!r} 해제됨. 현재 접속 채널: {len(self._channels)}")
        return removed

    async def broadcast(self, payload: dict, recipients: Optional[Iterable[str]] = None) -> int:
        """
        Sends payload to every registered open channel, or only to channels
        whose user_id is in recipients. Returns the number of deliveries.
        """
        targets = self.channels()
        if recipients is not None:
            wanted = set(recipients)
            targets = [c for c in targets if c.user_id in wanted]
        if not targets:
            return 0

        results = await asyncio.gather(*(self._deliver(c, payload) for c in targets))
        return sum(1 for delivered in results if delivered)

    async def _deliver(self, channel: Channel, payload: dict) -> bool:
        if not channel.is_open:
            self.unregister(channel)
            return False
        try:
            await channel.send_json(payload)
            return True
        except ChannelError as e:
            logger.warning(f"[Registry] {channel!r} 전송 실패, 해제합니다: {e}")
            self.unregister(channel)
            return False

    async def close_all(self, code: int = 1001, reason: str = "server shutdown"):
        for channel in self.channels():
            self.unregister(channel)
            await channel.close(code=code, reason=reason)
