import asyncio
import logging
import time

from educhat.core.exceptions import ChannelError
from educhat.realtime.channel import Channel
from educhat.realtime.registry import ConnectionRegistry
from educhat.schemas.chat import PingOutbound, dump_envelope

logger = logging.getLogger(__name__)

HEARTBEAT_TIMEOUT_CLOSE_CODE = 4408


async def run_heartbeat(channel: Channel, registry: ConnectionRegistry, interval: float, timeout: float):
    """
    채널 생존 확인 루프.
    interval마다 ping을 보내고, timeout 동안 아무 프레임도 받지 못하면 채널을 닫습니다.
    """
    ping = dump_envelope(PingOutbound())
    while channel.is_open:
        await asyncio.sleep(interval)
        if not channel.is_open:
            break

        idle = time.monotonic() - channel.last_seen
        if idle > timeout:
            logger.info(f"[Heartbeat] {channel!r} {idle:.1f}s 동안 응답 없음. 연결을 종료합니다.")
            registry.unregister(channel)
            await channel.close(code=HEARTBEAT_TIMEOUT_CLOSE_CODE, reason="heartbeat timeout")
            break

        try:
            await channel.send_json(ping)
        except ChannelError as e:
            logger.warning(f"[Heartbeat] {channel!r} ping 실패: {e}")
            registry.unregister(channel)
            break
