from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, MutableMapping, Any, Protocol

import anyio

from seekguard.core.errors import ClientDisconnected

logger = logging.getLogger(__name__)

Receive = Callable[[], Awaitable[MutableMapping[str, Any]]]


@dataclass(frozen=True)
class SeekThrottlePolicy:
    """
    Delay imposed before a transfer, proportional to how far the request
    jumps ahead of the client's last served byte.

    Rewinds and replays cost nothing; forward jumps cost
    `delay_ms_per_second_jump` per second of skipped content, capped at
    `max_delay_ms`. Bad inputs fail open (no delay).
    """
    delay_ms_per_second_jump: float = 500
    max_delay_ms: int = 10_000

    def compute_delay(self, last_offset: float, requested_start: float, bitrate: float) -> int:
        if not all(_is_finite(v) for v in (last_offset, requested_start, bitrate)) or bitrate <= 0:
            return 0
        byte_jump = max(0, requested_start - last_offset)
        seconds_jump = byte_jump / bitrate
        return int(min(self.max_delay_ms, math.ceil(seconds_jump * self.delay_ms_per_second_jump)))


def _is_finite(value: Any) -> bool:
    try:
        return math.isfinite(value)
    except (TypeError, OverflowError):
        return False


class ThrottleTimer(Protocol):
    async def wait(self, delay_ms: int, receive: Receive) -> None:
        ...


class DisconnectAwareTimer:
    """
    Suspends a request for the throttle delay, cut short if the client
    disconnects meanwhile (raises ClientDisconnected in that case).
    """

    async def wait(self, delay_ms: int, receive: Receive) -> None:
        if delay_ms <= 0:
            return

        disconnected = False

        async with anyio.create_task_group() as tg:

            async def _sleep() -> None:
                await anyio.sleep(delay_ms / 1000)
                tg.cancel_scope.cancel()

            async def _listen() -> None:
                nonlocal disconnected
                while True:
                    message = await receive()
                    if message["type"] == "http.disconnect":
                        disconnected = True
                        tg.cancel_scope.cancel()
                        return

            tg.start_soon(_sleep)
            tg.start_soon(_listen)

        if disconnected:
            logger.info("client disconnected during %dms throttle wait", delay_ms)
            raise ClientDisconnected("client disconnected during throttle wait")
