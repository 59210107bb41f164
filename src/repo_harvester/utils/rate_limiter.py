import asyncio
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger()

SleepFn = Callable[[float], Awaitable[None]]


class RequestPacer:
    """Fixed-delay pacer for API governance.

    Every request after the first waits the full delay, unconditionally.
    The delay is not adapted to response headers; retries handle throttling.
    """

    def __init__(
        self,
        delay_seconds: float,
        name: str = "default",
        sleep: Optional[SleepFn] = None,
    ):
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative")
        self.delay_seconds = delay_seconds
        self.name = name
        self._sleep = sleep or asyncio.sleep
        self._started = False
        self.requests = 0
        self.total_wait_seconds = 0.0

    async def acquire(self) -> None:
        """Wait the fixed delay unless this is the first request."""
        if self._started and self.delay_seconds > 0:
            await self._sleep(self.delay_seconds)
            self.total_wait_seconds += self.delay_seconds
        self._started = True
        self.requests += 1

    async def pause(self, seconds: Optional[float] = None) -> None:
        """Explicit extra pause between larger units of work."""
        wait = self.delay_seconds if seconds is None else seconds
        if wait > 0:
            logger.debug("pacer_pause", pacer=self.name, seconds=wait)
            await self._sleep(wait)
            self.total_wait_seconds += wait

    def reset(self) -> None:
        """Treat the next request as the first one."""
        self._started = False
