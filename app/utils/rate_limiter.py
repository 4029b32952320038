"""
Rate Limiter Utility
Token bucket rate limiter for the REST API clients
"""
import asyncio
import time
from typing import Awaitable, Callable


class RateLimiter:
    """Token bucket rate limiter; a rate of 0 disables limiting"""

    def __init__(
        self,
        service_name: str,
        rate: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.service_name = service_name
        self.rate = rate  # requests per second
        self.tokens = float(rate)
        self._clock = clock
        self._sleep = sleep
        self.last_update = clock()
        self.lock = asyncio.Lock()

    async def acquire(self):
        """Acquire a token, waiting if necessary"""
        if self.rate <= 0:
            return
        async with self.lock:
            now = self._clock()
            elapsed = now - self.last_update

            # Add tokens based on time elapsed
            self.tokens = min(self.rate, self.tokens + elapsed * self.rate)
            self.last_update = now

            if self.tokens >= 1:
                self.tokens -= 1
            else:
                wait_time = (1 - self.tokens) / self.rate
                await self._sleep(wait_time)
                self.tokens = 0
                self.last_update = self._clock()
