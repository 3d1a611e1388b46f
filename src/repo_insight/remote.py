import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, int, int], None]


class RemoteError(Exception):
    def __init__(self, message: str, status_code: int = 502):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return not 400 <= self.status_code < 500


def is_client_error(exc: Exception) -> bool:
    if isinstance(exc, RemoteError):
        return not exc.retryable
    return "error: 4" in str(exc)


class RemoteClient:
    """Runs remote calls with exponential backoff (1s, 2s, 4s, ...)."""

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int = 3,
        on_retry: RetryCallback | None = None,
    ) -> T:
        for attempt in range(1, max_retries + 1):
            try:
                return await operation()
            except Exception as exc:
                if is_client_error(exc) or attempt == max_retries:
                    raise
                delay_ms = 2 ** (attempt - 1) * 1000
                logger.debug(f"Attempt {attempt}/{max_retries} failed, retrying in {delay_ms}ms: {exc}")
                if on_retry:
                    on_retry(attempt, max_retries, delay_ms)
                await self._sleep(delay_ms / 1000)
        raise ValueError("max_retries must be at least 1")


async def with_timeout(awaitable: Awaitable[T], seconds: float, fallback: T) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        logger.warning(f"Remote operation timed out after {seconds:.0f}s, using fallback")
        return fallback
