"""
Rate-limit retry and local failover for cloud provider calls.

Per call:
    cloud attempt -> (rate limited) retry up to N times with a fixed wait
    -> (still rate limited) probe local -> local attempt once, or fail with
    the original error.
Errors that are not rate limits propagate immediately.
"""
import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, Tuple, TypeVar

from ragchat.core.config import settings
from ragchat.core.exceptions import is_rate_limit_error
from ragchat.services.availability import LocalAvailability

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: Optional[int] = None,
    wait: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Call `fn`, retrying only on rate-limit errors.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt
        max_retries: Retries after the first attempt (default: RATE_LIMIT_MAX_RETRIES)
        wait: Fixed wait in seconds between attempts (default: RATE_LIMIT_RETRY_WAIT)
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        The first successful result
    """
    max_retries = settings.RATE_LIMIT_MAX_RETRIES if max_retries is None else max_retries
    wait = settings.RATE_LIMIT_RETRY_WAIT if wait is None else wait

    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if attempt < max_retries and is_rate_limit_error(e):
                attempt += 1
                logger.warning(
                    f"Rate limited, waiting {wait:g}s before retry {attempt}/{max_retries}..."
                )
                await sleep(wait)
                continue
            raise


async def _prime(open_stream: Callable[[], AsyncIterator[str]]) -> Tuple[Optional[str], AsyncIterator[str]]:
    """Open a stream and pull its first delta so that opening failures surface here."""
    stream = open_stream()
    try:
        first = await stream.__anext__()
    except StopAsyncIteration:
        return None, stream
    except BaseException:
        await stream.aclose()
        raise
    return first, stream


class FallbackController:
    """Runs cloud calls with rate-limit retries and failover to the local backend."""

    def __init__(
        self,
        availability: LocalAvailability,
        max_retries: Optional[int] = None,
        retry_wait: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.availability = availability
        self.max_retries = settings.RATE_LIMIT_MAX_RETRIES if max_retries is None else max_retries
        self.retry_wait = settings.RATE_LIMIT_RETRY_WAIT if retry_wait is None else retry_wait
        self.sleep = sleep

    async def run(
        self,
        cloud_call: Callable[[], Awaitable[T]],
        local_call: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Execute `cloud_call` under the retry policy, failing over to `local_call`.

        The local call runs at most once and is not retried.
        """
        try:
            return await with_retry(
                cloud_call,
                max_retries=self.max_retries,
                wait=self.retry_wait,
                sleep=self.sleep,
            )
        except Exception as e:
            if not is_rate_limit_error(e):
                raise
            # Re-probe: the server may have been started since the last check
            self.availability.reset()
            if not await self.availability.probe():
                logger.error(f"Cloud provider rate limited and local backend unreachable: {e}")
                raise
            logger.warning(
                f"Cloud provider still rate limited after {self.max_retries} retries, "
                f"falling back to local backend for {self.availability.name}"
            )
        return await local_call()

    async def stream(
        self,
        open_cloud: Callable[[], AsyncIterator[str]],
        open_local: Callable[[], AsyncIterator[str]],
    ) -> AsyncIterator[str]:
        """
        Streaming variant of `run`.

        An attempt is "open the stream and receive the first delta"; retries and
        failover happen only before that. Once a delta has been yielded, later
        errors propagate to the consumer unchanged.
        """
        first, stream = await self.run(
            lambda: _prime(open_cloud),
            lambda: _prime(open_local),
        )
        try:
            if first is None:
                return
            yield first
            async for delta in stream:
                yield delta
        finally:
            await stream.aclose()
