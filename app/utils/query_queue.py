"""
GraphQL Query Queue
Serializes calls to the AniList GraphQL API and enforces its rate limit
"""
import aiohttp
import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional
from app.core.errors import (
    GraphQLError,
    RateLimited,
    RetriesExhausted,
    TransientUpstreamError,
    UpstreamError,
    UpstreamRejected,
)

logger = logging.getLogger(__name__)

HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


@dataclass
class QueueTask:
    """One queued GraphQL call"""
    query: str
    variables: Dict[str, Any]
    future: "asyncio.Future[Dict[str, Any]]" = field(repr=False)


@dataclass
class GraphQLResponse:
    """Raw HTTP response from the GraphQL endpoint"""
    status: int
    headers: Mapping[str, str]
    body: str


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup that works for plain dicts too"""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def _to_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class GraphQLQueryQueue:
    """
    Strict FIFO queue in front of a rate-limited GraphQL endpoint.

    A single worker task drains the queue, so two upstream calls never
    overlap anywhere in the process.
    """

    def __init__(
        self,
        url: str,
        max_attempts: int = 3,
        min_retry_after: float = 60,
        server_error_backoff: float = 10,
        low_water_mark: int = 10,
        reset_buffer: float = 1.0,
        timeout: float = 30,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.url = url
        self.max_attempts = max_attempts
        self.min_retry_after = min_retry_after
        self.server_error_backoff = server_error_backoff
        self.low_water_mark = low_water_mark
        self.reset_buffer = reset_buffer
        self.timeout = timeout
        self._sleep = sleep
        self._wall_clock = wall_clock
        self._queue: Optional["asyncio.Queue[QueueTask]"] = None
        self._worker: Optional[asyncio.Task] = None
        self.session: Optional[aiohttp.ClientSession] = None

    @property
    def queued(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session"""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self.session

    async def close(self):
        """Stop the worker and close the aiohttp session"""
        if self._worker and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        self._fail_queued(TransientUpstreamError("AniList query queue closed"))
        if self.session and not self.session.closed:
            await self.session.close()

    async def submit(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Enqueue a GraphQL call and wait for its result

        Args:
            query: GraphQL query string
            variables: Query variables

        Returns:
            The response's data object
        """
        self._ensure_worker()
        future: "asyncio.Future[Dict[str, Any]]" = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(QueueTask(query=query, variables=dict(variables or {}), future=future))
        return await future

    def _fail_queued(self, error: Exception) -> int:
        """Settle every task still waiting for its turn; returns how many"""
        if self._queue is None:
            return 0
        failed = 0
        while not self._queue.empty():
            task = self._queue.get_nowait()
            self._queue.task_done()
            if not task.future.done():
                task.future.set_exception(error)
                failed += 1
        if failed:
            logger.warning(f"AniList queue closed with {failed} queued queries unanswered")
        return failed

    def _ensure_worker(self):
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())

    async def _drain(self):
        while True:
            task = await self._queue.get()
            try:
                if task.future.done():
                    # Caller went away before its turn came up
                    continue
                try:
                    result = await self._execute(task.query, task.variables)
                except asyncio.CancelledError:
                    if not task.future.done():
                        task.future.cancel()
                    raise
                except Exception as exc:
                    if not task.future.done():
                        task.future.set_exception(exc)
                else:
                    if not task.future.done():
                        task.future.set_result(result)
            finally:
                self._queue.task_done()

    async def _send(self, body: Dict[str, Any]) -> GraphQLResponse:
        """POST one request; transport failures become TransientUpstreamError"""
        session = await self.get_session()
        try:
            async with session.post(self.url, json=body, headers=HEADERS) as response:
                text = await response.text()
                return GraphQLResponse(
                    status=response.status,
                    headers=dict(response.headers),
                    body=text,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error(f"AniList fetch error: {exc!r}")
            raise TransientUpstreamError(f"AniList request failed: {exc!r}") from exc

    async def _execute(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        body = {"query": query, "variables": variables}
        last_error: Optional[UpstreamError] = None

        for attempt in range(1, self.max_attempts + 1):
            response = await self._send(body)

            if response.status == 429:
                retry_after = _to_float(_header(response.headers, "Retry-After"))
                wait = max(self.min_retry_after, retry_after or 0)
                last_error = RateLimited("AniList rate limited", retry_after=retry_after)
                if attempt >= self.max_attempts:
                    break
                logger.warning(
                    f"AniList rate limited. Waiting {wait:.0f}s (attempt {attempt}/{self.max_attempts})"
                )
                await self._sleep(wait)
                continue

            if 500 <= response.status < 600:
                last_error = TransientUpstreamError(
                    f"AniList API error {response.status}", status=response.status
                )
                if attempt >= self.max_attempts:
                    break
                wait = attempt * self.server_error_backoff
                logger.warning(
                    f"AniList returned {response.status}. Retrying in {wait:.0f}s "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                await self._sleep(wait)
                continue

            if not 200 <= response.status < 300:
                raise UpstreamRejected(
                    f"AniList API error {response.status}: {response.body}",
                    status=response.status,
                    body=response.body,
                )

            try:
                payload = json.loads(response.body)
            except ValueError as exc:
                raise UpstreamRejected(
                    "AniList returned a non-JSON body",
                    status=response.status,
                    body=response.body,
                ) from exc

            errors = payload.get("errors") if isinstance(payload, dict) else None
            if errors:
                raise GraphQLError([
                    err.get("message", str(err)) if isinstance(err, dict) else str(err)
                    for err in errors
                ])

            await self._respect_quota(response.headers)
            data = payload.get("data") if isinstance(payload, dict) else None
            return data or {}

        if isinstance(last_error, RateLimited):
            raise RetriesExhausted("AniList API: rate limit exceeded", last_error)
        raise RetriesExhausted("AniList API: max retries exceeded", last_error)

    async def _respect_quota(self, headers: Mapping[str, str]):
        """Sleep until the quota window resets when few requests remain"""
        remaining = _to_float(_header(headers, "X-RateLimit-Remaining"))
        reset_at = _to_float(_header(headers, "X-RateLimit-Reset"))
        if remaining is None or reset_at is None or remaining >= self.low_water_mark:
            return
        wait = reset_at - self._wall_clock() + self.reset_buffer
        if wait > 0:
            logger.info(f"AniList quota low ({remaining:.0f} left). Pausing {wait:.1f}s until reset")
            await self._sleep(wait)
