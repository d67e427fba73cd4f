"""
MFL HTTP Client with Rate Limiting
Handles HTTP requests to the MFL API through a single-lane FIFO request queue.
"""

import httpx
import asyncio
from collections import deque
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Tuple
import logging

from app.exceptions import MalformedResponseError, UpstreamFetchError

logger = logging.getLogger(__name__)


def _mark_retrieved(future: asyncio.Future) -> None:
    # A cancelled caller never reads the outcome of its queued work
    if not future.cancelled():
        future.exception()


class RateLimiter:
    """
    Single-lane FIFO rate limiter.

    Queued calls are executed one at a time, strictly in submission order,
    with a fixed pause of 1/max_requests_per_second seconds after each one.
    A single drain task works the queue; it exits when the queue is empty and
    is started again by the next enqueue.

    Attributes:
        max_requests_per_second: Ceiling on upstream calls per second
        interval: Pause after each call in seconds
    """

    def __init__(self, max_requests_per_second: float = 2.0) -> None:
        """
        Initialize rate limiter.

        Args:
            max_requests_per_second: Maximum upstream calls per second (default: 2)
        """
        if max_requests_per_second <= 0:
            raise ValueError("max_requests_per_second must be positive")
        self.max_requests_per_second = max_requests_per_second
        self.interval = 1.0 / max_requests_per_second
        self._queue: Deque[Tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._drain_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def pending(self) -> int:
        """Number of calls waiting to be executed."""
        return len(self._queue)

    @property
    def is_draining(self) -> bool:
        """Whether the drain task is currently running."""
        return self._drain_task is not None and not self._drain_task.done()

    async def enqueue(self, work: Callable[[], Awaitable[Any]]) -> Any:
        """
        Queue a call and wait for its result.

        Args:
            work: Zero-argument coroutine function performing one upstream call

        Returns:
            Whatever work() returns

        Raises:
            Whatever work() raises; other queued calls are unaffected
        """
        if self._closed:
            raise RuntimeError("Rate limiter is closed")

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        future.add_done_callback(_mark_retrieved)
        self._queue.append((work, future))

        if not self.is_draining:
            self._drain_task = loop.create_task(self._drain())

        # Shielded so a cancelled caller does not cancel work already queued
        return await asyncio.shield(future)

    async def _drain(self) -> None:
        """Work the queue until it is empty."""
        while self._queue:
            work, future = self._queue.popleft()
            try:
                result = await work()
            except asyncio.CancelledError:
                if not future.done():
                    future.cancel()
                raise
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)

            # Rate limit: wait between requests
            await asyncio.sleep(self.interval)

    async def close(self) -> None:
        """Stop the drain task and fail every call still waiting in the queue."""
        self._closed = True
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        while self._queue:
            _, future = self._queue.popleft()
            if not future.done():
                future.set_exception(RuntimeError("Rate limiter closed before request was sent"))
        logger.info("Rate limiter closed")


class MFLHTTPClient:
    """
    Async HTTP client for the MFL API.

    Thin wrapper over httpx that turns transport and status failures into
    UpstreamFetchError. It does no queueing itself; read paths go through
    RateLimiter in MFLService.
    """

    def __init__(
        self,
        base_url: str = "https://api.myfantasyleague.com/2025",
        timeout: float = 10.0,
        user_agent: str = "MFL-Proxy-Backend/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize HTTP client.

        Args:
            base_url: MFL API base URL including the season year
            timeout: Per-request timeout in seconds (default: 10s)
            user_agent: User-Agent header sent to MFL
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            follow_redirects=False,
            # Shared by all users: MFL cookies are passed per request, never stored
            cookies=httpx.Cookies(CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))),
            headers={"Accept": "application/json", "User-Agent": user_agent},
            transport=transport,
        )

    @staticmethod
    def _cookie_headers(cookie: Optional[str]) -> Dict[str, str]:
        return {"Cookie": cookie} if cookie else {}

    async def get_json(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        cookie: Optional[str] = None,
    ) -> Dict:
        """
        Make GET request to MFL API and decode the JSON body.

        Args:
            endpoint: API endpoint relative to the base URL (e.g., "export")
            params: Query parameters; JSON=1 is always added
            cookie: Optional MFL credential sent as Cookie header

        Returns:
            JSON response as dictionary

        Raises:
            UpstreamFetchError: On timeout, network failure or non-2xx status
            MalformedResponseError: If the body is not JSON
        """
        query = dict(params or {})
        query["JSON"] = 1
        logger.info(f"MFL API Request: GET /{endpoint} {self._describe(query)}")

        try:
            response = await self.client.get(
                f"/{endpoint}", params=query, headers=self._cookie_headers(cookie)
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"MFL request timed out for {endpoint}: {str(e)}")
            raise UpstreamFetchError(f"Request to MFL timed out after {self.timeout}s")
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(f"MFL request failed for {endpoint}: HTTP {status_code}")
            raise UpstreamFetchError("Failed to fetch data from MFL API", upstream_status=status_code)
        except httpx.HTTPError as e:
            logger.error(f"HTTP request failed for {endpoint}: {str(e)}")
            raise UpstreamFetchError(f"Failed to fetch data from MFL API: {str(e)}")

        try:
            return response.json()
        except ValueError:
            raise MalformedResponseError("MFL response is not valid JSON")

    async def post_form(
        self,
        endpoint: str,
        data: Dict[str, Any],
        cookie: Optional[str] = None,
    ) -> httpx.Response:
        """
        Make form-encoded POST request to MFL API.

        Status codes are not checked here; login and write actions each
        interpret the response themselves.

        Args:
            endpoint: API endpoint relative to the base URL (e.g., "login")
            data: Form fields
            cookie: Optional MFL credential sent as Cookie header

        Returns:
            Raw httpx response

        Raises:
            httpx.HTTPError: If the request cannot be completed
        """
        logger.info(f"MFL API Request: POST /{endpoint} TYPE={data.get('TYPE', '-')}")
        return await self.client.post(
            f"/{endpoint}", data=data, headers=self._cookie_headers(cookie)
        )

    @staticmethod
    def _describe(params: Dict[str, Any]) -> str:
        return "&".join(f"{name}={value}" for name, value in params.items())

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
