"""
Async JSON client for the backend API.

Requests to one host are spaced out by a per-host limiter. Transient
failures (429 and gateway errors) are retried; everything else is
logged and reported to the caller as None.
"""
import asyncio
import logging
import socket
import time
from collections import defaultdict
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import aiohttp
from aiohttp import ClientError, ClientTimeout

from config import settings

logger = logging.getLogger(__name__)

OK_STATUSES = {200, 201}
RETRY_STATUSES = {502, 503, 504}
TOO_MANY_REQUESTS = 429


class RateLimiter:
    """Minimum spacing between requests, tracked per host."""

    def __init__(self, requests_per_second: float = 1.0):
        self.min_interval = 1.0 / requests_per_second
        self._next_slot: Dict[str, float] = defaultdict(float)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def acquire(self, host: str) -> None:
        async with self._locks[host]:
            delay = self._next_slot[host] - time.monotonic()
            if delay > 0:
                logger.debug(f"Rate limiting {host}: waiting {delay:.2f}s")
                await asyncio.sleep(delay)
            self._next_slot[host] = time.monotonic() + self.min_interval


class HttpClient:
    """
    Shared aiohttp session with bearer auth, rate limiting and retries.

    Callers decide which domain error a None response means.
    """

    def __init__(self):
        self._session: Optional[aiohttp.ClientSession] = None
        self._limiter = RateLimiter(requests_per_second=settings.backend_requests_per_second)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json"}
            if settings.backend_api_token:
                headers["Authorization"] = f"Bearer {settings.backend_api_token}"
            self._session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=settings.request_timeout_seconds),
                headers=headers,
            )
        return self._session

    async def request_json(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Any] = None,
        max_retries: int = 3,
        error_json: bool = False,
    ) -> Optional[Any]:
        """
        Send a request and decode the JSON body.

        Args:
            method: HTTP method
            url: Absolute URL
            params: Query parameters; None values are left out
            payload: JSON body
            max_retries: Attempts for 429 and gateway errors
            error_json: Also decode the body of 4xx responses, for endpoints
                that explain a rejection in JSON

        Returns:
            Decoded JSON, or None if the request failed
        """
        host = urlparse(url).netloc or "unknown"
        if params:
            params = {key: str(value) for key, value in params.items() if value is not None}

        session = await self._get_session()

        for attempt in range(1, max_retries + 1):
            await self._limiter.acquire(host)
            logger.debug(f"{method} {url} (attempt {attempt}/{max_retries})")

            try:
                async with session.request(method, url, params=params, json=payload) as response:
                    if response.status in OK_STATUSES:
                        return await response.json(content_type=None)

                    if response.status == TOO_MANY_REQUESTS or response.status in RETRY_STATUSES:
                        logger.warning(f"{method} {url} returned {response.status}")
                        if attempt < max_retries:
                            await asyncio.sleep(2 ** (attempt - 1))
                            continue
                        return None

                    if error_json and 400 <= response.status < 500:
                        logger.warning(f"{method} {url} rejected with {response.status}")
                        return await response.json(content_type=None)

                    body = await response.text()
                    logger.warning(f"{method} {url} failed with {response.status}: {body[:200]}")
                    return None

            except asyncio.TimeoutError:
                # Not retried: a slow backend stays slow
                logger.warning(f"Timeout for {method} {url}")
                return None

            except (socket.gaierror, OSError) as e:
                logger.warning(f"Network error for {url}: {e}")
                return None

            except ClientError as e:
                logger.error(f"Client error for {url}: {e}")
                return None

            except ValueError as e:
                logger.error(f"Invalid JSON from {url}: {e}")
                return None

        return None

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        max_retries: int = 3,
    ) -> Optional[Any]:
        return await self.request_json("GET", url, params=params, max_retries=max_retries)

    async def post_json(
        self,
        url: str,
        payload: Any,
        max_retries: int = 1,
        error_json: bool = False,
    ) -> Optional[Any]:
        """POST a JSON body. Single attempt by default: orders and payments are not idempotent."""
        return await self.request_json(
            "POST", url, payload=payload, max_retries=max_retries, error_json=error_json,
        )

    async def patch_json(self, url: str, payload: Any) -> Optional[Any]:
        return await self.request_json("PATCH", url, payload=payload, max_retries=1)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


# Global client instance
http_client = HttpClient()
