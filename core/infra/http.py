"""
http.py – Async HTTP transport built on *aiohttp* with smart retries,
          transparent 429 / 5xx back-off and per-instance default headers.

``execute`` never raises for transport problems: it resolves to either an
:class:`~core.models.HttpResponse` or an :class:`~core.models.HttpFailure`.
"""

from __future__ import annotations

import asyncio
import email.utils
import logging
import random
import time
from typing import Any, Dict, Mapping, Optional, Union

import aiohttp

from ..models import HttpFailure, HttpResponse, RequestSpec

logger = logging.getLogger(__name__)

RETRY_FOR_STATUS = (429, 500, 502, 503, 504)


class HttpClient:
    """
    Thin wrapper over *aiohttp.ClientSession* adding:

    * global & per-request headers (keeps user-agent in one place)
    * exponential back-off **with jitter** for 429 / 5xx / network errors
    * transparent parsing of *Retry-After* header
    * async context-manager support
    """

    def __init__(
        self,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 60.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        default_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._external_session = session
        self._timeout = timeout
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._own_session: Optional[aiohttp.ClientSession] = None
        self._default_headers: Dict[str, str] = {"Accept": "application/json"}
        self._default_headers.update(default_headers or {})

    # ---------------------------------------------- #
    # Async context-manager
    async def __aenter__(self) -> "HttpClient":  # noqa: D401
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        await self.close()

    # ---------------------------------------------- #
    # Session management
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._external_session:
            return self._external_session
        if self._own_session is None or self._own_session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._own_session = aiohttp.ClientSession(timeout=timeout)
        return self._own_session

    async def close(self) -> None:
        if self._own_session and not self._own_session.closed:
            await self._own_session.close()
            self._own_session = None

    # ---------------------------------------------- #
    # Internal helpers
    @staticmethod
    def _parse_retry_after(header_val: str | None) -> Optional[float]:
        """Return seconds given a Retry-After header value."""
        if not header_val:
            return None
        header_val = header_val.strip()
        # seconds
        if header_val.isdigit():
            return float(header_val)
        # HTTP-date
        try:
            retry_at = email.utils.parsedate_to_datetime(header_val).timestamp()
            return max(0.0, retry_at - time.time())
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _query_value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def _request_kwargs(self, request: RequestSpec) -> Dict[str, Any]:
        """Translate request options into aiohttp keyword arguments."""
        options = request.options
        kwargs: Dict[str, Any] = {"headers": {**self._default_headers, **options.get("headers", {})}}

        auth = options.get("auth")
        if auth:
            kwargs["auth"] = aiohttp.BasicAuth(auth["user"], auth["pass"])

        query = options.get("query")
        if query:
            kwargs["params"] = {k: self._query_value(v) for k, v in query.items()}

        return kwargs

    def _backoff(self, attempt: int, error: Exception) -> float:
        retry_after_hdr = (
            error.headers.get("Retry-After")
            if isinstance(error, aiohttp.ClientResponseError) and error.headers
            else None
        )
        retry_after_s = self._parse_retry_after(retry_after_hdr)
        if retry_after_s is not None:
            return retry_after_s
        exponential = min(self._base_delay * 2 ** attempt, self._max_delay)
        return exponential + random.uniform(0, self._base_delay)

    async def _request(self, request: RequestSpec) -> HttpResponse:
        """Perform a request with retries; the last error is re-raised."""
        session = await self._ensure_session()
        method = request.method.upper()
        kwargs = self._request_kwargs(request)

        for attempt in range(self._max_retries + 1):
            try:
                async with session.request(method, request.url, **kwargs) as resp:
                    body = await resp.read()
                    # the last attempt hands back whatever status it got
                    if resp.status in RETRY_FOR_STATUS and attempt < self._max_retries:
                        raise aiohttp.ClientResponseError(
                            resp.request_info,
                            resp.history,
                            status=resp.status,
                            message=f"retryable status {resp.status}",
                            headers=resp.headers,
                        )
                    return HttpResponse(
                        body=body,
                        code=resp.status,
                        headers={k: v for k, v in resp.headers.items()},
                        message=resp.reason or "",
                        times_retried=attempt,
                    )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                # final attempt – re-raise
                if attempt >= self._max_retries:
                    logger.error("HTTP %s %s failed after %d attempts: %s", method, request.url, attempt + 1, e)
                    raise

                sleep_seconds = self._backoff(attempt, e)
                logger.warning(
                    "HTTP %s %s failed (attempt %d/%d – will retry in %.1fs): %s",
                    method,
                    request.url,
                    attempt + 1,
                    self._max_retries + 1,
                    sleep_seconds,
                    str(e).splitlines()[0] if str(e) else type(e).__name__,
                )
                await asyncio.sleep(sleep_seconds)

        # Should never hit here
        raise RuntimeError("Unreachable retry loop")

    # ---------------------------------------------- #
    # Public API
    async def execute(self, request: RequestSpec) -> Union[HttpResponse, HttpFailure]:
        """Run one request and resolve to a response or a failure."""
        try:
            return await self._request(request)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return HttpFailure.from_exception(e)
