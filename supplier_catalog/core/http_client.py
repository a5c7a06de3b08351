"""
Outbound HTTP transport for supplier APIs.

One retry/backoff loop shared by every adapter call:
- each attempt runs under the client timeout
- 429 waits exactly the Retry-After value, then retries the same credentials
- network errors and 5xx back off exponentially with jitter, capped
- a non-429 4xx fails the current credential strategy immediately
- when every strategy fails, the last error is raised unchanged
"""

import asyncio
import base64
import logging
import random
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Tuple

import httpx

from supplier_catalog.core.config import Settings
from supplier_catalog.core.exceptions import RateLimitedError, UpstreamStatusError

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 1.0


class CredentialStrategy(NamedTuple):
    name: str
    headers: Dict[str, str]


def credential_strategies(account_number: str, api_key: str) -> List[CredentialStrategy]:
    """
    The three header schemes the upstream has been seen to accept, in the
    order they are tried.
    """
    token = base64.b64encode(f"{account_number}:{api_key}".encode()).decode()
    return [
        CredentialStrategy("basic", {"Authorization": f"Basic {token}"}),
        CredentialStrategy("account-headers", {"AccountNumber": account_number, "ApiKey": api_key}),
        CredentialStrategy("x-headers", {"X-Account-Number": account_number, "X-API-Key": api_key}),
    ]


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> float:
    """Retry-After as seconds; accepts delta-seconds or an HTTP date."""
    if not value:
        return DEFAULT_RETRY_AFTER_SECONDS
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER_SECONDS
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


def mask_secret(value: str) -> str:
    return f"{value[:3]}***" if value else ""


class RetryingHttpClient:
    """
    httpx.AsyncClient wrapper with retry, backoff and credential fail-over.

    `sleep` and `jitter` are injectable so tests can record waits instead of
    sleeping.
    """

    def __init__(
        self,
        supplier_name: str,
        timeout_seconds: float = 30.0,
        max_attempts: int = 3,
        backoff_base: float = 0.3,
        backoff_max: float = 10.0,
        jitter_max: float = 0.15,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ):
        self.supplier_name = supplier_name
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.jitter_max = jitter_max
        self._sleep = sleep
        self._jitter = jitter
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=min(10.0, timeout_seconds)),
            transport=transport,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )
        self._stats = {"calls": 0, "failures": 0, "rate_limited": 0, "latency_ms_total": 0.0}

    @classmethod
    def from_settings(cls, supplier_name: str, settings: Settings, **kwargs) -> "RetryingHttpClient":
        return cls(
            supplier_name,
            timeout_seconds=settings.request_timeout_seconds,
            max_attempts=settings.max_attempts,
            backoff_base=settings.backoff_base_seconds,
            backoff_max=settings.backoff_max_seconds,
            jitter_max=settings.backoff_jitter_seconds,
            **kwargs,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def backoff_delay(self, retry_index: int) -> float:
        """Delay before retry number `retry_index` (0-based)."""
        delay = self.backoff_base * (2 ** retry_index) + self._jitter(0, self.jitter_max)
        return min(delay, self.backoff_max)

    async def request(
        self,
        url: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        content: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        strategies: Optional[List[CredentialStrategy]] = None,
        parse_json: bool = True,
    ) -> Tuple[Any, float]:
        """
        Perform a request, trying each credential strategy in turn.

        Args:
            url: Absolute URL
            method: HTTP method
            params: Query parameters
            content: Raw request body (SOAP envelopes)
            headers: Extra headers applied to every attempt
            strategies: Credential header sets; None means unauthenticated
            parse_json: Decode the body as JSON ({} when empty or invalid)

        Returns:
            Tuple of (body, latency_ms) for the successful attempt

        Raises:
            RateLimitedError: Attempts exhausted while rate limited
            UpstreamStatusError: Non-2xx from every strategy
            httpx.TransportError: Network failure on every strategy
        """
        last_error: Optional[Exception] = None
        for strategy in strategies or [CredentialStrategy("none", {})]:
            merged = {**(headers or {}), **strategy.headers}
            try:
                return await self._request_with_retry(url, method, params, content, merged, parse_json)
            except RateLimitedError:
                raise
            except (UpstreamStatusError, httpx.TransportError) as e:
                last_error = e
                logger.warning(
                    f"{self.supplier_name}: credential strategy '{strategy.name}' failed for {url}: {e!r}"
                )
        raise last_error

    async def _request_with_retry(
        self,
        url: str,
        method: str,
        params: Optional[Dict[str, Any]],
        content: Optional[str],
        headers: Dict[str, str],
        parse_json: bool,
    ) -> Tuple[Any, float]:
        attempt = 0
        retries = 0
        while True:
            attempt += 1
            started = time.perf_counter()
            try:
                response = await self._attempt(method, url, params, content, headers)
                latency_ms = (time.perf_counter() - started) * 1000
                self._stats["calls"] += 1
                self._stats["latency_ms_total"] += latency_ms

                if response.status_code == 429:
                    self._stats["rate_limited"] += 1
                    raise RateLimitedError(parse_retry_after(response.headers.get("Retry-After")), url)
                if response.status_code >= 400:
                    self._stats["failures"] += 1
                    raise UpstreamStatusError(response.status_code, url, response.text)

                return self._decode(response, parse_json), latency_ms

            except RateLimitedError as e:
                if attempt >= self.max_attempts:
                    logger.error(f"{self.supplier_name}: still rate limited after {attempt} attempts: {url}")
                    raise
                logger.warning(
                    f"{self.supplier_name}: rate limited, waiting {e.retry_after:.2f}s "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                await self._sleep(e.retry_after)

            except UpstreamStatusError as e:
                if not e.is_server_error or attempt >= self.max_attempts:
                    raise
                delay = self.backoff_delay(retries)
                retries += 1
                logger.warning(
                    f"{self.supplier_name}: HTTP {e.status_code} on attempt {attempt}/{self.max_attempts}, "
                    f"retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

            except httpx.TransportError as e:
                self._stats["calls"] += 1
                self._stats["failures"] += 1
                if attempt >= self.max_attempts:
                    raise
                delay = self.backoff_delay(retries)
                retries += 1
                logger.warning(
                    f"{self.supplier_name}: {type(e).__name__} on attempt {attempt}/{self.max_attempts}, "
                    f"retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

    async def _attempt(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]],
        content: Optional[str],
        headers: Dict[str, str],
    ) -> httpx.Response:
        """One request, bounded end to end by the client timeout."""
        try:
            return await asyncio.wait_for(
                self._client.request(method, url, params=params, content=content, headers=headers),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise httpx.ReadTimeout(
                f"No complete response within {self.timeout_seconds}s",
                request=httpx.Request(method, url, params=params),
            ) from e

    def _decode(self, response: httpx.Response, parse_json: bool) -> Any:
        if not parse_json:
            return response.text
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            logger.debug(f"{self.supplier_name}: non-JSON body from {response.url}, treating as empty")
            return {}

    def stats(self, reset: bool = False) -> Dict[str, Any]:
        """Call counters for the performance report."""
        calls = self._stats["calls"]
        snapshot = {
            "supplier": self.supplier_name,
            "calls": calls,
            "failures": self._stats["failures"],
            "rate_limited": self._stats["rate_limited"],
            "avg_latency_ms": round(self._stats["latency_ms_total"] / calls, 1) if calls else 0.0,
        }
        if reset:
            self._stats = {"calls": 0, "failures": 0, "rate_limited": 0, "latency_ms_total": 0.0}
        return snapshot


__all__ = [
    "CredentialStrategy",
    "RetryingHttpClient",
    "credential_strategies",
    "parse_retry_after",
    "mask_secret",
]
