"""HTTP client service with retry logic and rate limiting."""

import asyncio
import time
from typing import Any

import httpx
import structlog

log = structlog.stdlib.get_logger()


class HttpClientService:
    """Async HTTP client shared by the feed, classifier and resolver."""

    def __init__(
        self,
        timeout: float = 15.0,
        max_retries: int = 2,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        rate_limit_delay: float = 0.0,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the HTTP client service.

        Args:
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
            base_delay: Base delay for exponential backoff in seconds
            max_delay: Maximum delay between retries in seconds
            rate_limit_delay: Minimum delay between requests in seconds
            verify_ssl: Whether to verify SSL certificates
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.rate_limit_delay = rate_limit_delay
        self._last_request_time: float = 0.0
        self._rate_limit_lock = asyncio.Lock()

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={
                "User-Agent": "GameUpdateTracker/1.0",
                "Accept": "application/json",
            },
            follow_redirects=True,
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            verify=verify_ssl,
        )

        log.info(
            "HTTP client service initialized",
            timeout=timeout,
            max_retries=max_retries,
            rate_limit_delay=rate_limit_delay,
        )

    async def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make a GET request with retry logic and rate limiting.

        Args:
            url: The URL to request
            headers: Optional additional headers
            params: Optional query parameters

        Returns:
            HTTP response object

        Raises:
            httpx.HTTPError: If all retry attempts fail
        """
        return await self._request("GET", url, headers=headers, params=params)

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """POST a JSON body with the same retry policy as ``get``.

        Args:
            url: The URL to post to
            payload: JSON-serializable request body
            headers: Optional additional headers
            timeout: Per-call timeout overriding the client default

        Returns:
            HTTP response object

        Raises:
            httpx.HTTPError: If all retry attempts fail
        """
        return await self._request("POST", url, headers=headers, json=payload, timeout=timeout)

    async def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        await self._enforce_rate_limit()

        merged_headers = self._client.headers.copy()
        if headers:
            merged_headers.update(headers)

        for attempt in range(self.max_retries + 1):
            try:
                log.debug(
                    "Making HTTP request",
                    method=method,
                    url=url,
                    attempt=attempt + 1,
                    max_attempts=self.max_retries + 1,
                )

                response = await self._client.request(
                    method,
                    url,
                    headers=merged_headers,
                    params=params,
                    json=json,
                    timeout=httpx.Timeout(timeout) if timeout is not None else httpx.USE_CLIENT_DEFAULT,
                )
                response.raise_for_status()

                log.debug(
                    "HTTP request successful",
                    method=method,
                    url=url,
                    status_code=response.status_code,
                )
                return response

            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                log.warning(
                    "HTTP request failed",
                    method=method,
                    url=url,
                    attempt=attempt + 1,
                    error=str(e),
                    error_type=type(e).__name__,
                )

                # Client errors are final except for rate limiting
                if isinstance(e, httpx.HTTPStatusError):
                    if e.response.status_code == 429:
                        retry_after = e.response.headers.get("retry-after")
                        if retry_after and attempt < self.max_retries:
                            try:
                                delay = min(float(retry_after), self.max_delay)
                                log.info("Rate limited, waiting", delay=delay)
                                await asyncio.sleep(delay)
                                continue
                            except ValueError:
                                pass
                    elif 400 <= e.response.status_code < 500:
                        log.error("Client error, not retrying", url=url, status_code=e.response.status_code)
                        raise

                if attempt == self.max_retries:
                    log.error(
                        "HTTP request failed after all retries",
                        method=method,
                        url=url,
                        total_attempts=self.max_retries + 1,
                    )
                    raise

                delay = min(self.base_delay * (2 ** attempt), self.max_delay)
                log.info("Retrying after delay", delay=delay)
                await asyncio.sleep(delay)

        raise RuntimeError("Unexpected end of retry loop")

    async def _enforce_rate_limit(self) -> None:
        """Keep at least ``rate_limit_delay`` seconds between requests."""
        if self.rate_limit_delay <= 0:
            return

        async with self._rate_limit_lock:
            time_since_last = time.time() - self._last_request_time
            if time_since_last < self.rate_limit_delay:
                sleep_time = self.rate_limit_delay - time_since_last
                log.debug("Rate limiting: sleeping", sleep_time=sleep_time)
                await asyncio.sleep(sleep_time)

            self._last_request_time = time.time()

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._client.aclose()
        log.info("HTTP client closed")

    async def __aenter__(self) -> "HttpClientService":
        return self

    async def __aexit__(self, exc_type: type[Exception] | None, exc_val: Exception | None, exc_tb: Any) -> None:
        await self.close()
