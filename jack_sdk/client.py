"""
HTTP transport for the JACK API.

Every higher-level manager talks to the server through
:class:`JackClient`, which adds per-attempt timeouts, retry with
exponential backoff, optional GET caching and typed errors on top of
``httpx.AsyncClient``.

Usage::

    from jack_sdk.client import JackClient

    client = JackClient(base_url="https://api.jack.example", max_retries=2)
    intent = await client.get("/api/intents/JK-ABC123456")
    await client.close()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from jack_sdk.cache import ResponseCache
from jack_sdk.errors import (
    APIError,
    JackTimeoutError,
    NetworkError,
    RetryError,
    ValidationError,
)
from jack_sdk.types import ClientConfig, RequestOptions

logger = logging.getLogger(__name__)


def validate_client_config(config: ClientConfig) -> None:
    """Raise :class:`ValidationError` listing every invalid setting."""
    errors: list[str] = []
    if not config.base_url or not config.base_url.strip():
        errors.append("baseUrl is required and cannot be empty")
    if config.timeout_ms <= 0:
        errors.append("timeout must be positive")
    if config.max_retries < 0:
        errors.append("maxRetries cannot be negative")
    if config.retry_delay_ms < 0:
        errors.append("retryDelay cannot be negative")
    if config.retry_backoff < 1:
        errors.append("retryBackoff must be >= 1")
    if config.cache_ttl_ms < 0:
        errors.append("cacheTTL cannot be negative")
    if errors:
        raise ValidationError("Invalid client configuration", errors)


def _error_message(response: httpx.Response) -> str:
    text = response.text
    try:
        data = response.json()
    except ValueError:
        return text or response.reason_phrase
    if isinstance(data, dict):
        msg = data.get("message") or data.get("error")
        if msg:
            return str(msg)
    return text or response.reason_phrase


class JackClient:
    """Resilient JSON-over-HTTP client.

    Accepts a :class:`ClientConfig` or the same settings as keyword
    arguments (``base_url``, ``timeout_ms``, ``max_retries``, ...).

    Raises:
        ValidationError: If the configuration is invalid.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        **options: Any,
    ) -> None:
        self.config = config if config is not None else ClientConfig(**options)
        validate_client_config(self.config)

        self.base_url = self.config.base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json", **self.config.headers},
            timeout=self.config.timeout_ms / 1000.0,
            transport=transport,
        )
        self._cache = ResponseCache(self.config.cache_ttl_ms)

    # ---- Public API ----

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        options: RequestOptions | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        GET responses are served from and stored in the cache when
        caching is enabled and ``options.skip_cache`` is not set.

        Raises:
            APIError: Non-2xx status, or a body that is not valid JSON.
            JackTimeoutError: An attempt exceeded the timeout.
            NetworkError: No response (only when retries are disabled).
            RetryError: Every allowed attempt failed with a retryable error.
        """
        opts = options or RequestOptions()
        method = method.upper()
        cacheable = method == "GET" and self.config.enable_cache and not opts.skip_cache

        key = ""
        if cacheable:
            key = ResponseCache.make_key(method, path, opts.params if body is None else body)
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Cache hit for %s %s", method, path)
                return cached

        result = await self._with_retry(method, path, body, opts)

        if cacheable:
            self._cache.set(key, result)
        return result

    async def get(self, path: str, options: RequestOptions | None = None) -> Any:
        return await self.request("GET", path, options=options)

    async def post(self, path: str, body: Any = None, options: RequestOptions | None = None) -> Any:
        return await self.request("POST", path, body, options)

    def clear_cache(self, pattern: str | None = None) -> None:
        """Drop cached GET responses, optionally only paths starting with ``pattern``."""
        self._cache.clear(pattern)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> JackClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ---- Internal ----

    async def _with_retry(self, method: str, path: str, body: Any, opts: RequestOptions) -> Any:
        max_retries = 0 if opts.no_retry else self.config.max_retries
        delay = self.config.retry_delay_ms / 1000.0
        attempt = 0

        while True:
            try:
                return await self._send_once(method, path, body, opts)
            except APIError as e:
                if not e.is_retryable():
                    raise
                last_error: Exception = e
            except NetworkError as e:
                last_error = e

            if attempt == max_retries:
                if max_retries == 0:
                    raise last_error
                raise RetryError(
                    f"Request failed after {max_retries + 1} attempts",
                    attempts=max_retries + 1,
                    last_error=last_error,
                    context={"method": method, "path": path},
                ) from last_error

            attempt += 1
            logger.info(
                "%s %s failed (%s), retrying in %.2fs (attempt %d/%d)",
                method, path, last_error, delay, attempt, max_retries + 1,
            )
            await asyncio.sleep(delay)
            delay *= self.config.retry_backoff

    async def _send_once(self, method: str, path: str, body: Any, opts: RequestOptions) -> Any:
        timeout_ms = opts.timeout_ms if opts.timeout_ms is not None else self.config.timeout_ms
        try:
            response = await asyncio.wait_for(
                self._client.request(
                    method=method,
                    url=path,
                    json=body,
                    params=opts.params,
                    headers=opts.headers,
                ),
                timeout=timeout_ms / 1000.0,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise JackTimeoutError(
                f"Request timed out after {timeout_ms:g}ms",
                timeout_ms,
                context={"method": method, "path": path},
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Network request failed: {e}", original_error=e) from e

        if not response.is_success:
            raise APIError(_error_message(response), response.status_code, response.text)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise APIError(
                f"Invalid JSON in response: {e}",
                response.status_code,
                response.text,
            ) from e
