"""Asynchronous JSON API client.

This module provides a thin aiohttp client for GET-ing JSON documents from
the remote API. It does not retry: non-2xx responses and network failures
are raised as RemoteError and the RetryExecutor decides what to do.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Union

import aiohttp
import orjson

from fetchvault.config.models.settings import Settings
from fetchvault.fetch.semaphore_manager import SemaphoreManager
from fetchvault.shared.constants import ContentTypes, HTTPHeaders, HTTPStatusCodes, NetworkConfig
from fetchvault.shared.errors import (
    ErrorCode,
    ErrorContext,
    RemoteError,
    create_remote_error,
)
from fetchvault.shared.logging import log_api_call, log_operation_error

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]


def extract_retry_after(headers: Any) -> float | None:
    """Return the Retry-After header in seconds, or None if absent or invalid."""
    try:
        retry_after = headers.get(HTTPHeaders.RETRY_AFTER)
        if retry_after:
            return float(retry_after)
    except (ValueError, AttributeError) as e:
        logger.debug("Failed to parse Retry-After header: %s", str(e))
    return None


class JsonApiClient:
    """GET-only JSON client with optional bearer authentication.

    Args:
        base_url: Base URL that request paths are appended to
        token_provider: Callable (sync or async) returning the current access
            token, or None for unauthenticated requests
        timeout: Total request timeout in seconds
        user_agent: User-Agent header value
        concurrency: Optional semaphore bounding in-flight requests
        session: Existing aiohttp session to use (not closed by the client)
    """

    def __init__(
        self,
        base_url: str,
        *,
        token_provider: TokenProvider | None = None,
        timeout: float = NetworkConfig.REQUEST_TIMEOUT,
        user_agent: str = NetworkConfig.USER_AGENT,
        concurrency: SemaphoreManager | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.timeout = timeout
        self.user_agent = user_agent
        self.concurrency = concurrency
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        token_provider: TokenProvider | None = None,
        **kwargs: Any,
    ) -> JsonApiClient:
        """Build a client from the ``[api]`` section of the settings.

        A configured static access token is used when no provider is given.
        """
        if settings is None:
            from fetchvault.config.loader import get_config

            settings = get_config()

        api = settings.api
        if token_provider is None and api.access_token:
            token = api.access_token

            def token_provider() -> str:
                return token

        return cls(
            api.base_url,
            token_provider=token_provider,
            timeout=api.timeout,
            user_agent=api.user_agent,
            concurrency=kwargs.pop("concurrency", SemaphoreManager(api.concurrent_requests)),
            **kwargs,
        )

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={
                    HTTPHeaders.USER_AGENT: self.user_agent,
                    HTTPHeaders.ACCEPT: ContentTypes.JSON,
                },
            )
            self._owns_session = True
        return self._session

    async def _auth_headers(self) -> dict[str, str]:
        if self.token_provider is None:
            return {}
        token = self.token_provider()
        if inspect.isawaitable(token):
            token = await token
        if not token:
            return {}
        return {HTTPHeaders.AUTHORIZATION: f"Bearer {token}"}

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET path and return the decoded JSON body.

        Raises:
            RemoteError: For non-2xx responses (status set), network failures
                (status None) and bodies that are not JSON
        """
        if self.concurrency is None:
            return await self._get_json(path, params)
        async with self.concurrency:
            return await self._get_json(path, params)

    async def _get_json(self, path: str, params: dict[str, Any] | None) -> Any:
        url = self.url_for(path)
        headers = await self._auth_headers()
        session = self._get_session()
        start = time.perf_counter()

        try:
            async with session.get(url, params=params, headers=headers) as response:
                status = response.status
                log_api_call(
                    logger=logger,
                    endpoint=path,
                    status_code=status,
                    duration_ms=(time.perf_counter() - start) * 1000,
                    context={"params": str(params)} if params else None,
                )

                if not HTTPStatusCodes.is_success(status):
                    body = await response.text()
                    raise create_remote_error(
                        status,
                        url,
                        body=body,
                        retry_after=extract_retry_after(response.headers),
                    )

                raw = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            error = create_remote_error(None, url, original_error=e)
            log_operation_error(logger=logger, error=error, level=logging.WARNING)
            raise error from e

        if not raw:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            error = RemoteError(
                f"Response from {url} is not valid JSON: {e!s}",
                status,
                url=url,
                code=ErrorCode.API_INVALID_RESPONSE,
                context=ErrorContext(
                    operation="decode_response",
                    additional_data={"url": url, "size": len(raw)},
                ),
                original_error=e,
            )
            log_operation_error(logger=logger, error=error)
            raise error from e

    def page_fetcher(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Callable[[int], Awaitable[Any]]:
        """Return a fetch_page function requesting ``path?page=N``."""

        async def fetch_page(page: int) -> Any:
            return await self.get_json(path, {**(params or {}), "page": page})

        return fetch_page

    async def close(self) -> None:
        """Close the session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
            logger.debug("JsonApiClient session closed")

    async def __aenter__(self) -> JsonApiClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
