"""
Shared HTTP plumbing for the ledger, attestor, registry and token clients.

Each service client maps transport failures and HTTP statuses onto the SDK's
error taxonomy so callers never see raw ``httpx`` exceptions.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Optional, Protocol

import httpx

from .errors import AuthExpiredError, CBTCError, TransientNetworkError, UnexpectedResponseError
from .logging import log_request, log_response
from .retry import NO_RETRY, RetryConfig, retry_async

logger = logging.getLogger(__name__)

USER_AGENT = "cbtc-sdk-python/0.1.0"


class TokenSource(Protocol):
    """Anything able to hand out a bearer credential."""

    async def authorization(self) -> str: ...

    async def subject(self) -> str: ...

    async def invalidate(self, authorization: str) -> bool: ...


def create_http_client(timeout: float = 30.0) -> httpx.AsyncClient:
    """Create the AsyncClient shared by every service client of one SDK instance."""
    return httpx.AsyncClient(
        headers={"User-Agent": USER_AGENT},
        timeout=timeout,
    )


class ServiceClient:
    """Base class for one remote service.

    Subclasses set ``service_name`` and ``unavailable_error`` and may override
    ``_error_for_status`` to map 4xx responses.
    """

    service_name = "service"
    unavailable_error: type[CBTCError] = TransientNetworkError

    def __init__(
        self,
        base_url: str,
        http: httpx.AsyncClient,
        *,
        auth: Optional[TokenSource] = None,
        retry: RetryConfig = NO_RETRY,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http
        self._auth = auth
        self._retry = retry

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    def _error_for_status(self, response: httpx.Response) -> CBTCError:
        if response.status_code == 401:
            return AuthExpiredError(f"{self.service_name} rejected the bearer token")
        if response.status_code >= 500:
            return self._unavailable(
                f"{self.service_name} returned {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        return CBTCError(
            f"{self.service_name} returned {response.status_code}: {response.text}",
            code="HTTP_ERROR",
            details={"status_code": response.status_code},
        )

    def _unavailable(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None) -> CBTCError:
        details = {"body": body[:500]} if body else None
        return self.unavailable_error(message, status_code=status_code, details=details)  # type: ignore[call-arg]

    async def _send_once(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        data: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        url = self._url(path)
        headers = {"Accept": "application/json"}
        authorization = None
        if self._auth is not None:
            authorization = await self._auth.authorization()
            headers["Authorization"] = authorization

        log_request(logger, method, url, headers, json if json is not None else data)
        start = time.monotonic()
        try:
            response = await self._http.request(method, url, json=json, data=data, headers=headers)
        except httpx.TimeoutException as e:
            raise self._unavailable(f"{self.service_name} timed out: {e}") from e
        except httpx.RequestError as e:
            raise self._unavailable(f"{self.service_name} unreachable: {e}") from e

        log_response(logger, response.status_code, duration_ms=(time.monotonic() - start) * 1000)
        if response.status_code >= 400:
            error = self._error_for_status(response)
            if isinstance(error, AuthExpiredError) and authorization and self._auth is not None:
                error.authorization = authorization
            raise error
        return response

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Any] = None,
        data: Optional[dict[str, str]] = None,
        retry: Optional[RetryConfig] = None,
    ) -> httpx.Response:
        """Send a request, retrying transient failures and re-authenticating once on 401."""
        config = retry or self._retry
        try:
            return await retry_async(self._send_once, method, path, json=json, data=data, config=config)
        except AuthExpiredError as e:
            stale = e.authorization
            if self._auth is None or not stale or not await self._auth.invalidate(stale):
                raise
            logger.info("%s rejected the bearer token; retrying with a fresh one", self.service_name)
            return await retry_async(self._send_once, method, path, json=json, data=data, config=config)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise UnexpectedResponseError(
                f"Expected JSON from {response.request.url}, got: {response.text[:200]}"
            ) from e
