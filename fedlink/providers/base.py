"""HTTP plumbing shared by the Google and Microsoft clients."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..auth.tokens import TokenProvider
from ..config import RetryConfig
from ..errors import APIError, AuthenticationError, matches_auth_pattern
from ..utils.retry import with_retry
from .results import AuthExpired, Conflict, Failed, NotFound, Ok, ProviderResult

logger = logging.getLogger(__name__)


def parse_error(response: httpx.Response) -> tuple[str, Optional[str]]:
    """Extract ``(message, code)`` from a Google or Graph error body."""

    try:
        body = response.json()
    except ValueError:
        return (response.text or response.reason_phrase or f"HTTP {response.status_code}", None)

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        message = error.get("message") or response.reason_phrase
        code = error.get("status") or error.get("code")
        return (str(message), str(code) if code is not None else None)
    if isinstance(error, str):
        # OAuth style: {"error": "invalid_grant", "error_description": "..."}
        return (body.get("error_description") or error, error)
    return (response.text or f"HTTP {response.status_code}", None)


class ProviderClient:
    """Authenticated JSON client returning tagged results.

    Transient responses (5xx, 429) and network errors are retried with
    exponential backoff; every other outcome is returned to the caller as a
    :mod:`fedlink.providers.results` variant.
    """

    provider: str = ""

    def __init__(
        self,
        tokens: TokenProvider,
        timeout: float = 30.0,
        retry: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.tokens = tokens
        self.retry = retry or RetryConfig()
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        text: bool = False,
    ) -> ProviderResult:
        try:
            token = await self.tokens.token(self.provider)
        except AuthenticationError as exc:
            logger.warning(f"{self.provider} token unavailable: {exc}")
            return AuthExpired(self.provider, str(exc))

        headers = {"Authorization": f"Bearer {token}"}

        async def send() -> httpx.Response:
            response = await self._client.request(
                method, url, json=json, params=params, headers=headers
            )
            if response.status_code == 429 or response.status_code >= 500:
                message, code = parse_error(response)
                raise APIError(
                    message, status=response.status_code, code=code, provider=self.provider
                )
            return response

        try:
            response = await with_retry(
                send,
                attempts=self.retry.attempts,
                base_delay=self.retry.base_delay,
                jitter=self.retry.jitter,
            )
        except APIError as exc:
            logger.error(f"{method} {url} failed after retries: {exc.status} {exc.message}")
            return Failed(exc.status, exc.message, exc.code, self.provider)
        except httpx.TransportError as exc:
            logger.error(f"{method} {url} network failure: {exc}")
            return Failed(None, f"Network error: {exc}", "NETWORK_ERROR", self.provider)

        logger.debug(f"{method} {url} -> {response.status_code}")
        return self._to_result(response, text)

    def _to_result(self, response: httpx.Response, text: bool) -> ProviderResult:
        status = response.status_code
        if 200 <= status < 300:
            if text:
                return Ok(response.text)
            if status == 204 or not response.content:
                return Ok({})
            return Ok(response.json())

        message, code = parse_error(response)
        if status == 401 or matches_auth_pattern(message, self.provider):
            return AuthExpired(self.provider, message)
        if status == 404:
            return NotFound(message, self.provider)
        if status == 409:
            return Conflict(message, self.provider)
        return Failed(status, message, code, self.provider)
