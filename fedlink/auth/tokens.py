"""Access-token sources for the Google and Microsoft clients."""

from __future__ import annotations

import os
import time
from typing import Mapping, Optional, Protocol

import jwt

from ..errors import AuthenticationError


class TokenProvider(Protocol):
    """Supplies bearer tokens per provider."""

    async def token(self, provider: str) -> str:
        """Return a usable access token or raise ``AuthenticationError``."""


class StaticTokenProvider:
    """Serve pre-issued access tokens.

    Tokens come from the ``tokens`` mapping or from the
    ``FEDLINK_GOOGLE_TOKEN`` / ``FEDLINK_MICROSOFT_TOKEN`` environment
    variables. JWT access tokens are inspected (without signature
    verification) so an expired token is reported before any API call.
    Opaque tokens, like Google's, are passed through untouched.
    """

    ENV_VARS = {
        "google": "FEDLINK_GOOGLE_TOKEN",
        "microsoft": "FEDLINK_MICROSOFT_TOKEN",
    }

    def __init__(self, tokens: Optional[Mapping[str, str]] = None, leeway: int = 30) -> None:
        self._tokens = dict(tokens or {})
        self.leeway = leeway

    @classmethod
    def from_env(cls) -> "StaticTokenProvider":
        return cls(
            {
                provider: os.environ[var]
                for provider, var in cls.ENV_VARS.items()
                if os.getenv(var)
            }
        )

    async def token(self, provider: str) -> str:
        value = self._tokens.get(provider)
        if not value:
            raise AuthenticationError(f"No {provider} access token available", provider=provider)
        expires_at = token_expiry(value)
        if expires_at is not None and expires_at - self.leeway <= time.time():
            raise AuthenticationError(f"{provider} access token expired", provider=provider)
        return value


def token_expiry(token: str) -> Optional[float]:
    """Return the ``exp`` claim of a JWT, or ``None`` for opaque tokens."""

    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.exceptions.DecodeError:
        return None
    exp = claims.get("exp")
    return float(exp) if exp is not None else None
