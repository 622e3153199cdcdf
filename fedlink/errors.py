"""Exception taxonomy shared by providers, step logic and the engine."""

from __future__ import annotations

import re
from typing import Iterable, Optional

import httpx

AUTH_EXPIRED = "AUTH_EXPIRED"
MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
MISSING_CONFIG = "MISSING_CONFIG"
UNKNOWN_ERROR = "UNKNOWN_ERROR"
API_ERROR = "API_ERROR"
INVALID_OUTPUT = "INVALID_OUTPUT"
NO_EXECUTE_FUNCTION = "NO_EXECUTE_FUNCTION"

GOOGLE_AUTH_PATTERNS = (
    re.compile(r"invalid authentication credentials", re.IGNORECASE),
    re.compile(r"OAuth 2 access token", re.IGNORECASE),
    re.compile(r"login cookie or other valid authentication credential", re.IGNORECASE),
    re.compile(r"Token has been expired or revoked", re.IGNORECASE),
    re.compile(r"Request had insufficient authentication scopes", re.IGNORECASE),
    re.compile(r"401 Unauthorized", re.IGNORECASE),
)

MICROSOFT_AUTH_PATTERNS = (
    re.compile(r"InvalidAuthenticationToken", re.IGNORECASE),
    re.compile(r"Access token validation failure", re.IGNORECASE),
    re.compile(r"Token expired", re.IGNORECASE),
    re.compile(r"CompactToken parsing failed", re.IGNORECASE),
    re.compile(r"unauthorized_client", re.IGNORECASE),
    re.compile(r"invalid_grant", re.IGNORECASE),
)


class FedlinkError(Exception):
    """Base class for fedlink errors."""


class StepNotFoundError(FedlinkError, LookupError):
    """Raised when a step id is not present in the registry."""

    def __init__(self, step_id: str):
        super().__init__(f"Unknown step: {step_id}")
        self.step_id = step_id


class RegistryError(FedlinkError):
    """Raised when step definitions are inconsistent."""


class APIError(FedlinkError):
    """A provider API call failed."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.provider = provider


class AuthenticationError(APIError):
    """Provider credentials are missing, expired or revoked."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, status=401, code=AUTH_EXPIRED, provider=provider)


class AlreadyExistsError(APIError):
    """A create call conflicted and the existing resource could not be recovered."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, status=409, code="ALREADY_EXISTS", provider=provider)


class MissingDependencyError(FedlinkError):
    def __init__(self, keys: Iterable[str]):
        self.keys = list(keys)
        super().__init__(f"Missing required outputs: {', '.join(self.keys)}")
        self.code = MISSING_DEPENDENCY


class MissingConfigError(FedlinkError):
    def __init__(self, fields: Iterable[str]):
        self.fields = list(fields)
        super().__init__(f"Missing required configuration: {', '.join(self.fields)}.")
        self.code = MISSING_CONFIG


class OutputTypeError(FedlinkError, TypeError):
    """A well-known output key was given a value of the wrong type."""

    def __init__(self, key: str, expected: type, actual: object):
        super().__init__(
            f"Output '{key}' expects {expected.__name__}, got {type(actual).__name__}"
        )
        self.key = key
        self.code = INVALID_OUTPUT


def matches_auth_pattern(message: str, provider: Optional[str] = None) -> Optional[str]:
    """Return the provider whose auth-failure patterns match ``message``."""

    if provider in (None, "google") and any(p.search(message) for p in GOOGLE_AUTH_PATTERNS):
        return "google"
    if provider in (None, "microsoft") and any(
        p.search(message) for p in MICROSOFT_AUTH_PATTERNS
    ):
        return "microsoft"
    return None


def is_authentication_error(exc: BaseException) -> bool:
    if isinstance(exc, AuthenticationError):
        return True
    if isinstance(exc, APIError) and exc.status == 401:
        return True
    return matches_auth_pattern(str(exc)) is not None


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` for failures worth retrying: 5xx, 429 and network errors."""

    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, AuthenticationError):
        return False
    if isinstance(exc, APIError) and exc.status is not None:
        return exc.status == 429 or exc.status >= 500
    return False
