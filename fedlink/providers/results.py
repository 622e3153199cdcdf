"""Tagged outcomes returned by provider clients.

Clients never raise for HTTP outcomes; step logic inspects the variant or
calls :meth:`unwrap` to turn anything but ``Ok`` into an exception that the
step wrappers classify.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from ..errors import AlreadyExistsError, APIError, AuthenticationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    def map(self, fn: Callable[[T], Any]) -> "Ok[Any]":
        return Ok(fn(self.value))

    def unwrap(self) -> T:
        return self.value

    def optional(self) -> Optional[T]:
        return self.value


@dataclass(frozen=True)
class Conflict:
    message: str = "Resource already exists"
    provider: Optional[str] = None

    def map(self, fn):
        return self

    def unwrap(self):
        raise APIError(self.message, status=409, code="CONFLICT", provider=self.provider)

    def optional(self):
        return self.unwrap()


@dataclass(frozen=True)
class NotFound:
    message: str = "Resource not found"
    provider: Optional[str] = None

    def map(self, fn):
        return self

    def unwrap(self):
        raise APIError(self.message, status=404, code="NOT_FOUND", provider=self.provider)

    def optional(self) -> None:
        return None


@dataclass(frozen=True)
class AuthExpired:
    provider: Optional[str] = None
    message: str = "Authentication expired"

    def map(self, fn):
        return self

    def unwrap(self):
        raise AuthenticationError(self.message, provider=self.provider)

    def optional(self):
        return self.unwrap()


@dataclass(frozen=True)
class Failed:
    status: Optional[int]
    message: str
    code: Optional[str] = None
    provider: Optional[str] = None

    def map(self, fn):
        return self

    def unwrap(self):
        raise APIError(
            self.message,
            status=self.status,
            code=self.code or (f"HTTP_{self.status}" if self.status else None),
            provider=self.provider,
        )

    def optional(self):
        return self.unwrap()


ProviderResult = Union[Ok[T], Conflict, NotFound, AuthExpired, Failed]


@dataclass(frozen=True)
class Created(Generic[T]):
    """A resource obtained by create-or-fetch."""

    value: T
    pre_existing: bool = False


async def create_or_fetch(
    create: Callable[[], Awaitable[ProviderResult]],
    fetch_existing: Callable[[], Awaitable[ProviderResult]],
    label: str = "resource",
) -> Created[Any]:
    """Create a resource, treating a conflict as success.

    On ``Conflict`` the existing resource is looked up by its natural key.
    Any other failure is raised through ``unwrap``.
    """

    result = await create()
    if not isinstance(result, Conflict):
        return Created(result.unwrap(), pre_existing=False)

    logger.info(f"{label} already exists, fetching existing resource")
    existing = await fetch_existing()
    if isinstance(existing, NotFound):
        raise AlreadyExistsError(
            f"{label} already exists but could not be retrieved", provider=result.provider
        )
    value = existing.unwrap()
    if value is None:
        raise AlreadyExistsError(
            f"{label} already exists but could not be retrieved", provider=result.provider
        )
    return Created(value, pre_existing=True)
