"""Provider clients and the bundle handed to step operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from ..auth.tokens import StaticTokenProvider, TokenProvider
from ..config import FedlinkConfig, load_config
from .google import GoogleWorkspaceClient
from .microsoft import GraphClient
from .results import (
    AuthExpired,
    Conflict,
    Created,
    Failed,
    NotFound,
    Ok,
    ProviderResult,
    create_or_fetch,
)
from .urls import PortalUrls


@dataclass
class ProviderSet:
    """Clients and portal links available to step operations."""

    google: GoogleWorkspaceClient
    microsoft: GraphClient
    portal: PortalUrls

    async def aclose(self) -> None:
        await self.google.aclose()
        await self.microsoft.aclose()


def build_providers(
    config: Optional[FedlinkConfig] = None,
    tokens: Optional[TokenProvider] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderSet:
    """Build both provider clients from configuration."""

    config = config or load_config()
    tokens = tokens or StaticTokenProvider.from_env()
    options = {"timeout": config.http_timeout, "retry": config.retry, "transport": transport}
    return ProviderSet(
        google=GoogleWorkspaceClient(tokens, config.google, **options),
        microsoft=GraphClient(tokens, config.microsoft, **options),
        portal=PortalUrls(config.google, config.microsoft),
    )


__all__ = [
    "AuthExpired",
    "Conflict",
    "Created",
    "Failed",
    "GoogleWorkspaceClient",
    "GraphClient",
    "NotFound",
    "Ok",
    "PortalUrls",
    "ProviderResult",
    "ProviderSet",
    "build_providers",
    "create_or_fetch",
]
