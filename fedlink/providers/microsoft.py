"""Microsoft Graph client for enterprise apps, provisioning and SAML."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from ..config import MicrosoftConfig
from .base import ProviderClient
from .models import (
    AppRoleAssignment,
    Application,
    InstantiatedApplication,
    SamlMetadata,
    ServicePrincipal,
    SyncJob,
)
from .results import Ok, ProviderResult
from .urls import MicrosoftUrls

logger = logging.getLogger(__name__)

APPLICATION_SELECT = "id,appId,displayName,identifierUris,web"

_ENTITY_ID = re.compile(r'entityID="([^"]+)"')
_SSO_URL = re.compile(r'SingleSignOnService[^>]*Location="([^"]+)"')
_CERTIFICATE = re.compile(r"<X509Certificate>([^<]+)</X509Certificate>")


def parse_federation_metadata(xml: str) -> SamlMetadata:
    """Pull the IdP entity id, SSO URL and signing certificate out of metadata XML."""

    def first(pattern: re.Pattern) -> Optional[str]:
        match = pattern.search(xml)
        return match.group(1).strip() if match else None

    return SamlMetadata(
        entity_id=first(_ENTITY_ID),
        sso_url=first(_SSO_URL),
        certificate=first(_CERTIFICATE),
    )


class GraphClient(ProviderClient):
    provider = "microsoft"

    def __init__(self, tokens, config: Optional[MicrosoftConfig] = None, **kwargs: Any) -> None:
        super().__init__(tokens, **kwargs)
        self.urls = MicrosoftUrls(config or MicrosoftConfig())

    # ------------------------------------------------------------------
    # Applications
    async def instantiate_template(self, template_id: str, display_name: str) -> ProviderResult:
        result = await self.request(
            "POST",
            self.urls.instantiate_template(template_id),
            json={"displayName": display_name},
        )
        return result.map(InstantiatedApplication.model_validate)

    async def list_applications(self, filter_expr: str) -> ProviderResult:
        result = await self.request(
            "GET", self.urls.applications(), params={"$filter": filter_expr}
        )
        return result.map(
            lambda data: [Application.model_validate(a) for a in data.get("value", [])]
        )

    async def get_application(self, object_id: str) -> ProviderResult:
        result = await self.request(
            "GET", self.urls.application(object_id), params={"$select": APPLICATION_SELECT}
        )
        return result.map(Application.model_validate)

    async def update_application(self, object_id: str, changes: Dict[str, Any]) -> ProviderResult:
        return await self.request("PATCH", self.urls.application(object_id), json=changes)

    # ------------------------------------------------------------------
    # Service principals
    async def get_service_principal_by_app_id(self, app_id: str) -> ProviderResult:
        """Look up a service principal by its application (client) id.

        ``Ok(None)`` means no service principal exists for the app.
        """

        result = await self.request(
            "GET",
            self.urls.service_principals(),
            params={"$filter": f"appId eq '{app_id}'"},
        )

        def first(data: Dict[str, Any]) -> Optional[ServicePrincipal]:
            items = data.get("value", [])
            return ServicePrincipal.model_validate(items[0]) if items else None

        return result.map(first)

    async def get_service_principal(self, sp_id: str) -> ProviderResult:
        result = await self.request("GET", self.urls.service_principal(sp_id))
        return result.map(ServicePrincipal.model_validate)

    async def update_service_principal(self, sp_id: str, changes: Dict[str, Any]) -> ProviderResult:
        return await self.request("PATCH", self.urls.service_principal(sp_id), json=changes)

    async def list_app_role_assignments(self, sp_id: str) -> ProviderResult:
        result = await self.request("GET", self.urls.app_role_assigned_to(sp_id))
        return result.map(
            lambda data: [AppRoleAssignment.model_validate(a) for a in data.get("value", [])]
        )

    # ------------------------------------------------------------------
    # Synchronization (provisioning)
    async def list_sync_jobs(self, sp_id: str) -> ProviderResult:
        result = await self.request("GET", self.urls.sync_jobs(sp_id))
        return result.map(lambda data: [SyncJob.model_validate(j) for j in data.get("value", [])])

    async def get_sync_job(self, sp_id: str, job_id: str) -> ProviderResult:
        result = await self.request("GET", self.urls.sync_job(sp_id, job_id))
        return result.map(SyncJob.model_validate)

    async def start_sync_job(self, sp_id: str, job_id: str) -> ProviderResult:
        return await self.request("POST", self.urls.sync_job_start(sp_id, job_id))

    async def get_sync_schema(self, sp_id: str, job_id: str) -> ProviderResult:
        return await self.request("GET", self.urls.sync_schema(sp_id, job_id))

    async def update_sync_schema(
        self, sp_id: str, job_id: str, schema: Dict[str, Any]
    ) -> ProviderResult:
        return await self.request("PUT", self.urls.sync_schema(sp_id, job_id), json=schema)

    # ------------------------------------------------------------------
    # Federation metadata
    async def get_federation_metadata(self, tenant_id: str, app_id: str) -> ProviderResult:
        result = await self.request(
            "GET", self.urls.federation_metadata(tenant_id, app_id), text=True
        )
        if isinstance(result, Ok):
            metadata = parse_federation_metadata(result.value)
            logger.debug(f"Parsed federation metadata for app {app_id}: complete={metadata.complete}")
            return Ok(metadata)
        return result
