"""Google Workspace Admin Directory and Cloud Identity client."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..config import GoogleConfig
from .base import ProviderClient
from .models import (
    Domain,
    DirectoryUser,
    IdpCredential,
    OrgUnit,
    RoleAssignment,
    SamlProfile,
)
from .results import Failed, Ok, ProviderResult
from .urls import GoogleUrls

logger = logging.getLogger(__name__)

USER_FIELDS = "isAdmin,suspended,primaryEmail,name,id,orgUnitPath,customerId"


class GoogleWorkspaceClient(ProviderClient):
    provider = "google"

    def __init__(self, tokens, config: Optional[GoogleConfig] = None, **kwargs: Any) -> None:
        super().__init__(tokens, **kwargs)
        self.urls = GoogleUrls(config or GoogleConfig())

    # ------------------------------------------------------------------
    # Organizational units
    async def get_org_unit(self, path: str) -> ProviderResult:
        result = await self.request("GET", self.urls.org_unit(path))
        return result.map(OrgUnit.model_validate)

    async def create_org_unit(
        self, name: str, parent_path: str = "/", description: Optional[str] = None
    ) -> ProviderResult:
        body: Dict[str, Any] = {"name": name, "parentOrgUnitPath": parent_path}
        if description:
            body["description"] = description
        result = await self.request("POST", self.urls.org_units(), json=body)
        return result.map(OrgUnit.model_validate)

    # ------------------------------------------------------------------
    # Users and roles
    async def get_user(self, user_key: str) -> ProviderResult:
        result = await self.request(
            "GET", self.urls.user(user_key), params={"fields": USER_FIELDS}
        )
        return result.map(DirectoryUser.model_validate)

    async def create_user(
        self,
        primary_email: str,
        given_name: str,
        family_name: str,
        password: str,
        org_unit_path: str,
    ) -> ProviderResult:
        body = {
            "primaryEmail": primary_email,
            "name": {"givenName": given_name, "familyName": family_name},
            "password": password,
            "orgUnitPath": org_unit_path,
            "changePasswordAtNextLogin": False,
        }
        result = await self.request("POST", self.urls.users(), json=body)
        return result.map(DirectoryUser.model_validate)

    async def list_role_assignments(self, user_key: Optional[str] = None) -> ProviderResult:
        params = {"userKey": user_key} if user_key else None
        result = await self.request("GET", self.urls.role_assignments(), params=params)
        return result.map(
            lambda data: [RoleAssignment.model_validate(i) for i in data.get("items", [])]
        )

    async def assign_role(
        self, role_id: str, assigned_to: str, scope_type: str = "CUSTOMER"
    ) -> ProviderResult:
        body = {"roleId": role_id, "assignedTo": assigned_to, "scopeType": scope_type}
        result = await self.request("POST", self.urls.role_assignments(), json=body)
        return result.map(RoleAssignment.model_validate)

    # ------------------------------------------------------------------
    # Domains
    async def get_domain(self, name: str) -> ProviderResult:
        result = await self.request("GET", self.urls.domain(name))
        return result.map(Domain.model_validate)

    async def add_domain(self, name: str) -> ProviderResult:
        result = await self.request("POST", self.urls.domains(), json={"domainName": name})
        return result.map(Domain.model_validate)

    # ------------------------------------------------------------------
    # Inbound SAML SSO profiles
    async def list_saml_profiles(self) -> ProviderResult:
        result = await self.request("GET", self.urls.saml_profiles())
        return result.map(
            lambda data: [
                SamlProfile.model_validate(p) for p in data.get("inboundSamlSsoProfiles", [])
            ]
        )

    async def get_saml_profile(self, full_name: str) -> ProviderResult:
        result = await self.request("GET", self.urls.saml_profile(full_name))
        return result.map(SamlProfile.model_validate)

    async def create_saml_profile(self, display_name: str) -> ProviderResult:
        """Create a profile; the API answers with a long-running operation."""

        result = await self.request(
            "POST", self.urls.saml_profiles(), json={"displayName": display_name}
        )
        if not isinstance(result, Ok):
            return result
        operation = result.value
        if not operation.get("done") or not operation.get("response"):
            return Failed(500, "Invalid response from SAML profile creation", provider=self.provider)
        return Ok(SamlProfile.model_validate(operation["response"]))

    async def update_saml_idp_config(
        self, full_name: str, entity_id: str, sso_url: str
    ) -> ProviderResult:
        body = {"idpConfig": {"entityId": entity_id, "singleSignOnServiceUri": sso_url}}
        return await self.request(
            "PATCH",
            self.urls.saml_profile(full_name),
            json=body,
            params={"updateMask": "idpConfig"},
        )

    async def list_idp_credentials(self, full_name: str) -> ProviderResult:
        result = await self.request("GET", self.urls.idp_credentials(full_name))
        return result.map(
            lambda data: [IdpCredential.model_validate(c) for c in data.get("idpCredentials", [])]
        )

    async def add_idp_credentials(self, full_name: str, pem_data: str) -> ProviderResult:
        return await self.request(
            "POST", self.urls.add_idp_credentials(full_name), json={"pemData": pem_data}
        )

    async def assign_to_org_units(
        self, full_name: str, assignments: List[Dict[str, str]]
    ) -> ProviderResult:
        return await self.request(
            "POST",
            self.urls.assign_to_org_units(full_name),
            json={"assignments": assignments},
        )
