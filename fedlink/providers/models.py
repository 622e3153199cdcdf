"""Resource models for the Google and Microsoft APIs used by the steps."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for API payloads: camelCase on the wire, unknown fields ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ----------------------------------------------------------------------
# Google Workspace
class OrgUnit(ApiModel):
    org_unit_id: Optional[str] = None
    org_unit_path: Optional[str] = None
    name: Optional[str] = None
    parent_org_unit_path: Optional[str] = None
    description: Optional[str] = None


class UserName(ApiModel):
    given_name: Optional[str] = None
    family_name: Optional[str] = None


class DirectoryUser(ApiModel):
    id: Optional[str] = None
    primary_email: Optional[str] = None
    name: Optional[UserName] = None
    is_admin: bool = False
    suspended: bool = False
    org_unit_path: Optional[str] = None
    customer_id: Optional[str] = None


class RoleAssignment(ApiModel):
    role_assignment_id: Optional[str] = None
    role_id: Optional[str] = None
    assigned_to: Optional[str] = None
    scope_type: Optional[str] = None


class Domain(ApiModel):
    domain_name: Optional[str] = None
    verified: bool = False
    is_primary: bool = False


class SamlSpConfig(ApiModel):
    entity_id: Optional[str] = None
    assertion_consumer_service_uri: Optional[str] = None


class SamlIdpConfig(ApiModel):
    entity_id: Optional[str] = None
    single_sign_on_service_uri: Optional[str] = None
    logout_redirect_uri: Optional[str] = None
    change_password_uri: Optional[str] = None


class SamlProfile(ApiModel):
    name: Optional[str] = None
    customer: Optional[str] = None
    display_name: Optional[str] = None
    idp_config: Optional[SamlIdpConfig] = None
    sp_config: Optional[SamlSpConfig] = None

    @property
    def profile_id(self) -> Optional[str]:
        if not self.name:
            return None
        return self.name.split("/")[-1]


class IdpCredential(ApiModel):
    name: Optional[str] = None
    update_time: Optional[str] = None


# ----------------------------------------------------------------------
# Microsoft Graph
class ImplicitGrantSettings(ApiModel):
    enable_id_token_issuance: Optional[bool] = None
    enable_access_token_issuance: Optional[bool] = None


class WebApplication(ApiModel):
    redirect_uris: List[str] = Field(default_factory=list)
    implicit_grant_settings: Optional[ImplicitGrantSettings] = None


class Application(ApiModel):
    id: Optional[str] = None
    app_id: Optional[str] = None
    display_name: Optional[str] = None
    identifier_uris: List[str] = Field(default_factory=list)
    web: Optional[WebApplication] = None


class ServicePrincipal(ApiModel):
    id: Optional[str] = None
    app_id: Optional[str] = None
    display_name: Optional[str] = None
    account_enabled: Optional[bool] = None


class SyncSchedule(ApiModel):
    state: Optional[str] = None
    interval: Optional[str] = None


class SyncExecutionError(ApiModel):
    code: Optional[str] = None
    message: Optional[str] = None


class SyncExecution(ApiModel):
    state: Optional[str] = None
    error: Optional[SyncExecutionError] = None


class SyncJobStatus(ApiModel):
    code: Optional[str] = None
    last_execution: Optional[SyncExecution] = None


class SyncJob(ApiModel):
    id: Optional[str] = None
    template_id: Optional[str] = None
    schedule: Optional[SyncSchedule] = None
    status: Optional[SyncJobStatus] = None

    @property
    def last_error(self) -> Optional[SyncExecutionError]:
        if self.status and self.status.last_execution:
            return self.status.last_execution.error
        return None


class AppRoleAssignment(ApiModel):
    id: Optional[str] = None
    principal_id: Optional[str] = None
    principal_display_name: Optional[str] = None
    principal_type: Optional[str] = None


class InstantiatedApplication(ApiModel):
    application: Application
    service_principal: ServicePrincipal


class SamlMetadata(BaseModel):
    """IdP details extracted from federation metadata XML."""

    entity_id: Optional[str] = None
    sso_url: Optional[str] = None
    certificate: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.entity_id and self.sso_url and self.certificate)
