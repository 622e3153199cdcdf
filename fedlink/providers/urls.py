"""API endpoint and admin-portal URL builders."""

from __future__ import annotations

from urllib.parse import quote

from ..config import GoogleConfig, MicrosoftConfig


def _enc(value: str) -> str:
    return quote(value, safe="")


class GoogleUrls:
    """Admin Directory and Cloud Identity endpoints."""

    def __init__(self, config: GoogleConfig) -> None:
        self.directory = config.directory_base.rstrip("/")
        self.identity = config.identity_base.rstrip("/")
        self.customer = config.customer

    def org_units(self) -> str:
        return f"{self.directory}/customer/{self.customer}/orgunits"

    def org_unit(self, path: str) -> str:
        return f"{self.org_units()}/{quote(path.lstrip('/'), safe='/')}"

    def users(self) -> str:
        return f"{self.directory}/users"

    def user(self, user_key: str) -> str:
        return f"{self.directory}/users/{_enc(user_key)}"

    def domains(self) -> str:
        return f"{self.directory}/customer/{self.customer}/domains"

    def domain(self, name: str) -> str:
        return f"{self.domains()}/{_enc(name)}"

    def role_assignments(self) -> str:
        return f"{self.directory}/customer/{self.customer}/roleassignments"

    def saml_profiles(self) -> str:
        return f"{self.identity}/inboundSamlSsoProfiles"

    def saml_profile(self, full_name: str) -> str:
        return f"{self.identity}/{full_name}"

    def idp_credentials(self, profile_full_name: str) -> str:
        return f"{self.identity}/{profile_full_name}/idpCredentials"

    def add_idp_credentials(self, profile_full_name: str) -> str:
        return f"{self.identity}/{profile_full_name}/idpCredentials:add"

    def assign_to_org_units(self, profile_full_name: str) -> str:
        return f"{self.identity}/{profile_full_name}:assignToOrgUnits"


class MicrosoftUrls:
    """Microsoft Graph and login endpoints."""

    def __init__(self, config: MicrosoftConfig) -> None:
        self.graph = config.graph_base.rstrip("/")
        self.login = config.login_base.rstrip("/")

    def applications(self) -> str:
        return f"{self.graph}/applications"

    def application(self, object_id: str) -> str:
        return f"{self.graph}/applications/{object_id}"

    def service_principals(self) -> str:
        return f"{self.graph}/servicePrincipals"

    def service_principal(self, sp_id: str) -> str:
        return f"{self.graph}/servicePrincipals/{sp_id}"

    def app_role_assigned_to(self, sp_id: str) -> str:
        return f"{self.service_principal(sp_id)}/appRoleAssignedTo"

    def sync_jobs(self, sp_id: str) -> str:
        return f"{self.service_principal(sp_id)}/synchronization/jobs"

    def sync_job(self, sp_id: str, job_id: str) -> str:
        return f"{self.sync_jobs(sp_id)}/{job_id}"

    def sync_job_start(self, sp_id: str, job_id: str) -> str:
        return f"{self.sync_job(sp_id, job_id)}/start"

    def sync_schema(self, sp_id: str, job_id: str) -> str:
        return f"{self.sync_job(sp_id, job_id)}/schema"

    def instantiate_template(self, template_id: str) -> str:
        return f"{self.graph}/applicationTemplates/{template_id}/instantiate"

    def federation_metadata(self, tenant_id: str, app_id: str) -> str:
        return (
            f"{self.login}/{tenant_id}/federationmetadata/2007-06/"
            f"federationmetadata.xml?appid={app_id}"
        )


class PortalUrls:
    """Deep links into the Google admin console and the Azure portal."""

    def __init__(self, google: GoogleConfig, microsoft: MicrosoftConfig) -> None:
        self.google_admin = google.admin_console_base.rstrip("/")
        self.azure = microsoft.portal_base.rstrip("/")

    # ------------------------------------------------------------------
    # Google admin console
    def org_unit(self, path: str) -> str:
        return f"{self.google_admin}/ac/orgunits/details?ouPath={_enc(path)}"

    def user(self, email: str) -> str:
        return f"{self.google_admin}/ac/users/{_enc(email)}"

    def admin_roles(self) -> str:
        return f"{self.google_admin}/ac/roles"

    def domain(self, name: str) -> str:
        return f"{self.google_admin}/ac/domains/manage?domain={_enc(name)}"

    def sso(self) -> str:
        return f"{self.google_admin}/ac/sso"

    def saml_profile(self, profile_id: str) -> str:
        return (
            f"{self.google_admin}/ac/security/sso/sso-profiles/"
            f"inboundSamlSsoProfiles%2F{profile_id}"
        )

    # ------------------------------------------------------------------
    # Azure portal
    def _app_blade(self, section: str) -> str:
        return f"{self.azure}/#view/Microsoft_AAD_IAM/ManagedAppMenuBlade/~/{section}"

    def enterprise_app_overview(self, sp_id: str, app_id: str) -> str:
        return self._app_blade(f"Overview/servicePrincipalId/{sp_id}/appId/{app_id}")

    def provisioning(self, sp_id: str, app_id: str) -> str:
        return self._app_blade(f"ProvisioningManagement/appId/{app_id}/objectId/{sp_id}")

    def single_sign_on(self, sp_id: str, app_id: str) -> str:
        return self._app_blade(f"SingleSignOn/appId/{app_id}/objectId/{sp_id}")

    def users_and_groups(self, sp_id: str, app_id: str) -> str:
        return self._app_blade(f"UsersAndGroups/servicePrincipalId/{sp_id}/appId/{app_id}")

    def my_apps(self) -> str:
        return "https://myapps.microsoft.com"
