"""Google Workspace setup steps (G-1 .. G-8)."""

from __future__ import annotations

import logging
import secrets

from ..contracts import (
    AutomationClass,
    Provider,
    StepActivity,
    StepCategory,
    StepCheckResult,
    StepContext,
    StepExecutionResult,
)
from ..errors import APIError
from ..outputs import OutputKey
from ..providers import Conflict, create_or_fetch
from .base import define_step
from .common import google, portal, require_domain

logger = logging.getLogger(__name__)

AUTOMATION_OU_NAME = "Automation"
AUTOMATION_OU_PATH = "/Automation"
PROVISIONING_USER_LOCAL_PART = "azuread-provisioning"
SUPER_ADMIN_ROLE_ID = "3"
SAML_PROFILE_DISPLAY_NAME = "Azure AD SSO"


def provisioning_email(context: StepContext) -> str:
    return f"{PROVISIONING_USER_LOCAL_PART}@{require_domain(context)}"


def _temporary_password() -> str:
    return f"Fl-{secrets.token_urlsafe(18)}-9a"


# ----------------------------------------------------------------------
# G-1 Automation OU
async def check_automation_ou(context: StepContext) -> StepCheckResult:
    ou = (await google(context).get_org_unit(AUTOMATION_OU_PATH)).optional()
    if ou is None:
        return StepCheckResult(
            completed=False, message=f"Organizational unit '{AUTOMATION_OU_PATH}' not found."
        )
    path = ou.org_unit_path or AUTOMATION_OU_PATH
    return StepCheckResult(
        completed=True,
        message=f"Organizational unit '{path}' exists.",
        outputs={OutputKey.AUTOMATION_OU_ID: ou.org_unit_id, OutputKey.AUTOMATION_OU_PATH: path},
    )


async def create_automation_ou(context: StepContext) -> StepExecutionResult:
    client = google(context)
    created = await create_or_fetch(
        lambda: client.create_org_unit(
            AUTOMATION_OU_NAME, "/", description="Service accounts used for automation"
        ),
        lambda: client.get_org_unit(AUTOMATION_OU_PATH),
        label=f"Organizational unit '{AUTOMATION_OU_PATH}'",
    )
    ou = created.value
    path = ou.org_unit_path or AUTOMATION_OU_PATH
    verb = "already exists" if created.pre_existing else "created"
    return StepExecutionResult(
        success=True,
        message=f"Organizational unit '{path}' {verb}.",
        resource_url=portal(context).org_unit(path),
        outputs={OutputKey.AUTOMATION_OU_ID: ou.org_unit_id, OutputKey.AUTOMATION_OU_PATH: path},
    )


# ----------------------------------------------------------------------
# G-2 Provisioning user
async def check_provisioning_user(context: StepContext) -> StepCheckResult:
    email = provisioning_email(context)
    user = (await google(context).get_user(email)).optional()
    if user is None or not user.primary_email:
        return StepCheckResult(completed=False, message=f"Provisioning user '{email}' not found.")
    return StepCheckResult(
        completed=True,
        message=f"Provisioning user '{email}' exists.",
        outputs={
            OutputKey.SERVICE_ACCOUNT_EMAIL: user.primary_email,
            OutputKey.SERVICE_ACCOUNT_ID: user.id,
        },
    )


async def create_provisioning_user(context: StepContext) -> StepExecutionResult:
    client = google(context)
    email = provisioning_email(context)
    ou_path = context.require(OutputKey.AUTOMATION_OU_PATH)
    created = await create_or_fetch(
        lambda: client.create_user(
            email,
            given_name="Microsoft Entra ID",
            family_name="Provisioning",
            password=_temporary_password(),
            org_unit_path=ou_path,
        ),
        lambda: client.get_user(email),
        label=f"User '{email}'",
    )
    user = created.value
    if not user.primary_email or not user.id:
        raise APIError("Provisioning user response is missing its id or email", code="API_ERROR")
    message = (
        f"User '{email}' already exists."
        if created.pre_existing
        else f"User '{email}' created in '{ou_path}'. Reset its password before authorizing provisioning."
    )
    return StepExecutionResult(
        success=True,
        message=message,
        resource_url=portal(context).user(user.primary_email),
        outputs={
            OutputKey.SERVICE_ACCOUNT_EMAIL: user.primary_email,
            OutputKey.SERVICE_ACCOUNT_ID: user.id,
        },
    )


# ----------------------------------------------------------------------
# G-3 Super admin
async def check_super_admin(context: StepContext) -> StepCheckResult:
    client = google(context)
    email = context.require(OutputKey.SERVICE_ACCOUNT_EMAIL)
    user = (await client.get_user(email)).optional()
    if user is None:
        return StepCheckResult(completed=False, message=f"User '{email}' not found.")

    granted = user.is_admin and not user.suspended
    if not granted:
        assignments = (await client.list_role_assignments(user_key=email)).unwrap()
        granted = any(a.role_id == SUPER_ADMIN_ROLE_ID for a in assignments)
    if not granted:
        return StepCheckResult(
            completed=False, message=f"User '{email}' does not hold Super Admin privileges."
        )
    return StepCheckResult(
        completed=True,
        message=f"User '{email}' holds Super Admin privileges.",
        outputs={OutputKey.SUPER_ADMIN_ROLE_ID: SUPER_ADMIN_ROLE_ID},
    )


async def grant_super_admin(context: StepContext) -> StepExecutionResult:
    client = google(context)
    email = context.require(OutputKey.SERVICE_ACCOUNT_EMAIL)
    user_id = context.output(OutputKey.SERVICE_ACCOUNT_ID)
    if not user_id:
        user_id = (await client.get_user(email)).unwrap().id

    result = await client.assign_role(SUPER_ADMIN_ROLE_ID, user_id, scope_type="CUSTOMER")
    if isinstance(result, Conflict):
        message = f"Super Admin role already assigned to '{email}'."
    else:
        result.unwrap()
        message = f"Super Admin role assigned to '{email}'."
    return StepExecutionResult(
        success=True,
        message=message,
        resource_url=portal(context).user(email),
        outputs={OutputKey.SUPER_ADMIN_ROLE_ID: SUPER_ADMIN_ROLE_ID},
    )


# ----------------------------------------------------------------------
# G-4 Domain
async def check_domain(context: StepContext) -> StepCheckResult:
    domain = require_domain(context)
    found = (await google(context).get_domain(domain)).optional()
    if found is None:
        return StepCheckResult(completed=False, message=f"Domain '{domain}' is not added.")
    if not found.verified:
        return StepCheckResult(
            completed=False, message=f"Domain '{domain}' is added but not verified yet."
        )
    return StepCheckResult(completed=True, message=f"Domain '{domain}' is verified.")


async def add_domain(context: StepContext) -> StepExecutionResult:
    domain = require_domain(context)
    result = await google(context).add_domain(domain)
    if isinstance(result, Conflict):
        message = f"Domain '{domain}' already added. Complete verification if pending."
    else:
        result.unwrap()
        message = f"Domain '{domain}' added. Verify ownership in the admin console."
    return StepExecutionResult(
        success=True, message=message, resource_url=portal(context).domain(domain)
    )


# ----------------------------------------------------------------------
# G-5 SAML profile
def _profile_outputs(profile) -> dict:
    return {
        OutputKey.GOOGLE_SAML_PROFILE_NAME: profile.display_name,
        OutputKey.GOOGLE_SAML_PROFILE_FULL_NAME: profile.name,
        OutputKey.GOOGLE_SAML_SP_ENTITY_ID: profile.sp_config.entity_id,
        OutputKey.GOOGLE_SAML_ACS_URL: profile.sp_config.assertion_consumer_service_uri,
    }


def _has_sp_details(profile) -> bool:
    return bool(
        profile.name
        and profile.sp_config
        and profile.sp_config.entity_id
        and profile.sp_config.assertion_consumer_service_uri
    )


async def _find_profile(context: StepContext):
    profiles = (await google(context).list_saml_profiles()).unwrap()
    for profile in profiles:
        if profile.display_name == SAML_PROFILE_DISPLAY_NAME:
            return profile
    return None


async def check_saml_profile(context: StepContext) -> StepCheckResult:
    profile = await _find_profile(context)
    if profile is None:
        return StepCheckResult(
            completed=False, message=f"SAML profile '{SAML_PROFILE_DISPLAY_NAME}' not found."
        )
    if not _has_sp_details(profile):
        return StepCheckResult(
            completed=False,
            message=f"SAML profile '{SAML_PROFILE_DISPLAY_NAME}' exists but has no SP details yet.",
        )
    return StepCheckResult(
        completed=True,
        message=f"SAML profile '{SAML_PROFILE_DISPLAY_NAME}' found.",
        outputs=_profile_outputs(profile),
    )


async def create_saml_profile(context: StepContext) -> StepExecutionResult:
    result = await google(context).create_saml_profile(SAML_PROFILE_DISPLAY_NAME)
    if isinstance(result, Conflict):
        profile = await _find_profile(context)
        if profile is None or not _has_sp_details(profile):
            raise APIError(
                f"SAML profile '{SAML_PROFILE_DISPLAY_NAME}' exists but its details could not be fetched",
                code="SAML_PROFILE_FETCH_FAILED",
                provider="google",
            )
        verb = "already exists"
    else:
        profile = result.unwrap()
        if not _has_sp_details(profile):
            raise APIError(
                "Created SAML profile is missing its SP details",
                code="SAML_PROFILE_MISSING_DETAILS",
                provider="google",
            )
        verb = "created"
    return StepExecutionResult(
        success=True,
        message=f"SAML profile '{SAML_PROFILE_DISPLAY_NAME}' {verb}.",
        resource_url=portal(context).saml_profile(profile.profile_id),
        outputs=_profile_outputs(profile),
    )


# ----------------------------------------------------------------------
# G-6 IdP details on the SAML profile
async def check_saml_idp_config(context: StepContext) -> StepCheckResult:
    client = google(context)
    full_name = context.require(OutputKey.GOOGLE_SAML_PROFILE_FULL_NAME)
    expected_entity_id = context.output(OutputKey.IDP_ENTITY_ID)
    profile = (await client.get_saml_profile(full_name)).optional()
    if profile is None:
        return StepCheckResult(completed=False, message=f"SAML profile '{full_name}' not found.")

    idp = profile.idp_config
    if not idp or not idp.entity_id or not idp.single_sign_on_service_uri:
        return StepCheckResult(
            completed=False, message="SAML profile has no IdP entity id or SSO URL configured."
        )
    credentials = (await client.list_idp_credentials(full_name)).unwrap()
    if not credentials:
        return StepCheckResult(completed=False, message="SAML profile has no IdP certificate.")
    if expected_entity_id and idp.entity_id != expected_entity_id:
        return StepCheckResult(
            completed=False,
            message=f"SAML profile IdP entity id '{idp.entity_id}' does not match '{expected_entity_id}'.",
        )
    return StepCheckResult(completed=True, message="SAML profile is configured with IdP details.")


async def update_saml_idp_config(context: StepContext) -> StepExecutionResult:
    client = google(context)
    full_name = context.require(OutputKey.GOOGLE_SAML_PROFILE_FULL_NAME)
    entity_id = context.require(OutputKey.IDP_ENTITY_ID)
    sso_url = context.require(OutputKey.IDP_SSO_URL)
    certificate = context.require(OutputKey.IDP_CERTIFICATE_BASE64)

    (await client.update_saml_idp_config(full_name, entity_id, sso_url)).unwrap()
    existing = (await client.list_idp_credentials(full_name)).unwrap()
    if not existing:
        (await client.add_idp_credentials(full_name, to_pem(certificate))).unwrap()
    profile_id = full_name.split("/")[-1]
    return StepExecutionResult(
        success=True,
        message="SAML profile updated with Azure AD IdP entity id, SSO URL and certificate.",
        resource_url=portal(context).saml_profile(profile_id),
    )


def to_pem(certificate_base64: str) -> str:
    body = "".join(certificate_base64.split())
    lines = [body[i:i + 64] for i in range(0, len(body), 64)]
    return "-----BEGIN CERTIFICATE-----\n" + "\n".join(lines) + "\n-----END CERTIFICATE-----"


# ----------------------------------------------------------------------
# G-7 / G-8 SSO assignments
async def check_saml_profile_ready(context: StepContext) -> StepCheckResult:
    """Proxy check for the assignment steps: the profile carries full IdP details."""

    client = google(context)
    full_name = context.require(OutputKey.GOOGLE_SAML_PROFILE_FULL_NAME)
    profile = (await client.get_saml_profile(full_name)).optional()
    if profile is None:
        return StepCheckResult(completed=False, message=f"SAML profile '{full_name}' not found.")
    idp = profile.idp_config
    ready = bool(idp and idp.entity_id and idp.single_sign_on_service_uri)
    if ready:
        ready = bool((await client.list_idp_credentials(full_name)).unwrap())
    return StepCheckResult(
        completed=ready,
        message=(
            "SAML profile is fully configured."
            if ready
            else "SAML profile is not fully configured with IdP details."
        ),
    )


async def assign_saml_profile(context: StepContext) -> StepExecutionResult:
    full_name = context.require(OutputKey.GOOGLE_SAML_PROFILE_FULL_NAME)
    result = await google(context).assign_to_org_units(
        full_name, [{"orgUnitId": "/", "ssoMode": "SAML_SSO_ENABLED"}]
    )
    if not isinstance(result, Conflict):
        result.unwrap()
    return StepExecutionResult(
        success=True,
        message="SAML profile assigned to the root organizational unit.",
        resource_url=portal(context).sso(),
    )


async def exclude_automation_ou(context: StepContext) -> StepExecutionResult:
    client = google(context)
    full_name = context.require(OutputKey.GOOGLE_SAML_PROFILE_FULL_NAME)
    ou = (await client.get_org_unit(AUTOMATION_OU_PATH)).optional()
    if ou is None or not ou.org_unit_id:
        return StepExecutionResult(
            success=True,
            message=f"Organizational unit '{AUTOMATION_OU_PATH}' not found; exclusion is optional.",
        )
    result = await client.assign_to_org_units(
        full_name, [{"orgUnitId": ou.org_unit_id, "ssoMode": "SSO_OFF"}]
    )
    if not isinstance(result, Conflict):
        result.unwrap()
    return StepExecutionResult(
        success=True,
        message=f"SSO disabled for '{AUTOMATION_OU_PATH}' so the provisioning user keeps password sign-in.",
        resource_url=portal(context).sso(),
    )


# ----------------------------------------------------------------------
G1 = define_step(
    id="G-1",
    title="Create 'Automation' Organizational Unit",
    description="Creates the 'Automation' OU that holds service accounts.",
    category=StepCategory.GOOGLE,
    activity=StepActivity.FOUNDATION,
    provider=Provider.GOOGLE,
    produces=[OutputKey.AUTOMATION_OU_ID, OutputKey.AUTOMATION_OU_PATH],
    admin_url="https://admin.google.com/ac/orgunits",
    check=check_automation_ou,
    execute=create_automation_ou,
)

G2 = define_step(
    id="G-2",
    title="Create Provisioning User in 'Automation' OU",
    description="Creates the dedicated 'azuread-provisioning' user inside the Automation OU.",
    category=StepCategory.GOOGLE,
    activity=StepActivity.FOUNDATION,
    provider=Provider.GOOGLE,
    requires=["G-1"],
    required_outputs=[OutputKey.AUTOMATION_OU_PATH],
    produces=[OutputKey.SERVICE_ACCOUNT_EMAIL, OutputKey.SERVICE_ACCOUNT_ID],
    admin_url="https://admin.google.com/ac/users",
    check=check_provisioning_user,
    execute=create_provisioning_user,
)

G3 = define_step(
    id="G-3",
    title="Grant Super Admin Privileges to Provisioning User",
    description="Assigns the Super Admin role so Azure AD can manage users.",
    category=StepCategory.GOOGLE,
    activity=StepActivity.FOUNDATION,
    provider=Provider.GOOGLE,
    requires=["G-2"],
    required_outputs=[OutputKey.SERVICE_ACCOUNT_EMAIL],
    produces=[OutputKey.SUPER_ADMIN_ROLE_ID],
    admin_url="https://admin.google.com/ac/roles",
    check=check_super_admin,
    execute=grant_super_admin,
)

G4 = define_step(
    id="G-4",
    title="Add & Verify Domain for Federation",
    description="Ensures the federated domain is added and verified in Google Workspace.",
    category=StepCategory.GOOGLE,
    activity=StepActivity.FOUNDATION,
    provider=Provider.GOOGLE,
    admin_url="https://admin.google.com/ac/domains/manage",
    check=check_domain,
    execute=add_domain,
)

G5 = define_step(
    id="G-5",
    title="Initiate Google SAML Profile & Get SP Details",
    description="Creates the inbound SAML profile and records its SP entity id and ACS URL.",
    category=StepCategory.SSO,
    activity=StepActivity.SSO,
    provider=Provider.GOOGLE,
    requires=["G-4"],
    produces=[
        OutputKey.GOOGLE_SAML_PROFILE_NAME,
        OutputKey.GOOGLE_SAML_PROFILE_FULL_NAME,
        OutputKey.GOOGLE_SAML_SP_ENTITY_ID,
        OutputKey.GOOGLE_SAML_ACS_URL,
    ],
    admin_url="https://admin.google.com/ac/security/sso",
    check=check_saml_profile,
    execute=create_saml_profile,
)

G6 = define_step(
    id="G-6",
    title="Update Google SAML Profile with Azure AD IdP Info",
    description="Sets the Azure AD entity id, SSO URL and signing certificate on the SAML profile.",
    category=StepCategory.SSO,
    activity=StepActivity.SSO,
    provider=Provider.GOOGLE,
    requires=["G-5", "M-8"],
    required_outputs=[
        OutputKey.GOOGLE_SAML_PROFILE_FULL_NAME,
        OutputKey.IDP_ENTITY_ID,
        OutputKey.IDP_SSO_URL,
        OutputKey.IDP_CERTIFICATE_BASE64,
    ],
    admin_url="https://admin.google.com/ac/security/sso",
    check=check_saml_idp_config,
    execute=update_saml_idp_config,
)

G7 = define_step(
    id="G-7",
    title="Assign Google SAML Profile to Users/OUs",
    description="Enables SAML SSO for the whole organization.",
    category=StepCategory.SSO,
    activity=StepActivity.SSO,
    provider=Provider.GOOGLE,
    requires=["G-6"],
    required_outputs=[OutputKey.GOOGLE_SAML_PROFILE_FULL_NAME],
    admin_url="https://admin.google.com/ac/security/sso",
    check=check_saml_profile_ready,
    execute=assign_saml_profile,
)

G8 = define_step(
    id="G-8",
    title="Exclude Automation OU from SSO (Optional)",
    description="Turns SSO off for the Automation OU so service accounts keep password sign-in.",
    category=StepCategory.SSO,
    activity=StepActivity.SSO,
    provider=Provider.GOOGLE,
    automation_class=AutomationClass.AUTOMATED,
    requires=["G-7"],
    required_outputs=[OutputKey.GOOGLE_SAML_PROFILE_FULL_NAME],
    admin_url="https://admin.google.com/ac/security/sso",
    check=check_saml_profile_ready,
    execute=exclude_automation_ou,
)

GOOGLE_STEPS = [G1, G2, G3, G4, G5, G6, G7, G8]
