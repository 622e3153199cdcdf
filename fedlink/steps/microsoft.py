"""Microsoft Entra ID setup steps (M-1 .. M-10)."""

from __future__ import annotations

import logging

from ..contracts import (
    AutomationClass,
    Provider,
    StepActivity,
    StepCategory,
    StepCheckResult,
    StepContext,
    StepExecutionResult,
    StepError,
)
from ..errors import APIError
from ..outputs import OutputKey
from ..providers import create_or_fetch
from ..providers.models import InstantiatedApplication
from .base import define_step
from .common import (
    ENTERPRISE_APP_TEMPLATE_ID,
    check_provisioning_job,
    check_service_principal,
    fetch_enterprise_app,
    find_enterprise_app,
    find_provisioning_job,
    graph,
    portal,
    require_domain,
)

logger = logging.getLogger(__name__)

PROVISIONING_APP_NAME = "Google Workspace User Provisioning"
SAML_APP_NAME = "Google Workspace SAML SSO"
SYNC_RULE_NAME = "UserProvisioningToGoogleWorkspace"
WORK_EMAIL_ATTRIBUTE = 'emails[type eq "work"].value'

ATTRIBUTE_MAPPINGS = [
    ("userPrincipalName", "userName", 1),
    ("accountEnabled", "active", None),
    ("displayName", "displayName", None),
    ("givenName", "name.givenName", None),
    ("surname", "name.familyName", None),
    ("mail", WORK_EMAIL_ATTRIBUTE, None),
    ("objectId", "externalId", 2),
]


def provisioning_schema() -> dict:
    mappings = []
    for source, target, priority in ATTRIBUTE_MAPPINGS:
        mapping = {
            "targetAttributeName": target,
            "source": {"expression": f"[{source}]", "name": source, "type": "Attribute"},
        }
        if priority is not None:
            mapping["matchingPriority"] = priority
        mappings.append(mapping)
    return {
        "synchronizationRules": [
            {
                "name": SYNC_RULE_NAME,
                "sourceDirectoryName": "Azure Active Directory",
                "targetDirectoryName": "Google Workspace",
                "objectMappings": [
                    {
                        "enabled": True,
                        "sourceObjectName": "user",
                        "targetObjectName": "User",
                        "attributeMappings": mappings,
                    }
                ],
            }
        ]
    }


# ----------------------------------------------------------------------
# Enterprise app creation (M-1, M-6)
async def ensure_enterprise_app(context: StepContext, display_name: str):
    """Return ``(app, pre_existing)`` for the named enterprise application.

    Graph does not reject duplicate display names, so an existing app is
    looked up before instantiating the template.
    """

    existing = await find_enterprise_app(context, display_name)
    if existing is not None:
        return existing, True
    client = graph(context)
    created = await create_or_fetch(
        lambda: client.instantiate_template(ENTERPRISE_APP_TEMPLATE_ID, display_name),
        lambda: fetch_enterprise_app(context, display_name),
        label=f"Application '{display_name}'",
    )
    return created.value, created.pre_existing


def _app_result(
    context: StepContext,
    app: InstantiatedApplication,
    pre_existing: bool,
    display_name: str,
    keys: tuple,
) -> StepExecutionResult:
    app_id_key, object_id_key, sp_id_key = keys
    sp = app.service_principal
    verb = "already exists" if pre_existing else "created"
    return StepExecutionResult(
        success=True,
        message=f"Enterprise application '{display_name}' {verb}.",
        resource_url=portal(context).enterprise_app_overview(sp.id, app.application.app_id),
        outputs={
            app_id_key: app.application.app_id,
            object_id_key: app.application.id,
            sp_id_key: sp.id,
        },
    )


PROVISIONING_APP_KEYS = (
    OutputKey.PROVISIONING_APP_ID,
    OutputKey.PROVISIONING_APP_OBJECT_ID,
    OutputKey.PROVISIONING_SP_OBJECT_ID,
)
SAML_APP_KEYS = (
    OutputKey.SAML_SSO_APP_ID,
    OutputKey.SAML_SSO_APP_OBJECT_ID,
    OutputKey.SAML_SSO_SP_OBJECT_ID,
)


async def check_provisioning_app(context: StepContext) -> StepCheckResult:
    return await check_service_principal(context, PROVISIONING_APP_NAME, *PROVISIONING_APP_KEYS)


async def create_provisioning_app(context: StepContext) -> StepExecutionResult:
    app, pre_existing = await ensure_enterprise_app(context, PROVISIONING_APP_NAME)
    return _app_result(context, app, pre_existing, PROVISIONING_APP_NAME, PROVISIONING_APP_KEYS)


async def check_saml_app(context: StepContext) -> StepCheckResult:
    return await check_service_principal(context, SAML_APP_NAME, *SAML_APP_KEYS)


async def create_saml_app(context: StepContext) -> StepExecutionResult:
    app, pre_existing = await ensure_enterprise_app(context, SAML_APP_NAME)
    return _app_result(context, app, pre_existing, SAML_APP_NAME, SAML_APP_KEYS)


# ----------------------------------------------------------------------
# M-2 Enable service principal
async def check_provisioning_sp_enabled(context: StepContext) -> StepCheckResult:
    sp_id = context.require(OutputKey.PROVISIONING_SP_OBJECT_ID)
    sp = (await graph(context).get_service_principal(sp_id)).optional()
    if sp is None:
        return StepCheckResult(completed=False, message="Service principal not found. Complete M-1.")
    if sp.account_enabled is not True:
        return StepCheckResult(completed=False, message="Service principal is not enabled.")
    return StepCheckResult(
        completed=True,
        message="Service principal is enabled.",
        outputs={OutputKey.FLAG_M2_PROV_APP_PROPS_CONFIGURED: True},
    )


async def enable_provisioning_sp(context: StepContext) -> StepExecutionResult:
    sp_id = context.require(OutputKey.PROVISIONING_SP_OBJECT_ID)
    app_id = context.require(OutputKey.PROVISIONING_APP_ID)
    (await graph(context).update_service_principal(sp_id, {"accountEnabled": True})).unwrap()
    return StepExecutionResult(
        success=True,
        message="Provisioning service principal enabled.",
        resource_url=portal(context).enterprise_app_overview(sp_id, app_id),
        outputs={OutputKey.FLAG_M2_PROV_APP_PROPS_CONFIGURED: True},
    )


# ----------------------------------------------------------------------
# M-3 Authorize provisioning (manual)
async def check_provisioning_authorized(context: StepContext) -> StepCheckResult:
    sp_id = context.require(OutputKey.PROVISIONING_SP_OBJECT_ID)
    result = await check_provisioning_job(
        context, sp_id, context.output(OutputKey.PROVISIONING_JOB_ID)
    )
    if not result.completed and context.output(OutputKey.FLAG_M3_PROV_CREDS_CONFIGURED):
        return StepCheckResult(
            completed=True,
            message="Provisioning authorization was confirmed manually.",
            outputs=result.outputs,
        )
    return result


async def authorize_provisioning(context: StepContext) -> StepExecutionResult:
    sp_id = context.require(OutputKey.PROVISIONING_SP_OBJECT_ID)
    app_id = context.output(OutputKey.PROVISIONING_APP_ID)
    email = context.require(OutputKey.SERVICE_ACCOUNT_EMAIL)
    resource_url = (
        portal(context).provisioning(sp_id, app_id) if app_id else portal(context).my_apps()
    )
    return StepExecutionResult(
        success=True,
        message=(
            "ACTION REQUIRED: open the provisioning app in the Azure portal, click "
            f"'Authorize' and sign in as '{email}'. Test the connection, then mark "
            "this step complete."
        ),
        resource_url=resource_url,
    )


# ----------------------------------------------------------------------
# M-4 Attribute mappings
async def _resolve_job_id(context: StepContext, sp_id: str):
    job_id = context.output(OutputKey.PROVISIONING_JOB_ID)
    if job_id:
        return job_id
    job = await find_provisioning_job(context, sp_id)
    return job.id if job else None


async def check_attribute_mappings(context: StepContext) -> StepCheckResult:
    """Best-effort check for the two key mappings (UPN and mail)."""

    sp_id = context.require(OutputKey.PROVISIONING_SP_OBJECT_ID)
    job_id = await _resolve_job_id(context, sp_id)
    if not job_id:
        return StepCheckResult(completed=False, message="No provisioning job found. Complete M-3.")
    schema = (await graph(context).get_sync_schema(sp_id, job_id)).optional()
    if schema is None:
        return StepCheckResult(
            completed=False,
            message="Synchronization schema or job not found. Mappings cannot be checked.",
        )

    user_mapping = None
    for rule in schema.get("synchronizationRules") or []:
        for mapping in rule.get("objectMappings") or []:
            if (mapping.get("targetObjectName") or "").lower() == "user" and (
                mapping.get("sourceObjectName") or ""
            ).lower() == "user":
                user_mapping = mapping
                break
        if user_mapping:
            break

    def mapped(target: str, expression: str) -> bool:
        for item in (user_mapping or {}).get("attributeMappings") or []:
            source = (item.get("source") or {}).get("expression") or ""
            if item.get("targetAttributeName") == target and expression in source.lower():
                return True
        return False

    outputs = {OutputKey.PROVISIONING_JOB_ID: job_id}
    if mapped("userName", "[userprincipalname]") and mapped(WORK_EMAIL_ATTRIBUTE, "[mail]"):
        outputs[OutputKey.FLAG_M4_PROV_MAPPINGS_CONFIGURED] = True
        return StepCheckResult(
            completed=True,
            message="Key attribute mappings (UPN to userName, mail to work email) are configured.",
            outputs=outputs,
        )
    return StepCheckResult(
        completed=False, message="Key attribute mappings are not fully configured.", outputs=outputs
    )


async def configure_attribute_mappings(context: StepContext) -> StepExecutionResult:
    sp_id = context.require(OutputKey.PROVISIONING_SP_OBJECT_ID)
    app_id = context.require(OutputKey.PROVISIONING_APP_ID)
    job_id = await _resolve_job_id(context, sp_id)
    if not job_id:
        return StepExecutionResult(
            success=False,
            error=StepError(
                message="No provisioning job found. Authorize provisioning (M-3) first.",
                code="PROVISIONING_JOB_NOT_FOUND",
            ),
        )
    (await graph(context).update_sync_schema(sp_id, job_id, provisioning_schema())).unwrap()
    return StepExecutionResult(
        success=True,
        message="Default attribute mappings configured. Review them in the Azure portal.",
        resource_url=portal(context).provisioning(sp_id, app_id),
        outputs={
            OutputKey.PROVISIONING_JOB_ID: job_id,
            OutputKey.FLAG_M4_PROV_MAPPINGS_CONFIGURED: True,
        },
    )


# ----------------------------------------------------------------------
# M-5 Start provisioning
async def check_provisioning_started(context: StepContext) -> StepCheckResult:
    sp_id = context.require(OutputKey.PROVISIONING_SP_OBJECT_ID)
    job_id = context.require(OutputKey.PROVISIONING_JOB_ID)
    job = (await graph(context).get_sync_job(sp_id, job_id)).optional()
    if job is None:
        return StepCheckResult(completed=False, message=f"Provisioning job '{job_id}' not found.")
    state = job.schedule.state if job.schedule else None
    if state == "Active":
        return StepCheckResult(completed=True, message="Provisioning job is active.")
    return StepCheckResult(
        completed=False, message=f"Provisioning job is not active (state: {state or 'Unknown'})."
    )


async def start_provisioning(context: StepContext) -> StepExecutionResult:
    sp_id = context.require(OutputKey.PROVISIONING_SP_OBJECT_ID)
    job_id = context.require(OutputKey.PROVISIONING_JOB_ID)
    app_id = context.require(OutputKey.PROVISIONING_APP_ID)
    (await graph(context).start_sync_job(sp_id, job_id)).unwrap()
    return StepExecutionResult(
        success=True,
        message="Provisioning job started. Adjust scoping in the Azure portal if needed.",
        resource_url=portal(context).provisioning(sp_id, app_id),
    )


# ----------------------------------------------------------------------
# M-7 SAML app settings
def _expected_identifier_uris(context: StepContext) -> list:
    return [
        context.require(OutputKey.GOOGLE_SAML_SP_ENTITY_ID),
        f"https://{require_domain(context)}",
    ]


async def check_saml_app_settings(context: StepContext) -> StepCheckResult:
    object_id = context.require(OutputKey.SAML_SSO_APP_OBJECT_ID)
    entity_id = context.require(OutputKey.GOOGLE_SAML_SP_ENTITY_ID)
    acs_url = context.require(OutputKey.GOOGLE_SAML_ACS_URL)
    app = (await graph(context).get_application(object_id)).optional()
    if app is None:
        return StepCheckResult(
            completed=False, message=f"Application with object id '{object_id}' not found."
        )

    has_identifier = entity_id in app.identifier_uris
    has_reply_url = bool(app.web and acs_url in app.web.redirect_uris)
    if has_identifier and has_reply_url:
        return StepCheckResult(
            completed=True,
            message="Azure AD SAML app settings (Entity ID, Reply URL) are configured.",
            outputs={OutputKey.FLAG_M7_SAML_APP_SETTINGS_CONFIGURED: True},
        )
    problems = []
    if not has_identifier:
        problems.append(f"identifier URI '{entity_id}' missing")
    if not has_reply_url:
        problems.append(f"reply URL '{acs_url}' missing")
    return StepCheckResult(
        completed=False,
        message=f"Azure AD SAML app settings not fully configured: {'; '.join(problems)}.",
    )


async def configure_saml_app(context: StepContext) -> StepExecutionResult:
    object_id = context.require(OutputKey.SAML_SSO_APP_OBJECT_ID)
    sp_id = context.require(OutputKey.SAML_SSO_SP_OBJECT_ID)
    app_id = context.require(OutputKey.SAML_SSO_APP_ID)
    acs_url = context.require(OutputKey.GOOGLE_SAML_ACS_URL)
    changes = {
        "identifierUris": _expected_identifier_uris(context),
        "web": {
            "redirectUris": [acs_url],
            "implicitGrantSettings": {
                "enableIdTokenIssuance": False,
                "enableAccessTokenIssuance": False,
            },
        },
    }
    (await graph(context).update_application(object_id, changes)).unwrap()
    return StepExecutionResult(
        success=True,
        message="Azure AD SAML app configured with Google's entity id and ACS URL.",
        resource_url=portal(context).single_sign_on(sp_id, app_id),
        outputs={OutputKey.FLAG_M7_SAML_APP_SETTINGS_CONFIGURED: True},
    )


# ----------------------------------------------------------------------
# M-8 IdP metadata
def _metadata_outputs(metadata) -> dict:
    return {
        OutputKey.IDP_CERTIFICATE_BASE64: metadata.certificate,
        OutputKey.IDP_SSO_URL: metadata.sso_url,
        OutputKey.IDP_ENTITY_ID: metadata.entity_id,
    }


async def check_idp_metadata(context: StepContext) -> StepCheckResult:
    keys = (OutputKey.IDP_CERTIFICATE_BASE64, OutputKey.IDP_SSO_URL, OutputKey.IDP_ENTITY_ID)
    if all(context.output(k) for k in keys):
        return StepCheckResult(completed=True, message="IdP metadata already retrieved.")
    return StepCheckResult(completed=False, message="IdP metadata has not been retrieved yet.")


async def retrieve_idp_metadata(context: StepContext) -> StepExecutionResult:
    app_id = context.require(OutputKey.SAML_SSO_APP_ID)
    sp_id = context.require(OutputKey.SAML_SSO_SP_OBJECT_ID)
    metadata = (await graph(context).get_federation_metadata(context.tenant_id, app_id)).unwrap()
    if not metadata.complete:
        raise APIError(
            "Federation metadata is missing the entity id, SSO URL or certificate",
            code="METADATA_INCOMPLETE",
            provider="microsoft",
        )
    return StepExecutionResult(
        success=True,
        message="Azure AD IdP metadata retrieved.",
        resource_url=portal(context).single_sign_on(sp_id, app_id),
        outputs=_metadata_outputs(metadata),
    )


# ----------------------------------------------------------------------
# M-9 / M-10
async def check_app_assignments(context: StepContext) -> StepCheckResult:
    sp_id = context.require(OutputKey.SAML_SSO_SP_OBJECT_ID)
    assignments = (await graph(context).list_app_role_assignments(sp_id)).optional()
    if assignments is None:
        return StepCheckResult(
            completed=False, message=f"Service principal '{sp_id}' not found for checking assignments."
        )
    if assignments:
        return StepCheckResult(completed=True, message="Application has user/group assignments.")
    return StepCheckResult(
        completed=False,
        message="Application has no user/group assignments. Assign users for SSO access.",
    )


async def assign_users_guidance(context: StepContext) -> StepExecutionResult:
    sp_id = context.require(OutputKey.SAML_SSO_SP_OBJECT_ID)
    app_id = context.require(OutputKey.SAML_SSO_APP_ID)
    return StepExecutionResult(
        success=True,
        message="Assign the users or groups who should sign in to Google through Azure AD.",
        resource_url=portal(context).users_and_groups(sp_id, app_id),
    )


async def check_sso_tested(context: StepContext) -> StepCheckResult:
    if context.output(OutputKey.FLAG_M10_SSO_TESTED):
        return StepCheckResult(completed=True, message="SSO sign-in was confirmed.")
    return StepCheckResult(completed=False, message="SSO sign-in has not been confirmed yet.")


async def sso_test_guidance(context: StepContext) -> StepExecutionResult:
    return StepExecutionResult(
        success=True,
        message=(
            "ACTION REQUIRED: sign in to Google as an assigned test user through "
            "My Apps, confirm access, then mark this step complete."
        ),
        resource_url=portal(context).my_apps(),
    )


# ----------------------------------------------------------------------
M1 = define_step(
    id="M-1",
    title="Create Azure AD Enterprise App for Provisioning",
    description="Creates the enterprise application used for user provisioning.",
    category=StepCategory.MICROSOFT,
    activity=StepActivity.PROVISIONING,
    provider=Provider.MICROSOFT,
    produces=PROVISIONING_APP_KEYS,
    admin_url="https://portal.azure.com/#view/Microsoft_AAD_IAM/StartboardApplicationsMenuBlade",
    check=check_provisioning_app,
    execute=create_provisioning_app,
)

M2 = define_step(
    id="M-2",
    title="Enable Provisioning App Service Principal",
    description="Enables sign-in for the provisioning app's service principal.",
    category=StepCategory.MICROSOFT,
    activity=StepActivity.PROVISIONING,
    provider=Provider.MICROSOFT,
    requires=["M-1"],
    required_outputs=[OutputKey.PROVISIONING_SP_OBJECT_ID, OutputKey.PROVISIONING_APP_ID],
    produces=[OutputKey.FLAG_M2_PROV_APP_PROPS_CONFIGURED],
    check=check_provisioning_sp_enabled,
    execute=enable_provisioning_sp,
)

M3 = define_step(
    id="M-3",
    title="Authorize Azure AD Provisioning to Google Workspace",
    description="Admin authorizes the provisioning connection with the Google provisioning user.",
    category=StepCategory.MICROSOFT,
    activity=StepActivity.PROVISIONING,
    provider=Provider.MICROSOFT,
    automation_class=AutomationClass.MANUAL,
    requires=["M-2", "G-3"],
    required_outputs=[OutputKey.PROVISIONING_SP_OBJECT_ID, OutputKey.SERVICE_ACCOUNT_EMAIL],
    produces=[OutputKey.PROVISIONING_JOB_ID, OutputKey.FLAG_M3_PROV_CREDS_CONFIGURED],
    confirmation_outputs={OutputKey.FLAG_M3_PROV_CREDS_CONFIGURED: True},
    check=check_provisioning_authorized,
    execute=authorize_provisioning,
)

M4 = define_step(
    id="M-4",
    title="Configure Attribute Mappings (Provisioning)",
    description="Applies the default user attribute mappings to the provisioning job.",
    category=StepCategory.MICROSOFT,
    activity=StepActivity.PROVISIONING,
    provider=Provider.MICROSOFT,
    requires=["M-3"],
    required_outputs=[OutputKey.PROVISIONING_SP_OBJECT_ID, OutputKey.PROVISIONING_APP_ID],
    produces=[OutputKey.PROVISIONING_JOB_ID, OutputKey.FLAG_M4_PROV_MAPPINGS_CONFIGURED],
    check=check_attribute_mappings,
    execute=configure_attribute_mappings,
)

M5 = define_step(
    id="M-5",
    title="Define Scope & Start Provisioning Job",
    description="Starts the provisioning job.",
    category=StepCategory.MICROSOFT,
    activity=StepActivity.PROVISIONING,
    provider=Provider.MICROSOFT,
    requires=["M-4"],
    required_outputs=[
        OutputKey.PROVISIONING_SP_OBJECT_ID,
        OutputKey.PROVISIONING_JOB_ID,
        OutputKey.PROVISIONING_APP_ID,
    ],
    check=check_provisioning_started,
    execute=start_provisioning,
)

M6 = define_step(
    id="M-6",
    title="Create Azure AD Enterprise App for SAML SSO",
    description="Creates the enterprise application used for SAML single sign-on.",
    category=StepCategory.MICROSOFT,
    activity=StepActivity.SSO,
    provider=Provider.MICROSOFT,
    produces=SAML_APP_KEYS,
    admin_url="https://portal.azure.com/#view/Microsoft_AAD_IAM/StartboardApplicationsMenuBlade",
    check=check_saml_app,
    execute=create_saml_app,
)

M7 = define_step(
    id="M-7",
    title="Configure Azure AD SAML App for Google",
    description="Sets Google's SP entity id and ACS URL on the SAML application.",
    category=StepCategory.SSO,
    activity=StepActivity.SSO,
    provider=Provider.MICROSOFT,
    requires=["M-6", "G-5"],
    required_outputs=[
        OutputKey.SAML_SSO_APP_OBJECT_ID,
        OutputKey.SAML_SSO_SP_OBJECT_ID,
        OutputKey.SAML_SSO_APP_ID,
        OutputKey.GOOGLE_SAML_SP_ENTITY_ID,
        OutputKey.GOOGLE_SAML_ACS_URL,
    ],
    produces=[OutputKey.FLAG_M7_SAML_APP_SETTINGS_CONFIGURED],
    check=check_saml_app_settings,
    execute=configure_saml_app,
)

M8 = define_step(
    id="M-8",
    title="Retrieve Azure AD IdP SAML Metadata for Google",
    description="Reads the IdP entity id, SSO URL and signing certificate from federation metadata.",
    category=StepCategory.SSO,
    activity=StepActivity.SSO,
    provider=Provider.MICROSOFT,
    requires=["M-7"],
    required_outputs=[OutputKey.SAML_SSO_APP_ID, OutputKey.SAML_SSO_SP_OBJECT_ID],
    produces=[OutputKey.IDP_CERTIFICATE_BASE64, OutputKey.IDP_SSO_URL, OutputKey.IDP_ENTITY_ID],
    check=check_idp_metadata,
    execute=retrieve_idp_metadata,
)

M9 = define_step(
    id="M-9",
    title="Assign Users/Groups to Azure AD SSO App",
    description="Users and groups must be assigned to the SAML app before they can sign in.",
    category=StepCategory.SSO,
    activity=StepActivity.SSO,
    provider=Provider.MICROSOFT,
    automation_class=AutomationClass.SUPERVISED,
    requires=["M-6"],
    required_outputs=[OutputKey.SAML_SSO_SP_OBJECT_ID, OutputKey.SAML_SSO_APP_ID],
    check=check_app_assignments,
    execute=assign_users_guidance,
)

M10 = define_step(
    id="M-10",
    title="Test & Validate SSO Sign-in",
    description="Admin signs in as a test user to confirm the federation works end to end.",
    category=StepCategory.SSO,
    activity=StepActivity.SSO,
    provider=Provider.MICROSOFT,
    automation_class=AutomationClass.MANUAL,
    requires=["G-7", "M-9"],
    produces=[OutputKey.FLAG_M10_SSO_TESTED],
    confirmation_outputs={OutputKey.FLAG_M10_SSO_TESTED: True},
    admin_url="https://myapps.microsoft.com",
    check=check_sso_tested,
    execute=sso_test_guidance,
)

MICROSOFT_STEPS = [M1, M2, M3, M4, M5, M6, M7, M8, M9, M10]
