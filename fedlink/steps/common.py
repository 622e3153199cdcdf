"""Helpers shared by the Google and Microsoft step modules."""

from __future__ import annotations

import logging
from typing import Optional

from ..contracts import StepCheckResult, StepContext
from ..errors import FedlinkError, MissingConfigError
from ..outputs import OutputKey
from ..providers import NotFound, Ok, ProviderSet
from ..providers.google import GoogleWorkspaceClient
from ..providers.microsoft import GraphClient
from ..providers.models import Application, InstantiatedApplication, SyncJob
from ..providers.urls import PortalUrls

logger = logging.getLogger(__name__)

ENTERPRISE_APP_TEMPLATE_ID = "8b1025e4-1dd2-430b-a150-2ef79cd700f5"
GOOGLE_APPS_SYNC_TEMPLATE = "GoogleApps"


def providers(context: StepContext) -> ProviderSet:
    if context.providers is None:
        raise FedlinkError("Provider clients are not configured")
    return context.providers


def google(context: StepContext) -> GoogleWorkspaceClient:
    return providers(context).google


def graph(context: StepContext) -> GraphClient:
    return providers(context).microsoft


def portal(context: StepContext) -> PortalUrls:
    return providers(context).portal


def require_domain(context: StepContext) -> str:
    if not context.domain:
        raise MissingConfigError(["domain"])
    return context.domain


# ----------------------------------------------------------------------
# Enterprise applications
async def find_enterprise_app(
    context: StepContext, display_name: str
) -> Optional[InstantiatedApplication]:
    """Locate an enterprise app and its service principal by display name."""

    client = graph(context)
    apps = (await client.list_applications(f"displayName eq '{display_name}'")).unwrap()
    for app in apps:
        if not app.app_id:
            continue
        sp = (await client.get_service_principal_by_app_id(app.app_id)).unwrap()
        if sp is not None:
            return InstantiatedApplication(application=app, service_principal=sp)
    return None


async def fetch_enterprise_app(context: StepContext, display_name: str):
    found = await find_enterprise_app(context, display_name)
    return Ok(found) if found is not None else NotFound(f"Application '{display_name}' not found")


async def check_service_principal(
    context: StepContext,
    display_name: str,
    app_id_key: OutputKey,
    app_object_id_key: OutputKey,
    sp_id_key: OutputKey,
) -> StepCheckResult:
    """Report whether the enterprise app's service principal exists."""

    client = graph(context)
    app_id = context.output(app_id_key)
    if app_id:
        sp = (await client.get_service_principal_by_app_id(app_id)).unwrap()
        apps = (await client.list_applications(f"appId eq '{app_id}'")).unwrap()
        app: Optional[Application] = apps[0] if apps else None
        found = (
            InstantiatedApplication(application=app, service_principal=sp)
            if sp is not None and app is not None
            else None
        )
    else:
        found = await find_enterprise_app(context, display_name)

    if found is None:
        return StepCheckResult(
            completed=False, message=f"Enterprise application '{display_name}' not found."
        )
    sp = found.service_principal
    return StepCheckResult(
        completed=True,
        message=f"Service principal for '{sp.display_name or display_name}' found.",
        outputs={
            app_id_key: found.application.app_id,
            app_object_id_key: found.application.id,
            sp_id_key: sp.id,
        },
    )


# ----------------------------------------------------------------------
# Provisioning jobs
async def find_provisioning_job(
    context: StepContext, sp_id: str, job_id: Optional[str] = None
) -> Optional[SyncJob]:
    client = graph(context)
    if job_id:
        return (await client.get_sync_job(sp_id, job_id)).optional()
    jobs = (await client.list_sync_jobs(sp_id)).optional() or []
    for job in jobs:
        if job.template_id == GOOGLE_APPS_SYNC_TEMPLATE:
            return job
    return jobs[0] if jobs else None


async def check_provisioning_job(
    context: StepContext, sp_id: str, job_id: Optional[str] = None
) -> StepCheckResult:
    job = await find_provisioning_job(context, sp_id, job_id)
    if job is None or not job.id:
        return StepCheckResult(
            completed=False,
            message="No provisioning job found or configured for this service principal.",
        )

    state = job.schedule.state if job.schedule and job.schedule.state else "Unknown"
    message = f"Provisioning job '{job.id}' found. State: {state}."
    error = job.last_error
    if error and error.message:
        message += f" Last execution error: {error.message}"
    credentials_ok = not (error and error.code and "invalidcredentials" in error.code.lower())
    return StepCheckResult(
        completed=credentials_ok,
        message=message,
        outputs={OutputKey.PROVISIONING_JOB_ID: job.id, "provisioningJobState": state},
    )
