"""Shared fixtures: stateful fakes of the Google and Graph clients."""

import itertools
import re

import pytest

import fedlink.persistence as persistence
from fedlink.config import GoogleConfig, MicrosoftConfig
from fedlink.providers import Conflict, NotFound, Ok
from fedlink.providers.models import (
    AppRoleAssignment,
    Application,
    DirectoryUser,
    Domain,
    IdpCredential,
    InstantiatedApplication,
    OrgUnit,
    RoleAssignment,
    SamlIdpConfig,
    SamlMetadata,
    SamlProfile,
    SamlSpConfig,
    ServicePrincipal,
    SyncJob,
    SyncSchedule,
    WebApplication,
)
from fedlink.providers.urls import PortalUrls
from fedlink.registry import default_registry
from fedlink.runner import StepRunner
from fedlink.session import SetupSession

DOMAIN = "example.com"
TENANT_ID = "tenant-1"


class FakeClient:
    """Records calls and lets a test force the result of any method."""

    def __init__(self):
        self.calls = []
        self.overrides = {}

    def _call(self, name, *args):
        self.calls.append((name, args))
        return self.overrides.get(name)

    def count(self, name):
        return sum(1 for call, _ in self.calls if call == name)


class FakeGoogle(FakeClient):
    def __init__(self):
        super().__init__()
        self.org_units = {}
        self.users = {}
        self.role_assignments = []
        self.domains = {}
        self.profiles = {}
        self.credentials = {}
        self.sso_assignments = []
        self._ids = itertools.count(1)

    async def get_org_unit(self, path):
        forced = self._call("get_org_unit", path)
        if forced is not None:
            return forced
        ou = self.org_units.get(path)
        return Ok(ou) if ou else NotFound()

    async def create_org_unit(self, name, parent_path="/", description=None):
        forced = self._call("create_org_unit", name)
        if forced is not None:
            return forced
        path = f"/{name}" if parent_path == "/" else f"{parent_path}/{name}"
        if path in self.org_units:
            return Conflict("Invalid Ou Id", "google")
        ou = OrgUnit(org_unit_id=f"id:ou{next(self._ids)}", org_unit_path=path, name=name)
        self.org_units[path] = ou
        return Ok(ou)

    async def get_user(self, user_key):
        forced = self._call("get_user", user_key)
        if forced is not None:
            return forced
        user = self.users.get(user_key)
        return Ok(user) if user else NotFound()

    async def create_user(self, primary_email, given_name, family_name, password, org_unit_path):
        forced = self._call("create_user", primary_email)
        if forced is not None:
            return forced
        if primary_email in self.users:
            return Conflict("Entity already exists.", "google")
        user = DirectoryUser(
            id=f"user-{next(self._ids)}", primary_email=primary_email, org_unit_path=org_unit_path
        )
        self.users[primary_email] = user
        return Ok(user)

    async def list_role_assignments(self, user_key=None):
        forced = self._call("list_role_assignments", user_key)
        if forced is not None:
            return forced
        return Ok(list(self.role_assignments))

    async def assign_role(self, role_id, assigned_to, scope_type="CUSTOMER"):
        forced = self._call("assign_role", role_id, assigned_to)
        if forced is not None:
            return forced
        if any(a.role_id == role_id and a.assigned_to == assigned_to for a in self.role_assignments):
            return Conflict("Role assignment already exists", "google")
        assignment = RoleAssignment(role_id=role_id, assigned_to=assigned_to, scope_type=scope_type)
        self.role_assignments.append(assignment)
        return Ok(assignment)

    async def get_domain(self, name):
        forced = self._call("get_domain", name)
        if forced is not None:
            return forced
        domain = self.domains.get(name)
        return Ok(domain) if domain else NotFound()

    async def add_domain(self, name):
        forced = self._call("add_domain", name)
        if forced is not None:
            return forced
        if name in self.domains:
            return Conflict("Domain already exists", "google")
        self.domains[name] = Domain(domain_name=name, verified=False)
        return Ok(self.domains[name])

    async def list_saml_profiles(self):
        forced = self._call("list_saml_profiles")
        if forced is not None:
            return forced
        return Ok(list(self.profiles.values()))

    async def get_saml_profile(self, full_name):
        forced = self._call("get_saml_profile", full_name)
        if forced is not None:
            return forced
        profile = self.profiles.get(full_name)
        return Ok(profile) if profile else NotFound()

    async def create_saml_profile(self, display_name):
        forced = self._call("create_saml_profile", display_name)
        if forced is not None:
            return forced
        if any(p.display_name == display_name for p in self.profiles.values()):
            return Conflict("Profile already exists", "google")
        full_name = f"inboundSamlSsoProfiles/profile{next(self._ids)}"
        profile = SamlProfile(
            name=full_name,
            display_name=display_name,
            sp_config=SamlSpConfig(
                entity_id=f"https://accounts.google.com/samlrp/{full_name}",
                assertion_consumer_service_uri=f"https://accounts.google.com/samlrp/acs?rpid={full_name}",
            ),
        )
        self.profiles[full_name] = profile
        return Ok(profile)

    async def update_saml_idp_config(self, full_name, entity_id, sso_url):
        forced = self._call("update_saml_idp_config", full_name)
        if forced is not None:
            return forced
        profile = self.profiles[full_name]
        self.profiles[full_name] = profile.model_copy(
            update={
                "idp_config": SamlIdpConfig(entity_id=entity_id, single_sign_on_service_uri=sso_url)
            }
        )
        return Ok({})

    async def list_idp_credentials(self, full_name):
        forced = self._call("list_idp_credentials", full_name)
        if forced is not None:
            return forced
        return Ok(list(self.credentials.get(full_name, [])))

    async def add_idp_credentials(self, full_name, pem_data):
        forced = self._call("add_idp_credentials", full_name, pem_data)
        if forced is not None:
            return forced
        self.credentials.setdefault(full_name, []).append(
            IdpCredential(name=f"{full_name}/idpCredentials/cred{next(self._ids)}")
        )
        return Ok({})

    async def assign_to_org_units(self, full_name, assignments):
        forced = self._call("assign_to_org_units", full_name)
        if forced is not None:
            return forced
        self.sso_assignments.extend(assignments)
        return Ok({})


class FakeGraph(FakeClient):
    def __init__(self):
        super().__init__()
        self.applications = {}
        self.service_principals = {}
        self.jobs = {}
        self.schemas = {}
        self.assignments = {}
        self.metadata = SamlMetadata(
            entity_id=f"https://sts.windows.net/{TENANT_ID}/",
            sso_url=f"https://login.microsoftonline.com/{TENANT_ID}/saml2",
            certificate="MIIC8DCCAdigAwIBAgIQ",
        )
        self._ids = itertools.count(1)

    def add_job(self, sp_id, job_id="GoogleApps.job1", state="Disabled", error_code=None):
        status = None
        if error_code:
            status = {"lastExecution": {"error": {"code": error_code, "message": "failed"}}}
        job = SyncJob.model_validate(
            {"id": job_id, "templateId": "GoogleApps", "schedule": {"state": state}, "status": status}
        )
        self.jobs.setdefault(sp_id, []).append(job)
        return job

    def _apps_where(self, field, value):
        return [a for a in self.applications.values() if getattr(a, field) == value]

    async def instantiate_template(self, template_id, display_name):
        forced = self._call("instantiate_template", display_name)
        if forced is not None:
            return forced
        n = next(self._ids)
        app = Application(id=f"app-obj-{n}", app_id=f"app-id-{n}", display_name=display_name)
        sp = ServicePrincipal(id=f"sp-{n}", app_id=app.app_id, display_name=display_name)
        self.applications[app.id] = app
        self.service_principals[sp.id] = sp
        return Ok(InstantiatedApplication(application=app, service_principal=sp))

    async def list_applications(self, filter_expr):
        forced = self._call("list_applications", filter_expr)
        if forced is not None:
            return forced
        field, value = re.match(r"(\w+) eq '(.*)'", filter_expr).groups()
        attr = "display_name" if field == "displayName" else "app_id"
        return Ok(self._apps_where(attr, value))

    async def get_application(self, object_id):
        forced = self._call("get_application", object_id)
        if forced is not None:
            return forced
        app = self.applications.get(object_id)
        return Ok(app) if app else NotFound()

    async def update_application(self, object_id, changes):
        forced = self._call("update_application", object_id, changes)
        if forced is not None:
            return forced
        app = self.applications[object_id]
        self.applications[object_id] = app.model_copy(
            update={
                "identifier_uris": changes["identifierUris"],
                "web": WebApplication(redirect_uris=changes["web"]["redirectUris"]),
            }
        )
        return Ok({})

    async def get_service_principal_by_app_id(self, app_id):
        forced = self._call("get_service_principal_by_app_id", app_id)
        if forced is not None:
            return forced
        for sp in self.service_principals.values():
            if sp.app_id == app_id:
                return Ok(sp)
        return Ok(None)

    async def get_service_principal(self, sp_id):
        forced = self._call("get_service_principal", sp_id)
        if forced is not None:
            return forced
        sp = self.service_principals.get(sp_id)
        return Ok(sp) if sp else NotFound()

    async def update_service_principal(self, sp_id, changes):
        forced = self._call("update_service_principal", sp_id, changes)
        if forced is not None:
            return forced
        sp = self.service_principals[sp_id]
        self.service_principals[sp_id] = sp.model_copy(
            update={"account_enabled": changes["accountEnabled"]}
        )
        return Ok({})

    async def list_app_role_assignments(self, sp_id):
        forced = self._call("list_app_role_assignments", sp_id)
        if forced is not None:
            return forced
        if sp_id not in self.service_principals:
            return NotFound()
        return Ok(list(self.assignments.get(sp_id, [])))

    def assign_user(self, sp_id, name="Test User"):
        self.assignments.setdefault(sp_id, []).append(
            AppRoleAssignment(id=f"assign-{next(self._ids)}", principal_display_name=name)
        )

    async def list_sync_jobs(self, sp_id):
        forced = self._call("list_sync_jobs", sp_id)
        if forced is not None:
            return forced
        return Ok(list(self.jobs.get(sp_id, [])))

    async def get_sync_job(self, sp_id, job_id):
        forced = self._call("get_sync_job", sp_id, job_id)
        if forced is not None:
            return forced
        for job in self.jobs.get(sp_id, []):
            if job.id == job_id:
                return Ok(job)
        return NotFound()

    async def start_sync_job(self, sp_id, job_id):
        forced = self._call("start_sync_job", sp_id, job_id)
        if forced is not None:
            return forced
        jobs = self.jobs.get(sp_id, [])
        for i, job in enumerate(jobs):
            if job.id == job_id:
                jobs[i] = job.model_copy(update={"schedule": SyncSchedule(state="Active")})
                return Ok({})
        return NotFound()

    async def get_sync_schema(self, sp_id, job_id):
        forced = self._call("get_sync_schema", sp_id, job_id)
        if forced is not None:
            return forced
        schema = self.schemas.get((sp_id, job_id))
        return Ok(schema) if schema is not None else NotFound()

    async def update_sync_schema(self, sp_id, job_id, schema):
        forced = self._call("update_sync_schema", sp_id, job_id)
        if forced is not None:
            return forced
        self.schemas[(sp_id, job_id)] = schema
        return Ok({})

    async def get_federation_metadata(self, tenant_id, app_id):
        forced = self._call("get_federation_metadata", tenant_id, app_id)
        if forced is not None:
            return forced
        return Ok(self.metadata)


class FakeProviders:
    def __init__(self):
        self.google = FakeGoogle()
        self.microsoft = FakeGraph()
        self.portal = PortalUrls(GoogleConfig(), MicrosoftConfig())
        self.closed = False

    async def aclose(self):
        self.closed = True


@pytest.fixture
def providers():
    return FakeProviders()


@pytest.fixture
def google_fake(providers):
    return providers.google


@pytest.fixture
def graph_fake(providers):
    return providers.microsoft


@pytest.fixture
def session():
    return SetupSession(DOMAIN, TENANT_ID)


@pytest.fixture
def runner(providers):
    return StepRunner(default_registry(), providers)


@pytest.fixture
def memory_repository(monkeypatch):
    """Install a fresh in-memory repository as the process-wide one."""

    monkeypatch.delenv("FEDLINK_DATABASE_URL", raising=False)
    repo = persistence.InMemoryProgressRepository()
    monkeypatch.setattr(persistence, "_repository_instance", repo)
    monkeypatch.setattr(persistence, "_repository_url", "")
    return repo
