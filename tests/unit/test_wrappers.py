import pytest

from fedlink.contracts import (
    Provider,
    StepActivity,
    StepCategory,
    StepCheckResult,
    StepContext,
    StepExecutionResult,
)
from fedlink.errors import APIError, AuthenticationError
from fedlink.outputs import OutputKey
from fedlink.steps import define_step


def _step(execute=None, check=None, requires=("G-1",), required=(OutputKey.AUTOMATION_OU_PATH,)):
    return define_step(
        id="T-1",
        title="Test step",
        category=StepCategory.GOOGLE,
        activity=StepActivity.FOUNDATION,
        provider=Provider.GOOGLE,
        requires=requires,
        required_outputs=required,
        check=check,
        execute=execute,
    )


def _ctx(**outputs):
    return StepContext(domain="example.com", tenant_id="tenant-1", outputs=outputs)


@pytest.mark.asyncio
async def test_missing_outputs_short_circuit_execute():
    called = []

    async def execute(ctx):
        called.append(ctx)
        return StepExecutionResult(success=True)

    result = await _step(execute=execute).execute(_ctx())
    assert not result.success
    assert result.error.code == "MISSING_DEPENDENCY"
    assert result.error.message == (
        "Complete these steps first: g1AutomationOuPath. Ensure G-1 completed successfully."
    )
    assert called == []


@pytest.mark.asyncio
async def test_missing_configuration_is_reported():
    async def execute(ctx):
        return StepExecutionResult(success=True)

    step = _step(execute=execute, requires=(), required=())
    result = await step.execute(StepContext())
    assert result.error.code == "MISSING_CONFIG"
    assert result.error.message == "Missing required configuration: domain, tenantId."


@pytest.mark.asyncio
async def test_api_errors_keep_their_code():
    async def execute(ctx):
        raise APIError("Quota exceeded", status=403, code="PERMISSION_DENIED", provider="google")

    result = await _step(execute=execute).execute(_ctx(g1AutomationOuPath="/Automation"))
    assert not result.success
    assert result.error.code == "PERMISSION_DENIED"
    assert result.outputs == {
        "errorCode": "PERMISSION_DENIED",
        "errorMessage": "Quota exceeded",
        "errorStatus": 403,
    }


@pytest.mark.asyncio
async def test_authentication_errors_are_classified():
    async def execute(ctx):
        raise AuthenticationError("Token expired", provider="microsoft")

    result = await _step(execute=execute).execute(_ctx(g1AutomationOuPath="/Automation"))
    assert result.error.code == "AUTH_EXPIRED"
    assert result.error.message == "Authentication expired for microsoft. Sign in again."
    assert result.outputs == {"errorCode": "AUTH_EXPIRED", "errorProvider": "microsoft"}


@pytest.mark.asyncio
async def test_auth_failure_recognised_from_message_text():
    async def execute(ctx):
        raise RuntimeError("Request had invalid authentication credentials.")

    result = await _step(execute=execute).execute(_ctx(g1AutomationOuPath="/Automation"))
    assert result.error.code == "AUTH_EXPIRED"
    assert result.outputs["errorProvider"] == "google"


@pytest.mark.asyncio
async def test_unexpected_exceptions_become_unknown_error():
    async def execute(ctx):
        raise KeyError("boom")

    result = await _step(execute=execute).execute(_ctx(g1AutomationOuPath="/Automation"))
    assert not result.success
    assert result.error.code == "UNKNOWN_ERROR"


@pytest.mark.asyncio
async def test_wrongly_typed_outputs_fail_the_step():
    async def execute(ctx):
        return StepExecutionResult(
            success=True, outputs={OutputKey.FLAG_M10_SSO_TESTED: "true"}
        )

    result = await _step(execute=execute).execute(_ctx(g1AutomationOuPath="/Automation"))
    assert not result.success
    assert result.error.code == "INVALID_OUTPUT"


@pytest.mark.asyncio
async def test_check_reports_blocked_when_inputs_missing():
    async def check(ctx):
        raise AssertionError("check body must not run")

    result = await _step(check=check).check(_ctx())
    assert result.completed is False
    assert result.message == "blocked: missing g1AutomationOuPath"


@pytest.mark.asyncio
async def test_check_auth_failure_requests_reauth():
    async def check(ctx):
        raise AuthenticationError("expired", provider="google")

    result = await _step(check=check).check(_ctx(g1AutomationOuPath="/Automation"))
    assert result.completed is False
    assert result.outputs["errorCode"] == "AUTH_EXPIRED"
    assert result.outputs["requiresReauth"] is True


@pytest.mark.asyncio
async def test_check_api_failure_is_not_completed():
    async def check(ctx):
        raise APIError("Backend Error", status=500, code="INTERNAL")

    result = await _step(check=check).check(_ctx(g1AutomationOuPath="/Automation"))
    assert result.completed is False
    assert result.outputs["errorCode"] == "INTERNAL"
    assert result.outputs["errorStatus"] == 500
    assert "Backend Error" in result.message


@pytest.mark.asyncio
async def test_successful_check_passes_through():
    async def check(ctx):
        return StepCheckResult(completed=True, message="ok", outputs={"x": "y"})

    result = await _step(check=check).check(_ctx(g1AutomationOuPath="/Automation"))
    assert result == StepCheckResult(completed=True, message="ok", outputs={"x": "y"})
