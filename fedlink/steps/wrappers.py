"""Validation and error-classification wrappers applied to every step.

Step logic is written for the happy path and raises on failure; these
decorators turn preconditions and exceptions into structured results so the
engine never sees an exception from a step operation.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from ..contracts import StepCheckResult, StepContext, StepError, StepExecutionResult
from ..errors import (
    API_ERROR,
    AUTH_EXPIRED,
    MISSING_CONFIG,
    MISSING_DEPENDENCY,
    UNKNOWN_ERROR,
    APIError,
    MissingConfigError,
    MissingDependencyError,
    OutputTypeError,
    is_authentication_error,
    matches_auth_pattern,
)
from ..outputs import missing_keys, validate_output

logger = logging.getLogger(__name__)

CheckFn = Callable[[StepContext], Awaitable[StepCheckResult]]
ExecuteFn = Callable[[StepContext], Awaitable[StepExecutionResult]]


def missing_config(context: StepContext) -> list[str]:
    missing = []
    if not context.domain:
        missing.append("domain")
    if not context.tenant_id:
        missing.append("tenantId")
    return missing


def _auth_provider(exc: BaseException) -> Optional[str]:
    return getattr(exc, "provider", None) or matches_auth_pattern(str(exc))


def _error_code(exc: BaseException) -> str:
    if isinstance(exc, APIError):
        if exc.code:
            return exc.code
        return f"HTTP_{exc.status}" if exc.status else API_ERROR
    if isinstance(exc, (MissingDependencyError, MissingConfigError, OutputTypeError)):
        return exc.code
    return UNKNOWN_ERROR


def _validate_outputs(outputs: Optional[Dict[str, Any]]) -> None:
    for key, value in (outputs or {}).items():
        validate_output(key, value)


# ----------------------------------------------------------------------
# Execute
def execution_failure(step_id: str, exc: BaseException) -> StepExecutionResult:
    """Classify an exception raised by execute logic."""

    if is_authentication_error(exc):
        provider = _auth_provider(exc)
        logger.warning(f"[{step_id}] authentication expired for {provider}: {exc}")
        return StepExecutionResult(
            success=False,
            error=StepError(
                message=f"Authentication expired for {provider or 'provider'}. Sign in again.",
                code=AUTH_EXPIRED,
            ),
            outputs={"errorCode": AUTH_EXPIRED, "errorProvider": provider},
        )

    code = _error_code(exc)
    if code == UNKNOWN_ERROR:
        logger.exception(f"[{step_id}] unexpected error during execute")
    else:
        logger.warning(f"[{step_id}] execute failed ({code}): {exc}")
    outputs = None
    if isinstance(exc, APIError):
        outputs = {"errorCode": code, "errorMessage": exc.message, "errorStatus": exc.status}
    return StepExecutionResult(
        success=False, error=StepError(message=str(exc), code=code), outputs=outputs
    )


def with_execution_handling(
    step_id: str,
    required_outputs: Iterable[str] = (),
    hint: str = "previous steps",
) -> Callable[[ExecuteFn], ExecuteFn]:
    required = tuple(str(k) for k in required_outputs)

    def decorator(fn: ExecuteFn) -> ExecuteFn:
        @functools.wraps(fn)
        async def wrapper(context: StepContext) -> StepExecutionResult:
            missing = missing_keys(context.outputs, required)
            if missing:
                return StepExecutionResult(
                    success=False,
                    error=StepError(
                        message=(
                            f"Complete these steps first: {', '.join(missing)}. "
                            f"Ensure {hint} completed successfully."
                        ),
                        code=MISSING_DEPENDENCY,
                    ),
                )
            absent = missing_config(context)
            if absent:
                return StepExecutionResult(
                    success=False,
                    error=StepError(
                        message=f"Missing required configuration: {', '.join(absent)}.",
                        code=MISSING_CONFIG,
                    ),
                )
            try:
                result = await fn(context)
                _validate_outputs(result.outputs)
            except Exception as exc:
                return execution_failure(step_id, exc)
            return result

        return wrapper

    return decorator


# ----------------------------------------------------------------------
# Check
def check_failure(step_id: str, exc: BaseException, message: str = "") -> StepCheckResult:
    """Classify an exception raised by check logic."""

    prefix = message or f"Couldn't verify {step_id}."
    if is_authentication_error(exc):
        provider = _auth_provider(exc)
        logger.warning(f"[{step_id}] authentication expired for {provider} during check")
        return StepCheckResult(
            completed=False,
            message=f"{prefix} Authentication expired for {provider or 'provider'}.",
            outputs={
                "errorCode": AUTH_EXPIRED,
                "errorProvider": provider,
                "requiresReauth": True,
            },
        )

    code = _error_code(exc)
    if code == UNKNOWN_ERROR:
        logger.exception(f"[{step_id}] unexpected error during check")
    else:
        logger.warning(f"[{step_id}] check failed ({code}): {exc}")
    outputs: Dict[str, Any] = {"errorCode": code, "errorMessage": str(exc)}
    if isinstance(exc, APIError):
        outputs["errorStatus"] = exc.status
    return StepCheckResult(completed=False, message=f"{prefix} {exc}", outputs=outputs)


def with_check_handling(
    step_id: str, required_outputs: Iterable[str] = ()
) -> Callable[[CheckFn], CheckFn]:
    required = tuple(str(k) for k in required_outputs)

    def decorator(fn: CheckFn) -> CheckFn:
        @functools.wraps(fn)
        async def wrapper(context: StepContext) -> StepCheckResult:
            missing = missing_keys(context.outputs, required)
            if missing:
                return StepCheckResult(
                    completed=False, message=f"blocked: missing {', '.join(missing)}"
                )
            try:
                result = await fn(context)
                _validate_outputs(result.outputs)
            except Exception as exc:
                return check_failure(step_id, exc)
            return result

        return wrapper

    return decorator
