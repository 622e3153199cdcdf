"""Check-then-execute runner for a single step."""

from __future__ import annotations

import logging
from typing import Optional

from .contracts import (
    AutomationClass,
    CompletionType,
    StepCheckResult,
    StepContext,
    StepError,
    StepExecutionResult,
    StepRunResult,
    StepStatus,
)
from .errors import AUTH_EXPIRED, NO_EXECUTE_FUNCTION, UNKNOWN_ERROR
from .outputs import split_outputs
from .registry import StepRegistry, default_registry

logger = logging.getLogger(__name__)


class StepRunner:
    """Run step operations against the injected provider clients.

    The runner never mutates caller state; it returns structured results
    whose ``outputs`` the caller merges into its output store.
    """

    def __init__(self, registry: Optional[StepRegistry] = None, providers=None) -> None:
        self.registry = registry or default_registry()
        self.providers = providers

    def _bind(self, context: StepContext) -> StepContext:
        if context.providers is None and self.providers is not None:
            return context.with_providers(self.providers)
        return context

    async def check(self, step_id: str, context: StepContext) -> StepCheckResult:
        step = self.registry.get(step_id)
        if step.check is None:
            return StepCheckResult(completed=False, message="No check available for this step.")
        logger.info(f"Checking step {step_id}")
        result = await step.check(self._bind(context))
        logger.debug(f"Check {step_id}: completed={result.completed} {result.message}")
        return result

    async def execute(self, step_id: str, context: StepContext) -> StepExecutionResult:
        step = self.registry.get(step_id)
        if step.execute is None:
            return StepExecutionResult(
                success=False,
                error=StepError(
                    message=f"Step {step_id} has no execute function.",
                    code=NO_EXECUTE_FUNCTION,
                ),
            )
        logger.info(f"Executing step {step_id}")
        result = await step.execute(self._bind(context))
        if result.success:
            logger.info(f"Step {step_id} executed: {result.message}")
        else:
            code = result.error.code if result.error else None
            logger.warning(f"Step {step_id} failed ({code}): {result.error.message if result.error else ''}")
        return result

    async def run(self, step_id: str, context: StepContext) -> StepRunResult:
        """Check first and execute only when the step is not already complete.

        Real outputs from the check and the execute are returned on every
        path, including failures, so partial progress reaches the store.
        Error details are returned separately as diagnostics.
        """

        step = self.registry.get(step_id)
        context = self._bind(context)

        check = await self.check(step_id, context)
        found, diagnostics = split_outputs(check.outputs)
        if check.completed:
            return StepRunResult(
                step_id=step_id,
                status=StepStatus.COMPLETED,
                completion_type=CompletionType.SERVER_VERIFIED,
                message=check.message,
                outputs=found,
                diagnostics=diagnostics,
                check=check,
            )

        if diagnostics.get("errorCode") == AUTH_EXPIRED:
            logger.warning(f"Step {step_id} halted: authentication expired during check")
            return StepRunResult(
                step_id=step_id,
                status=StepStatus.FAILED,
                message=check.message,
                outputs=found,
                diagnostics=diagnostics,
                error=StepError(message=check.message, code=AUTH_EXPIRED),
                check=check,
            )

        execution = await self.execute(step_id, context.merged(found))
        produced, failure = split_outputs(execution.outputs)
        outputs = {**found, **produced}
        if not execution.success:
            error = execution.error or StepError(
                message=execution.message or "Execution failed", code=UNKNOWN_ERROR
            )
            return StepRunResult(
                step_id=step_id,
                status=StepStatus.FAILED,
                message=execution.message or error.message,
                resource_url=execution.resource_url,
                outputs=outputs,
                diagnostics=failure,
                error=error,
                check=check,
                execution=execution,
            )

        if step.automation_class == AutomationClass.SUPERVISED:
            # The action happens outside our APIs; only a passing check completes it.
            verify = await self.check(step_id, context.merged(outputs))
            verified, remaining = split_outputs(verify.outputs)
            outputs.update(verified)
            if verify.completed:
                return StepRunResult(
                    step_id=step_id,
                    status=StepStatus.COMPLETED,
                    completion_type=CompletionType.SERVER_VERIFIED,
                    message=verify.message,
                    resource_url=execution.resource_url,
                    outputs=outputs,
                    check=verify,
                    execution=execution,
                )
            diagnostics = remaining

        if step.manual or step.automation_class == AutomationClass.SUPERVISED:
            return StepRunResult(
                step_id=step_id,
                status=StepStatus.PENDING,
                message=execution.message,
                resource_url=execution.resource_url,
                outputs=outputs,
                diagnostics=diagnostics,
                check=check,
                execution=execution,
                requires_confirmation=True,
            )

        return StepRunResult(
            step_id=step_id,
            status=StepStatus.COMPLETED,
            completion_type=CompletionType.SERVER_VERIFIED,
            message=execution.message,
            resource_url=execution.resource_url,
            outputs=outputs,
            check=check,
            execution=execution,
        )
