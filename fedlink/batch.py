"""Sequential batch runs over every eligible step."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from .contracts import StepRunResult, StepStatus
from .errors import AUTH_EXPIRED
from .outputs import split_outputs
from .runner import StepRunner
from .session import SetupSession

logger = logging.getLogger(__name__)

# in_progress only survives an interrupted run, so it is retried like pending.
ELIGIBLE_STATUSES = {
    StepStatus.PENDING,
    StepStatus.FAILED,
    StepStatus.BLOCKED,
    StepStatus.IN_PROGRESS,
}


class BatchReport(BaseModel):
    """What a batch run did, in order."""

    results: List[StepRunResult] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    blocked: List[str] = Field(default_factory=list)
    halted_on: Optional[str] = None
    auth_expired: bool = False

    @property
    def succeeded(self) -> bool:
        return self.halted_on is None

    @property
    def executed(self) -> List[str]:
        return [r.step_id for r in self.results]


async def run_all_pending(
    runner: StepRunner,
    session: SetupSession,
    order: Optional[Iterable[str]] = None,
) -> BatchReport:
    """Run every automatable step that is not yet complete, one at a time.

    Steps whose prerequisites are not all completed are marked blocked and
    not invoked. The batch stops at the first failed step, which includes an
    expired credential.
    """

    registry = runner.registry
    step_ids = list(order) if order is not None else registry.topological_order()
    report = BatchReport()

    for step_id in step_ids:
        step = registry.get(step_id)
        if step.manual or session.status_of(step_id) not in ELIGIBLE_STATUSES:
            report.skipped.append(step_id)
            continue

        waiting = [d for d in sorted(step.requires) if session.status_of(d) != StepStatus.COMPLETED]
        if waiting:
            logger.info(f"Step {step_id} blocked on {', '.join(waiting)}")
            session.mark_blocked(step_id, waiting)
            report.blocked.append(step_id)
            continue

        session.begin(step_id)
        result = await runner.run(step_id, session.context())
        session.apply(result)
        report.results.append(result)

        if result.status == StepStatus.FAILED:
            report.halted_on = step_id
            report.auth_expired = result.auth_expired
            logger.warning(
                f"Batch halted at {step_id}: {result.error.message if result.error else result.message}"
            )
            break

    logger.info(
        f"Batch finished: executed={report.executed} blocked={report.blocked} halted_on={report.halted_on}"
    )
    return report


async def check_all(
    runner: StepRunner,
    session: SetupSession,
    order: Optional[Iterable[str]] = None,
) -> BatchReport:
    """Refresh status by running only the read-only checks.

    Completed checks mark their step server-verified. Outputs found by any
    check are merged, completed or not. Nothing is executed. Stops when
    credentials have expired.
    """

    registry = runner.registry
    step_ids = list(order) if order is not None else registry.topological_order()
    report = BatchReport()

    for step_id in step_ids:
        if session.status_of(step_id) == StepStatus.COMPLETED:
            report.skipped.append(step_id)
            continue
        check = await runner.check(step_id, session.context())
        outputs, diagnostics = split_outputs(check.outputs)
        session.record_check(step_id, check.completed, check.message, outputs)
        report.results.append(
            StepRunResult(
                step_id=step_id,
                status=session.status_of(step_id),
                completion_type=session.info(step_id).completion_type,
                message=check.message,
                outputs=outputs,
                diagnostics=diagnostics,
                check=check,
            )
        )
        if diagnostics.get("errorCode") == AUTH_EXPIRED:
            report.halted_on = step_id
            report.auth_expired = True
            logger.warning(f"Status refresh halted at {step_id}: authentication expired")
            break

    return report
