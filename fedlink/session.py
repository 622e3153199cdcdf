"""Caller-side state: the output store and per-step status map."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from .contracts import (
    CompletionType,
    StepContext,
    StepRunResult,
    StepStatus,
    StepStatusInfo,
)
from .outputs import OutputStore, split_outputs
from .persistence.models import ProgressSnapshot

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SetupSession:
    """Progress of one administrator's federation setup.

    The session is the only writer of outputs and statuses. Run results are
    applied by merging outputs first and then recording the status, so a
    failed step never loses values it discovered.
    """

    def __init__(
        self,
        domain: str,
        tenant_id: str,
        outputs: Optional[OutputStore] = None,
        steps: Optional[Dict[str, StepStatusInfo]] = None,
    ) -> None:
        self.domain = domain
        self.tenant_id = tenant_id
        self.outputs = outputs if outputs is not None else OutputStore()
        self.steps: Dict[str, StepStatusInfo] = steps if steps is not None else {}

    def context(self) -> StepContext:
        return StepContext(
            domain=self.domain or "",
            tenant_id=self.tenant_id or "",
            outputs=self.outputs.snapshot(),
        )

    def status_of(self, step_id: str) -> StepStatus:
        info = self.steps.get(step_id)
        return info.status if info else StepStatus.PENDING

    def info(self, step_id: str) -> StepStatusInfo:
        return self.steps.get(step_id) or StepStatusInfo()

    # ------------------------------------------------------------------
    # Transitions
    def begin(self, step_id: str) -> None:
        info = self.info(step_id)
        self.steps[step_id] = info.model_copy(update={"status": StepStatus.IN_PROGRESS, "error": None})

    def apply(self, result: StepRunResult) -> StepStatusInfo:
        self.outputs.merge(result.outputs)
        metadata = dict(self.info(result.step_id).metadata)
        if result.resource_url:
            metadata["resourceUrl"] = result.resource_url
        if result.diagnostics:
            metadata["diagnostics"] = result.diagnostics
        else:
            metadata.pop("diagnostics", None)
        if result.requires_confirmation:
            metadata["requiresConfirmation"] = True
        info = StepStatusInfo(
            status=result.status,
            completion_type=result.completion_type,
            error=result.error,
            message=result.message,
            last_checked_at=_now(),
            metadata=metadata,
        )
        self.steps[result.step_id] = info
        logger.info(f"Step {result.step_id} -> {info.status.value}")
        return info

    def mark_complete(
        self, step_id: str, outputs: Optional[Mapping[str, Any]] = None
    ) -> StepStatusInfo:
        """Record explicit user confirmation that a step is done."""

        self.outputs.merge(outputs)
        metadata = dict(self.info(step_id).metadata)
        metadata.pop("requiresConfirmation", None)
        info = StepStatusInfo(
            status=StepStatus.COMPLETED,
            completion_type=CompletionType.USER_MARKED,
            message="Marked complete by user.",
            last_checked_at=_now(),
            metadata=metadata,
        )
        self.steps[step_id] = info
        logger.info(f"Step {step_id} marked complete by user")
        return info

    def mark_blocked(self, step_id: str, waiting_on: Iterable[str]) -> StepStatusInfo:
        waiting = sorted(waiting_on)
        info = StepStatusInfo(
            status=StepStatus.BLOCKED,
            message=f"Waiting on: {', '.join(waiting)}",
            last_checked_at=_now(),
            metadata={**self.info(step_id).metadata, "waitingOn": waiting},
        )
        self.steps[step_id] = info
        return info

    def record_check(
        self, step_id: str, completed: bool, message: str, outputs: Optional[Mapping[str, Any]] = None
    ) -> StepStatusInfo:
        """Record a read-only check; only completed checks change status.

        Outputs the check found are merged either way. Diagnostics from an
        incomplete check are kept in the step metadata.
        """

        found, diagnostics = split_outputs(outputs)
        self.outputs.merge(found)
        current = self.info(step_id)
        if completed:
            info = StepStatusInfo(
                status=StepStatus.COMPLETED,
                completion_type=CompletionType.SERVER_VERIFIED,
                message=message,
                last_checked_at=_now(),
                metadata={k: v for k, v in current.metadata.items() if k != "diagnostics"},
            )
        else:
            metadata = dict(current.metadata)
            if diagnostics:
                metadata["diagnostics"] = diagnostics
            info = current.model_copy(
                update={"message": message, "last_checked_at": _now(), "metadata": metadata}
            )
        self.steps[step_id] = info
        return info

    def reset(self, step_id: Optional[str] = None) -> None:
        """Forget one step's status, or all progress and outputs."""

        if step_id is None:
            self.steps.clear()
            self.outputs.clear()
        else:
            self.steps.pop(step_id, None)

    # ------------------------------------------------------------------
    # Persistence
    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            domain=self.domain,
            tenant_id=self.tenant_id,
            steps={k: v.model_copy() for k, v in self.steps.items()},
            outputs=self.outputs.snapshot(),
        )

    @classmethod
    def from_snapshot(cls, snapshot: ProgressSnapshot) -> "SetupSession":
        return cls(
            domain=snapshot.domain,
            tenant_id=snapshot.tenant_id or "",
            outputs=OutputStore(snapshot.outputs),
            steps=dict(snapshot.steps),
        )
