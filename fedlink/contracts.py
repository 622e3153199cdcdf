"""Core data contracts for the fedlink step engine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import AUTH_EXPIRED, MissingDependencyError
from .outputs import is_present

StepId = str


class AutomationClass(str, Enum):
    AUTOMATED = "automated"
    SUPERVISED = "supervised"
    MANUAL = "manual"


class StepCategory(str, Enum):
    GOOGLE = "Google"
    MICROSOFT = "Microsoft"
    SSO = "SSO"


class StepActivity(str, Enum):
    FOUNDATION = "Foundation"
    PROVISIONING = "Provisioning"
    SSO = "SSO"


class Provider(str, Enum):
    GOOGLE = "google"
    MICROSOFT = "microsoft"


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"


class CompletionType(str, Enum):
    SERVER_VERIFIED = "server-verified"
    USER_MARKED = "user-marked"


class StepError(BaseModel):
    """Failure details attached to a result or status."""

    message: str
    code: Optional[str] = None


class StepCheckResult(BaseModel):
    """Outcome of a read-only completion probe."""

    completed: bool
    message: str = ""
    outputs: Optional[Dict[str, Any]] = None


class StepExecutionResult(BaseModel):
    """Outcome of a step's mutating action."""

    success: bool
    message: Optional[str] = None
    resource_url: Optional[str] = None
    outputs: Optional[Dict[str, Any]] = None
    error: Optional[StepError] = None


class StepStatusInfo(BaseModel):
    """Per-step progress record owned by the caller."""

    status: StepStatus = StepStatus.PENDING
    completion_type: Optional[CompletionType] = None
    error: Optional[StepError] = None
    message: Optional[str] = None
    last_checked_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class StepContext(BaseModel):
    """Everything a step operation may read.

    ``outputs`` is a snapshot of the output store taken when the context
    was built; steps never write to it.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    domain: str = ""
    tenant_id: str = ""
    outputs: Mapping[str, Any] = Field(default_factory=dict)
    providers: Optional[Any] = Field(default=None, exclude=True)

    def output(self, key: str) -> Any:
        return self.outputs.get(str(key))

    def require(self, key: str) -> Any:
        value = self.outputs.get(str(key))
        if not is_present(value):
            raise MissingDependencyError([str(key)])
        return value

    def with_providers(self, providers: Any) -> "StepContext":
        return self.model_copy(update={"providers": providers})

    def merged(self, outputs: Mapping[str, Any]) -> "StepContext":
        if not outputs:
            return self
        return self.model_copy(update={"outputs": {**self.outputs, **outputs}})


class StepRunResult(BaseModel):
    """Structured result of one check-then-execute pass over a step."""

    step_id: StepId
    status: StepStatus
    completion_type: Optional[CompletionType] = None
    message: Optional[str] = None
    resource_url: Optional[str] = None
    outputs: Dict[str, Any] = Field(default_factory=dict)
    diagnostics: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[StepError] = None
    check: Optional[StepCheckResult] = None
    execution: Optional[StepExecutionResult] = None
    requires_confirmation: bool = False

    @property
    def auth_expired(self) -> bool:
        return self.error is not None and self.error.code == AUTH_EXPIRED
