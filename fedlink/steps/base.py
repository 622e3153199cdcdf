"""Step definition record and the factory that wraps step logic."""

from __future__ import annotations

from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..contracts import AutomationClass, Provider, StepActivity, StepCategory
from .wrappers import CheckFn, ExecuteFn, with_check_handling, with_execution_handling


class StepDefinition(BaseModel):
    """Static description of one setup step.

    ``check`` and ``execute`` are already wrapped with validation and error
    classification when built through :func:`define_step`.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    title: str
    description: str = ""
    category: StepCategory
    activity: StepActivity
    provider: Provider
    automation_class: AutomationClass = AutomationClass.AUTOMATED
    requires: FrozenSet[str] = frozenset()
    required_output_keys: Tuple[str, ...] = ()
    produced_output_keys: Tuple[str, ...] = ()
    confirmation_outputs: Dict[str, Any] = Field(default_factory=dict)
    admin_url: Optional[str] = None
    check: Optional[Callable[..., object]] = None
    execute: Optional[Callable[..., object]] = None

    @property
    def automatable(self) -> bool:
        return self.automation_class != AutomationClass.MANUAL

    @property
    def manual(self) -> bool:
        return self.automation_class == AutomationClass.MANUAL


def define_step(
    *,
    id: str,
    title: str,
    category: StepCategory,
    activity: StepActivity,
    provider: Provider,
    description: str = "",
    automation_class: AutomationClass = AutomationClass.AUTOMATED,
    requires: Iterable[str] = (),
    required_outputs: Iterable[str] = (),
    produces: Iterable[str] = (),
    confirmation_outputs: Optional[Mapping[str, Any]] = None,
    admin_url: Optional[str] = None,
    check: Optional[CheckFn] = None,
    execute: Optional[ExecuteFn] = None,
) -> StepDefinition:
    requires = frozenset(requires)
    required = tuple(str(k) for k in required_outputs)
    hint = ", ".join(sorted(requires)) if requires else "previous steps"
    return StepDefinition(
        id=id,
        title=title,
        description=description,
        category=category,
        activity=activity,
        provider=provider,
        automation_class=automation_class,
        requires=requires,
        required_output_keys=required,
        produced_output_keys=tuple(str(k) for k in produces),
        confirmation_outputs={str(k): v for k, v in (confirmation_outputs or {}).items()},
        admin_url=admin_url,
        check=with_check_handling(id, required)(check) if check else None,
        execute=(
            with_execution_handling(id, required, hint=hint)(execute) if execute else None
        ),
    )
