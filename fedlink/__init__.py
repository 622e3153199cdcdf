"""fedlink: Guided Google Workspace and Microsoft Entra ID federation setup."""

from .batch import BatchReport, check_all, run_all_pending
from .config import FedlinkConfig, load_config
from .contracts import (
    AutomationClass,
    CompletionType,
    StepCheckResult,
    StepContext,
    StepExecutionResult,
    StepRunResult,
    StepStatus,
)
from .outputs import OutputKey, OutputStore
from .persistence import get_repository
from .providers import ProviderSet, build_providers
from .registry import StepRegistry, default_registry
from .runner import StepRunner
from .session import SetupSession
from .steps import ALL_STEPS, StepDefinition, define_step

__version__ = "0.1.0"
__all__ = [
    "ALL_STEPS",
    "AutomationClass",
    "BatchReport",
    "CompletionType",
    "FedlinkConfig",
    "OutputKey",
    "OutputStore",
    "ProviderSet",
    "SetupSession",
    "StepCheckResult",
    "StepContext",
    "StepDefinition",
    "StepExecutionResult",
    "StepRegistry",
    "StepRunResult",
    "StepRunner",
    "StepStatus",
    "build_providers",
    "check_all",
    "define_step",
    "default_registry",
    "get_repository",
    "load_config",
    "run_all_pending",
]
