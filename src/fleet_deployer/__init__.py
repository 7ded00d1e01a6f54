"""fleet-deployer: sequential remote deployments with rollback."""

from .config import AppConfig, load_config
from .errors import (
    CommandTimeout,
    CriticalStepFailure,
    FleetDeployerError,
    PlanError,
    RemoteConnectionError,
    StepFailure,
)
from .executor import CommandOutcome, RemoteExecutor
from .orchestrator import (
    DeploymentOrchestrator,
    DeploymentRun,
    HostPlan,
    HostState,
    RunOutcome,
    Step,
    StepResult,
)
from .workflow import DeploymentWorkflow, WorkflowResult

__all__ = [
    "AppConfig",
    "load_config",
    "CommandTimeout",
    "CriticalStepFailure",
    "FleetDeployerError",
    "PlanError",
    "RemoteConnectionError",
    "StepFailure",
    "CommandOutcome",
    "RemoteExecutor",
    "DeploymentOrchestrator",
    "DeploymentRun",
    "HostPlan",
    "HostState",
    "RunOutcome",
    "Step",
    "StepResult",
    "DeploymentWorkflow",
    "WorkflowResult",
]

__version__ = "0.1.0"
