"""Orchestrator module for step-based deployment execution.

This module provides a structured approach to deployment:
- Step / CommandTemplate: A named command with a declarative undo action
- HostPlan: Ordered steps bound to one host
- DeploymentOrchestrator: Runs host plans concurrently, with retry and rollback
- DeploymentRun / HostReport / StepResult: Immutable record of a run
"""

from .models import (
    StepStatus,
    StepPhase,
    HostState,
    RunOutcome,
    StepResult,
    HostReport,
    DeploymentRun,
)
from .template import CommandTemplate
from .step import Step
from .plan import HostPlan, build_plans, load_plan_file, step_from_dict
from .presets import PRESETS, docker_redeploy_steps
from .orchestrator import DeploymentOrchestrator
from .report import build_report, format_summary, write_report

__all__ = [
    "StepStatus",
    "StepPhase",
    "HostState",
    "RunOutcome",
    "StepResult",
    "HostReport",
    "DeploymentRun",
    "CommandTemplate",
    "Step",
    "HostPlan",
    "build_plans",
    "load_plan_file",
    "step_from_dict",
    "PRESETS",
    "docker_redeploy_steps",
    "DeploymentOrchestrator",
    "build_report",
    "format_summary",
    "write_report",
]
