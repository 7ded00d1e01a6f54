"""High-level workflow: load plans, run them, report the outcome."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

from .config import AppConfig
from .executor import RemoteExecutor
from .local import LocalExecutor
from .orchestrator import (
    DeploymentOrchestrator, DeploymentRun, HostPlan, build_plans, format_summary,
    load_plan_file, write_report,
)
from .ssh import SSHCredentials, SSHExecutor
from .utils.logging import get_logger

logger = get_logger(__name__)

PlanSource = Union[str, Path, Mapping[str, Any], Sequence[HostPlan]]


@dataclass
class WorkflowResult:
    """A finished run plus the location of its JSON report."""

    run: DeploymentRun
    report_path: Optional[Path] = None

    @property
    def summary(self) -> str:
        return format_summary(self.run)


def create_executor(config: AppConfig) -> RemoteExecutor:
    """Build the executor selected by ``deployment.executor``."""
    kind = config.deployment.executor
    if kind == "ssh":
        return SSHExecutor(lambda host: SSHCredentials.from_config(host, config.deployment))
    if kind == "local":
        return LocalExecutor()
    raise ValueError(f"Unknown executor '{kind}', expected 'ssh' or 'local'")


def resolve_plans(source: PlanSource) -> list:
    if isinstance(source, (str, Path)):
        return load_plan_file(source)
    if isinstance(source, Mapping):
        return build_plans(source)
    return list(source)


class DeploymentWorkflow:
    """Coordinates a deployment from plan definition to written report."""

    def __init__(
        self,
        config: AppConfig,
        executor: Optional[RemoteExecutor] = None,
    ) -> None:
        self.config = config
        self.executor = executor or create_executor(config)
        self.orchestrator = DeploymentOrchestrator.from_config(config, self.executor)

    def cancel(self) -> None:
        self.orchestrator.cancel()

    def run(self, source: PlanSource) -> WorkflowResult:
        # 计划在连接任何主机之前完成校验
        plans = resolve_plans(source)
        logger.info("Preparing deployment for %d host(s)", len(plans))

        try:
            run = self.orchestrator.run(plans)
        finally:
            self.executor.close_all()

        report_path = None
        if self.config.report.enabled:
            report_path = write_report(run, self.config.report.report_dir)

        for line in format_summary(run).splitlines():
            logger.info(line)
        return WorkflowResult(run=run, report_path=report_path)
