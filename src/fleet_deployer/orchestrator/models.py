"""Data models for the orchestrator module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from .plan import HostPlan


class StepStatus(Enum):
    """Outcome of one command execution."""
    SUCCESS = "success"
    FAILED = "failed"            # 非零退出码
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"  # 连接失败


class StepPhase(Enum):
    FORWARD = "forward"
    UNDO = "undo"


class HostState(Enum):
    """Per-host state machine: Pending -> Running -> terminal."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"

    @property
    def terminal(self) -> bool:
        return self in (HostState.SUCCEEDED, HostState.FAILED, HostState.ROLLED_BACK)


class RunOutcome(Enum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    """Record of a single forward or undo command on one host."""
    step_name: str
    phase: StepPhase
    status: StepStatus
    command: str
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    attempt: int = 1
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    finished_at: str = field(default_factory=lambda: datetime.now().isoformat())
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.SUCCESS

    @property
    def duration_seconds(self) -> float:
        start = datetime.fromisoformat(self.started_at)
        end = datetime.fromisoformat(self.finished_at)
        return (end - start).total_seconds()

    def to_dict(self, max_output: int = 1000) -> Dict[str, Any]:
        return {
            "step": self.step_name,
            "phase": self.phase.value,
            "status": self.status.value,
            "attempt": self.attempt,
            "command": self.command,
            "exit_code": self.exit_code,
            "stdout": self.stdout[:max_output],
            "stderr": self.stderr[:max_output],
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "error": self.error,
        }


@dataclass(frozen=True)
class HostReport:
    """Terminal state and ordered results for one host."""
    host: str
    state: HostState
    results: Tuple[StepResult, ...] = ()
    error: Optional[str] = None

    @property
    def forward_results(self) -> Tuple[StepResult, ...]:
        return tuple(r for r in self.results if r.phase is StepPhase.FORWARD)

    @property
    def undo_results(self) -> Tuple[StepResult, ...]:
        return tuple(r for r in self.results if r.phase is StepPhase.UNDO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "state": self.state.value,
            "error": self.error,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class DeploymentRun:
    """Full record of one deployment invocation across all hosts.

    Built once by the orchestrator when every host has reached a terminal
    state; the host map is exposed read-only.
    """
    run_id: str
    plans: Tuple["HostPlan", ...]
    hosts: Mapping[str, HostReport]
    outcome: RunOutcome
    started_at: str
    finished_at: str
    cancelled: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "plans", tuple(self.plans))
        object.__setattr__(self, "hosts", MappingProxyType(dict(self.hosts)))

    @property
    def results(self) -> Mapping[str, Tuple[StepResult, ...]]:
        """Map from host to its ordered StepResults."""
        return MappingProxyType({host: report.results for host, report in self.hosts.items()})

    @property
    def succeeded(self) -> bool:
        return self.outcome is RunOutcome.SUCCEEDED

    @property
    def duration_seconds(self) -> float:
        start = datetime.fromisoformat(self.started_at)
        end = datetime.fromisoformat(self.finished_at)
        return (end - start).total_seconds()

    def state_of(self, host: str) -> HostState:
        return self.hosts[host].state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "outcome": self.outcome.value,
            "cancelled": self.cancelled,
            "start_time": self.started_at,
            "end_time": self.finished_at,
            "plans": [plan.to_dict() for plan in self.plans],
            "hosts": {host: report.to_dict() for host, report in self.hosts.items()},
        }
