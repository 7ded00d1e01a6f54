"""Deployment steps: one forward command plus an optional undo command."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

from ..errors import PlanError
from .models import StepPhase, StepResult, StepStatus
from .template import CommandTemplate

if TYPE_CHECKING:
    from ..executor import RemoteExecutor

logger = logging.getLogger(__name__)


def _as_template(value: Union[str, CommandTemplate, None]) -> Optional[CommandTemplate]:
    if value is None or isinstance(value, CommandTemplate):
        return value
    return CommandTemplate(value)


@dataclass(frozen=True)
class Step:
    """A named, idempotent unit of deployment work.

    Attributes:
        name: Unique name within a host plan.
        forward: Command that performs the step.
        undo: Command that reverses it, or None when there is nothing to undo.
        critical: A failure forces rollback of the host.
        idempotent: Safe to run more than once; only idempotent steps are retried.
        ignore_exit_code: Record a non-zero exit but treat the step as succeeded.
        timeout: Per-step timeout in seconds, overriding the orchestrator default.
        retries: Extra attempts after a failure, overriding the orchestrator default.
    """

    name: str
    forward: CommandTemplate
    undo: Optional[CommandTemplate] = None
    critical: bool = False
    idempotent: bool = True
    ignore_exit_code: bool = False
    timeout: Optional[float] = None
    retries: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise PlanError("Step name must not be empty")
        object.__setattr__(self, "forward", _as_template(self.forward))
        object.__setattr__(self, "undo", _as_template(self.undo))
        if self.timeout is not None and self.timeout <= 0:
            raise PlanError(f"Step '{self.name}': timeout must be positive")
        if self.retries is not None and self.retries < 0:
            raise PlanError(f"Step '{self.name}': retries must not be negative")

    @property
    def has_undo(self) -> bool:
        return self.undo is not None

    def run(
        self,
        executor: "RemoteExecutor",
        host: str,
        *,
        variables: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
        attempt: int = 1,
    ) -> StepResult:
        """Execute the forward command on `host`.

        A non-zero exit, a timeout or an unreachable host is reported in the
        returned StepResult rather than raised.
        """
        return self._execute(
            executor, host, self.forward, StepPhase.FORWARD,
            variables=variables,
            timeout=self.timeout or timeout,
            attempt=attempt,
            ignore_exit_code=self.ignore_exit_code,
        )

    def rollback(
        self,
        executor: "RemoteExecutor",
        host: str,
        *,
        variables: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Optional[StepResult]:
        """Execute the undo command on `host`; returns None for a no-op undo."""
        if self.undo is None:
            return None
        return self._execute(
            executor, host, self.undo, StepPhase.UNDO,
            variables=variables,
            timeout=self.timeout or timeout,
        )

    def _execute(
        self,
        executor: "RemoteExecutor",
        host: str,
        template: CommandTemplate,
        phase: StepPhase,
        *,
        variables: Optional[Mapping[str, Any]],
        timeout: Optional[float],
        attempt: int = 1,
        ignore_exit_code: bool = False,
    ) -> StepResult:
        command = template.render({"host": host, **(variables or {})})
        started_at = datetime.now().isoformat()
        try:
            outcome = executor.execute(host, command, timeout=timeout)
        except TimeoutError as exc:
            return StepResult(
                step_name=self.name,
                phase=phase,
                status=StepStatus.TIMEOUT,
                command=command,
                attempt=attempt,
                started_at=started_at,
                error=str(exc) or f"timed out after {timeout}s",
            )
        except ConnectionError as exc:
            return StepResult(
                step_name=self.name,
                phase=phase,
                status=StepStatus.UNREACHABLE,
                command=command,
                attempt=attempt,
                started_at=started_at,
                error=str(exc) or "host unreachable",
            )

        if outcome.ok or ignore_exit_code:
            status = StepStatus.SUCCESS
            error = None
            if not outcome.ok:
                logger.debug("[%s] %s: exit code %s ignored", host, self.name, outcome.exit_code)
        else:
            status = StepStatus.FAILED
            error = outcome.stderr or f"exit code {outcome.exit_code}"

        return StepResult(
            step_name=self.name,
            phase=phase,
            status=status,
            command=command,
            exit_code=outcome.exit_code,
            stdout=outcome.stdout,
            stderr=outcome.stderr,
            attempt=attempt,
            started_at=started_at,
            error=error,
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "forward_command": self.forward.source,
            "undo_command": self.undo.source if self.undo else None,
            "critical": self.critical,
            "idempotent": self.idempotent,
            "ignore_exit_code": self.ignore_exit_code,
            "timeout": self.timeout,
            "retries": self.retries,
        }
