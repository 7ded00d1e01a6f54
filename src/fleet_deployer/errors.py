"""Exception types for fleet-deployer."""

from __future__ import annotations

from typing import Optional


class FleetDeployerError(Exception):
    """Base class for all fleet-deployer errors."""


class PlanError(FleetDeployerError, ValueError):
    """Raised when a plan or step definition is invalid."""


class RemoteConnectionError(FleetDeployerError, ConnectionError):
    """Raised by executors when a host cannot be reached."""

    def __init__(self, host: str, message: str) -> None:
        super().__init__(f"{host}: {message}")
        self.host = host


class CommandTimeout(FleetDeployerError, TimeoutError):
    """Raised by executors when a command exceeds its timeout."""

    def __init__(self, host: str, command: str, timeout: Optional[float]) -> None:
        super().__init__(f"{host}: command timed out after {timeout}s: {command}")
        self.host = host
        self.command = command
        self.timeout = timeout


class StepFailure(FleetDeployerError):
    """A step's forward command failed."""

    def __init__(self, host: str, step_name: str, reason: str) -> None:
        super().__init__(f"[{host}] step '{step_name}' failed: {reason}")
        self.host = host
        self.step_name = step_name
        self.reason = reason


class CriticalStepFailure(StepFailure):
    """A critical step failed; the host must be rolled back."""
