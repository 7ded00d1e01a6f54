"""Remote executor interface.

An executor runs one shell command on one host and reports the exit code and
captured output. Transport details (SSH, local subprocess, ...) live in the
adapters under :mod:`fleet_deployer.ssh` and :mod:`fleet_deployer.local`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CommandOutcome:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class RemoteExecutor(ABC):
    """Synchronous command runner used by steps."""

    @abstractmethod
    def execute(
        self, host: str, command: str, timeout: Optional[float] = None
    ) -> CommandOutcome:
        """Run `command` on `host` and wait for it to finish.

        Raises:
            RemoteConnectionError: the host could not be reached.
            CommandTimeout: the command did not finish within `timeout` seconds.
        """

    def close(self, host: str) -> None:
        """Release any resources held for `host`."""

    def close_all(self) -> None:
        """Release resources for every host."""
