"""Local command execution session."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Dict, Optional

from ..errors import CommandTimeout
from ..executor import CommandOutcome, RemoteExecutor

logger = logging.getLogger(__name__)


@dataclass
class LocalCommandResult:
    """Result of executing a local command."""
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class LocalSession:
    """
    Local command execution session.

    Provides the same interface as SSHSession but executes commands locally
    through the system shell.
    """

    def __init__(self, working_dir: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> None:
        """
        Initialize local session.

        Args:
            working_dir: Working directory for commands. Defaults to home directory.
            env: Extra environment variables merged over os.environ.
        """
        self.working_dir = working_dir or os.path.expanduser("~")
        self.extra_env = dict(env or {})

    def run(self, command: str, *, timeout: Optional[float] = None) -> LocalCommandResult:
        """Run `command` and wait for completion.

        Raises:
            subprocess.TimeoutExpired: the command did not finish in time.
        """
        result = subprocess.run(
            command,
            shell=True,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=self.working_dir,
            env={**os.environ, **self.extra_env},
        )
        return LocalCommandResult(
            command=command,
            stdout=result.stdout.strip(),
            stderr=result.stderr.strip(),
            exit_status=result.returncode,
        )


class LocalExecutor(RemoteExecutor):
    """Runs every host's commands on this machine.

    Useful for dry runs against a local container runtime. The host name is
    exported to the command as ``FLEET_DEPLOYER_HOST``.
    """

    def __init__(self, working_dir: Optional[str] = None) -> None:
        self.working_dir = working_dir

    def execute(
        self, host: str, command: str, timeout: Optional[float] = None
    ) -> CommandOutcome:
        session = LocalSession(self.working_dir, env={"FLEET_DEPLOYER_HOST": host})
        logger.debug("[%s] local: %s", host, command)
        try:
            result = session.run(command, timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise CommandTimeout(host, command, timeout) from exc
        return CommandOutcome(
            exit_code=result.exit_status,
            stdout=result.stdout,
            stderr=result.stderr,
        )
