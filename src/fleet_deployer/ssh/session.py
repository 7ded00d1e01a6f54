"""SSH session management built on Paramiko."""

from __future__ import annotations

import socket
import time
from dataclasses import dataclass
from typing import Callable, Optional

import paramiko

from .credentials import SSHCredentials


class SSHConnectionError(RuntimeError):
    """Raised when an SSH connection cannot be established or is lost."""

    pass


class SSHCommandTimeout(RuntimeError):
    """Raised when a remote command exceeds its total timeout."""

    def __init__(self, command: str, timeout: float, stdout: str = "", stderr: str = "") -> None:
        super().__init__(f"Command exceeded {timeout} seconds: {command}")
        self.command = command
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr


@dataclass
class SSHCommandResult:
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class SSHSession:
    """High-level wrapper around paramiko.SSHClient."""

    poll_interval = 0.1

    def __init__(
        self,
        credentials: SSHCredentials,
        *,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
    ) -> None:
        self.credentials = credentials
        self._client_factory = client_factory or paramiko.SSHClient
        self._client: Optional[paramiko.SSHClient] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def __enter__(self) -> "SSHSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def connect(self) -> None:
        if self._client:
            return
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            connect_kwargs = {
                "hostname": self.credentials.host,
                "port": self.credentials.port,
                "username": self.credentials.username,
                "timeout": self.credentials.timeout,
                "look_for_keys": False,
                "allow_agent": False,
            }
            if self.credentials.auth_method == "password":
                connect_kwargs["password"] = self.credentials.password
            else:
                connect_kwargs["key_filename"] = self.credentials.key_path
                if self.credentials.passphrase:
                    connect_kwargs["passphrase"] = self.credentials.passphrase
            client.connect(**connect_kwargs)
        except (paramiko.SSHException, socket.error, OSError) as exc:  # pragma: no cover - network errors hard to simulate
            client.close()
            raise SSHConnectionError(str(exc)) from exc
        self._client = client

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def run(self, command: str, *, timeout: Optional[float] = None) -> SSHCommandResult:
        """
        Execute a command on the remote server and wait for it to exit.

        Args:
            command: The command to execute
            timeout: Total timeout in seconds; None waits indefinitely

        Returns:
            SSHCommandResult with command output and exit status

        Raises:
            SSHCommandTimeout: the command was still running after `timeout`.
            SSHConnectionError: the session dropped while the command ran.
        """
        if not self._client:
            self.connect()
        assert self._client is not None

        stdout_chunks = []
        stderr_chunks = []
        try:
            _, stdout, stderr = self._client.exec_command(command)
            channel = stdout.channel
            channel.setblocking(0)
            start_time = time.monotonic()

            while not channel.exit_status_ready():
                self._drain(channel, stdout_chunks, stderr_chunks)
                if timeout is not None and time.monotonic() - start_time > timeout:
                    channel.close()
                    raise SSHCommandTimeout(
                        command,
                        timeout,
                        stdout="".join(stdout_chunks).strip(),
                        stderr="".join(stderr_chunks).strip(),
                    )
                time.sleep(self.poll_interval)

            # 读取剩余输出
            self._drain(channel, stdout_chunks, stderr_chunks)
            exit_status = channel.recv_exit_status()
        except (paramiko.SSHException, EOFError, OSError) as exc:
            # 连接已断开：丢弃旧 client，下次调用重新连接
            self.close()
            raise SSHConnectionError(str(exc) or "SSH session lost") from exc

        return SSHCommandResult(
            command=command,
            stdout="".join(stdout_chunks).strip(),
            stderr="".join(stderr_chunks).strip(),
            exit_status=exit_status,
        )

    @staticmethod
    def _drain(channel, stdout_chunks: list, stderr_chunks: list) -> None:
        while channel.recv_ready():
            stdout_chunks.append(channel.recv(4096).decode("utf-8", errors="replace"))
        while channel.recv_stderr_ready():
            stderr_chunks.append(channel.recv_stderr(4096).decode("utf-8", errors="replace"))
