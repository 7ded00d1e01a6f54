"""RemoteExecutor adapter that runs commands over SSH sessions."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

from ..errors import CommandTimeout, RemoteConnectionError
from ..executor import CommandOutcome, RemoteExecutor
from .credentials import SSHCredentials
from .session import SSHCommandTimeout, SSHConnectionError, SSHSession

logger = logging.getLogger(__name__)


class SSHExecutor(RemoteExecutor):
    """Keeps one SSHSession per host and reuses it across steps.

    Sessions are opened lazily on the first command for a host. Only the worker
    that owns a host talks to that host's session; the lock guards the session
    map itself.
    """

    def __init__(
        self,
        credentials_for: Callable[[str], SSHCredentials],
        *,
        session_factory: Callable[[SSHCredentials], SSHSession] | None = None,
    ) -> None:
        self._credentials_for = credentials_for
        self._session_factory = session_factory or SSHSession
        self._sessions: Dict[str, SSHSession] = {}
        self._lock = threading.Lock()

    def _session(self, host: str) -> SSHSession:
        with self._lock:
            session = self._sessions.get(host)
            if session is None:
                credentials = self._credentials_for(host)
                credentials.validate()
                session = self._session_factory(credentials)
                self._sessions[host] = session
        if not session.connected:
            logger.debug("Connecting to %s", host)
            try:
                session.connect()
            except SSHConnectionError as exc:
                raise RemoteConnectionError(host, str(exc)) from exc
        return session

    def execute(
        self, host: str, command: str, timeout: Optional[float] = None
    ) -> CommandOutcome:
        session = self._session(host)
        try:
            result = session.run(command, timeout=timeout)
        except SSHCommandTimeout as exc:
            raise CommandTimeout(host, command, timeout) from exc
        except SSHConnectionError as exc:
            logger.warning("Lost SSH session to %s: %s", host, exc)
            raise RemoteConnectionError(host, str(exc)) from exc
        return CommandOutcome(
            exit_code=result.exit_status,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    def close(self, host: str) -> None:
        with self._lock:
            session = self._sessions.pop(host, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()
