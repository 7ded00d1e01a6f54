import unittest

import paramiko

from fleet_deployer.config import DeploymentConfig
from fleet_deployer.errors import CommandTimeout, RemoteConnectionError
from fleet_deployer.orchestrator import DeploymentOrchestrator, HostPlan, HostState, Step, StepStatus
from fleet_deployer.ssh import SSHConnectionError, SSHCredentials, SSHExecutor, SSHSession
from fleet_deployer.ssh.session import SSHCommandTimeout


class FakeChannel:
    def __init__(self, stdout: str = "", stderr: str = "", status: int = 0, finishes: bool = True) -> None:
        self._stdout = stdout.encode("utf-8")
        self._stderr = stderr.encode("utf-8")
        self._status = status
        self._finishes = finishes
        self.closed = False

    def setblocking(self, flag) -> None:
        self.blocking = flag

    def exit_status_ready(self) -> bool:
        return self._finishes

    def recv_ready(self) -> bool:
        return bool(self._stdout)

    def recv(self, size: int) -> bytes:
        chunk, self._stdout = self._stdout[:size], self._stdout[size:]
        return chunk

    def recv_stderr_ready(self) -> bool:
        return bool(self._stderr)

    def recv_stderr(self, size: int) -> bytes:
        chunk, self._stderr = self._stderr[:size], self._stderr[size:]
        return chunk

    def recv_exit_status(self) -> int:
        return self._status

    def close(self) -> None:
        self.closed = True


class FakeStream:
    def __init__(self, channel: FakeChannel) -> None:
        self.channel = channel


class FakeSSHClient:
    next_channel: FakeChannel = FakeChannel("ok")

    def __init__(self) -> None:
        self.connected = False
        self.closed = False
        self.commands: list[str] = []

    def set_missing_host_key_policy(self, policy) -> None:  # pragma: no cover - noop
        self.policy = policy

    def connect(self, **kwargs) -> None:
        self.connected = True
        self.kwargs = kwargs

    def exec_command(self, command: str, timeout=None):
        self.commands.append(command)
        channel = FakeSSHClient.next_channel
        return (None, FakeStream(channel), FakeStream(channel))

    def close(self) -> None:
        self.closed = True


class DroppedSSHClient(FakeSSHClient):
    """Connects fine, then behaves like a session the server has closed."""

    def exec_command(self, command: str, timeout=None):
        self.commands.append(command)
        raise paramiko.SSHException("SSH session not active")


class DroppedChannel(FakeChannel):
    def recv_exit_status(self) -> int:
        raise EOFError()


def make_session(channel: FakeChannel) -> SSHSession:
    FakeSSHClient.next_channel = channel
    credentials = SSHCredentials(host="example.com", username="root", key_path="/tmp/id_rsa")
    session = SSHSession(credentials, client_factory=FakeSSHClient)  # type: ignore[arg-type]
    session.poll_interval = 0
    return session


class SSHSessionTests(unittest.TestCase):
    def test_run_command_uses_client_factory(self) -> None:
        session = make_session(FakeChannel("ok"))
        with session:
            result = session.run("echo test")
            self.assertEqual(session._client.commands, ["echo test"])  # type: ignore[union-attr]
            self.assertEqual(session._client.kwargs["key_filename"], "/tmp/id_rsa")  # type: ignore[union-attr]
        self.assertTrue(result.ok)
        self.assertEqual(result.stdout, "ok")
        self.assertFalse(session.connected)

    def test_password_auth_passes_password(self) -> None:
        FakeSSHClient.next_channel = FakeChannel()
        credentials = SSHCredentials(
            host="example.com", username="root", auth_method="password", password="secret"
        )
        session = SSHSession(credentials, client_factory=FakeSSHClient)  # type: ignore[arg-type]
        session.connect()
        self.assertEqual(session._client.kwargs["password"], "secret")  # type: ignore[union-attr]
        session.close()

    def test_captures_stderr_and_exit_status(self) -> None:
        session = make_session(FakeChannel("", "No such container: app\n", status=1))
        result = session.run("docker stop app")
        self.assertFalse(result.ok)
        self.assertEqual(result.exit_status, 1)
        self.assertEqual(result.stderr, "No such container: app")

    def test_timeout_raises(self) -> None:
        channel = FakeChannel("partial", finishes=False)
        session = make_session(channel)
        with self.assertRaises(SSHCommandTimeout) as ctx:
            session.run("sleep 100", timeout=0.01)
        self.assertTrue(channel.closed)
        self.assertEqual(ctx.exception.stdout, "partial")

    def test_dropped_session_raises_connection_error(self) -> None:
        credentials = SSHCredentials(host="example.com", username="root", key_path="/tmp/id_rsa")
        session = SSHSession(credentials, client_factory=DroppedSSHClient)  # type: ignore[arg-type]
        session.connect()
        client = session._client
        with self.assertRaises(SSHConnectionError) as ctx:
            session.run("docker ps")
        self.assertIn("not active", str(ctx.exception))
        self.assertTrue(client.closed)  # type: ignore[union-attr]
        self.assertFalse(session.connected)

    def test_eof_while_reading_exit_status(self) -> None:
        session = make_session(DroppedChannel("half"))
        with self.assertRaises(SSHConnectionError):
            session.run("docker pull app")
        self.assertFalse(session.connected)


class SSHCredentialsTests(unittest.TestCase):
    def test_validate(self) -> None:
        with self.assertRaises(ValueError):
            SSHCredentials(host="h", username="u", auth_method="password").validate()
        with self.assertRaises(ValueError):
            SSHCredentials(host="h", username="u", auth_method="key").validate()

    def test_from_config_parses_user_and_port(self) -> None:
        deployment = DeploymentConfig(default_username="deploy", default_key_path="/keys/id")
        credentials = SSHCredentials.from_config("admin@web2.example.com:2222", deployment)
        self.assertEqual(credentials.host, "web2.example.com")
        self.assertEqual(credentials.username, "admin")
        self.assertEqual(credentials.port, 2222)
        self.assertEqual(credentials.key_path, "/keys/id")

    def test_from_config_ipv6_addresses(self) -> None:
        deployment = DeploymentConfig(default_username="deploy", default_port=22)
        bare = SSHCredentials.from_config("fe80::1", deployment)
        self.assertEqual((bare.host, bare.port), ("fe80::1", 22))
        bracketed = SSHCredentials.from_config("admin@[::1]:2222", deployment)
        self.assertEqual((bracketed.host, bracketed.username, bracketed.port), ("::1", "admin", 2222))
        self.assertEqual(SSHCredentials.from_config("[::1]", deployment).port, 22)

    def test_from_config_uses_defaults(self) -> None:
        deployment = DeploymentConfig(default_username="deploy", default_port=2200)
        credentials = SSHCredentials.from_config("web1", deployment)
        self.assertEqual((credentials.host, credentials.username, credentials.port), ("web1", "deploy", 2200))

    def test_from_config_requires_username(self) -> None:
        with self.assertRaises(ValueError):
            SSHCredentials.from_config("web1", DeploymentConfig())


class StubSession:
    def __init__(self, credentials, *, fail_connect: bool = False, run_error=None) -> None:
        self.credentials = credentials
        self.fail_connect = fail_connect
        self.run_error = run_error
        self.connected = False
        self.closed = False
        self.commands = []

    def connect(self) -> None:
        if self.fail_connect:
            raise SSHConnectionError("No route to host")
        self.connected = True

    def run(self, command, *, timeout=None):
        if self.run_error:
            raise self.run_error
        self.commands.append((command, timeout))
        return type("Result", (), {"stdout": "out", "stderr": "", "exit_status": 0})()

    def close(self) -> None:
        self.closed = True
        self.connected = False


def credentials_for(host: str) -> SSHCredentials:
    return SSHCredentials(host=host, username="deploy", key_path="/keys/id")


class SSHExecutorTests(unittest.TestCase):
    def test_reuses_session_per_host(self) -> None:
        sessions = []

        def factory(credentials):
            session = StubSession(credentials)
            sessions.append(session)
            return session

        executor = SSHExecutor(credentials_for, session_factory=factory)  # type: ignore[arg-type]
        outcome = executor.execute("web1", "docker ps", timeout=10)
        executor.execute("web1", "docker images")
        executor.execute("web2", "docker ps")

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.stdout, "out")
        self.assertEqual(len(sessions), 2)
        self.assertEqual(sessions[0].commands, [("docker ps", 10), ("docker images", None)])

        executor.close("web1")
        self.assertTrue(sessions[0].closed)
        executor.close_all()
        self.assertTrue(sessions[1].closed)

    def test_connection_failure_becomes_remote_connection_error(self) -> None:
        executor = SSHExecutor(
            credentials_for,
            session_factory=lambda c: StubSession(c, fail_connect=True),  # type: ignore[arg-type]
        )
        with self.assertRaises(RemoteConnectionError) as ctx:
            executor.execute("web1", "docker ps")
        self.assertIsInstance(ctx.exception, ConnectionError)
        self.assertEqual(ctx.exception.host, "web1")

    def test_timeout_becomes_command_timeout(self) -> None:
        executor = SSHExecutor(
            credentials_for,
            session_factory=lambda c: StubSession(c, run_error=SSHCommandTimeout("sleep 9", 1)),  # type: ignore[arg-type]
        )
        with self.assertRaises(CommandTimeout) as ctx:
            executor.execute("web1", "sleep 9", timeout=1)
        self.assertIsInstance(ctx.exception, TimeoutError)

    def test_dropped_session_becomes_remote_connection_error(self) -> None:
        executor = SSHExecutor(
            credentials_for,
            session_factory=lambda c: SSHSession(c, client_factory=DroppedSSHClient),  # type: ignore[arg-type]
        )
        with self.assertRaises(RemoteConnectionError) as ctx:
            executor.execute("web1", "docker ps")
        self.assertEqual(ctx.exception.host, "web1")

    def test_dropped_session_is_reported_as_unreachable_step(self) -> None:
        executor = SSHExecutor(
            credentials_for,
            session_factory=lambda c: SSHSession(c, client_factory=DroppedSSHClient),  # type: ignore[arg-type]
        )
        run = DeploymentOrchestrator(executor).run([HostPlan("web1", [Step("a", "docker ps")])])

        report = run.hosts["web1"]
        self.assertEqual(report.state, HostState.FAILED)
        self.assertEqual(len(report.results), 1)
        self.assertEqual(report.results[0].status, StepStatus.UNREACHABLE)
        self.assertEqual(report.results[0].step_name, "a")


if __name__ == "__main__":
    unittest.main()
