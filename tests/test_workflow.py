import json
import tempfile
import unittest
from pathlib import Path

from fakes import ScriptedExecutor

from fleet_deployer.config import AppConfig
from fleet_deployer.errors import PlanError
from fleet_deployer.local import LocalExecutor
from fleet_deployer.orchestrator import HostState, RunOutcome
from fleet_deployer.ssh import SSHExecutor
from fleet_deployer.workflow import DeploymentWorkflow, create_executor


class WorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.config = AppConfig()
        self.config.orchestrator.retry_delay = 0
        self.config.report.report_dir = str(Path(self._tmp.name) / "reports")

    def test_runs_preset_plan_and_writes_report(self) -> None:
        executor = ScriptedExecutor()
        workflow = DeploymentWorkflow(self.config, executor=executor)
        result = workflow.run(
            {
                "variables": {"image_name": "shop", "account": "acme"},
                "hosts": {
                    "web1": {"preset": "docker_redeploy"},
                    "web2": {"preset": "docker_redeploy", "variables": {"host_port": 8080}},
                },
            }
        )

        self.assertEqual(result.run.outcome, RunOutcome.SUCCEEDED)
        self.assertIn(
            "docker run -p 8080:80 -d --name shop acme/shop:latest",
            executor.commands_for("web2"),
        )
        self.assertIsNotNone(result.report_path)
        report = json.loads(result.report_path.read_text(encoding="utf-8"))
        self.assertEqual(report["outcome"], "succeeded")
        self.assertIn("web1: succeeded", result.summary)

    def test_loads_plan_from_file(self) -> None:
        plan_path = Path(self._tmp.name) / "plan.json"
        plan_path.write_text(
            json.dumps(
                {
                    "web1": [
                        {"name": "pull", "forwardCommand": "docker pull app"},
                        {"name": "start", "forwardCommand": "docker run app",
                         "undoCommand": "docker rm -f app", "critical": True},
                    ]
                }
            ),
            encoding="utf-8",
        )
        self.config.report.enabled = False
        executor = ScriptedExecutor().fail("docker run")
        result = DeploymentWorkflow(self.config, executor=executor).run(str(plan_path))

        self.assertIsNone(result.report_path)
        self.assertEqual(result.run.state_of("web1"), HostState.ROLLED_BACK)
        self.assertEqual(result.run.outcome, RunOutcome.FAILED)

    def test_invalid_plan_fails_before_any_command(self) -> None:
        executor = ScriptedExecutor()
        workflow = DeploymentWorkflow(self.config, executor=executor)
        with self.assertRaises(PlanError):
            workflow.run({"web1": [{"name": "stop", "forwardCommand": "docker stop {missing}"}]})
        self.assertEqual(executor.calls, [])

    def test_create_executor(self) -> None:
        self.assertIsInstance(create_executor(self.config), SSHExecutor)
        self.config.deployment.executor = "local"
        self.assertIsInstance(create_executor(self.config), LocalExecutor)
        self.config.deployment.executor = "telnet"
        with self.assertRaises(ValueError):
            create_executor(self.config)


if __name__ == "__main__":
    unittest.main()
