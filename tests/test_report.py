import json
import tempfile
import unittest
from pathlib import Path

from fakes import ScriptedExecutor

from fleet_deployer.orchestrator import (
    DeploymentOrchestrator, HostPlan, Step, build_report, format_summary, write_report
)


def sample_run():
    executor = ScriptedExecutor().fail("docker run", host="web2").fail("docker pull", host="web1")
    steps = [
        Step("stop", "docker stop app", undo="docker start app", ignore_exit_code=True),
        Step("pull", "docker pull app", retries=1),
        Step("start", "docker run --name app app", undo="docker rm -f app", critical=True, idempotent=False),
    ]
    plans = [HostPlan("web1", steps), HostPlan("web2", steps)]
    return DeploymentOrchestrator(executor).run(plans)


class ReportTests(unittest.TestCase):
    def test_build_report_summary(self) -> None:
        run = sample_run()
        report = build_report(run)

        self.assertEqual(report["outcome"], "partial")
        self.assertEqual(report["summary"]["total_hosts"], 2)
        self.assertEqual(report["summary"]["succeeded_hosts"], 1)
        self.assertEqual(report["summary"]["rolled_back_hosts"], 1)
        self.assertEqual(report["summary"]["failed_hosts"], 0)
        # web1: stop, pull x2, start; web2: stop, pull, start, undo stop
        self.assertEqual(report["summary"]["total_commands"], 8)
        web2 = report["hosts"]["web2"]
        self.assertEqual(web2["state"], "rolled_back")
        self.assertEqual(web2["results"][-1]["phase"], "undo")
        self.assertEqual(report["plans"][0]["steps"][2]["undo_command"], "docker rm -f app")
        json.dumps(report)

    def test_write_report(self) -> None:
        run = sample_run()
        with tempfile.TemporaryDirectory() as tmp:
            path = write_report(run, Path(tmp) / "reports")
            self.assertTrue(path.is_file())
            self.assertIn(run.run_id, path.name)
            data = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(data["run_id"], run.run_id)
        self.assertEqual(data["version"], "1.0")

    def test_format_summary(self) -> None:
        run = sample_run()
        text = format_summary(run)
        self.assertIn("PARTIAL", text)
        self.assertIn("web1: succeeded", text)
        self.assertIn("web2: rolled_back", text)
        self.assertIn("pull (attempt 2)", text)
        self.assertIn("undo stop", text)
        self.assertIn("error:", text)


if __name__ == "__main__":
    unittest.main()
