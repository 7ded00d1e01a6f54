"""Machine-readable and human-readable reports for a DeploymentRun."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Union

from .models import DeploymentRun, HostState, StepPhase

logger = logging.getLogger(__name__)

REPORT_VERSION = "1.0"

_STATE_ICONS = {
    HostState.SUCCEEDED: "✅",
    HostState.ROLLED_BACK: "⏪",
    HostState.FAILED: "❌",
    HostState.PENDING: "…",
    HostState.RUNNING: "…",
}


def build_report(run: DeploymentRun) -> Dict[str, Any]:
    """Return the JSON-serializable report for `run`."""
    report = {"version": REPORT_VERSION, **run.to_dict()}

    total_commands = sum(len(r.results) for r in run.hosts.values())
    report["summary"] = {
        "total_hosts": len(run.hosts),
        "succeeded_hosts": sum(1 for r in run.hosts.values() if r.state is HostState.SUCCEEDED),
        "rolled_back_hosts": sum(1 for r in run.hosts.values() if r.state is HostState.ROLLED_BACK),
        "failed_hosts": sum(1 for r in run.hosts.values() if r.state is HostState.FAILED),
        "total_commands": total_commands,
        "duration_seconds": run.duration_seconds,
    }
    return report


def write_report(run: DeploymentRun, report_dir: Union[str, Path]) -> Path:
    """Write the JSON report into `report_dir` and return its path."""
    directory = Path(report_dir)
    directory.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.fromisoformat(run.started_at).strftime("%Y%m%d_%H%M%S")
    path = directory / f"deploy_{timestamp}_{run.run_id}.json"
    with open(path, "w", encoding="utf-8") as f:
        json.dump(build_report(run), f, indent=2, ensure_ascii=False)
    logger.info("📄 Report saved to: %s", path)
    return path


def format_summary(run: DeploymentRun) -> str:
    lines = [
        f"Deployment {run.run_id}: {run.outcome.value.upper()}"
        + (" (cancelled)" if run.cancelled else ""),
        f"Duration: {run.duration_seconds:.1f}s",
        "",
    ]
    for host, report in run.hosts.items():
        icon = _STATE_ICONS.get(report.state, "?")
        lines.append(f"{icon} {host}: {report.state.value}")
        for result in report.results:
            mark = "✓" if result.ok else "✗"
            label = result.step_name if result.phase is StepPhase.FORWARD else f"undo {result.step_name}"
            if result.attempt > 1:
                label += f" (attempt {result.attempt})"
            detail = f"exit {result.exit_code}" if result.exit_code is not None else result.status.value
            lines.append(f"    {mark} {label}: {detail}")
        if report.error:
            lines.append(f"    error: {report.error}")
    return "\n".join(lines)
