"""Deployment orchestrator: runs host plans concurrently and rolls back failures."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

from ..errors import CriticalStepFailure, StepFailure
from .models import (
    DeploymentRun, HostReport, HostState, RunOutcome, StepPhase, StepResult, StepStatus
)
from .plan import HostPlan, check_unique_hosts
from .step import Step

if TYPE_CHECKING:
    from ..config import AppConfig
    from ..executor import RemoteExecutor

logger = logging.getLogger(__name__)

TransitionCallback = Callable[[str, HostState, HostState], None]


class DeploymentOrchestrator:
    """
    部署编排器

    Runs each HostPlan on its own worker thread. Steps inside a plan run
    strictly in order; a failed critical step (or a timeout) stops the plan
    and undoes the steps that already succeeded on that host, newest first.
    Failures never leave the owning host.

    Calling :meth:`cancel` stops dispatch of new steps, retries and undo
    commands. A command that is already running is allowed to finish or time
    out, and a rollback already under way runs to the end. Once cancelled,
    the orchestrator stays cancelled.
    """

    def __init__(
        self,
        executor: "RemoteExecutor",
        *,
        max_workers: Optional[int] = None,
        step_timeout: Optional[float] = None,
        default_retries: int = 0,
        retry_delay: float = 0.0,
        on_transition: Optional[TransitionCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.executor = executor
        self.max_workers = max_workers
        self.step_timeout = step_timeout
        self.default_retries = default_retries
        self.retry_delay = retry_delay
        self.on_transition = on_transition
        self._sleep = sleep
        self._cancel_event = threading.Event()

    @classmethod
    def from_config(
        cls,
        config: "AppConfig",
        executor: "RemoteExecutor",
        **kwargs,
    ) -> "DeploymentOrchestrator":
        settings = config.orchestrator
        return cls(
            executor,
            max_workers=settings.max_workers,
            step_timeout=settings.step_timeout,
            default_retries=settings.default_retries,
            retry_delay=settings.retry_delay,
            **kwargs,
        )

    def cancel(self) -> None:
        if not self._cancel_event.is_set():
            logger.warning("🛑 Cancellation requested, no new steps will be dispatched")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run(self, plans: Sequence[HostPlan]) -> DeploymentRun:
        """Run every plan and block until all hosts reach a terminal state."""
        plans = list(plans)
        check_unique_hosts(plans)
        run_id = uuid.uuid4().hex[:12]
        started_at = datetime.now().isoformat()

        logger.info("")
        logger.info("=" * 60)
        logger.info("🚀 DEPLOYMENT %s", run_id)
        logger.info("=" * 60)
        logger.info("Hosts: %d", len(plans))
        for plan in plans:
            logger.info("  %s: %s", plan.host, " -> ".join(step.name for step in plan.steps))
        logger.info("")

        reports: Dict[str, HostReport] = {}
        if plans:
            workers = len(plans)
            if self.max_workers:
                workers = min(workers, self.max_workers)
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="host") as pool:
                future_to_plan: Dict[Future, HostPlan] = {
                    pool.submit(self._run_host, plan): plan for plan in plans
                }
                for future in as_completed(future_to_plan):
                    plan = future_to_plan[future]
                    try:
                        reports[plan.host] = future.result()
                    except Exception as exc:  # pragma: no cover - _run_host handles its own errors
                        logger.exception("[%s] Host worker crashed", plan.host)
                        reports[plan.host] = HostReport(plan.host, HostState.FAILED, error=str(exc))

        # 按计划顺序排列
        ordered = {plan.host: reports[plan.host] for plan in plans}
        run = DeploymentRun(
            run_id=run_id,
            plans=tuple(plans),
            hosts=ordered,
            outcome=self._outcome(ordered.values()),
            started_at=started_at,
            finished_at=datetime.now().isoformat(),
            cancelled=self.cancelled,
        )

        logger.info("=" * 60)
        icon = {RunOutcome.SUCCEEDED: "🎉", RunOutcome.PARTIAL: "⚠️", RunOutcome.FAILED: "❌"}[run.outcome]
        logger.info("%s Deployment %s: %s", icon, run_id, run.outcome.value.upper())
        logger.info("=" * 60)
        return run

    @staticmethod
    def _outcome(reports) -> RunOutcome:
        states = [report.state for report in reports]
        if all(state is HostState.SUCCEEDED for state in states):
            return RunOutcome.SUCCEEDED
        if any(state is HostState.SUCCEEDED for state in states):
            return RunOutcome.PARTIAL
        return RunOutcome.FAILED

    def _transition(self, host: str, old: HostState, new: HostState) -> HostState:
        logger.info("[%s] %s -> %s", host, old.value, new.value)
        if self.on_transition:
            self.on_transition(host, old, new)
        return new

    def _run_host(self, plan: HostPlan) -> HostReport:
        try:
            return self._drive_host(plan)
        finally:
            self.executor.close(plan.host)

    def _drive_host(self, plan: HostPlan) -> HostReport:
        host = plan.host
        # 每个 worker 独占自己主机的结果列表
        results: List[StepResult] = []
        state = HostState.PENDING

        if self.cancelled:
            logger.warning("[%s] Cancelled before start", host)
            state = self._transition(host, state, HostState.FAILED)
            return HostReport(host, state, error="cancelled before start")

        state = self._transition(host, state, HostState.RUNNING)
        succeeded: List[Step] = []
        failure: Optional[StepFailure] = None
        try:
            for index, step in enumerate(plan.steps, 1):
                if self.cancelled:
                    logger.warning("[%s] Cancelled before step '%s'", host, step.name)
                    state = self._transition(host, state, HostState.FAILED)
                    return HostReport(host, state, tuple(results), error="cancelled")

                logger.info("📍 [%s] Step %d/%d: %s", host, index, len(plan.steps), step.name)
                result = self._run_step(step, plan, results)

                if result.ok:
                    succeeded.append(step)
                    continue

                if result.status is StepStatus.UNREACHABLE and not succeeded:
                    # 主机不可达且尚未执行任何步骤：无需回滚
                    logger.error("[%s] ❌ Host unreachable: %s", host, result.error)
                    state = self._transition(host, state, HostState.FAILED)
                    return HostReport(host, state, tuple(results), error=result.error)

                if step.critical or result.status in (StepStatus.TIMEOUT, StepStatus.UNREACHABLE):
                    failure = CriticalStepFailure(host, step.name, result.error or result.status.value)
                    break

                logger.warning("[%s] ⚠️ %s, continuing", host, StepFailure(host, step.name, result.error or "failed"))
        except Exception as exc:
            logger.exception("[%s] Unexpected error while running plan", host)
            failure = CriticalStepFailure(host, "<plan>", str(exc))

        if failure is None:
            logger.info("[%s] ✅ All %d steps completed", host, len(plan.steps))
            state = self._transition(host, state, HostState.SUCCEEDED)
            return HostReport(host, state, tuple(results))

        logger.error("❌ %s", failure)
        state = self._transition(host, state, HostState.FAILED)
        if not succeeded:
            return HostReport(host, state, tuple(results), error=str(failure))

        if self.cancelled:
            # 已取消：不再下发回滚命令
            logger.warning("[%s] Cancelled, skipping rollback of %d step(s)", host, len(succeeded))
            return HostReport(host, state, tuple(results), error=f"{failure}; cancelled before rollback")

        if self._rollback(plan, succeeded, results):
            state = self._transition(host, state, HostState.ROLLED_BACK)
            return HostReport(host, state, tuple(results), error=str(failure))
        return HostReport(host, state, tuple(results), error=f"{failure}; rollback incomplete")

    def _run_step(self, step: Step, plan: HostPlan, results: List[StepResult]) -> StepResult:
        retries = step.retries if step.retries is not None else self.default_retries
        attempts = 1 + (retries if step.idempotent else 0)
        variables = plan.template_variables()

        result: Optional[StepResult] = None
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                if self.cancelled:
                    break
                logger.info("   🔄 [%s] Retrying '%s' (%d/%d)", plan.host, step.name, attempt, attempts)
                if self.retry_delay:
                    self._sleep(self.retry_delay)

            result = step.run(
                self.executor,
                plan.host,
                variables=variables,
                timeout=self.step_timeout,
                attempt=attempt,
            )
            results.append(result)
            self._log_result(plan.host, result)

            if result.ok or result.status is StepStatus.UNREACHABLE:
                break

        assert result is not None
        return result

    def _rollback(self, plan: HostPlan, succeeded: List[Step], results: List[StepResult]) -> bool:
        """Undo succeeded steps newest first; returns False if any undo failed."""
        logger.warning("[%s] ⏪ Rolling back %d step(s)", plan.host, len(succeeded))
        variables = plan.template_variables()
        all_ok = True
        for step in reversed(succeeded):
            try:
                result = step.rollback(
                    self.executor, plan.host, variables=variables, timeout=self.step_timeout
                )
            except Exception as exc:
                logger.exception("[%s] Unexpected error while undoing '%s'", plan.host, step.name)
                result = StepResult(
                    step_name=step.name,
                    phase=StepPhase.UNDO,
                    status=StepStatus.FAILED,
                    command=step.undo.source if step.undo else "",
                    error=str(exc) or type(exc).__name__,
                )
            if result is None:
                logger.debug("[%s] '%s' has no undo action", plan.host, step.name)
                continue
            results.append(result)
            self._log_result(plan.host, result)
            if not result.ok:
                all_ok = False
        return all_ok

    @staticmethod
    def _log_result(host: str, result: StepResult) -> None:
        mark = "✓" if result.ok else "✗"
        logger.info(
            "   %s [%s] %s %s (exit %s)",
            mark, host, result.phase.value, result.step_name, result.exit_code,
        )
        if result.stdout:
            logger.debug("      stdout: %s", result.stdout[:200])
        if not result.ok:
            logger.warning("      %s: %s", result.status.value, (result.error or "")[:200])
