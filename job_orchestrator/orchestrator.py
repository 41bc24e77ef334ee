from __future__ import annotations

import logging
import uuid
from typing import Any, Coroutine, Dict, List, Optional, Sequence

import httpx

from .channels import Channel, LoggingChannel, TelegramChannel
from .classifier import is_complex
from .config import Settings, get_settings
from .errors import OrchestrationError, PollingCancelledError, PollingDeadlineExceeded, RecoveryAbortedError
from .executor_client import ExecutorClient
from .formatter import capitalize_first, format_job_results, format_plan_summary
from .llm_client import build_llm
from .models import JobOutcome, JobPlan, JobStatusSnapshot
from .planner import PlanGenerator
from .poller import JobPoller
from .recovery import RecoveryPlanner
from .tasks import TaskSupervisor

logger = logging.getLogger(__name__)


def failed_step_index(plan: JobPlan, snapshot: Optional[JobStatusSnapshot]) -> Optional[int]:
    """Index into plan.steps of the step that failed, from the final status snapshot."""
    if snapshot is None:
        return None
    for i, step in enumerate(snapshot.steps[:len(plan.steps)]):
        if step.status == "failed":
            return i
    if 1 <= snapshot.current_step <= len(plan.steps):
        return snapshot.current_step - 1
    return None


class JobOrchestrator:
    """
    Composition root for autonomous jobs: classify, plan, submit, follow each job
    in its own supervised task, deliver results, and adapt the plan on failure.
    """

    def __init__(
        self,
        planner: PlanGenerator,
        recovery: RecoveryPlanner,
        executor: ExecutorClient,
        channel: Channel,
        settings: Optional[Settings] = None,
        supervisor: Optional[TaskSupervisor] = None,
    ):
        self.planner = planner
        self.recovery = recovery
        self.executor = executor
        self.channel = channel
        self.settings = settings or get_settings()
        self.supervisor = supervisor or TaskSupervisor()
        self._pollers: Dict[str, JobPoller] = {}

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Optional[Settings] = None) -> "JobOrchestrator":
        cfg = settings or get_settings()
        llm = build_llm(http, cfg)
        if cfg.TELEGRAM_BOT_TOKEN:
            channel: Channel = TelegramChannel(
                http, cfg.TELEGRAM_BOT_TOKEN, base_url=cfg.TELEGRAM_API_URL, max_attempts=cfg.TELEGRAM_MAX_ATTEMPTS,
            )
        else:
            logger.warning("TELEGRAM_BOT_TOKEN not set; notifications will only be logged")
            channel = LoggingChannel()
        return cls(
            planner=PlanGenerator(llm, max_tokens=cfg.PLAN_MAX_TOKENS),
            recovery=RecoveryPlanner(llm, max_tokens=cfg.RECOVERY_MAX_TOKENS),
            executor=ExecutorClient(http, cfg.HARNESS_URL, timeout=cfg.EXECUTOR_TIMEOUT_SECONDS),
            channel=channel,
            settings=cfg,
        )

    # --- entry points ---

    async def handle_request(
        self,
        user_id: str,
        message: str,
        channel_target: str,
        tool_results: Sequence[Any] = (),
    ) -> Optional[str]:
        """Start an autonomous job for complex requests. Returns the job id, or None for simple ones."""
        if not is_complex(message, tool_results):
            logger.debug("request from %s is simple; no job started", user_id)
            return None
        plan = await self.planner.generate_plan(message)
        job_id = await self.start_job(user_id, plan, channel_target)
        return job_id

    async def start_job(self, user_id: str, plan: JobPlan, channel_target: str, recovery_attempts: int = 0) -> str:
        job_id = await self.executor.submit(user_id, plan)
        if recovery_attempts == 0:
            self.spawn_background(self._safe_send(channel_target, format_plan_summary(plan)), name=f"summary:{job_id}")
        poller = JobPoller(
            job_id,
            channel_target,
            self.executor,
            self.channel,
            poll_interval=self.settings.POLL_INTERVAL_SECONDS,
            error_backoff=self.settings.POLL_ERROR_BACKOFF_SECONDS,
            deadline=self.settings.POLL_DEADLINE_SECONDS or None,
        )
        self._pollers[job_id] = poller
        self.supervisor.spawn(f"job:{job_id}", self._follow(user_id, plan, poller, recovery_attempts))
        return job_id

    def cancel(self, job_id: str) -> bool:
        """Stop following a job. It stays cancellable until its results or recovery are handled."""
        poller = self._pollers.get(job_id)
        if poller is None:
            return False
        poller.cancel()
        return True

    def active_jobs(self) -> List[str]:
        return list(self._pollers)

    def spawn_background(self, coro: Coroutine, name: Optional[str] = None):
        """Run a side effect that must never affect the caller's response path."""
        return self.supervisor.spawn(name or f"bg:{uuid.uuid4().hex[:8]}", coro)

    async def shutdown(self) -> None:
        for poller in list(self._pollers.values()):
            poller.cancel()
        await self.supervisor.shutdown()
        self._pollers.clear()

    # --- per-job session ---

    async def _follow(self, user_id: str, plan: JobPlan, poller: JobPoller, recovery_attempts: int) -> None:
        try:
            await self._run_session(user_id, plan, poller, recovery_attempts)
        finally:
            self._pollers.pop(poller.job_id, None)

    async def _run_session(self, user_id: str, plan: JobPlan, poller: JobPoller, recovery_attempts: int) -> None:
        try:
            outcome = await poller.run_until_complete()
        except PollingCancelledError:
            logger.info("stopped following job %s (cancelled)", poller.job_id)
            return
        except PollingDeadlineExceeded as e:
            logger.warning("%s", e)
            await self._session_send(poller, f"⏱️ Stopped tracking job {poller.job_id}: no result after {e.deadline:g}s")
            return

        if outcome.succeeded:
            await self._session_send(poller, format_job_results(outcome.results))
        elif outcome.status == "failed":
            await self._recover(user_id, plan, outcome, poller, recovery_attempts)

    async def _recover(self, user_id: str, plan: JobPlan, outcome: JobOutcome, poller: JobPoller, attempts: int) -> None:
        target = poller.state.channel_target
        if not self.settings.ENABLE_LOCAL_RECOVERY:
            return
        if attempts >= self.settings.MAX_RECOVERY_ATTEMPTS:
            logger.info("job %s: recovery attempts exhausted (%d)", outcome.job_id, attempts)
            return
        index = failed_step_index(plan, outcome.snapshot)
        if index is None:
            logger.warning("job %s failed but no failed step could be located", outcome.job_id)
            return

        failed_step = plan.steps[index]
        remaining = plan.steps[index + 1:]
        try:
            decision = await self.recovery.decide(failed_step, outcome.error or "Unknown error", remaining)
            steps = self.recovery.apply_decision(decision, failed_step, remaining)
        except RecoveryAbortedError as e:
            await self._session_send(poller, f"🛑 Recovery aborted: {e.reason}")
            return
        except OrchestrationError as e:
            logger.warning("job %s: recovery planning failed: %s", outcome.job_id, e)
            await self._session_send(poller, f"⚠️ Could not plan a recovery: {e}")
            return

        if poller.cancelled:
            logger.info("job %s cancelled during recovery planning; not resubmitting", outcome.job_id)
            return
        if not steps:
            await self._session_send(poller, f"⏭️ Skipped {capitalize_first(failed_step.action)}; nothing left to run.")
            return

        note = f" ({decision.reason})" if decision.reason else ""
        await self._session_send(poller, f"🔄 Recovering with {decision.kind.value}{note}, resuming at step {steps[0].order}")
        try:
            await self.start_job(user_id, JobPlan(description=plan.description, steps=steps), target, attempts + 1)
        except OrchestrationError as e:
            logger.error("job %s: resubmitting recovered plan failed: %s", outcome.job_id, e)
            await self._session_send(poller, f"❌ Could not resubmit the recovered plan: {e}")

    async def _session_send(self, poller: JobPoller, text: str) -> None:
        # Nothing reaches the user once they cancelled the job
        if poller.cancelled:
            return
        await self._safe_send(poller.state.channel_target, text)

    async def _safe_send(self, target: str, text: str) -> None:
        try:
            await self.channel.send(target, text)
        except Exception as e:
            logger.error("notification to %s failed: %s: %s", target, self.channel.__class__.__name__, e)
