"""
Polling loop that follows one executor job to a terminal status and reports
progress to a messaging channel.

A poll session notifies at most once per step transition: the last notified
step index only moves forward, so polling an unchanged snapshot is a no-op.
Communication failures never end the session; only a terminal status reported
by the executor does (or an explicit cancel / optional deadline).
"""

import asyncio
import logging
from typing import Optional

from .channels import Channel
from .errors import ExecutorServiceError, PollingCancelledError, PollingDeadlineExceeded
from .executor_client import ExecutorClient
from .formatter import JOB_CANCELLED_MESSAGE, JOB_COMPLETED_MESSAGE, format_job_failed, format_progress
from .metrics import jobs_terminal_total, notifications_total, poll_errors_total
from .models import JobOutcome, JobPollState, JobResults, JobStatusSnapshot

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_ERROR_BACKOFF = 5.0


class JobPoller:
    def __init__(
        self,
        job_id: str,
        channel_target: str,
        executor: ExecutorClient,
        channel: Channel,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        error_backoff: float = DEFAULT_ERROR_BACKOFF,
        deadline: Optional[float] = None,
    ):
        self.state = JobPollState(job_id=job_id, channel_target=channel_target)
        self.executor = executor
        self.channel = channel
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff
        self.deadline = deadline or None
        self.last_snapshot: Optional[JobStatusSnapshot] = None
        self._stop = asyncio.Event()
        self._started_at: Optional[float] = None

    @property
    def job_id(self) -> str:
        return self.state.job_id

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def cancel(self) -> None:
        """Stop the session: no further notifications and no results fetch."""
        if not self._stop.is_set():
            logger.info("cancelling poll session for job %s", self.job_id)
        self._stop.set()

    async def poll_once(self) -> bool:
        """Fetch one status snapshot, notify on step transitions. Returns True when terminal."""
        snapshot = await self.executor.status(self.job_id)
        self.last_snapshot = snapshot
        current, total = snapshot.current_step, snapshot.total_steps

        if current > self.state.last_notified_step_index and current <= total:
            step = snapshot.step_at(current)
            if step is not None:
                await self._notify(format_progress(step.action, step.status, current, total))
            self.state.last_notified_step_index = current

        if snapshot.status == "completed":
            await self._notify(JOB_COMPLETED_MESSAGE)
            return True
        if snapshot.status == "failed":
            await self._notify(format_job_failed(snapshot.error))
            return True
        if snapshot.status == "cancelled":
            await self._notify(JOB_CANCELLED_MESSAGE)
            return True
        return False

    async def run_until_complete(self) -> JobOutcome:
        self._started_at = asyncio.get_running_loop().time()
        while True:
            self._raise_if_stopped()
            try:
                terminal = await self.poll_once()
            except ExecutorServiceError as e:
                poll_errors_total.inc()
                logger.error("Polling error for job %s: %s", self.job_id, e)
                await self._sleep(self.error_backoff)
                continue
            if terminal:
                # A terminal status already reported is kept even past the deadline
                self._raise_if_cancelled()
                snapshot = self.last_snapshot
                jobs_terminal_total.labels(status=snapshot.status).inc()
                logger.info("job %s finished with status %s", self.job_id, snapshot.status)
                results = await self._fetch_results()
                return JobOutcome(
                    job_id=self.job_id,
                    status=snapshot.status,
                    error=snapshot.error,
                    snapshot=snapshot,
                    results=results,
                )
            await self._sleep(self.poll_interval)

    async def _fetch_results(self) -> JobResults:
        while True:
            self._raise_if_cancelled()
            try:
                return await self.executor.results(self.job_id)
            except ExecutorServiceError as e:
                poll_errors_total.inc()
                logger.error("Fetching results for job %s failed: %s", self.job_id, e)
                await self._sleep(self.error_backoff, bounded=False)

    async def _notify(self, text: str) -> None:
        if self._stop.is_set():
            return
        try:
            await self.channel.send(self.state.channel_target, text)
            notifications_total.labels(result="ok").inc()
        except Exception:
            notifications_total.labels(result="error").inc()
            logger.exception("notification for job %s to %s failed", self.job_id, self.state.channel_target)

    async def _sleep(self, seconds: float, bounded: bool = True) -> None:
        """Wait up to `seconds`, waking early on cancel (and on the deadline when bounded)."""
        timeout = seconds
        remaining = self._remaining() if bounded else None
        if remaining is not None:
            timeout = min(timeout, remaining)
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=max(timeout, 0))
        except asyncio.TimeoutError:
            pass

    def _remaining(self) -> Optional[float]:
        if not self.deadline or self._started_at is None:
            return None
        elapsed = asyncio.get_running_loop().time() - self._started_at
        return self.deadline - elapsed

    def _raise_if_cancelled(self) -> None:
        if self._stop.is_set():
            raise PollingCancelledError(self.job_id)

    def _raise_if_stopped(self) -> None:
        self._raise_if_cancelled()
        remaining = self._remaining()
        if remaining is not None and remaining <= 0:
            raise PollingDeadlineExceeded(self.job_id, self.deadline)
