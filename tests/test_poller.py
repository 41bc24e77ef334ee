import asyncio

import pytest

from fakes import FakeExecutor, RecordingChannel, snapshot
from job_orchestrator.errors import ExecutorServiceError, PollingCancelledError, PollingDeadlineExceeded
from job_orchestrator.poller import JobPoller


def _poller(executor, channel, **kwargs):
    kwargs.setdefault("poll_interval", 0)
    kwargs.setdefault("error_backoff", 0)
    return JobPoller("job-1", "chat-9", executor, channel, **kwargs)


@pytest.mark.asyncio
async def test_one_notification_per_step_transition(channel):
    executor = FakeExecutor([
        snapshot(current=1, steps=[{"action": "discover", "status": "running"}, {"action": "enrich", "status": "pending"}, {"action": "audit", "status": "pending"}]),
        snapshot(current=1, steps=[{"action": "discover", "status": "running"}, {"action": "enrich", "status": "pending"}, {"action": "audit", "status": "pending"}]),
        snapshot(current=2, steps=[{"action": "discover", "status": "completed"}, {"action": "enrich", "status": "completed"}, {"action": "audit", "status": "pending"}]),
    ])
    poller = _poller(executor, channel)

    assert await poller.poll_once() is False
    assert channel.texts == ["🔍 Discover in progress... (1/3)"]

    assert await poller.poll_once() is False
    assert len(channel.sent) == 1

    assert await poller.poll_once() is False
    assert channel.texts[-1] == "📞 Enrich complete! (2/3)"
    assert len(channel.sent) == 2
    assert all(target == "chat-9" for target, _ in channel.sent)
    assert poller.state.last_notified_step_index == 2


@pytest.mark.asyncio
async def test_unchanged_snapshot_is_idempotent(channel):
    executor = FakeExecutor([snapshot(current=2)])
    poller = _poller(executor, channel)
    await poller.poll_once()
    await poller.poll_once()
    await poller.poll_once()
    assert len(channel.sent) == 1


@pytest.mark.asyncio
async def test_step_index_never_moves_backwards(channel):
    executor = FakeExecutor([snapshot(current=2), snapshot(current=1), snapshot(current=2)])
    poller = _poller(executor, channel)
    for _ in range(3):
        await poller.poll_once()
    assert len(channel.sent) == 1
    assert poller.state.last_notified_step_index == 2


@pytest.mark.asyncio
async def test_current_step_beyond_total_not_notified(channel):
    poller = _poller(FakeExecutor([snapshot(current=4, total=3)]), channel)
    await poller.poll_once()
    assert channel.sent == []
    assert poller.state.last_notified_step_index == 0


@pytest.mark.asyncio
async def test_missing_step_entry_still_advances(channel):
    poller = _poller(FakeExecutor([snapshot(current=2, total=3, steps=[{"action": "discover"}])]), channel)
    await poller.poll_once()
    assert channel.sent == []
    assert poller.state.last_notified_step_index == 2


@pytest.mark.asyncio
async def test_unknown_action_uses_default_glyph(channel):
    poller = _poller(FakeExecutor([snapshot(current=1, total=1, steps=[{"action": "teleport", "status": "running"}])]), channel)
    await poller.poll_once()
    assert channel.texts == ["⚙️ Teleport in progress... (1/1)"]


@pytest.mark.asyncio
@pytest.mark.parametrize("status,error,expected", [
    ("completed", None, "✅ Job completed! Fetching results..."),
    ("failed", "Apify quota exceeded", "❌ Job failed: Apify quota exceeded"),
    ("failed", None, "❌ Job failed: Unknown error"),
    ("cancelled", None, "🛑 Job was cancelled"),
])
async def test_terminal_statuses(channel, status, error, expected):
    poller = _poller(FakeExecutor([snapshot(status=status, error=error)]), channel)
    assert await poller.poll_once() is True
    assert channel.texts[-1] == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["running", "queued", "weird", None])
async def test_other_statuses_not_terminal(channel, status):
    poller = _poller(FakeExecutor([{"status": status}]), channel)
    assert await poller.poll_once() is False
    assert channel.sent == []


@pytest.mark.asyncio
async def test_run_until_complete_returns_results(channel):
    executor = FakeExecutor(
        [snapshot(current=1), snapshot(current=2), snapshot(status="completed", current=3)],
        results={"businesses": [{"name": "Acme HVAC"}]},
    )
    outcome = await _poller(executor, channel).run_until_complete()
    assert outcome.status == "completed"
    assert outcome.succeeded
    assert outcome.results.businesses[0].name == "Acme HVAC"
    assert executor.status_calls == 3
    assert executor.results_calls == 1
    assert channel.texts[-1] == "✅ Job completed! Fetching results..."
    assert len(channel.sent) == 4


@pytest.mark.asyncio
async def test_failed_job_is_normal_outcome(channel):
    executor = FakeExecutor([snapshot(status="failed", current=2, error="boom")])
    outcome = await _poller(executor, channel).run_until_complete()
    assert outcome.status == "failed"
    assert outcome.error == "boom"
    assert not outcome.succeeded
    assert executor.results_calls == 1


@pytest.mark.asyncio
async def test_transport_errors_are_retried(channel, monkeypatch):
    executor = FakeExecutor([
        ExecutorServiceError("Failed to poll status: 502"),
        ExecutorServiceError("Failed to poll status: 502"),
        snapshot(status="completed", current=3),
    ])
    sleeps = []
    poller = _poller(executor, channel, poll_interval=3, error_backoff=5)

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    monkeypatch.setattr(poller, "_sleep", fake_sleep)
    outcome = await poller.run_until_complete()
    assert outcome.status == "completed"
    assert sleeps == [5, 5]


@pytest.mark.asyncio
async def test_running_uses_poll_interval(channel, monkeypatch):
    executor = FakeExecutor([snapshot(current=1), snapshot(status="completed", current=3)])
    sleeps = []
    poller = _poller(executor, channel, poll_interval=3, error_backoff=5)

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    monkeypatch.setattr(poller, "_sleep", fake_sleep)
    await poller.run_until_complete()
    assert sleeps == [3]


@pytest.mark.asyncio
async def test_notification_failure_does_not_abort():
    channel = RecordingChannel(fail=True)
    executor = FakeExecutor([snapshot(current=1), snapshot(status="completed", current=3)])
    outcome = await _poller(executor, channel).run_until_complete()
    assert outcome.status == "completed"


@pytest.mark.asyncio
async def test_cancel_stops_without_results_or_notifications(channel):
    executor = FakeExecutor([snapshot(current=1)])
    poller = _poller(executor, channel, poll_interval=60)
    task = asyncio.create_task(poller.run_until_complete())
    while executor.status_calls == 0:
        await asyncio.sleep(0)
    sent_before = len(channel.sent)
    poller.cancel()
    with pytest.raises(PollingCancelledError):
        await asyncio.wait_for(task, timeout=1)
    assert executor.results_calls == 0
    assert len(channel.sent) == sent_before
    assert poller.cancelled


@pytest.mark.asyncio
async def test_cancelled_poller_sends_nothing(channel):
    poller = _poller(FakeExecutor([snapshot(status="completed", current=1)]), channel)
    poller.cancel()
    await poller.poll_once()
    assert channel.sent == []


@pytest.mark.asyncio
async def test_task_cancellation_propagates(channel):
    executor = FakeExecutor([snapshot(current=1)])
    task = asyncio.create_task(_poller(executor, channel, poll_interval=60).run_until_complete())
    while executor.status_calls == 0:
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_deadline_exceeded(channel):
    executor = FakeExecutor([snapshot(current=1)])
    poller = _poller(executor, channel, poll_interval=0.01, deadline=0.05)
    with pytest.raises(PollingDeadlineExceeded) as exc:
        await asyncio.wait_for(poller.run_until_complete(), timeout=2)
    assert exc.value.job_id == "job-1"
    assert executor.results_calls == 0


class SlowStatusExecutor(FakeExecutor):
    def __init__(self, *args, delay=0.2, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay

    async def status(self, job_id):
        await asyncio.sleep(self.delay)
        return await super().status(job_id)


@pytest.mark.asyncio
async def test_terminal_status_after_deadline_still_delivers_results(channel):
    executor = SlowStatusExecutor(
        [snapshot(status="completed", current=3)], results={"businesses": [{"name": "Acme HVAC"}]}, delay=0.2,
    )
    poller = _poller(executor, channel, deadline=0.1)
    outcome = await asyncio.wait_for(poller.run_until_complete(), timeout=2)
    assert outcome.status == "completed"
    assert outcome.results.businesses[0].name == "Acme HVAC"
    assert executor.results_calls == 1
    assert channel.texts[-1] == "✅ Job completed! Fetching results..."


def test_deadline_message_keeps_fractional_seconds():
    assert "after 0.5s" in str(PollingDeadlineExceeded("job-1", 0.5))
    assert "after 30s" in str(PollingDeadlineExceeded("job-1", 30.0))


def test_poller_built_outside_event_loop(channel):
    poller = _poller(FakeExecutor([snapshot(status="completed", current=3)]), channel)
    outcome = asyncio.run(poller.run_until_complete())
    assert outcome.status == "completed"
