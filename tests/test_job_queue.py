from datetime import timedelta

import pytest
from pydantic import ValidationError

from app.application.services.job_queue import JobQueue
from app.application.services.job_runner import JobRunner
from app.domain.exceptions import InvalidStateTransitionError, JobAlreadyQueuedError
from app.domain.models.job import BackoffPolicy, JobKind, JobState, QueuePolicy
from app.infrastructure.persistence.job_store_adapter import SQLAlchemyJobStore
from tests.factories import POLICIES


@pytest.fixture
def queue(db_session, dispatcher, clock):
    return JobQueue(SQLAlchemyJobStore(db_session), dispatcher, policies=POLICIES, stalled_timeout=60, clock=clock)


def failing_handler(job, progress):
    progress.report(30)
    raise RuntimeError("SIFEN caído")


def run_attempts(runner, clock, times=3):
    """Corre el job `times` veces dejando pasar el backoff entre intentos."""
    states = []
    for _ in range(times):
        states.append(runner.run("factura-1"))
        clock.advance(10)
    return states


class TestBackoff:
    def test_exponential(self):
        policy = BackoffPolicy(type="exponential", delay=1.0)
        assert [policy.delay_for(n) for n in (0, 1, 2, 3)] == [0.0, 1.0, 2.0, 4.0]

    def test_fixed(self):
        policy = BackoffPolicy(type="fixed", delay=2.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 2.0, 2.0]


class TestEnqueue:
    def test_creates_waiting_job_and_dispatches(self, queue, dispatcher):
        job = queue.enqueue(JobKind.PROCESS_INVOICE, 7)

        assert job.id == "factura-7"
        assert job.state == JobState.WAITING
        assert job.queue == "facturacion"
        assert job.max_attempts == 3
        assert dispatcher.dispatched == [("factura-7", None)]

    def test_render_job_uses_its_own_queue(self, queue):
        job = queue.enqueue(JobKind.RENDER_INVOICE, 7)
        assert job.id == "kude-7"
        assert job.queue == "kude"
        assert job.priority == 9

    def test_duplicate_while_in_flight_is_rejected(self, queue, dispatcher):
        queue.enqueue(JobKind.PROCESS_INVOICE, 7)
        with pytest.raises(JobAlreadyQueuedError):
            queue.enqueue(JobKind.PROCESS_INVOICE, 7)

        queue.activate("factura-7", "w1")
        with pytest.raises(JobAlreadyQueuedError):
            queue.enqueue(JobKind.PROCESS_INVOICE, 7)
        assert len(dispatcher.dispatched) == 1

    def test_finished_job_can_be_rearmed(self, queue):
        queue.enqueue(JobKind.PROCESS_INVOICE, 7)
        queue.activate("factura-7", "w1")
        queue.complete("factura-7")

        job = queue.enqueue(JobKind.PROCESS_INVOICE, 7, payload={"retry": True})
        assert job.state == JobState.WAITING
        assert job.attempts == 0
        assert job.payload == {"retry": True}


class TestActivate:
    def test_only_one_worker_wins(self, queue):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        first = queue.activate("factura-1", "w1")
        second = queue.activate("factura-1", "w2")

        assert first.state == JobState.ACTIVE
        assert first.attempts == 1
        assert first.worker_id == "w1"
        assert second is None

    def test_unknown_job(self, queue):
        assert queue.activate("factura-404", "w1") is None

    def test_job_is_not_claimed_before_its_backoff(self, queue, clock):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        queue.activate("factura-1", "w1")
        queue.fail("factura-1", "boom")

        # Mensaje duplicado del broker antes de que venza la espera
        assert queue.activate("factura-1", "w2") is None
        assert queue.get(JobKind.PROCESS_INVOICE, 1).attempts == 1

        clock.advance(1)
        job = queue.activate("factura-1", "w2")
        assert job.attempts == 2
        assert job.worker_id == "w2"


class TestProgress:
    def test_progress_never_goes_back(self, queue):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        queue.activate("factura-1", "w1")
        queue.report_progress("factura-1", 50)
        queue.report_progress("factura-1", 20)
        assert queue.get(JobKind.PROCESS_INVOICE, 1).progress == 50

    def test_progress_is_clamped(self, queue):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        queue.activate("factura-1", "w1")
        queue.report_progress("factura-1", 140)
        assert queue.get(JobKind.PROCESS_INVOICE, 1).progress == 100

    def test_progress_refreshes_heartbeat(self, queue, clock):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        queue.activate("factura-1", "w1")
        clock.advance(45)
        queue.report_progress("factura-1", 10)
        assert queue.get(JobKind.PROCESS_INVOICE, 1).heartbeat_at == clock.now


class TestRetries:
    """Tres intentos con backoff 1s, 2s y luego `failed`."""

    def test_failing_job_exhausts_attempts(self, queue, dispatcher, clock):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        runner = JobRunner(queue, {JobKind.PROCESS_INVOICE: failing_handler}, "w1")

        states = run_attempts(runner, clock)

        assert states == [JobState.WAITING, JobState.WAITING, JobState.FAILED]
        job = queue.get(JobKind.PROCESS_INVOICE, 1)
        assert job.state == JobState.FAILED
        assert job.attempts == 3
        assert job.last_error == "SIFEN caído"
        assert job.finished_at is not None

        delays = [countdown for _, countdown in dispatcher.dispatched[1:]]
        assert delays == [1.0, 2.0]
        assert delays == sorted(set(delays))

    def test_failed_job_is_not_run_again(self, queue, clock):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        runner = JobRunner(queue, {JobKind.PROCESS_INVOICE: failing_handler}, "w1")
        run_attempts(runner, clock)
        assert runner.run("factura-1") is None

    def test_refused_transition_fails_without_retrying(self, queue, dispatcher):
        def refused(job, progress):
            raise InvalidStateTransitionError("accepted", "processing")

        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        runner = JobRunner(queue, {JobKind.PROCESS_INVOICE: refused}, "w1")

        assert runner.run("factura-1") == JobState.FAILED
        job = queue.get(JobKind.PROCESS_INVOICE, 1)
        assert job.attempts == 1
        assert "accepted -> processing" in job.last_error
        assert dispatcher.dispatched == [("factura-1", None)]

    def test_wait_time_follows_backoff(self, queue, clock):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        queue.activate("factura-1", "w1")
        assert queue.fail("factura-1", "boom") == 1.0
        assert queue.get(JobKind.PROCESS_INVOICE, 1).available_at == clock.now + timedelta(seconds=1)

    def test_successful_job_completes(self, queue):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        runner = JobRunner(queue, {JobKind.PROCESS_INVOICE: lambda job, progress: progress.report(60)}, "w1")

        assert runner.run("factura-1") == JobState.COMPLETED
        job = queue.get(JobKind.PROCESS_INVOICE, 1)
        assert job.progress == 100
        assert job.state == JobState.COMPLETED

    def test_retry_failed_resets_attempts(self, queue, dispatcher, clock):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        runner = JobRunner(queue, {JobKind.PROCESS_INVOICE: failing_handler}, "w1")
        run_attempts(runner, clock)

        assert queue.retry_failed() == ["factura-1"]
        job = queue.get(JobKind.PROCESS_INVOICE, 1)
        assert job.state == JobState.WAITING
        assert job.attempts == 0
        assert job.last_error is None
        assert job.payload["retry"] is True
        assert dispatcher.dispatched[-1] == ("factura-1", None)


class TestStalledJobs:
    def test_stalled_active_job_counts_as_failed_attempt(self, queue, clock):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        queue.activate("factura-1", "w1")

        clock.advance(30)
        assert queue.requeue_stalled() == []

        clock.advance(61)
        assert queue.requeue_stalled() == ["factura-1"]
        job = queue.get(JobKind.PROCESS_INVOICE, 1)
        assert job.state == JobState.WAITING
        assert job.attempts == 1
        assert "estancado" in job.last_error

    def test_undelivered_waiting_job_is_redispatched(self, queue, clock, dispatcher):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        clock.advance(120)

        assert queue.requeue_stalled() == ["factura-1"]
        assert dispatcher.job_ids == ["factura-1", "factura-1"]
        assert queue.get(JobKind.PROCESS_INVOICE, 1).state == JobState.WAITING


class TestMaintenance:
    def test_stats_count_every_state(self, queue):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        queue.enqueue(JobKind.PROCESS_INVOICE, 2)
        queue.activate("factura-2", "w1")
        queue.enqueue(JobKind.RENDER_INVOICE, 1)

        stats = queue.stats()
        assert stats["facturacion"] == {"waiting": 1, "active": 1, "completed": 0, "failed": 0}
        assert stats["kude"]["waiting"] == 1

    def test_prune_keeps_last_completed(self, db_session, dispatcher, clock):
        policies = dict(POLICIES)
        policies[JobKind.PROCESS_INVOICE] = POLICIES[JobKind.PROCESS_INVOICE].model_copy(update={"keep_completed": 2})
        queue = JobQueue(SQLAlchemyJobStore(db_session), dispatcher, policies=policies, clock=clock)

        for invoice_id in (1, 2, 3):
            queue.enqueue(JobKind.PROCESS_INVOICE, invoice_id)
            queue.activate(f"factura-{invoice_id}", "w1")
            clock.advance(1)
            queue.complete(f"factura-{invoice_id}")

        assert queue.get(JobKind.PROCESS_INVOICE, 1) is None
        assert queue.get(JobKind.PROCESS_INVOICE, 2) is not None
        assert queue.get(JobKind.PROCESS_INVOICE, 3) is not None

    def test_clean_completed(self, queue):
        queue.enqueue(JobKind.PROCESS_INVOICE, 1)
        queue.activate("factura-1", "w1")
        queue.complete("factura-1")
        queue.enqueue(JobKind.PROCESS_INVOICE, 2)

        assert queue.clean_completed() == 1
        assert queue.get(JobKind.PROCESS_INVOICE, 1) is None
        assert queue.get(JobKind.PROCESS_INVOICE, 2) is not None


class TestQueuePolicy:
    def test_policy_is_immutable(self):
        policy = QueuePolicy(queue="q", max_attempts=1, backoff=BackoffPolicy(), timeout=1, keep_completed=1, keep_failed=1)
        with pytest.raises(ValidationError):
            policy.max_attempts = 5
