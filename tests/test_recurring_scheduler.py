"""
Tests for RecurringScheduler.

Tests:
- Skipping when no connection is active
- Due selection: status, due time and connection affinity
- Sequential processing with a delay between payments
- Isolation of per-payment errors
- Per-schedule lock for timed and manual runs
- Job queue registration
"""

import asyncio
import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from exceptions import GatewayError, PersistenceError, ScheduleBusyError
from models.recurring import STATUS_CANCELLED, STATUS_PAUSED
from services.payment_executor import PaymentExecutor
from services.recurring_scheduler import JOB_NAME, RecurringScheduler


@pytest.fixture
def connection_repo(connection_a):
    repo = MagicMock()
    repo.get_active.return_value = connection_a
    return repo


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def factory_calls():
    return []


@pytest.fixture
def scheduler(ledger, connection_repo, gateway, notifier, clock, sleeps, factory_calls):
    def factory(connection):
        factory_calls.append(connection)
        return gateway

    executor = PaymentExecutor(repo=ledger, resolver=MagicMock(), notifier=notifier, clock=clock)
    return RecurringScheduler(
        repo=ledger,
        connection_repo=connection_repo,
        executor=executor,
        gateway_factory=factory,
        payment_delay=1.0,
        clock=clock,
        sleep=sleeps.append,
    )


class TestProcessDuePayments:

    def test_no_active_connection_skips_everything(self, scheduler, connection_repo, ledger, make_payment):
        make_payment()
        connection_repo.get_active.return_value = None
        ledger.get_due = MagicMock()

        assert scheduler.process_due_payments() == 0
        ledger.get_due.assert_not_called()

    def test_nothing_due_does_not_open_a_gateway(self, scheduler, make_payment, clock, factory_calls):
        make_payment(next_run_at=clock() + timedelta(hours=1))

        assert scheduler.process_due_payments() == 0
        assert factory_calls == []

    def test_executes_due_payments_in_order(self, scheduler, ledger, gateway, make_payment, clock, connection_a):
        later = make_payment(amount_sat=200, next_run_at=clock() - timedelta(minutes=1))
        earlier = make_payment(amount_sat=100, next_run_at=clock() - timedelta(hours=1))

        assert scheduler.process_due_payments() == 2
        assert [call[2] for call in gateway.calls] == [100, 200]
        assert [e.recurring_payment_id for e in ledger.executions] == [earlier, later]

    def test_uses_the_active_connection(self, scheduler, make_payment, factory_calls, connection_a):
        make_payment()
        scheduler.process_due_payments()
        assert factory_calls == [connection_a]

    def test_paused_and_cancelled_are_never_executed(self, scheduler, ledger, make_payment):
        make_payment(status=STATUS_PAUSED)
        make_payment(status=STATUS_CANCELLED)

        assert scheduler.process_due_payments() == 0
        assert ledger.executions == []

    def test_connection_affinity(self, scheduler, ledger, connection_repo, make_payment, connection_b):
        bound_to_a = make_payment(connection_id=1)
        legacy = make_payment(connection_id=None)
        connection_repo.get_active.return_value = connection_b

        assert scheduler.process_due_payments() == 1
        assert [e.recurring_payment_id for e in ledger.executions] == [legacy]
        assert ledger.payments[bound_to_a].payment_count == 0

    def test_sleeps_between_payments_only(self, scheduler, make_payment, sleeps):
        for _ in range(3):
            make_payment()

        scheduler.process_due_payments()

        assert sleeps == [1.0, 1.0]

    def test_failure_does_not_stop_the_tick(self, scheduler, ledger, gateway, make_payment):
        make_payment(address_id=10)
        offer = make_payment(address_id=11)
        gateway.ln_address_error = GatewayError("insufficient balance")

        assert scheduler.process_due_payments() == 2
        assert ledger.payments[offer].payment_count == 1

    def test_unexpected_error_is_isolated(self, scheduler, ledger, make_payment):
        first = make_payment()
        second = make_payment()
        executor = MagicMock()
        executor.execute.side_effect = [PersistenceError("connection lost"), MagicMock()]
        scheduler.executor = executor

        assert scheduler.process_due_payments() == 1
        executed = [call.args[0].id for call in executor.execute.call_args_list]
        assert executed == [first, second]

    def test_payment_changed_after_selection_is_skipped(self, scheduler, ledger, make_payment):
        pid = make_payment()
        original_get_due = ledger.get_due

        def get_due_then_pause(now, connection_id):
            due = original_get_due(now, connection_id)
            ledger.payments[pid].status = STATUS_PAUSED
            return due

        ledger.get_due = get_due_then_pause

        assert scheduler.process_due_payments() == 0
        assert ledger.executions == []

    def test_busy_schedule_is_skipped(self, scheduler, ledger, make_payment):
        busy = make_payment()
        free = make_payment()

        with scheduler._exclusive(busy):
            assert scheduler.process_due_payments() == 1

        assert [e.recurring_payment_id for e in ledger.executions] == [free]

    def test_second_tick_does_not_pay_again(self, scheduler, ledger, make_payment):
        make_payment()

        scheduler.process_due_payments()
        scheduler.process_due_payments()

        assert len(ledger.executions) == 1


class TestExecuteNow:

    def test_runs_regardless_of_due_time(self, scheduler, ledger, make_payment, clock):
        pid = make_payment(next_run_at=clock() + timedelta(days=10))

        result = scheduler.execute_now(pid)

        assert result.success
        assert ledger.payments[pid].payment_count == 1

    def test_runs_paused_payment(self, scheduler, ledger, make_payment):
        pid = make_payment(status=STATUS_PAUSED)
        assert scheduler.execute_now(pid).success

    def test_unknown_payment(self, scheduler):
        with pytest.raises(LookupError):
            scheduler.execute_now(404)

    def test_cancelled_payment_is_rejected(self, scheduler, ledger, make_payment):
        pid = make_payment(status=STATUS_CANCELLED)

        with pytest.raises(ValueError):
            scheduler.execute_now(pid)
        assert ledger.executions == []

    def test_concurrent_run_is_rejected(self, scheduler, ledger, make_payment):
        pid = make_payment()

        with scheduler._exclusive(pid):
            with pytest.raises(ScheduleBusyError):
                scheduler.execute_now(pid)

        assert ledger.executions == []

    def test_lock_released_after_error(self, scheduler, make_payment):
        pid = make_payment()
        scheduler.executor = MagicMock()
        scheduler.executor.execute.side_effect = PersistenceError("boom")

        with pytest.raises(PersistenceError):
            scheduler.execute_now(pid)
        with scheduler._exclusive(pid):
            pass
        assert scheduler._running == set()

    def test_finished_runs_are_not_tracked(self, scheduler, make_payment):
        first = make_payment()
        second = make_payment()

        scheduler.execute_now(first)
        scheduler.process_due_payments()

        assert scheduler._running == set()
        with scheduler._exclusive(second):
            assert scheduler._running == {second}
        assert scheduler._running == set()

    def test_only_one_of_two_threads_runs(self, scheduler, ledger, make_payment):
        pid = make_payment()
        started = threading.Event()
        release = threading.Event()
        original_execute = scheduler.executor.execute

        def slow_execute(payment, gateway):
            started.set()
            release.wait(timeout=5)
            return original_execute(payment, gateway)

        scheduler.executor.execute = slow_execute
        worker = threading.Thread(target=scheduler.execute_now, args=(pid,))
        worker.start()
        assert started.wait(timeout=5)

        with pytest.raises(ScheduleBusyError):
            scheduler.execute_now(pid)

        release.set()
        worker.join(timeout=5)
        assert len(ledger.executions) == 1


class TestJobQueue:

    def test_start_registers_repeating_job(self, scheduler):
        job_queue = MagicMock()

        scheduler.start_scheduler(job_queue, 60)

        job_queue.run_repeating.assert_called_once_with(
            scheduler._tick, interval=60, first=0, name=JOB_NAME
        )
        assert scheduler.running

    def test_start_twice_is_a_no_op(self, scheduler):
        job_queue = MagicMock()

        scheduler.start_scheduler(job_queue, 60)
        scheduler.start_scheduler(job_queue, 60)

        assert job_queue.run_repeating.call_count == 1

    def test_stop_removes_job(self, scheduler):
        job_queue = MagicMock()
        scheduler.start_scheduler(job_queue, 60)
        job = job_queue.run_repeating.return_value

        scheduler.stop_scheduler()
        scheduler.stop_scheduler()

        job.schedule_removal.assert_called_once()
        assert not scheduler.running

    def test_tick_processes_due_payments(self, scheduler, ledger, make_payment):
        make_payment()

        asyncio.run(scheduler._tick(None))

        assert len(ledger.executions) == 1

    def test_tick_swallows_errors(self, scheduler, connection_repo):
        connection_repo.get_active.side_effect = PersistenceError("db down")

        asyncio.run(scheduler._tick(None))
