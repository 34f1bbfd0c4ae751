"""
services/recurring_scheduler.py
--------------------------------
Polls for due recurring payments and runs them one at a time.

Entry points:
    start_scheduler(job_queue, interval) / stop_scheduler()
    execute_now(schedule_id) for operator-triggered runs

Every execution, timed or manual, marks its schedule as running for its
duration, so the same schedule is never paid twice concurrently. Only
schedules currently executing are tracked.
"""

import asyncio
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from config import PAYMENT_DELAY_SECONDS, SCHEDULER_INTERVAL_SECONDS
from exceptions import ScheduleBusyError
from models.execution import ExecutionResult
from models.recurring import STATUS_ACTIVE, STATUS_CANCELLED
from repositories.connection_repo import ConnectionRepository
from repositories.recurring_repo import RecurringRepository
from services.payment_executor import PaymentExecutor
from services.phoenixd_client import PhoenixdClient
from utils.logger import get_logger

logger = get_logger(__name__)

JOB_NAME = "recurring_payments"


class RecurringScheduler:
    """
    Due-payment poller and manual execution entry point.

    Args:
        repo: Execution ledger.
        connection_repo: Source of the active node connection.
        executor: PaymentExecutor shared by timed and manual runs.
        gateway_factory: Builds a gateway (context manager) for a connection.
        payment_delay: Seconds to wait between two due payments of a tick.
        clock: Returns the current UTC time.
        sleep: Blocking sleep used for the inter-payment delay.
    """

    def __init__(
        self,
        repo: Optional[RecurringRepository] = None,
        connection_repo: Optional[ConnectionRepository] = None,
        executor: Optional[PaymentExecutor] = None,
        gateway_factory: Callable = PhoenixdClient.from_connection,
        payment_delay: float = PAYMENT_DELAY_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repo = repo or RecurringRepository()
        self.connection_repo = connection_repo or ConnectionRepository()
        self.executor = executor or PaymentExecutor(repo=self.repo)
        self.gateway_factory = gateway_factory
        self.payment_delay = payment_delay
        self._now = clock
        self._sleep = sleep
        self._running: set[int] = set()
        self._running_guard = threading.Lock()
        self._job = None

    # ── Timer ─────────────────────────────────────────────

    def start_scheduler(self, job_queue, interval: float = SCHEDULER_INTERVAL_SECONDS) -> None:
        """Register the polling job; the first tick runs immediately."""
        if self._job is not None:
            logger.info("Scheduler already running")
            return
        logger.info(f"Starting recurring payment scheduler (checking every {interval:g}s)")
        self._job = job_queue.run_repeating(self._tick, interval=interval, first=0, name=JOB_NAME)

    def stop_scheduler(self) -> None:
        """Remove the polling job. In-flight executions finish on their own."""
        if self._job is None:
            return
        self._job.schedule_removal()
        self._job = None
        logger.info("Recurring payment scheduler stopped")

    @property
    def running(self) -> bool:
        return self._job is not None

    async def _tick(self, context) -> None:
        """Job queue callback: run one poll off the event loop."""
        try:
            await asyncio.to_thread(self.process_due_payments)
        except Exception:
            logger.exception("Error processing due payments")

    # ── Polling ───────────────────────────────────────────

    def process_due_payments(self) -> int:
        """
        Execute every payment due now on the active connection, sequentially.

        Returns:
            Number of payments that were executed (successfully or not).
        """
        now = self._now()
        connection = self.connection_repo.get_active()
        if connection is None:
            logger.info("No active connection, skipping payment processing")
            return 0

        due = self.repo.get_due(now, connection.id)
        if not due:
            return 0

        logger.info(f"Processing {len(due)} due payment(s) for connection: {connection.name}")
        executed = 0
        with self.gateway_factory(connection) as gateway:
            for index, payment in enumerate(due):
                if index:
                    # One physical node: never burst payments at it.
                    self._sleep(self.payment_delay)
                try:
                    result = self._run_due(payment.id, gateway, now)
                except ScheduleBusyError:
                    logger.info(f"Payment #{payment.id} is already executing, skipping this tick")
                    continue
                except Exception:
                    logger.exception(f"Error executing payment #{payment.id}")
                    continue
                if result is not None:
                    executed += 1
        return executed

    def _run_due(self, schedule_id: int, gateway, now: datetime) -> Optional[ExecutionResult]:
        with self._exclusive(schedule_id):
            # Re-read once marked running: a manual run may have just moved it.
            payment = self.repo.get_by_id(schedule_id)
            if payment is None or payment.status != STATUS_ACTIVE or payment.next_run_at > now:
                logger.info(f"Payment #{schedule_id} no longer due, skipping")
                return None
            name = payment.contact.name if payment.contact else payment.contact_id
            via = f"connection #{payment.connection_id}" if payment.connection_id else "legacy"
            logger.info(f"Executing payment #{payment.id} for {name} ({payment.amount_sat} sats) via {via}")
            return self.executor.execute(payment, gateway)

    # ── Manual runs ───────────────────────────────────────

    def execute_now(self, schedule_id: int) -> ExecutionResult:
        """
        Execute a payment immediately, regardless of its due time.

        Raises:
            LookupError: If the payment does not exist.
            ValueError: If the payment is cancelled.
            ScheduleBusyError: If it is already executing.
            PersistenceError: If the outcome could not be recorded.
        """
        with self._exclusive(schedule_id):
            payment = self.repo.get_by_id(schedule_id)
            if payment is None:
                raise LookupError(f"Recurring payment #{schedule_id} not found")
            if payment.status == STATUS_CANCELLED:
                raise ValueError(f"Recurring payment #{schedule_id} is cancelled")
            connection = self.connection_repo.get_active()
            logger.info(f"Manual execution of payment #{schedule_id}")
            with self.gateway_factory(connection) as gateway:
                return self.executor.execute(payment, gateway)

    @contextmanager
    def _exclusive(self, schedule_id: int) -> Iterator[None]:
        with self._running_guard:
            if schedule_id in self._running:
                raise ScheduleBusyError(schedule_id)
            self._running.add(schedule_id)
        try:
            yield
        finally:
            with self._running_guard:
                self._running.discard(schedule_id)
