"""
services/payment_executor.py
-----------------------------
Executes one recurring payment.

Responsibilities:
    - Validate the target address and cadence.
    - Pay through phoenixd, falling back to manual LNURL resolution when
      phoenixd cannot reach a lightning address domain.
    - Record exactly one execution per call and update the schedule.
    - Publish the outcome.

Payment failures never escape `execute()`, whatever their type; they become
a failed execution and a failed ExecutionResult. Only PersistenceError
propagates.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

from config import NOTIFY_ON_FAILURE
from exceptions import (
    ConfigurationError,
    GatewayError,
    GatewayErrorKind,
    PersistenceError,
    ResolutionError,
)
from models.contact import BOLT12_OFFER, LIGHTNING_ADDRESS, ContactAddress
from models.execution import ExecutionResult, PaymentResult
from models.recurring import RecurringPayment
from repositories.recurring_repo import RecurringRepository
from services.lnurl_resolver import LnurlResolver
from services.notifier import EVENT_EXECUTED, EVENT_FAILED, EventNotifier
from services.schedule_calculator import calculate_next_run_at
from utils.logger import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentExecutor:
    """
    Orchestrates a single execution of a recurring payment.

    Args:
        repo: Execution ledger (defaults to RecurringRepository).
        resolver: LNURL fallback resolver.
        notifier: Event notifier.
        notify_on_failure: Also publish an event when an execution fails.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        repo: Optional[RecurringRepository] = None,
        resolver: Optional[LnurlResolver] = None,
        notifier: Optional[EventNotifier] = None,
        notify_on_failure: bool = NOTIFY_ON_FAILURE,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repo = repo or RecurringRepository()
        self.resolver = resolver or LnurlResolver()
        self.notifier = notifier or EventNotifier()
        self.notify_on_failure = notify_on_failure
        self._now = clock

    def execute(self, payment: RecurringPayment, gateway) -> ExecutionResult:
        """
        Execute `payment` against `gateway` (a PhoenixdClient).

        Returns:
            ExecutionResult describing the outcome.

        Raises:
            PersistenceError: If the outcome could not be recorded.
        """
        try:
            address = self._validate(payment)
        except ConfigurationError as e:
            # Needs the operator: keep next_run_at untouched.
            return self._fail(payment, str(e), reschedule=False)

        try:
            result = self._send(payment, address, gateway)
        except (GatewayError, ResolutionError) as e:
            return self._fail(payment, str(e), reschedule=True)
        except ConfigurationError as e:
            return self._fail(payment, str(e), reschedule=False)
        except PersistenceError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error paying recurring payment #{payment.id}")
            return self._fail(payment, f"Unexpected error: {type(e).__name__}: {e}", reschedule=True)

        return self._succeed(payment, result)

    # ── Steps ─────────────────────────────────────────────

    @staticmethod
    def _validate(payment: RecurringPayment) -> ContactAddress:
        address = payment.target_address()
        if address is None:
            raise ConfigurationError("Address not found on contact")
        if not address.supports_autopay():
            raise ConfigurationError(f"Unsupported address type: {address.type}")
        try:
            calculate_next_run_at(
                payment.frequency, payment.time_of_day, payment.day_of_week, payment.day_of_month
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        return address

    def _send(self, payment: RecurringPayment, address: ContactAddress, gateway) -> PaymentResult:
        message = payment.payment_message()

        if address.type == BOLT12_OFFER:
            return gateway.pay_offer(address.address, payment.amount_sat, message)

        if address.type == LIGHTNING_ADDRESS:
            try:
                return gateway.pay_ln_address(address.address, payment.amount_sat, message)
            except GatewayError as e:
                if e.kind is not GatewayErrorKind.RESOLUTION_UNREACHABLE:
                    raise
                logger.info(
                    f"phoenixd cannot resolve {address.address} ({e}), trying manual LNURL resolution..."
                )
            return self.resolver.pay(gateway, address.address, payment.amount_sat, message)

        raise ConfigurationError(f"Unsupported address type: {address.type}")

    def _succeed(self, payment: RecurringPayment, result: PaymentResult) -> ExecutionResult:
        now = self._now()
        next_run_at = self._next_run_at(payment, now)
        self.repo.record_success(payment, result, now, next_run_at)

        payment.last_run_at = now
        payment.last_error = None
        payment.total_paid += payment.amount_sat
        payment.payment_count += 1
        payment.next_run_at = next_run_at

        name = payment.contact.name if payment.contact else payment.contact_id
        logger.info(
            f"Payment executed successfully: {payment.amount_sat} sats to {name} "
            f"({result.payment_id}), next run {next_run_at:%Y-%m-%d %H:%M} UTC"
        )
        self._publish(EVENT_EXECUTED, self._event_payload(payment, now, {
            "paymentId": result.payment_id,
            "paymentHash": result.payment_hash,
        }))
        return ExecutionResult(
            success=True,
            payment_id=result.payment_id,
            payment_hash=result.payment_hash,
            amount_sat=payment.amount_sat,
        )

    def _fail(self, payment: RecurringPayment, error: str, reschedule: bool) -> ExecutionResult:
        now = self._now()
        next_run_at = self._next_run_at(payment, now) if reschedule else None
        self.repo.record_failure(payment, error, now, next_run_at)

        payment.last_error = error
        if next_run_at is not None:
            payment.next_run_at = next_run_at

        name = payment.contact.name if payment.contact else payment.contact_id
        logger.error(f"Payment failed for {name} (#{payment.id}): {error}")
        if self.notify_on_failure:
            self._publish(EVENT_FAILED, self._event_payload(payment, now, {"error": error}))
        return ExecutionResult(success=False, amount_sat=payment.amount_sat, error=error)

    # ── Helpers ───────────────────────────────────────────

    @staticmethod
    def _next_run_at(payment: RecurringPayment, now: datetime) -> datetime:
        # A manual run ahead of schedule must not pull next_run_at backwards.
        anchor = max(now, payment.next_run_at) if payment.next_run_at else now
        return calculate_next_run_at(
            payment.frequency,
            payment.time_of_day,
            payment.day_of_week,
            payment.day_of_month,
            anchor,
        )

    @staticmethod
    def _event_payload(payment: RecurringPayment, now: datetime, extra: dict) -> dict:
        return {
            "recurringPaymentId": payment.id,
            "contactId": payment.contact_id,
            "contactName": payment.contact.name if payment.contact else None,
            "amountSat": payment.amount_sat,
            "timestamp": int(now.timestamp() * 1000),
            **extra,
        }

    def _publish(self, event_name: str, payload: dict) -> None:
        try:
            self.notifier.publish(event_name, {"type": event_name, **payload})
        except Exception as e:
            logger.error(f"Failed to publish {event_name}: {e}")
