"""
models/execution.py
-------------------
Outcomes of recurring payment executions.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

EXECUTION_SUCCESS = "success"
EXECUTION_FAILED = "failed"


@dataclass
class PaymentResult:
    """What the node reports for a settled outgoing payment."""
    payment_id: str
    payment_hash: str
    recipient_amount_sat: int
    routing_fee_sat: int = 0
    payment_preimage: Optional[str] = None


@dataclass
class RecurringPaymentExecution:
    """
    Immutable record of one execution attempt.

    Attributes:
        recurring_payment_id: Owning schedule.
        status: 'success' | 'failed'.
        amount_sat: Amount attempted.
        payment_id / payment_hash: Set on success only.
        error_message: Set on failure only.
        executed_at: When the attempt was recorded.
    """
    recurring_payment_id: int
    status: str
    amount_sat: int
    payment_id: Optional[str] = None
    payment_hash: Optional[str] = None
    error_message: Optional[str] = None
    executed_at: Optional[datetime] = None
    id: Optional[int] = None

    def __str__(self) -> str:
        when = f"{self.executed_at:%Y-%m-%d %H:%M}" if self.executed_at else "?"
        if self.status == EXECUTION_SUCCESS:
            return f"✅ {when} {self.amount_sat} sats ({self.payment_id})"
        return f"❌ {when} {self.amount_sat} sats: {self.error_message}"


@dataclass
class ExecutionResult:
    """Returned to callers of the executor (scheduler tick or manual run)."""
    success: bool
    payment_id: Optional[str] = None
    payment_hash: Optional[str] = None
    amount_sat: Optional[int] = None
    error: Optional[str] = None
