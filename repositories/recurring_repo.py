"""
repositories/recurring_repo.py
-------------------------------
Data access layer for recurring payments and their execution history.
All SQL queries related to the `recurring_payments` and
`recurring_payment_executions` tables live here.

The three `record_*` methods are the execution ledger: each writes the
execution row, the schedule update and (on success) the payment metadata
inside a single transaction.
"""

from datetime import datetime
from typing import Optional

from db.connection import get_connection, release_connection, transaction
from models.contact import Contact, ContactAddress
from models.execution import (
    EXECUTION_FAILED,
    EXECUTION_SUCCESS,
    PaymentResult,
    RecurringPaymentExecution,
)
from models.recurring import STATUS_ACTIVE, RecurringPayment
from utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = """
    id, contact_id, address_id, connection_id, amount_sat, frequency,
    day_of_week, day_of_month, time_of_day, note, category_id, status,
    next_run_at, last_run_at, last_error, total_paid, payment_count, created_at
"""

# Fields the operator may change through update().
_UPDATABLE = (
    "address_id", "amount_sat", "frequency", "day_of_week", "day_of_month",
    "time_of_day", "note", "category_id", "status", "next_run_at",
)


class RecurringRepository:
    """Repository for recurring_payments and recurring_payment_executions."""

    # ── CREATE ────────────────────────────────────────────

    def add(self, payment: RecurringPayment) -> RecurringPayment:
        """
        Insert a new recurring payment.

        Returns:
            The same object with its `id` and `created_at` populated.
        """
        sql = """
            INSERT INTO recurring_payments
                (contact_id, address_id, connection_id, amount_sat, frequency,
                 day_of_week, day_of_month, time_of_day, note, category_id,
                 status, next_run_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id, created_at;
        """
        with transaction() as cur:
            cur.execute(sql, (
                payment.contact_id, payment.address_id, payment.connection_id,
                payment.amount_sat, payment.frequency, payment.day_of_week,
                payment.day_of_month, payment.time_of_day, payment.note,
                payment.category_id, payment.status, payment.next_run_at,
            ))
            payment.id, payment.created_at = cur.fetchone()
        logger.info(f"Added recurring payment #{payment.id} ({payment.amount_sat} sats, {payment.frequency})")
        return payment

    # ── READ ──────────────────────────────────────────────

    def get_by_id(self, payment_id: int) -> Optional[RecurringPayment]:
        """Fetch a single recurring payment with its contact and addresses."""
        sql = f"SELECT {_COLUMNS} FROM recurring_payments WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (payment_id,))
                row = cur.fetchone()
                if not row:
                    return None
                payments = [self._row_to_payment(row)]
                self._attach_contacts(cur, payments)
                return payments[0]
        finally:
            release_connection(conn)

    def get_all(
        self,
        status: Optional[str] = None,
        connection_id: Optional[int] = None,
        show_all: bool = False,
    ) -> list[RecurringPayment]:
        """
        List recurring payments, newest first.

        Args:
            status: Only return payments with this status.
            connection_id: Active connection; payments bound to another
                connection are hidden unless `show_all`. Unbound (legacy)
                payments are always included.
            show_all: Ignore connection affinity.
        """
        sql = f"SELECT {_COLUMNS} FROM recurring_payments WHERE TRUE"
        params: list = []
        if status:
            sql += " AND status = %s"
            params.append(status)
        if not show_all:
            sql += " AND (connection_id = %s OR connection_id IS NULL)"
            params.append(connection_id)
        sql += " ORDER BY created_at DESC;"

        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                payments = [self._row_to_payment(r) for r in cur.fetchall()]
                self._attach_contacts(cur, payments)
                return payments
        finally:
            release_connection(conn)

    def get_due(self, now: datetime, connection_id: int) -> list[RecurringPayment]:
        """
        Get every active payment due at `now` that may run on `connection_id`.
        Used by the scheduler on each tick.
        """
        sql = f"""
            SELECT {_COLUMNS} FROM recurring_payments
            WHERE status = %s
              AND next_run_at <= %s
              AND (connection_id = %s OR connection_id IS NULL)
            ORDER BY next_run_at ASC;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (STATUS_ACTIVE, now, connection_id))
                payments = [self._row_to_payment(r) for r in cur.fetchall()]
                self._attach_contacts(cur, payments)
                return payments
        finally:
            release_connection(conn)

    def get_executions(
        self, payment_id: int, limit: int = 50, offset: int = 0
    ) -> list[RecurringPaymentExecution]:
        """Execution history of a payment, newest first."""
        sql = """
            SELECT id, recurring_payment_id, status, amount_sat, payment_id,
                   payment_hash, error_message, executed_at
            FROM recurring_payment_executions
            WHERE recurring_payment_id = %s
            ORDER BY executed_at DESC
            LIMIT %s OFFSET %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (payment_id, limit, offset))
                return [
                    RecurringPaymentExecution(
                        id=r[0], recurring_payment_id=r[1], status=r[2],
                        amount_sat=r[3], payment_id=r[4], payment_hash=r[5],
                        error_message=r[6], executed_at=r[7],
                    )
                    for r in cur.fetchall()
                ]
        finally:
            release_connection(conn)

    # ── UPDATE ────────────────────────────────────────────

    def update(self, payment_id: int, **fields) -> bool:
        """
        Update operator-editable fields of a payment.

        Raises:
            ValueError: If a field is not editable.
        """
        unknown = set(fields) - set(_UPDATABLE)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not fields:
            return False

        assignments = ", ".join(f"{name} = %s" for name in fields)
        sql = f"UPDATE recurring_payments SET {assignments} WHERE id = %s;"
        with transaction() as cur:
            cur.execute(sql, (*fields.values(), payment_id))
            updated = cur.rowcount > 0
        if updated:
            logger.info(f"Updated recurring payment #{payment_id}: {', '.join(fields)}")
        return updated

    # ── EXECUTION LEDGER ──────────────────────────────────

    def record_success(
        self,
        payment: RecurringPayment,
        result: PaymentResult,
        executed_at: datetime,
        next_run_at: datetime,
    ) -> RecurringPaymentExecution:
        """
        Persist a successful execution atomically:
        execution row, schedule counters and payment metadata link.
        """
        note = payment.payment_message()
        with transaction() as cur:
            execution = self._insert_execution(cur, RecurringPaymentExecution(
                recurring_payment_id=payment.id,
                status=EXECUTION_SUCCESS,
                amount_sat=payment.amount_sat,
                payment_id=result.payment_id,
                payment_hash=result.payment_hash,
                executed_at=executed_at,
            ))
            cur.execute(
                """
                UPDATE recurring_payments
                SET last_run_at = %s,
                    last_error = NULL,
                    total_paid = total_paid + %s,
                    payment_count = payment_count + 1,
                    next_run_at = %s
                WHERE id = %s;
                """,
                (executed_at, payment.amount_sat, next_run_at, payment.id),
            )
            # Idempotent on payment_id so a replayed execution never duplicates the link.
            cur.execute(
                """
                INSERT INTO payment_metadata (payment_id, contact_id, note)
                VALUES (%s, %s, %s)
                ON CONFLICT (payment_id)
                DO UPDATE SET contact_id = EXCLUDED.contact_id, note = EXCLUDED.note
                RETURNING id;
                """,
                (result.payment_id, payment.contact_id, note),
            )
            metadata_id = cur.fetchone()[0]
            if payment.category_id:
                cur.execute(
                    """
                    INSERT INTO payment_metadata_categories (payment_metadata_id, category_id)
                    VALUES (%s, %s)
                    ON CONFLICT DO NOTHING;
                    """,
                    (metadata_id, payment.category_id),
                )
        return execution

    def record_failure(
        self,
        payment: RecurringPayment,
        error_message: str,
        executed_at: datetime,
        next_run_at: Optional[datetime],
    ) -> RecurringPaymentExecution:
        """
        Persist a failed execution atomically.

        Args:
            next_run_at: New due time, or None to leave the schedule where it
                is (configuration errors that need the operator).
        """
        with transaction() as cur:
            execution = self._insert_execution(cur, RecurringPaymentExecution(
                recurring_payment_id=payment.id,
                status=EXECUTION_FAILED,
                amount_sat=payment.amount_sat,
                error_message=error_message,
                executed_at=executed_at,
            ))
            if next_run_at is None:
                cur.execute(
                    "UPDATE recurring_payments SET last_error = %s WHERE id = %s;",
                    (error_message, payment.id),
                )
            else:
                cur.execute(
                    "UPDATE recurring_payments SET last_error = %s, next_run_at = %s WHERE id = %s;",
                    (error_message, next_run_at, payment.id),
                )
        return execution

    # ── DELETE ────────────────────────────────────────────

    def delete(self, payment_id: int) -> bool:
        """Delete a recurring payment (its executions cascade)."""
        with transaction() as cur:
            cur.execute("DELETE FROM recurring_payments WHERE id = %s;", (payment_id,))
            deleted = cur.rowcount > 0
        if deleted:
            logger.info(f"Deleted recurring payment #{payment_id}")
        return deleted

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _insert_execution(cur, execution: RecurringPaymentExecution) -> RecurringPaymentExecution:
        cur.execute(
            """
            INSERT INTO recurring_payment_executions
                (recurring_payment_id, status, amount_sat, payment_id,
                 payment_hash, error_message, executed_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (
                execution.recurring_payment_id, execution.status, execution.amount_sat,
                execution.payment_id, execution.payment_hash, execution.error_message,
                execution.executed_at,
            ),
        )
        execution.id = cur.fetchone()[0]
        return execution

    @staticmethod
    def _attach_contacts(cur, payments: list[RecurringPayment]) -> None:
        """Load contacts and their addresses for a batch of payments in two queries."""
        contact_ids = sorted({p.contact_id for p in payments})
        if not contact_ids:
            return
        cur.execute("SELECT id, name FROM contacts WHERE id = ANY(%s);", (contact_ids,))
        contacts = {row[0]: Contact(id=row[0], name=row[1]) for row in cur.fetchall()}
        cur.execute(
            "SELECT id, contact_id, address, type FROM contact_addresses "
            "WHERE contact_id = ANY(%s) ORDER BY id;",
            (contact_ids,),
        )
        for row in cur.fetchall():
            contacts[row[1]].addresses.append(
                ContactAddress(id=row[0], contact_id=row[1], address=row[2], type=row[3])
            )
        for payment in payments:
            payment.contact = contacts.get(payment.contact_id)

    @staticmethod
    def _row_to_payment(row: tuple) -> RecurringPayment:
        """Convert a database row tuple to a RecurringPayment domain object."""
        return RecurringPayment(
            id=row[0],
            contact_id=row[1],
            address_id=row[2],
            connection_id=row[3],
            amount_sat=int(row[4]),
            frequency=row[5],
            day_of_week=row[6],
            day_of_month=row[7],
            time_of_day=row[8],
            note=row[9],
            category_id=row[10],
            status=row[11],
            next_run_at=row[12],
            last_run_at=row[13],
            last_error=row[14],
            total_paid=int(row[15]),
            payment_count=row[16],
            created_at=row[17],
        )
