"""
PaymentProcessor -- applies payments to bills and reports payment history.

Responsibility:
    Validates a payment against the current bill, appends it, recomputes
    amount paid, balance due and status, and commits the result as one
    atomic replace.  Also exposes a flattened, filterable payment history.

Architecture position:
    Kernel > Services -- imperative shell over
    ``billing_kernel.domain.ledger.record_payment``.

Invariants enforced:
    - At most one payment is applied to a given bill at a time (per-bill
      lock); payments to different bills proceed in parallel.
    - The system never creates credit balances: amount <= balance due.
    - A rejected payment leaves the stored bill unchanged.

Failure modes:
    - ValidationError: amount <= 0, wrong currency, unknown method.
    - InvalidTransitionError: bill not ISSUED, PARTIAL or OVERDUE.
    - OverpaymentError: amount > balance due.
    - ConflictError: version conflicts exhausted the retry budget.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from billing_kernel.domain.bill import Bill, BillStatus, PaymentMethod
from billing_kernel.domain.ledger import record_payment
from billing_kernel.domain.money import Money
from billing_kernel.exceptions import ValidationError
from billing_kernel.logging_config import get_logger
from billing_kernel.services.base import BaseBillService
from billing_kernel.services.pagination import Page, paginate

logger = get_logger("services.payment_processor")


@dataclass(frozen=True)
class PaymentHistoryEntry:
    """One payment joined with the bill it settled."""

    payment_id: str
    bill_id: str
    bill_number: str | None
    patient_ref: str
    amount: Money
    method: PaymentMethod
    paid_at: datetime
    received_by: str | None
    reference: str | None
    notes: str | None
    bill_grand_total: Money
    bill_amount_paid: Money
    bill_status: BillStatus


class PaymentProcessor(BaseBillService):
    """
    Applies payments under the bill's lock.

    Usage:
        processor = PaymentProcessor(repository, clock, settings, locks)
        bill = processor.apply_payment(bill_id, Money.of(50000, "VND"), "CASH")
    """

    def apply_payment(
        self,
        bill_id: str,
        amount: Money | int,
        method: PaymentMethod | str,
        received_by: str | None = None,
        *,
        reference: str | None = None,
        notes: str | None = None,
    ) -> Bill:
        """
        Record a payment and return the updated bill.

        An ``int`` amount is taken as minor units of the bill's currency.
        """
        if isinstance(amount, bool) or not isinstance(amount, (Money, int)):
            raise ValidationError(
                f"amount must be Money or int minor units, got {type(amount).__name__}",
                field="amount",
            )
        payment_method = PaymentMethod.parse(method)
        payment_id = str(uuid4())

        def change(bill: Bill) -> Bill:
            value = amount if isinstance(amount, Money) else Money.of(amount, bill.currency)
            return record_payment(
                bill,
                payment_id=payment_id,
                amount=value,
                method=payment_method,
                paid_at=self._clock.now(),
                received_by=received_by,
                reference=reference,
                notes=notes,
            )

        bill = self._mutate(bill_id, "apply_payment", change, actor_id=received_by)
        logger.info(
            "payment_applied",
            extra={
                "bill_id": bill.id,
                "payment_id": payment_id,
                "amount": bill.payments[-1].amount.minor,
                "method": payment_method.value,
                "amount_paid": bill.amount_paid.minor,
                "balance_due": bill.balance_due.minor,
                "status": bill.status.value,
            },
        )
        return bill

    def payment_history(
        self,
        *,
        patient_ref: str | None = None,
        paid_from: datetime | None = None,
        paid_to: datetime | None = None,
        method: PaymentMethod | str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[PaymentHistoryEntry]:
        """Every recorded payment matching the filters, newest first."""
        wanted = PaymentMethod.parse(method) if method is not None else None
        rows: list[PaymentHistoryEntry] = []
        for bill in self._repository.snapshot():
            if patient_ref is not None and bill.patient_ref != patient_ref:
                continue
            for p in bill.payments:
                if wanted is not None and p.method != wanted:
                    continue
                if paid_from is not None and p.paid_at < paid_from:
                    continue
                if paid_to is not None and p.paid_at > paid_to:
                    continue
                rows.append(
                    PaymentHistoryEntry(
                        payment_id=p.id,
                        bill_id=bill.id,
                        bill_number=bill.bill_number,
                        patient_ref=bill.patient_ref,
                        amount=p.amount,
                        method=p.method,
                        paid_at=p.paid_at,
                        received_by=p.received_by,
                        reference=p.reference,
                        notes=p.notes,
                        bill_grand_total=bill.grand_total,
                        bill_amount_paid=bill.amount_paid,
                        bill_status=bill.status,
                    )
                )
        rows.sort(key=lambda r: (r.paid_at, r.payment_id), reverse=True)
        return paginate(
            rows,
            page,
            limit,
            default_limit=self._settings.default_page_size,
            max_limit=self._settings.max_page_size,
        )
