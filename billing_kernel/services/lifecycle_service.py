"""
BillLifecycle -- guarded lifecycle actions: issue, void, write-off, cancel.

Responsibility:
    Runs the pure transitions of ``billing_kernel.domain.lifecycle`` under
    the bill's lock and persists the result.  Issuing allocates the bill
    number from the repository's sequence.

Invariants enforced:
    - bill_number is allocated only at issue and never regenerated.
    - Terminal transitions are one-way.

Failure modes:
    - ValidationError: empty reason.
    - InvalidTransitionError: action not allowed from the current status.
    - PaymentsExistError: void/cancel of a bill that received money.
"""

from __future__ import annotations

from billing_kernel.domain import lifecycle
from billing_kernel.domain.bill import Bill
from billing_kernel.exceptions import InvalidTransitionError
from billing_kernel.logging_config import get_logger
from billing_kernel.services.base import BaseBillService

logger = get_logger("services.lifecycle")

BILL_NUMBER_SEQUENCE = "bill_number"


class BillLifecycle(BaseBillService):
    """Issue and close bills."""

    def issue(self, bill_id: str, actor_id: str | None = None) -> Bill:
        """DRAFT -> ISSUED with a freshly allocated bill number."""

        def change(bill: Bill) -> Bill:
            if not lifecycle.BILL_WORKFLOW.allows(bill.status, "issue"):
                raise InvalidTransitionError(bill.id, "issue", bill.status.value)
            sequence = self._repository.next_sequence(BILL_NUMBER_SEQUENCE)
            number = lifecycle.format_bill_number(
                self._settings.bill_number_prefix,
                sequence,
                self._settings.bill_number_width,
            )
            return lifecycle.issue(
                bill,
                bill_number=number,
                now=self._clock.now(),
                payment_terms_days=self._settings.payment_terms_days,
            )

        bill = self._mutate(bill_id, "issue", change, actor_id=actor_id)
        logger.info(
            "bill_issued",
            extra={
                "bill_id": bill.id,
                "bill_number": bill.bill_number,
                "due_date": bill.due_date,
                "grand_total": bill.grand_total.minor,
            },
        )
        return bill

    def void(self, bill_id: str, reason: str, actor_id: str | None = None) -> Bill:
        """ISSUED/PARTIAL/OVERDUE -> VOIDED (no payments allowed)."""
        return self._close(bill_id, "void", reason, actor_id)

    def write_off(self, bill_id: str, reason: str, actor_id: str | None = None) -> Bill:
        """ISSUED/PARTIAL/OVERDUE -> WRITTEN_OFF (payments kept)."""
        return self._close(bill_id, "write_off", reason, actor_id)

    def cancel(self, bill_id: str, reason: str, actor_id: str | None = None) -> Bill:
        """DRAFT/ISSUED/PARTIAL/OVERDUE -> CANCELLED (no payments allowed)."""
        return self._close(bill_id, "cancel", reason, actor_id)

    def _close(self, bill_id: str, action: str, reason: str, actor_id: str | None) -> Bill:
        transition = {
            "void": lifecycle.void,
            "write_off": lifecycle.write_off,
            "cancel": lifecycle.cancel,
        }[action]

        bill = self._mutate(
            bill_id,
            action,
            lambda b: transition(b, reason=reason, now=self._clock.now()),
            actor_id=actor_id,
        )
        logger.info(
            "bill_closed",
            extra={
                "bill_id": bill.id,
                "action": action,
                "status": bill.status.value,
                "amount_paid": bill.amount_paid.minor,
                "written_off_amount": bill.written_off_amount.minor,
            },
        )
        return bill
