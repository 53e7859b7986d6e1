"""
Bill Lifecycle -- state machine and guarded lifecycle actions.

Responsibility:
    Declares the bill workflow (states, actions, transitions) and the pure
    functions that apply the lifecycle actions: issue, void, write_off and
    cancel.  Payment-driven transitions are declared here and executed by
    ``billing_kernel.domain.ledger.record_payment``.

Architecture position:
    Kernel > Domain -- pure functional core.  Services call these under the
    per-bill lock and persist the returned Bill.

Invariants enforced:
    - An action is applied only from a state the workflow lists for it.
    - Terminal states (CANCELLED, WRITTEN_OFF, VOIDED) have no outgoing
      transitions.
    - void and cancel are refused once any payment exists.
    - bill_number is assigned once, at issue.

Failure modes:
    - ValidationError for an empty reason or bill number.
    - InvalidTransitionError when the action is not allowed from the status.
    - PaymentsExistError (a ConflictError) for void/cancel with payments.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from billing_kernel.domain.bill import Bill, BillStatus
from billing_kernel.domain.ledger import refresh
from billing_kernel.exceptions import (
    InvalidTransitionError,
    PaymentsExistError,
    ValidationError,
)
from billing_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycle")


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: BillStatus
    to_state: BillStatus
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: BillStatus
    states: tuple[BillStatus, ...]
    transitions: tuple[Transition, ...]

    def sources(self, action: str) -> frozenset[BillStatus]:
        """States from which ``action`` may be taken."""
        return frozenset(t.from_state for t in self.transitions if t.action == action)

    def targets(self, status: BillStatus) -> frozenset[BillStatus]:
        """States reachable from ``status`` in one step."""
        return frozenset(t.to_state for t in self.transitions if t.from_state == status)

    def allows(self, status: BillStatus, action: str) -> bool:
        return status in self.sources(action)


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

BALANCE_ZERO = Guard(
    name="balance_zero",
    description="Bill balance is zero",
)

NO_PAYMENTS = Guard(
    name="no_payments",
    description="Bill has not received any payment",
)

PAST_DUE = Guard(
    name="past_due",
    description="Due date has passed with nothing paid",
)

REASON_GIVEN = Guard(
    name="reason_given",
    description="A non-empty reason was supplied",
)


# -----------------------------------------------------------------------------
# Bill workflow
# -----------------------------------------------------------------------------

_S = BillStatus

BILL_WORKFLOW = Workflow(
    name="clinic_bill",
    description="Patient bill lifecycle",
    initial_state=_S.DRAFT,
    states=tuple(BillStatus),
    transitions=(
        Transition(_S.DRAFT, _S.ISSUED, action="issue"),
        Transition(_S.DRAFT, _S.CANCELLED, action="cancel", guard=REASON_GIVEN),
        # Payments
        Transition(_S.ISSUED, _S.PARTIAL, action="apply_payment"),
        Transition(_S.ISSUED, _S.PAID, action="apply_payment", guard=BALANCE_ZERO),
        Transition(_S.PARTIAL, _S.PARTIAL, action="apply_payment"),
        Transition(_S.PARTIAL, _S.PAID, action="apply_payment", guard=BALANCE_ZERO),
        Transition(_S.OVERDUE, _S.PARTIAL, action="apply_payment"),
        Transition(_S.OVERDUE, _S.PAID, action="apply_payment", guard=BALANCE_ZERO),
        # Time
        Transition(_S.ISSUED, _S.OVERDUE, action="mark_overdue", guard=PAST_DUE),
        Transition(_S.PARTIAL, _S.OVERDUE, action="mark_overdue", guard=PAST_DUE),
        Transition(_S.OVERDUE, _S.ISSUED, action="mark_current"),
        # Closure
        Transition(_S.ISSUED, _S.VOIDED, action="void", guard=NO_PAYMENTS),
        Transition(_S.PARTIAL, _S.VOIDED, action="void", guard=NO_PAYMENTS),
        Transition(_S.OVERDUE, _S.VOIDED, action="void", guard=NO_PAYMENTS),
        Transition(_S.ISSUED, _S.WRITTEN_OFF, action="write_off", guard=REASON_GIVEN),
        Transition(_S.PARTIAL, _S.WRITTEN_OFF, action="write_off", guard=REASON_GIVEN),
        Transition(_S.OVERDUE, _S.WRITTEN_OFF, action="write_off", guard=REASON_GIVEN),
        Transition(_S.ISSUED, _S.CANCELLED, action="cancel", guard=NO_PAYMENTS),
        Transition(_S.PARTIAL, _S.CANCELLED, action="cancel", guard=NO_PAYMENTS),
        Transition(_S.OVERDUE, _S.CANCELLED, action="cancel", guard=NO_PAYMENTS),
    ),
)

logger.debug(
    "bill_workflow_registered",
    extra={
        "workflow_name": BILL_WORKFLOW.name,
        "state_count": len(BILL_WORKFLOW.states),
        "transition_count": len(BILL_WORKFLOW.transitions),
        "initial_state": BILL_WORKFLOW.initial_state.value,
    },
)


def _require_action(bill: Bill, action: str) -> None:
    if not BILL_WORKFLOW.allows(bill.status, action):
        raise InvalidTransitionError(bill.id, action, bill.status.value)


def _require_reason(reason: str | None) -> str:
    text = (reason or "").strip()
    if not text:
        raise ValidationError("A reason is required", field="reason")
    return text


def format_bill_number(prefix: str, sequence: int, width: int = 6) -> str:
    """``format_bill_number("HD", 42)`` -> ``"HD000042"``."""
    return f"{prefix}{sequence:0{width}d}"


def issue(
    bill: Bill,
    *,
    bill_number: str,
    now: datetime,
    payment_terms_days: int = 30,
) -> Bill:
    """
    DRAFT -> ISSUED.

    Assigns the bill number and issue date; a missing due date defaults to
    ``now + payment_terms_days``.  The status is then derived against
    ``now`` like any other refresh, so a draft whose due date has already
    passed comes back OVERDUE rather than ISSUED.
    """
    _require_action(bill, "issue")
    if not bill_number or not bill_number.strip():
        raise ValidationError("bill_number is required", field="bill_number")
    due_date = bill.due_date or now + timedelta(days=payment_terms_days)
    issued = replace(
        bill,
        bill_number=bill_number,
        issue_date=now,
        due_date=due_date,
        status=BillStatus.ISSUED,
    )
    return refresh(issued, now)


def _close(bill: Bill, status: BillStatus, label: str, reason: str, now: datetime) -> Bill:
    line = f"{label}: {reason}"
    notes = f"{bill.notes}\n{line}" if bill.notes else line
    closed = replace(
        bill,
        status=status,
        notes=notes,
        closed_at=now,
        closed_reason=reason,
    )
    return refresh(closed, now)


def void(bill: Bill, *, reason: str, now: datetime) -> Bill:
    """ISSUED/PARTIAL/OVERDUE -> VOIDED; refused once money was received."""
    _require_action(bill, "void")
    text = _require_reason(reason)
    if bill.amount_paid.is_positive:
        raise PaymentsExistError(bill.id, "void", bill.amount_paid.minor)
    return _close(bill, BillStatus.VOIDED, "Voided", text, now)


def write_off(bill: Bill, *, reason: str, now: datetime) -> Bill:
    """
    ISSUED/PARTIAL/OVERDUE -> WRITTEN_OFF.

    Permitted with payments.  balance_due becomes 0; amount_paid is kept and
    the uncollected remainder is recorded as written_off_amount.
    """
    _require_action(bill, "write_off")
    text = _require_reason(reason)
    return _close(bill, BillStatus.WRITTEN_OFF, "Written off", text, now)


def cancel(bill: Bill, *, reason: str, now: datetime) -> Bill:
    """DRAFT/ISSUED/PARTIAL/OVERDUE -> CANCELLED; refused once money was received."""
    _require_action(bill, "cancel")
    text = _require_reason(reason)
    if bill.amount_paid.is_positive:
        raise PaymentsExistError(bill.id, "cancel", bill.amount_paid.minor)
    return _close(bill, BillStatus.CANCELLED, "Cancelled", text, now)
