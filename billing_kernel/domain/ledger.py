"""
Bill Ledger -- pure rules for drafting bills, deriving totals and status,
and recording payments.

Responsibility:
    Every derived field of a Bill (subtotal, discounts, tax, grand total,
    amount paid, balance due, written-off amount) and its status are
    computed here and only here.  Functions take a Bill and return a new
    Bill; nothing is mutated.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Called by billing_kernel.services (which own locking and persistence)
    and by billing_kernel.domain.lifecycle.

Invariants enforced:
    - grand_total == max(0, subtotal - total_discount + total_tax)
    - amount_paid == sum(payments)
    - balance_due == grand_total - amount_paid, except WRITTEN_OFF where
      balance_due == 0 and written_off_amount carries the remainder
    - compute_totals is idempotent
    - Terminal statuses are sticky under derive_status

Failure modes:
    - ValidationError / CurrencyMismatchError on malformed line items,
      discounts or payment amounts.
    - InvalidTransitionError when a payment targets a non-payable bill.
    - OverpaymentError when a payment exceeds the balance due.
    - LedgerInvariantError from check_invariants.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from billing_kernel.domain.bill import (
    PAYABLE_STATUSES,
    Bill,
    BillStatus,
    LineItem,
    Payment,
    PaymentMethod,
)
from billing_kernel.domain.money import Money, sum_money
from billing_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidTransitionError,
    LedgerInvariantError,
    OverpaymentError,
    ValidationError,
)

_MAX_TAX_RATE = Decimal("100")


# =============================================================================
# Validation
# =============================================================================


def _require_currency(amount: Money, currency: str, field: str) -> None:
    if not isinstance(amount, Money):
        raise ValidationError(f"{field} must be Money, got {type(amount).__name__}", field=field)
    if amount.currency != currency:
        raise CurrencyMismatchError(currency, amount.currency, field=field)


def validate_line_item(item: LineItem, currency: str, index: int = 0) -> None:
    """Reject a line item that cannot appear on a bill in ``currency``."""
    prefix = f"line_items[{index}]"
    if not isinstance(item, LineItem):
        raise ValidationError(f"{prefix} must be a LineItem", field=prefix)
    if not item.name or not item.name.strip():
        raise ValidationError(f"{prefix}.name is required", field=f"{prefix}.name")
    if isinstance(item.quantity, bool) or not isinstance(item.quantity, int):
        raise ValidationError(
            f"{prefix}.quantity must be an integer", field=f"{prefix}.quantity"
        )
    if item.quantity <= 0:
        raise ValidationError(
            f"{prefix}.quantity must be positive, got {item.quantity}",
            field=f"{prefix}.quantity",
        )
    _require_currency(item.unit_price, currency, f"{prefix}.unit_price")
    if item.unit_price.is_negative:
        raise ValidationError(
            f"{prefix}.unit_price must not be negative", field=f"{prefix}.unit_price"
        )
    _require_currency(item.discount, currency, f"{prefix}.discount")
    if item.discount.is_negative:
        raise ValidationError(
            f"{prefix}.discount must not be negative", field=f"{prefix}.discount"
        )
    if item.discount > item.gross:
        raise ValidationError(
            f"{prefix}.discount {item.discount.minor} exceeds "
            f"quantity x unit_price {item.gross.minor}",
            field=f"{prefix}.discount",
        )
    if item.tax_rate < 0 or item.tax_rate > _MAX_TAX_RATE:
        raise ValidationError(
            f"{prefix}.tax_rate must be within [0, 100], got {item.tax_rate}",
            field=f"{prefix}.tax_rate",
        )


def validate_line_items(line_items: Iterable[LineItem], currency: str) -> tuple[LineItem, ...]:
    """Validate every line item and return them as an ordered tuple."""
    items = tuple(line_items)
    if not items:
        raise ValidationError("A bill needs at least one line item", field="line_items")
    for index, item in enumerate(items):
        validate_line_item(item, currency, index)
    return items


def validate_bill_discount(discount: Money | None, currency: str) -> Money:
    if discount is None:
        return Money.zero(currency)
    _require_currency(discount, currency, "discount")
    if discount.is_negative:
        raise ValidationError("discount must not be negative", field="discount")
    return discount


# =============================================================================
# Totals and status
# =============================================================================


def compute_totals(bill: Bill) -> Bill:
    """
    Recompute every derived money field from line items and payments.

    Tax is ``unit_price x tax_rate / 100`` per line, NOT multiplied by
    quantity.  Calling this twice yields identical output.
    """
    currency = bill.currency
    subtotal = sum_money((item.gross for item in bill.line_items), currency)
    total_discount = sum_money(
        (item.discount for item in bill.line_items), currency
    ) + bill.discount
    total_tax = sum_money((item.tax for item in bill.line_items), currency)
    grand_total = (subtotal - total_discount + total_tax).max_zero()
    amount_paid = sum_money((p.amount for p in bill.payments), currency)

    if bill.status == BillStatus.WRITTEN_OFF:
        balance_due = Money.zero(currency)
        written_off = (grand_total - amount_paid).max_zero()
    else:
        balance_due = grand_total - amount_paid
        written_off = Money.zero(currency)

    return replace(
        bill,
        subtotal=subtotal,
        total_discount=total_discount,
        total_tax=total_tax,
        grand_total=grand_total,
        amount_paid=amount_paid,
        balance_due=balance_due,
        written_off_amount=written_off,
    )


def derive_status(bill: Bill, now: datetime) -> BillStatus:
    """
    Status as a pure function of the bill's money fields, due date and now.

    Terminal statuses and DRAFT are returned unchanged.
    """
    if bill.status.is_terminal or bill.status == BillStatus.DRAFT:
        return bill.status
    if bill.amount_paid.is_zero:
        if bill.due_date is not None and now > bill.due_date:
            return BillStatus.OVERDUE
        return BillStatus.ISSUED
    if bill.balance_due.minor <= 0:
        return BillStatus.PAID
    return BillStatus.PARTIAL


def refresh(bill: Bill, now: datetime) -> Bill:
    """compute_totals followed by derive_status."""
    recomputed = compute_totals(bill)
    return replace(recomputed, status=derive_status(recomputed, now))


# =============================================================================
# Drafting
# =============================================================================


def create_draft(
    *,
    bill_id: str,
    patient_ref: str,
    line_items: Iterable[LineItem],
    currency: str,
    created_at: datetime,
    discount: Money | None = None,
    notes: str = "",
    doctor_ref: str | None = None,
    source_ref: str | None = None,
    due_date: datetime | None = None,
    created_by: str | None = None,
) -> Bill:
    """Build a validated DRAFT bill with derived totals filled in."""
    if not patient_ref or not str(patient_ref).strip():
        raise ValidationError("patient_ref is required", field="patient_ref")
    try:
        zero = Money.zero(currency)
    except ValueError as e:
        raise ValidationError(str(e), field="currency") from e
    items = validate_line_items(line_items, zero.currency)
    bill_discount = validate_bill_discount(discount, zero.currency)

    draft = Bill(
        id=bill_id,
        patient_ref=patient_ref,
        currency=zero.currency,
        line_items=items,
        discount=bill_discount,
        subtotal=zero,
        total_discount=zero,
        total_tax=zero,
        grand_total=zero,
        amount_paid=zero,
        balance_due=zero,
        written_off_amount=zero,
        status=BillStatus.DRAFT,
        created_at=created_at,
        doctor_ref=doctor_ref,
        source_ref=source_ref,
        due_date=due_date,
        notes=notes or "",
        created_by=created_by,
    )
    return compute_totals(draft)


def revise_draft(
    bill: Bill,
    *,
    line_items: Iterable[LineItem] | None = None,
    discount: Money | None = None,
    now: datetime,
) -> Bill:
    """Replace line items and/or bill discount; only a DRAFT may be revised."""
    if bill.status != BillStatus.DRAFT:
        raise InvalidTransitionError(bill.id, "revise_line_items", bill.status.value)
    items = (
        validate_line_items(line_items, bill.currency)
        if line_items is not None
        else bill.line_items
    )
    bill_discount = (
        validate_bill_discount(discount, bill.currency)
        if discount is not None
        else bill.discount
    )
    return refresh(replace(bill, line_items=items, discount=bill_discount), now)


# =============================================================================
# Payments
# =============================================================================


def record_payment(
    bill: Bill,
    *,
    payment_id: str,
    amount: Money,
    method: PaymentMethod | str,
    paid_at: datetime,
    received_by: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> Bill:
    """
    Append a payment and return the recomputed bill.

    Checks run in order: amount shape, bill status, balance.  Nothing is
    appended unless all pass.
    """
    _require_currency(amount, bill.currency, "amount")
    if not amount.is_positive:
        raise ValidationError(
            f"Payment amount must be positive, got {amount.minor}", field="amount"
        )
    payment_method = PaymentMethod.parse(method)
    if bill.status not in PAYABLE_STATUSES:
        raise InvalidTransitionError(bill.id, "apply_payment", bill.status.value)
    if amount > bill.balance_due:
        raise OverpaymentError(
            bill.id, amount.minor, bill.balance_due.minor, bill.currency
        )

    payment = Payment(
        id=payment_id,
        amount=amount,
        method=payment_method,
        paid_at=paid_at,
        received_by=received_by,
        reference=reference,
        notes=notes,
    )
    return refresh(replace(bill, payments=bill.payments + (payment,)), paid_at)


# =============================================================================
# Integrity
# =============================================================================


def check_invariants(bill: Bill) -> None:
    """Raise LedgerInvariantError if any derived field is stale or wrong."""
    expected = compute_totals(bill)
    for name in (
        "subtotal",
        "total_discount",
        "total_tax",
        "grand_total",
        "amount_paid",
        "balance_due",
        "written_off_amount",
    ):
        want = getattr(expected, name)
        got = getattr(bill, name)
        if want != got:
            raise LedgerInvariantError(bill.id, name, want.minor, got.minor)
