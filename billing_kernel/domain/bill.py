"""
Bill Domain Models (``billing_kernel.domain.bill``).

Responsibility
--------------
Frozen dataclass value objects representing the nouns of the billing
ledger: line items, payments and the Bill aggregate root, plus the
canonical status and payment-method vocabularies.

Architecture position
---------------------
**Kernel > Domain** -- pure data definitions with ZERO I/O.  Produced and
consumed by ``billing_kernel.domain.ledger`` and
``billing_kernel.domain.lifecycle``; returned to callers as read-only
snapshots.

Invariants enforced
-------------------
* All models are ``frozen=True``; a change to a Bill is a new Bill value.
* All monetary fields are ``Money`` in integer minor units.
* ``payments`` is an append-only tuple in chronological order.

Failure modes
-------------
* ``BillStatus.parse`` / ``PaymentMethod.parse`` raise ``ValidationError``
  for unknown values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from billing_kernel.domain.money import Money, to_rate
from billing_kernel.exceptions import ValidationError


class BillStatus(str, Enum):
    """Bill lifecycle states (one canonical vocabulary)."""

    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"
    WRITTEN_OFF = "WRITTEN_OFF"
    VOIDED = "VOIDED"

    @classmethod
    def parse(cls, value: BillStatus | str) -> BillStatus:
        """
        Translate a boundary value into the canonical status.

        Legacy synonyms used by older clients (``PENDING``,
        ``PARTIALLY_PAID``, ...) are accepted here and nowhere else.
        """
        if isinstance(value, BillStatus):
            return value
        key = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        key = _STATUS_SYNONYMS.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"Unknown bill status: {value!r}", field="status") from None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


_STATUS_SYNONYMS: dict[str, str] = {
    "PENDING": "ISSUED",
    "PARTIALLY_PAID": "PARTIAL",
    "CANCELED": "CANCELLED",
    "VOID": "VOIDED",
    "WRITTENOFF": "WRITTEN_OFF",
}


TERMINAL_STATUSES: frozenset[BillStatus] = frozenset({
    BillStatus.CANCELLED,
    BillStatus.WRITTEN_OFF,
    BillStatus.VOIDED,
})

# Statuses that accept payments and can be voided or written off
PAYABLE_STATUSES: frozenset[BillStatus] = frozenset({
    BillStatus.ISSUED,
    BillStatus.PARTIAL,
    BillStatus.OVERDUE,
})


class PaymentMethod(str, Enum):
    """How a payment was settled."""

    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CREDIT_CARD = "CREDIT_CARD"
    E_WALLET = "E_WALLET"
    INSURANCE = "INSURANCE"

    @classmethod
    def parse(cls, value: PaymentMethod | str) -> PaymentMethod:
        """Translate a boundary value into the canonical payment method."""
        if isinstance(value, PaymentMethod):
            return value
        key = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        key = _METHOD_SYNONYMS.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(
                f"Unknown payment method: {value!r}", field="method"
            ) from None


_METHOD_SYNONYMS: dict[str, str] = {
    "TRANSFER": "BANK_TRANSFER",
    "BANK": "BANK_TRANSFER",
    "CARD": "CREDIT_CARD",
    "WALLET": "E_WALLET",
    "EWALLET": "E_WALLET",
}


@dataclass(frozen=True)
class LineItem:
    """
    One billable unit on a bill.

    ``tax`` is computed on the unit price only and is not scaled by
    quantity; historical totals depend on this formula.
    """

    name: str
    quantity: int
    unit_price: Money
    discount: Money | None = None
    tax_rate: Decimal = Decimal("0")
    description: str = ""
    service_code: str | None = None

    def __post_init__(self) -> None:
        if self.discount is None and isinstance(self.unit_price, Money):
            object.__setattr__(self, "discount", Money.zero(self.unit_price.currency))
        object.__setattr__(self, "tax_rate", to_rate(self.tax_rate))

    @property
    def currency(self) -> str:
        return self.unit_price.currency

    @property
    def gross(self) -> Money:
        """quantity x unit_price."""
        return self.unit_price * self.quantity

    @property
    def tax(self) -> Money:
        """unit_price x tax_rate / 100, rounded half-up."""
        return self.unit_price.percent_of(self.tax_rate)

    @property
    def total(self) -> Money:
        """gross - discount + tax."""
        return self.gross - self.discount + self.tax


@dataclass(frozen=True)
class Payment:
    """A settlement event. Recorded once, never mutated or removed."""

    id: str
    amount: Money
    method: PaymentMethod
    paid_at: datetime
    received_by: str | None = None
    reference: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class Bill:
    """
    The bill aggregate root.

    Derived fields (subtotal through written_off_amount) are only ever
    produced by ``billing_kernel.domain.ledger.compute_totals``.
    """

    id: str
    patient_ref: str
    currency: str
    line_items: tuple[LineItem, ...]
    discount: Money
    subtotal: Money
    total_discount: Money
    total_tax: Money
    grand_total: Money
    amount_paid: Money
    balance_due: Money
    written_off_amount: Money
    status: BillStatus
    created_at: datetime
    payments: tuple[Payment, ...] = field(default_factory=tuple)
    bill_number: str | None = None
    doctor_ref: str | None = None
    source_ref: str | None = None
    issue_date: datetime | None = None
    due_date: datetime | None = None
    notes: str = ""
    created_by: str | None = None
    closed_at: datetime | None = None
    closed_reason: str | None = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def last_payment_at(self) -> datetime | None:
        """Timestamp of the most recent payment, if any."""
        if not self.payments:
            return None
        return self.payments[-1].paid_at

    @property
    def reporting_date(self) -> datetime | None:
        """Issue date, falling back to creation time for unissued bills."""
        return self.issue_date or self.created_at


@dataclass(frozen=True)
class SourceItem:
    """
    A candidate billable item from a source document (e.g. one prescribed
    medicine).  ``unit_price`` is None when no price is configured.
    """

    name: str
    quantity: int | None = None
    unit_price: Money | None = None
    description: str = ""
    service_code: str | None = None
    tax_rate: Decimal = Decimal("0")


@dataclass(frozen=True)
class SourceDocument:
    """A document that bills are raised from, such as a prescription."""

    source_ref: str
    patient_ref: str
    items: tuple[SourceItem, ...]
    doctor_ref: str | None = None
    notes: str = ""
