"""
Bill ORM Models (``billing_kernel.models.bill``).

Responsibility
--------------
SQLAlchemy persistence models for bills.  Maps the frozen ``Bill`` aggregate
from ``billing_kernel.domain.bill`` to one parent row plus child rows for
line items and payments.

Architecture position
---------------------
**Kernel > Models** -- persistence.  Imports from ``billing_kernel.db`` and
the domain dataclasses.  MUST NOT be imported by ``billing_kernel.domain``.

Invariants enforced
-------------------
* ``bill_number`` is unique (uq_bills_bill_number); NULL until issued.
* ``version`` is the SQLAlchemy ``version_id_col``; every UPDATE carries
  ``WHERE version = :loaded`` so a lost update raises ``StaleDataError``.
* Payments are append-only: ``apply_dto`` refuses a bill whose payment list
  does not extend the stored one.
* Amounts are BigInteger minor units; the currency lives on the parent row.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase
from billing_kernel.db.types import (
    Currency,
    ExternalRef,
    MinorUnits,
    Name,
    Rate,
    ShortCode,
)
from billing_kernel.domain.bill import (
    Bill,
    BillStatus,
    LineItem,
    Payment,
    PaymentMethod,
)
from billing_kernel.domain.money import Money
from billing_kernel.exceptions import AppendOnlyViolationError


# ---------------------------------------------------------------------------
# 1. BillModel
# ---------------------------------------------------------------------------


class BillModel(TrackedBase):
    """
    ORM model for bills.

    Maps to the ``Bill`` frozen dataclass.  Line items and payments are
    stored in child tables via the ``line_items`` and ``payments``
    relationships, both ordered by ``position``.
    """

    __tablename__ = "bills"

    __table_args__ = (
        UniqueConstraint("bill_number", name="uq_bills_bill_number"),
        Index("idx_bills_patient_ref", "patient_ref"),
        Index("idx_bills_status", "status"),
        Index("idx_bills_source_ref", "source_ref"),
        Index("idx_bills_issue_date", "issue_date"),
    )

    bill_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    patient_ref: Mapped[str] = mapped_column(ExternalRef, nullable=False)
    doctor_ref: Mapped[str | None] = mapped_column(ExternalRef, nullable=True)
    source_ref: Mapped[str | None] = mapped_column(ExternalRef, nullable=True)
    currency: Mapped[str] = mapped_column(Currency, nullable=False)
    discount: Mapped[int] = mapped_column(MinorUnits, nullable=False, default=0)
    subtotal: Mapped[int] = mapped_column(MinorUnits, nullable=False)
    total_discount: Mapped[int] = mapped_column(MinorUnits, nullable=False)
    total_tax: Mapped[int] = mapped_column(MinorUnits, nullable=False)
    grand_total: Mapped[int] = mapped_column(MinorUnits, nullable=False)
    amount_paid: Mapped[int] = mapped_column(MinorUnits, nullable=False)
    balance_due: Mapped[int] = mapped_column(MinorUnits, nullable=False)
    written_off_amount: Mapped[int] = mapped_column(MinorUnits, nullable=False, default=0)
    status: Mapped[str] = mapped_column(ShortCode, nullable=False, default=BillStatus.DRAFT.value)
    issue_date: Mapped[datetime | None] = mapped_column(nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    line_items: Mapped[list["BillLineItemModel"]] = relationship(
        back_populates="bill",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BillLineItemModel.position",
    )

    payments: Mapped[list["BillPaymentModel"]] = relationship(
        back_populates="bill",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BillPaymentModel.position",
    )

    def to_dto(self) -> Bill:
        """Convert ORM model to frozen dataclass."""
        currency = self.currency

        def money(minor: int) -> Money:
            return Money.of(int(minor), currency)

        return Bill(
            id=str(self.id),
            patient_ref=self.patient_ref,
            currency=currency,
            line_items=tuple(line.to_dto(currency) for line in self.line_items),
            discount=money(self.discount),
            subtotal=money(self.subtotal),
            total_discount=money(self.total_discount),
            total_tax=money(self.total_tax),
            grand_total=money(self.grand_total),
            amount_paid=money(self.amount_paid),
            balance_due=money(self.balance_due),
            written_off_amount=money(self.written_off_amount),
            status=BillStatus(self.status),
            created_at=self.created_at,
            payments=tuple(p.to_dto(currency) for p in self.payments),
            bill_number=self.bill_number,
            doctor_ref=self.doctor_ref,
            source_ref=self.source_ref,
            issue_date=self.issue_date,
            due_date=self.due_date,
            notes=self.notes or "",
            created_by=self.created_by_id,
            closed_at=self.closed_at,
            closed_reason=self.closed_reason,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: Bill) -> "BillModel":
        """Create ORM model from frozen dataclass (the version is assigned on INSERT)."""
        model = cls(
            id=UUID(dto.id),
            patient_ref=dto.patient_ref,
            currency=dto.currency,
            created_at=dto.created_at,
            created_by_id=dto.created_by,
        )
        model._copy_scalars(dto)
        model.line_items = [
            BillLineItemModel.from_dto(line, position)
            for position, line in enumerate(dto.line_items)
        ]
        model.payments = [
            BillPaymentModel.from_dto(payment, position)
            for position, payment in enumerate(dto.payments)
        ]
        return model

    def apply_dto(self, dto: Bill, updated_by_id: str | None = None) -> None:
        """
        Copy a recomputed Bill onto this row.

        Line items are replaced only when they differ.  Payments may only be
        appended.
        """
        stored = [p.to_dto(self.currency) for p in self.payments]
        incoming = dto.payments
        if len(incoming) < len(stored):
            raise AppendOnlyViolationError(dto.id)
        for old, new in zip(stored, incoming):
            if old.id != new.id or old.amount != new.amount or old.method != new.method:
                raise AppendOnlyViolationError(dto.id)

        self._copy_scalars(dto)
        self.updated_by_id = updated_by_id

        current_lines = tuple(line.to_dto(self.currency) for line in self.line_items)
        if current_lines != dto.line_items:
            self.line_items = [
                BillLineItemModel.from_dto(line, position)
                for position, line in enumerate(dto.line_items)
            ]

        for position in range(len(stored), len(incoming)):
            self.payments.append(BillPaymentModel.from_dto(incoming[position], position))

    def _copy_scalars(self, dto: Bill) -> None:
        self.bill_number = dto.bill_number
        self.doctor_ref = dto.doctor_ref
        self.source_ref = dto.source_ref
        self.discount = dto.discount.minor
        self.subtotal = dto.subtotal.minor
        self.total_discount = dto.total_discount.minor
        self.total_tax = dto.total_tax.minor
        self.grand_total = dto.grand_total.minor
        self.amount_paid = dto.amount_paid.minor
        self.balance_due = dto.balance_due.minor
        self.written_off_amount = dto.written_off_amount.minor
        self.status = dto.status.value
        self.issue_date = dto.issue_date
        self.due_date = dto.due_date
        self.notes = dto.notes or ""
        self.closed_at = dto.closed_at
        self.closed_reason = dto.closed_reason

    def __repr__(self) -> str:
        return (
            f"<BillModel {self.bill_number or self.id} "
            f"status={self.status} balance={self.balance_due}>"
        )


# ---------------------------------------------------------------------------
# 2. BillLineItemModel
# ---------------------------------------------------------------------------


class BillLineItemModel(TrackedBase):
    """ORM model for bill line items.  Each line belongs to exactly one bill."""

    __tablename__ = "bill_line_items"

    __table_args__ = (
        Index("idx_bill_line_items_bill_id", "bill_id"),
    )

    bill_id: Mapped[UUID] = mapped_column(ForeignKey("bills.id"), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(Name, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    service_code: Mapped[str | None] = mapped_column(ShortCode, nullable=True)
    quantity: Mapped[int] = mapped_column(nullable=False)
    unit_price: Mapped[int] = mapped_column(MinorUnits, nullable=False)
    discount: Mapped[int] = mapped_column(MinorUnits, nullable=False, default=0)
    tax_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0"))

    bill: Mapped["BillModel"] = relationship(back_populates="line_items")

    def to_dto(self, currency: str) -> LineItem:
        """Convert ORM model to frozen dataclass."""
        return LineItem(
            name=self.name,
            quantity=int(self.quantity),
            unit_price=Money.of(int(self.unit_price), currency),
            discount=Money.of(int(self.discount), currency),
            tax_rate=Decimal(self.tax_rate),
            description=self.description or "",
            service_code=self.service_code,
        )

    @classmethod
    def from_dto(cls, dto: LineItem, position: int) -> "BillLineItemModel":
        """Create ORM model from frozen dataclass."""
        return cls(
            position=position,
            name=dto.name,
            description=dto.description or "",
            service_code=dto.service_code,
            quantity=dto.quantity,
            unit_price=dto.unit_price.minor,
            discount=dto.discount.minor,
            tax_rate=dto.tax_rate,
        )

    def __repr__(self) -> str:
        return f"<BillLineItemModel {self.position} {self.name} x{self.quantity}>"


# ---------------------------------------------------------------------------
# 3. BillPaymentModel
# ---------------------------------------------------------------------------


class BillPaymentModel(TrackedBase):
    """
    ORM model for payments.

    Rows are inserted once and never updated; ``id`` is the domain
    payment id.
    """

    __tablename__ = "bill_payments"

    __table_args__ = (
        UniqueConstraint("bill_id", "position", name="uq_bill_payments_position"),
        Index("idx_bill_payments_paid_at", "paid_at"),
        Index("idx_bill_payments_method", "method"),
    )

    bill_id: Mapped[UUID] = mapped_column(ForeignKey("bills.id"), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)
    amount: Mapped[int] = mapped_column(MinorUnits, nullable=False)
    method: Mapped[str] = mapped_column(ShortCode, nullable=False)
    paid_at: Mapped[datetime] = mapped_column(nullable=False)
    received_by: Mapped[str | None] = mapped_column(ExternalRef, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    bill: Mapped["BillModel"] = relationship(back_populates="payments")

    def to_dto(self, currency: str) -> Payment:
        """Convert ORM model to frozen dataclass."""
        return Payment(
            id=str(self.id),
            amount=Money.of(int(self.amount), currency),
            method=PaymentMethod(self.method),
            paid_at=self.paid_at,
            received_by=self.received_by,
            reference=self.reference,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto: Payment, position: int) -> "BillPaymentModel":
        """Create ORM model from frozen dataclass."""
        return cls(
            id=UUID(dto.id),
            position=position,
            amount=dto.amount.minor,
            method=dto.method.value,
            paid_at=dto.paid_at,
            received_by=dto.received_by,
            reference=dto.reference,
            notes=dto.notes,
            created_by_id=dto.received_by,
        )

    def __repr__(self) -> str:
        return f"<BillPaymentModel {self.position} {self.amount} {self.method}>"
