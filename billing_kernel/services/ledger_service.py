"""
BillLedger -- owner of bill creation, draft edits, queries and the
time-driven overdue sweep.

Responsibility:
    Creates DRAFT bills (directly or from a source document such as a
    prescription), edits drafts, returns read-only snapshots, lists bills
    with filtering and pagination, and re-derives time-dependent status.

Architecture position:
    Kernel > Services -- imperative shell.  Pure rules live in
    ``billing_kernel.domain.ledger``; this class adds ids, timestamps,
    locking and persistence.

Invariants enforced:
    - Callers only ever receive frozen Bill snapshots.
    - At most one live (non-terminal) bill per source document.
    - Line items and bill discount change only while the bill is DRAFT.

Failure modes:
    - ValidationError for malformed input.
    - DuplicateBillError when a live bill already exists for the source.
    - InvalidTransitionError for edits outside the allowed statuses.
    - BillNotFoundError for unknown ids.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from uuid import uuid4

from billing_kernel.domain.bill import (
    Bill,
    BillStatus,
    LineItem,
    SourceDocument,
)
from billing_kernel.domain.ledger import create_draft, derive_status, refresh, revise_draft
from billing_kernel.domain.money import Money
from billing_kernel.exceptions import (
    BillNotFoundError,
    DuplicateBillError,
    InvalidTransitionError,
    ValidationError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.services.base import BaseBillService
from billing_kernel.services.pagination import Page, paginate

logger = get_logger("services.ledger")

_OPEN_FOR_SWEEP = frozenset({BillStatus.ISSUED, BillStatus.OVERDUE})

# Notes and due date stay editable until the bill is settled or closed
_NOTES_LOCKED = frozenset({BillStatus.PAID}) | frozenset(
    s for s in BillStatus if s.is_terminal
)


class BillLedger(BaseBillService):
    """
    Creates, edits and queries bills.

    Usage:
        ledger = BillLedger(repository, clock, settings)
        bill = ledger.create_draft("patient-1", [LineItem(...)])
    """

    # =========================================================================
    # Creation
    # =========================================================================

    def create_draft(
        self,
        patient_ref: str,
        line_items: Iterable[LineItem],
        discount: Money | None = None,
        notes: str = "",
        *,
        doctor_ref: str | None = None,
        due_date: datetime | None = None,
        currency: str | None = None,
        source_ref: str | None = None,
        created_by: str | None = None,
    ) -> Bill:
        """Validate and store a new DRAFT bill."""
        bill = create_draft(
            bill_id=str(uuid4()),
            patient_ref=patient_ref,
            line_items=line_items,
            currency=currency or self._settings.currency,
            created_at=self._clock.now(),
            discount=discount,
            notes=notes,
            doctor_ref=doctor_ref,
            source_ref=source_ref,
            due_date=due_date,
            created_by=created_by,
        )
        stored = self._repository.add(bill)
        with LogContext.bind(bill_id=stored.id, actor_id=created_by):
            logger.info(
                "bill_drafted",
                extra={
                    "patient_ref": stored.patient_ref,
                    "line_count": len(stored.line_items),
                    "grand_total": stored.grand_total.minor,
                    "currency": stored.currency,
                    "source_ref": stored.source_ref,
                },
            )
        return stored

    def create_from_source_document(
        self,
        document: SourceDocument,
        *,
        consultation_fee: Money | None = None,
        discount: Money | None = None,
        notes: str | None = None,
        due_date: datetime | None = None,
        created_by: str | None = None,
    ) -> Bill:
        """
        Draft a bill from a source document.

        Items without a configured price are billed at
        ``settings.default_unit_price``; a missing quantity means 1.  When
        ``consultation_fee`` is given, a consultation line comes first.
        """
        if not document.source_ref:
            raise ValidationError("source_ref is required", field="source_ref")
        currency = self._settings.currency
        fallback_price = Money.of(self._settings.default_unit_price, currency)

        lines: list[LineItem] = []
        if consultation_fee is not None:
            lines.append(
                LineItem(
                    name=self._settings.consultation_service_name,
                    quantity=1,
                    unit_price=consultation_fee,
                    service_code=self._settings.consultation_service_code,
                )
            )
        for item in document.items:
            lines.append(
                LineItem(
                    name=item.name,
                    quantity=item.quantity or 1,
                    unit_price=item.unit_price if item.unit_price is not None else fallback_price,
                    tax_rate=item.tax_rate,
                    description=item.description,
                    service_code=item.service_code,
                )
            )

        with self._locks.hold(f"source:{document.source_ref}"):
            for existing in self._repository.find_by_source(document.source_ref):
                if not existing.is_terminal:
                    logger.info(
                        "bill_source_already_billed",
                        extra={
                            "source_ref": document.source_ref,
                            "existing_bill_id": existing.id,
                            "error_code": DuplicateBillError.code,
                        },
                    )
                    raise DuplicateBillError(document.source_ref, existing.id)
            return self.create_draft(
                document.patient_ref,
                lines,
                discount,
                notes if notes is not None else document.notes,
                doctor_ref=document.doctor_ref,
                due_date=due_date,
                source_ref=document.source_ref,
                created_by=created_by,
            )

    # =========================================================================
    # Edits
    # =========================================================================

    def update_draft(
        self,
        bill_id: str,
        *,
        line_items: Iterable[LineItem] | None = None,
        discount: Money | None = None,
        notes: str | None = None,
        due_date: datetime | None = None,
        actor_id: str | None = None,
    ) -> Bill:
        """
        Edit a bill.

        Line items and discount: DRAFT only.  Notes and due date: until the
        bill is PAID or closed.  Status is re-derived afterwards, so moving
        the due date can turn an OVERDUE bill back into ISSUED.
        """
        items = tuple(line_items) if line_items is not None else None

        def change(bill: Bill) -> Bill:
            now = self._clock.now()
            if items is not None or discount is not None:
                bill = revise_draft(bill, line_items=items, discount=discount, now=now)
            if notes is not None or due_date is not None:
                if bill.status in _NOTES_LOCKED:
                    raise InvalidTransitionError(bill.id, "update", bill.status.value)
                bill = replace(
                    bill,
                    notes=notes if notes is not None else bill.notes,
                    due_date=due_date if due_date is not None else bill.due_date,
                )
            return refresh(bill, now)

        return self._mutate(bill_id, "update", change, actor_id=actor_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, bill_id: str) -> Bill:
        """Read-only snapshot of one bill."""
        return self._repository.get(bill_id)

    def get_by_number(self, bill_number: str) -> Bill:
        for bill in self._repository.snapshot():
            if bill.bill_number == bill_number:
                return bill
        raise BillNotFoundError(bill_number)

    def list_bills(
        self,
        *,
        status: BillStatus | str | None = None,
        patient_ref: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[Bill]:
        """Filtered bills, newest first, paginated."""
        wanted = BillStatus.parse(status) if status is not None else None
        rows = [
            b for b in self._repository.snapshot()
            if (wanted is None or b.status == wanted)
            and (patient_ref is None or b.patient_ref == patient_ref)
            and (created_from is None or b.created_at >= created_from)
            and (created_to is None or b.created_at <= created_to)
        ]
        rows.sort(key=lambda b: (b.created_at, b.id), reverse=True)
        return paginate(
            rows,
            page,
            limit,
            default_limit=self._settings.default_page_size,
            max_limit=self._settings.max_page_size,
        )

    def patient_bills(
        self,
        patient_ref: str,
        *,
        status: BillStatus | str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[Bill]:
        """All bills of one patient, newest first."""
        if not patient_ref:
            raise ValidationError("patient_ref is required", field="patient_ref")
        return self.list_bills(status=status, patient_ref=patient_ref, page=page, limit=limit)

    # =========================================================================
    # Time-driven status
    # =========================================================================

    def refresh_overdue(self, now: datetime | None = None) -> tuple[Bill, ...]:
        """
        Re-derive the status of unpaid open bills against ``now``.

        Returns the bills whose status changed.  Each bill is updated under
        its own lock; a bill that moved on concurrently is re-evaluated from
        its fresh state.
        """
        at = now or self._clock.now()
        changed: list[Bill] = []
        for bill in self._repository.snapshot():
            if bill.status not in _OPEN_FOR_SWEEP:
                continue
            if derive_status(bill, at) == bill.status:
                continue
            updated = self._mutate(bill.id, "refresh_status", lambda b: refresh(b, at))
            changed.append(updated)

        logger.info(
            "overdue_sweep_completed",
            extra={"as_of": at, "changed": len(changed)},
        )
        return tuple(changed)
