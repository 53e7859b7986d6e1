"""Tests for the bill workflow table and the pure lifecycle transitions."""

from dataclasses import replace
from datetime import timedelta

import pytest

from billing_kernel.domain.bill import BillStatus, PaymentMethod
from billing_kernel.domain.ledger import record_payment
from billing_kernel.domain.lifecycle import (
    BILL_WORKFLOW,
    cancel,
    format_bill_number,
    issue,
    void,
    write_off,
)
from billing_kernel.exceptions import (
    InvalidTransitionError,
    PaymentsExistError,
    ValidationError,
)
from tests.builders import FIXED_NOW, vnd

LATER = FIXED_NOW + timedelta(hours=1)


@pytest.fixture
def issued(make_draft):
    return issue(make_draft(), bill_number="HD000001", now=FIXED_NOW)


@pytest.fixture
def partially_paid(issued):
    return record_payment(
        issued, payment_id="p-1", amount=vnd(50000),
        method=PaymentMethod.CASH, paid_at=FIXED_NOW,
    )


class TestWorkflowTable:

    def test_initial_state_is_draft(self):
        assert BILL_WORKFLOW.initial_state == BillStatus.DRAFT

    def test_terminal_states_have_no_exits(self):
        for status in (BillStatus.CANCELLED, BillStatus.VOIDED, BillStatus.WRITTEN_OFF):
            assert BILL_WORKFLOW.targets(status) == frozenset()

    def test_paid_has_no_exits(self):
        assert BILL_WORKFLOW.targets(BillStatus.PAID) == frozenset()

    def test_issue_only_from_draft(self):
        assert BILL_WORKFLOW.sources("issue") == frozenset({BillStatus.DRAFT})

    def test_cancel_sources(self):
        assert BILL_WORKFLOW.sources("cancel") == frozenset({
            BillStatus.DRAFT, BillStatus.ISSUED, BillStatus.PARTIAL, BillStatus.OVERDUE,
        })

    def test_void_not_allowed_from_draft(self):
        assert not BILL_WORKFLOW.allows(BillStatus.DRAFT, "void")


class TestBillNumber:

    def test_zero_padded(self):
        assert format_bill_number("HD", 42) == "HD000042"

    def test_custom_width(self):
        assert format_bill_number("INV-", 7, width=3) == "INV-007"


class TestIssue:

    def test_assigns_number_dates_and_status(self, issued):
        assert issued.status == BillStatus.ISSUED
        assert issued.bill_number == "HD000001"
        assert issued.issue_date == FIXED_NOW
        assert issued.due_date == FIXED_NOW + timedelta(days=30)

    def test_keeps_explicit_due_date(self, make_draft):
        due = FIXED_NOW + timedelta(days=3)
        bill = issue(replace(make_draft(), due_date=due), bill_number="HD000002", now=FIXED_NOW)
        assert bill.due_date == due

    def test_status_derived_at_issue_time(self, make_draft):
        due = FIXED_NOW - timedelta(days=1)
        bill = issue(replace(make_draft(), due_date=due), bill_number="HD000003", now=FIXED_NOW)
        assert bill.status == BillStatus.OVERDUE

    def test_cannot_issue_twice(self, issued):
        with pytest.raises(InvalidTransitionError) as exc_info:
            issue(issued, bill_number="HD000009", now=LATER)
        assert exc_info.value.status == "ISSUED"

    def test_blank_number_rejected(self, make_draft):
        with pytest.raises(ValidationError):
            issue(make_draft(), bill_number=" ", now=FIXED_NOW)


class TestVoid:

    def test_void_unpaid_bill(self, issued):
        bill = void(issued, reason="Duplicate bill", now=LATER)
        assert bill.status == BillStatus.VOIDED
        assert bill.closed_at == LATER
        assert bill.closed_reason == "Duplicate bill"
        assert bill.notes.endswith("Voided: Duplicate bill")

    def test_void_with_payments_refused(self, partially_paid):
        with pytest.raises(PaymentsExistError) as exc_info:
            void(partially_paid, reason="Mistake", now=LATER)
        assert exc_info.value.amount_paid == 50000

    def test_void_draft_refused(self, make_draft):
        with pytest.raises(InvalidTransitionError):
            void(make_draft(), reason="Mistake", now=LATER)

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, issued, reason):
        with pytest.raises(ValidationError) as exc_info:
            void(issued, reason=reason, now=LATER)
        assert exc_info.value.field == "reason"

    def test_wrong_state_reported_before_missing_reason(self, make_draft, issued):
        paid = record_payment(
            issued, payment_id="p-1", amount=vnd(105000), method="CASH", paid_at=FIXED_NOW,
        )
        for bill in (make_draft(), paid):
            with pytest.raises(InvalidTransitionError) as exc_info:
                void(bill, reason="", now=LATER)
            assert exc_info.value.status == bill.status.value


class TestWriteOff:

    def test_keeps_amount_paid(self, partially_paid):
        bill = write_off(partially_paid, reason="Patient relocated", now=LATER)
        assert bill.status == BillStatus.WRITTEN_OFF
        assert bill.amount_paid == vnd(50000)
        assert bill.balance_due == vnd(0)
        assert bill.written_off_amount == vnd(55000)
        assert len(bill.payments) == 1

    def test_write_off_unpaid(self, issued):
        bill = write_off(issued, reason="Uncollectible", now=LATER)
        assert bill.written_off_amount == vnd(105000)

    def test_terminal_is_one_way(self, issued):
        bill = write_off(issued, reason="Uncollectible", now=LATER)
        with pytest.raises(InvalidTransitionError):
            cancel(bill, reason="Changed mind", now=LATER)
        with pytest.raises(InvalidTransitionError):
            record_payment(
                bill, payment_id="p-9", amount=vnd(1), method="CASH", paid_at=LATER,
            )


class TestCancel:

    def test_cancel_draft(self, make_draft):
        bill = cancel(make_draft(), reason="Created in error", now=LATER)
        assert bill.status == BillStatus.CANCELLED
        assert bill.bill_number is None
        assert bill.notes == "Cancelled: Created in error"

    def test_cancel_appends_to_existing_notes(self, make_draft):
        bill = cancel(replace(make_draft(), notes="Walk-in"), reason="No show", now=LATER)
        assert bill.notes == "Walk-in\nCancelled: No show"

    def test_cancel_with_payments_refused(self, partially_paid):
        with pytest.raises(PaymentsExistError):
            cancel(partially_paid, reason="Mistake", now=LATER)

    def test_cancel_paid_refused(self, issued):
        paid = record_payment(
            issued, payment_id="p-1", amount=vnd(105000), method="CASH", paid_at=FIXED_NOW,
        )
        with pytest.raises(InvalidTransitionError):
            cancel(paid, reason="Mistake", now=LATER)

    def test_cancel_terminal_with_blank_reason(self, issued):
        voided = void(issued, reason="Duplicate bill", now=LATER)
        with pytest.raises(InvalidTransitionError):
            cancel(voided, reason="  ", now=LATER)
        with pytest.raises(InvalidTransitionError):
            write_off(voided, reason=None, now=LATER)
