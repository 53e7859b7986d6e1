"""Tests for BillLifecycle: issuing with bill numbers, and the closing actions."""

import pytest

from billing_kernel.domain.bill import BillStatus
from billing_kernel.exceptions import (
    InvalidTransitionError,
    PaymentsExistError,
    ValidationError,
)
from billing_kernel.services import InMemoryBillRepository, LedgerSettings, build_services
from tests.builders import consultation_line, vnd


class TestIssue:

    def test_sequential_numbers(self, services):
        numbers = []
        for _ in range(3):
            draft = services.ledger.create_draft("patient-1", [consultation_line()])
            numbers.append(services.lifecycle.issue(draft.id).bill_number)
        assert numbers == ["HD000001", "HD000002", "HD000003"]

    def test_configured_prefix_and_width(self, deterministic_clock):
        services = build_services(
            InMemoryBillRepository(),
            deterministic_clock,
            LedgerSettings(bill_number_prefix="INV", bill_number_width=4),
        )
        draft = services.ledger.create_draft("patient-1", [consultation_line()])
        assert services.lifecycle.issue(draft.id).bill_number == "INV0001"

    def test_rejected_issue_consumes_no_number(self, services, issued_bill):
        with pytest.raises(InvalidTransitionError):
            services.lifecycle.issue(issued_bill.id)
        draft = services.ledger.create_draft("patient-2", [consultation_line()])
        assert services.lifecycle.issue(draft.id).bill_number == "HD000002"

    def test_number_never_regenerated(self, services, issued_bill):
        services.payments.apply_payment(issued_bill.id, 1000, "CASH")
        assert services.ledger.get(issued_bill.id).bill_number == issued_bill.bill_number

    def test_logs_bill_issued(self, services, draft_bill, captured_logs):
        services.lifecycle.issue(draft_bill.id, actor_id="cashier-09")
        record = next(r for r in captured_logs() if r["message"] == "bill_issued")
        assert record["bill_number"] == "HD000001"
        committed = next(
            r for r in captured_logs() if r["message"] == "bill_operation_committed"
        )
        assert committed["actor_id"] == "cashier-09"
        assert committed["to_status"] == "ISSUED"


class TestClose:

    def test_void(self, services, issued_bill):
        bill = services.lifecycle.void(issued_bill.id, reason="Duplicate")
        assert bill.status == BillStatus.VOIDED
        assert "Voided: Duplicate" in bill.notes

    def test_void_after_payment_refused(self, services, issued_bill):
        services.payments.apply_payment(issued_bill.id, 1000, "CASH")
        with pytest.raises(PaymentsExistError):
            services.lifecycle.void(issued_bill.id, reason="Duplicate")
        assert services.ledger.get(issued_bill.id).status == BillStatus.PARTIAL

    def test_write_off_partial(self, services, issued_bill):
        services.payments.apply_payment(issued_bill.id, 50000, "CASH")
        bill = services.lifecycle.write_off(issued_bill.id, reason="Hardship")
        assert bill.status == BillStatus.WRITTEN_OFF
        assert bill.amount_paid == vnd(50000)
        assert bill.balance_due == vnd(0)
        assert bill.written_off_amount == vnd(55000)

    def test_cancel_draft(self, services, draft_bill):
        bill = services.lifecycle.cancel(draft_bill.id, reason="Entered twice")
        assert bill.status == BillStatus.CANCELLED
        assert bill.bill_number is None

    def test_empty_reason_refused(self, services, issued_bill):
        with pytest.raises(ValidationError):
            services.lifecycle.cancel(issued_bill.id, reason="  ")

    def test_closed_bill_refuses_everything(self, services, issued_bill):
        services.lifecycle.void(issued_bill.id, reason="Duplicate")
        with pytest.raises(InvalidTransitionError):
            services.payments.apply_payment(issued_bill.id, 1, "CASH")
        with pytest.raises(InvalidTransitionError):
            services.lifecycle.write_off(issued_bill.id, reason="x")
        with pytest.raises(InvalidTransitionError):
            services.ledger.update_draft(issued_bill.id, notes="x")

    def test_refresh_leaves_closed_bill(self, services, issued_bill, deterministic_clock):
        services.lifecycle.write_off(issued_bill.id, reason="Hardship")
        deterministic_clock.advance_days(90)
        assert services.ledger.refresh_overdue() == ()
        assert services.ledger.get(issued_bill.id).status == BillStatus.WRITTEN_OFF

    def test_logs_bill_closed(self, services, issued_bill, captured_logs):
        services.lifecycle.write_off(issued_bill.id, reason="Hardship")
        record = next(r for r in captured_logs() if r["message"] == "bill_closed")
        assert record["action"] == "write_off"
        assert record["written_off_amount"] == 105000
