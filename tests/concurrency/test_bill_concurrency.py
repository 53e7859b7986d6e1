"""
Concurrency tests for per-bill serialization.

Real threads released together by a Barrier hammer the services; the
ledger invariants must hold afterwards and no update may be lost.

Skip with: pytest -m "not slow_locks"
"""

import threading
from concurrent.futures import ThreadPoolExecutor, wait
from threading import Barrier

import pytest

from billing_kernel.domain.bill import BillStatus
from billing_kernel.domain.ledger import check_invariants
from billing_kernel.exceptions import InvalidTransitionError, OverpaymentError
from billing_kernel.services import (
    BillLedger,
    BillLifecycle,
    BillLockRegistry,
    InMemoryBillRepository,
    PaymentProcessor,
)
from tests.builders import consultation_line, vnd

pytestmark = pytest.mark.slow_locks


def _run_together(count, fn):
    """Run ``fn(i)`` on ``count`` threads released at the same instant."""
    barrier = Barrier(count)

    def _task(i):
        barrier.wait(timeout=10)
        return fn(i)

    outcomes = []
    with ThreadPoolExecutor(max_workers=count) as pool:
        futures = [pool.submit(_task, i) for i in range(count)]
        for future in futures:
            try:
                outcomes.append(("ok", future.result(timeout=30)))
            except OverpaymentError as e:
                outcomes.append(("overpayment", e))
            except InvalidTransitionError as e:
                outcomes.append(("invalid_transition", e))
    return outcomes


class TestSameBillPayments:

    def test_no_lost_updates(self, services, issued_bill):
        outcomes = _run_together(
            20, lambda i: services.payments.apply_payment(issued_bill.id, 5000, "CASH"),
        )
        assert all(kind == "ok" for kind, _ in outcomes)

        bill = services.ledger.get(issued_bill.id)
        check_invariants(bill)
        assert len(bill.payments) == 20
        assert bill.amount_paid == vnd(100000)
        assert bill.balance_due == vnd(5000)
        assert bill.status == BillStatus.PARTIAL
        assert len({p.id for p in bill.payments}) == 20

    def test_racing_payments_never_overpay(self, services, issued_bill):
        outcomes = _run_together(
            8, lambda i: services.payments.apply_payment(issued_bill.id, 60000, "CASH"),
        )
        kinds = sorted(kind for kind, _ in outcomes)
        assert kinds.count("ok") == 1
        assert kinds.count("overpayment") == 7

        bill = services.ledger.get(issued_bill.id)
        check_invariants(bill)
        assert bill.amount_paid == vnd(60000)
        assert bill.balance_due == vnd(45000)

    def test_exact_settlement_race(self, services, issued_bill):
        # 21 x 5000 = 105000 exactly; 30 threads compete
        outcomes = _run_together(
            30, lambda i: services.payments.apply_payment(issued_bill.id, 5000, "CASH"),
        )
        kinds = [kind for kind, _ in outcomes]
        assert kinds.count("ok") == 21
        assert kinds.count("invalid_transition") == 9

        bill = services.ledger.get(issued_bill.id)
        assert bill.status == BillStatus.PAID
        assert bill.balance_due == vnd(0)


class TestIndependentBills:

    def test_lock_on_one_bill_does_not_block_another(self, deterministic_clock, settings):
        repository = InMemoryBillRepository()
        locks = BillLockRegistry()
        ledger = BillLedger(repository, deterministic_clock, settings, locks)
        lifecycle = BillLifecycle(repository, deterministic_clock, settings, locks)
        payments = PaymentProcessor(repository, deterministic_clock, settings, locks)

        a = lifecycle.issue(ledger.create_draft("patient-a", [consultation_line()]).id)
        b = lifecycle.issue(ledger.create_draft("patient-b", [consultation_line()]).id)

        with ThreadPoolExecutor(max_workers=2) as pool:
            with locks.hold(a.id):
                blocked = pool.submit(payments.apply_payment, a.id, 1000, "CASH")
                free = pool.submit(payments.apply_payment, b.id, 1000, "CASH")

                assert free.result(timeout=10).amount_paid == vnd(1000)
                done, _ = wait([blocked], timeout=0.2)
                assert not done

            assert blocked.result(timeout=10).amount_paid == vnd(1000)

        assert locks.active_keys() == frozenset()

    def test_parallel_payments_to_many_bills(self, services):
        bills = [
            services.lifecycle.issue(
                services.ledger.create_draft(f"patient-{i}", [consultation_line()]).id
            )
            for i in range(10)
        ]
        _run_together(
            10, lambda i: services.payments.apply_payment(bills[i].id, 105000, "CASH"),
        )
        for bill in bills:
            assert services.ledger.get(bill.id).status == BillStatus.PAID


class TestConcurrentIssue:

    def test_bill_numbers_unique(self, services):
        drafts = [
            services.ledger.create_draft(f"patient-{i}", [consultation_line()])
            for i in range(16)
        ]
        outcomes = _run_together(16, lambda i: services.lifecycle.issue(drafts[i].id))
        numbers = [bill.bill_number for _, bill in outcomes]
        assert len(set(numbers)) == 16
        assert sorted(numbers) == [f"HD{n:06d}" for n in range(1, 17)]


class TestLockRegistry:

    def test_reentrant_for_same_thread(self):
        locks = BillLockRegistry()
        with locks.hold("bill-1"):
            with locks.hold("bill-1"):
                assert locks.active_keys() == frozenset({"bill-1"})
        assert locks.active_keys() == frozenset()

    def test_serializes_critical_sections(self):
        locks = BillLockRegistry()
        inside = []
        overlap = threading.Event()

        def _work(i):
            with locks.hold("bill-1"):
                inside.append(i)
                if len(inside) > 1:
                    overlap.set()
                inside.remove(i)

        _run_together(12, _work)
        assert not overlap.is_set()
