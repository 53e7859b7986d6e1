"""Services for the billing kernel (write side)."""

from __future__ import annotations

from dataclasses import dataclass

from billing_kernel.domain.clock import Clock
from billing_kernel.services.bill_locks import BillLockRegistry
from billing_kernel.services.bill_repository import (
    BillRepository,
    InMemoryBillRepository,
    SqlBillRepository,
)
from billing_kernel.services.ledger_service import BillLedger
from billing_kernel.services.lifecycle_service import BillLifecycle
from billing_kernel.services.pagination import Page, paginate
from billing_kernel.services.payment_processor import PaymentHistoryEntry, PaymentProcessor
from billing_kernel.services.sequence_service import SequenceService
from billing_kernel.services.settings import LedgerSettings


@dataclass(frozen=True)
class BillingServices:
    """The three bill services wired to one repository and one lock registry."""

    ledger: BillLedger
    payments: PaymentProcessor
    lifecycle: BillLifecycle


def build_services(
    repository: BillRepository,
    clock: Clock,
    settings: LedgerSettings | None = None,
) -> BillingServices:
    """Wire the services so that they serialize on the same per-bill locks."""
    locks = BillLockRegistry()
    resolved = settings or LedgerSettings()
    return BillingServices(
        ledger=BillLedger(repository, clock, resolved, locks),
        payments=PaymentProcessor(repository, clock, resolved, locks),
        lifecycle=BillLifecycle(repository, clock, resolved, locks),
    )


__all__ = [
    "BillLedger",
    "BillLifecycle",
    "BillLockRegistry",
    "BillRepository",
    "BillingServices",
    "InMemoryBillRepository",
    "LedgerSettings",
    "Page",
    "PaymentHistoryEntry",
    "PaymentProcessor",
    "SequenceService",
    "SqlBillRepository",
    "build_services",
    "paginate",
]
