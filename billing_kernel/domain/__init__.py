"""
Pure domain layer.

This module contains the billing value objects and ledger rules
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (callers pass ``now``)

All domain objects are immutable and deterministic.
"""

from billing_kernel.domain.bill import (
    PAYABLE_STATUSES,
    TERMINAL_STATUSES,
    Bill,
    BillStatus,
    LineItem,
    Payment,
    PaymentMethod,
    SourceDocument,
    SourceItem,
)
from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from billing_kernel.domain.ledger import (
    check_invariants,
    compute_totals,
    create_draft,
    derive_status,
    record_payment,
    refresh,
    revise_draft,
)
from billing_kernel.domain.lifecycle import (
    BILL_WORKFLOW,
    cancel,
    format_bill_number,
    issue,
    void,
    write_off,
)
from billing_kernel.domain.money import Money, round_half_up, sum_money

__all__ = [
    "BILL_WORKFLOW",
    "Bill",
    "BillStatus",
    "Clock",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DeterministicClock",
    "LineItem",
    "Money",
    "PAYABLE_STATUSES",
    "Payment",
    "PaymentMethod",
    "SourceDocument",
    "SourceItem",
    "SystemClock",
    "TERMINAL_STATUSES",
    "cancel",
    "check_invariants",
    "compute_totals",
    "create_draft",
    "derive_status",
    "format_bill_number",
    "issue",
    "record_payment",
    "refresh",
    "revise_draft",
    "round_half_up",
    "sum_money",
    "void",
    "write_off",
]
