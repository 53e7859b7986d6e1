"""
Module: billing_engines.revenue
Responsibility:
    Fold a snapshot of bills into a revenue report for a reporting period:
    totals, collected amount, average paid bill, status counts, a payment
    method breakdown and a trailing daily series.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports billing_kernel domain, exceptions and logging only.

Invariants enforced:
    - Purity: no clock access (``now`` is an argument), bills are never
      mutated.
    - Identical inputs produce identical reports; every ordering is
      deterministic.
    - Integer minor-unit arithmetic only; the average is rounded half-up.

Failure modes:
    - ValueError for an unknown period or a non-positive ``days``.
    - Malformed bills are NOT errors: they are skipped, logged at WARNING
      and counted in ``RevenueReport.skipped_bills``.

Usage:
    from billing_engines.revenue import RevenuePeriod, generate_revenue_report

    report = generate_revenue_report(bills, RevenuePeriod.MONTH, now)
    report.total_revenue.format()   # "105,000 VND"
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from enum import Enum

from billing_kernel.domain.bill import Bill, BillStatus, LineItem, Payment, PaymentMethod
from billing_kernel.domain.ledger import check_invariants
from billing_kernel.domain.money import Money, sum_money
from billing_kernel.exceptions import BillingKernelError, LedgerInvariantError
from billing_kernel.logging_config import get_logger
from billing_engines.tracer import traced_engine

logger = get_logger("engines.revenue")

_PENDING = frozenset({BillStatus.ISSUED, BillStatus.PARTIAL, BillStatus.OVERDUE})
_COLLECTED = frozenset({BillStatus.PAID, BillStatus.PARTIAL})

_MONEY_FIELDS = (
    "discount",
    "subtotal",
    "total_discount",
    "total_tax",
    "grand_total",
    "amount_paid",
    "balance_due",
    "written_off_amount",
)


class RevenuePeriod(str, Enum):
    """Reporting windows, all ending at ``now``."""

    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @classmethod
    def parse(cls, value: RevenuePeriod | str) -> RevenuePeriod:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown revenue period: {value!r}") from None


def period_start(period: RevenuePeriod, now: datetime, tz: tzinfo = UTC) -> datetime:
    """
    First instant of ``period`` relative to ``now``.

    TODAY, MONTH and YEAR start at local midnight in ``tz``; WEEK is the
    rolling seven days before ``now``.
    """
    if period is RevenuePeriod.WEEK:
        return now - timedelta(days=7)
    local = now.astimezone(tz)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    if period is RevenuePeriod.TODAY:
        return midnight
    if period is RevenuePeriod.MONTH:
        return midnight.replace(day=1)
    return midnight.replace(month=1, day=1)


@dataclass(frozen=True)
class MethodBreakdown:
    """Payments of one method across the paid bills of a period."""

    method: PaymentMethod
    count: int
    total_amount: Money


@dataclass(frozen=True)
class DailyPoint:
    """Paid bills whose most recent payment fell on ``day``."""

    day: date
    total: Money
    count: int


@dataclass(frozen=True)
class RevenueReport:
    """
    Aggregated view of the bills in one reporting period.

    Contract:
        Frozen, never persisted.  ``bill_counts`` carries every status,
        zero included.  ``payment_method_breakdown`` is sorted by total
        descending, method name breaking ties.  ``daily_series`` is oldest
        first.
    """

    period: RevenuePeriod
    period_start: datetime
    generated_at: datetime
    currency: str
    total_revenue: Money
    amount_collected: Money
    average_bill_amount: Money
    total_bills: int
    paid_bills: int
    pending_bills: int
    bill_counts: dict[BillStatus, int]
    payment_method_breakdown: tuple[MethodBreakdown, ...]
    daily_series: tuple[DailyPoint, ...]
    skipped_bills: int


def _is_aware(value: object) -> bool:
    return isinstance(value, datetime) and value.tzinfo is not None


def _defect(bill: object, currency: str) -> str | None:
    """Why ``bill`` cannot be aggregated, or None when it is well formed."""
    if not isinstance(bill, Bill):
        return "not_a_bill"
    if not isinstance(bill.status, BillStatus):
        return "unknown_status"
    if not _is_aware(bill.reporting_date):
        return "missing_timestamp"
    for name in _MONEY_FIELDS:
        value = getattr(bill, name)
        if not isinstance(value, Money):
            return "missing_derived_fields"
        if value.currency != currency:
            return "foreign_currency"
    for item in bill.line_items:
        if not isinstance(item, LineItem) or not isinstance(item.unit_price, Money):
            return "malformed_line_item"
        if not isinstance(item.discount, Money):
            return "malformed_line_item"
        if item.unit_price.currency != currency or item.discount.currency != currency:
            return "foreign_currency"
    for payment in bill.payments:
        if not isinstance(payment, Payment) or not isinstance(payment.amount, Money):
            return "malformed_payment"
        if not isinstance(payment.method, PaymentMethod):
            return "malformed_payment"
        if payment.amount.currency != currency:
            return "foreign_currency"
        if not _is_aware(payment.paid_at):
            return "missing_timestamp"
    if bill.status is BillStatus.PAID and not bill.payments:
        return "missing_timestamp"
    try:
        check_invariants(bill)
    except LedgerInvariantError as exc:
        return f"inconsistent_{exc.invariant}"
    except BillingKernelError as exc:
        return f"inconsistent_{exc.code.lower()}"
    return None


def _method_breakdown(paid: list[Bill], currency: str) -> tuple[MethodBreakdown, ...]:
    counts: dict[PaymentMethod, int] = defaultdict(int)
    totals: dict[PaymentMethod, Money] = defaultdict(lambda: Money.zero(currency))
    for bill in paid:
        for payment in bill.payments:
            counts[payment.method] += 1
            totals[payment.method] = totals[payment.method] + payment.amount
    rows = [MethodBreakdown(m, counts[m], totals[m]) for m in counts]
    rows.sort(key=lambda r: (-r.total_amount.minor, r.method.value))
    return tuple(rows)


def _daily_series(
    paid: list[Bill], now: datetime, tz: tzinfo, days: int, currency: str,
) -> tuple[DailyPoint, ...]:
    today = now.astimezone(tz).date()
    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    totals = {day: Money.zero(currency) for day in window}
    counts = {day: 0 for day in window}
    for bill in paid:
        day = bill.last_payment_at.astimezone(tz).date()
        if day in totals:
            totals[day] = totals[day] + bill.grand_total
            counts[day] += 1
    return tuple(DailyPoint(day, totals[day], counts[day]) for day in window)


@traced_engine("revenue", "1.0", fingerprint_fields=("period", "now", "currency", "timezone", "days"))
def generate_revenue_report(
    bills: Iterable[Bill],
    period: RevenuePeriod | str,
    now: datetime,
    *,
    currency: str = "VND",
    timezone: tzinfo = UTC,
    days: int = 7,
) -> RevenueReport:
    """
    Build a RevenueReport from a snapshot of bills.

    Args:
        bills: Bill snapshots; never mutated.
        period: Reporting window ending at ``now``.
        now: Timezone-aware reference instant.
        currency: Report currency; bills in any other currency are skipped.
        timezone: Zone that defines local midnight and calendar days.
        days: Length of the trailing daily series.
    """
    resolved = RevenuePeriod.parse(period)
    if days < 1:
        raise ValueError(f"days must be positive, got {days}")
    if not _is_aware(now):
        raise ValueError("now must be a timezone-aware datetime")

    start = period_start(resolved, now, timezone)
    in_period: list[Bill] = []
    skipped = 0
    for bill in bills:
        reason = _defect(bill, currency)
        if reason is not None:
            skipped += 1
            logger.warning(
                "revenue_bill_skipped",
                extra={"bill_id": getattr(bill, "id", None), "reason": reason},
            )
            continue
        if start <= bill.reporting_date <= now:
            in_period.append(bill)

    paid = [b for b in in_period if b.status is BillStatus.PAID]
    total_revenue = sum_money((b.grand_total for b in paid), currency)
    average = total_revenue.divide(len(paid)) if paid else Money.zero(currency)

    counts = {status: 0 for status in BillStatus}
    for bill in in_period:
        counts[bill.status] += 1

    report = RevenueReport(
        period=resolved,
        period_start=start,
        generated_at=now,
        currency=currency,
        total_revenue=total_revenue,
        amount_collected=sum_money(
            (b.amount_paid for b in in_period if b.status in _COLLECTED), currency,
        ),
        average_bill_amount=average,
        total_bills=len(in_period),
        paid_bills=len(paid),
        pending_bills=sum(1 for b in in_period if b.status in _PENDING),
        bill_counts=counts,
        payment_method_breakdown=_method_breakdown(paid, currency),
        daily_series=_daily_series(paid, now, timezone, days, currency),
        skipped_bills=skipped,
    )

    logger.info(
        "revenue_report_generated",
        extra={
            "period": resolved.value,
            "total_bills": report.total_bills,
            "paid_bills": report.paid_bills,
            "total_revenue": total_revenue.minor,
            "skipped_bills": skipped,
        },
    )
    return report
