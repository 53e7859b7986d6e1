"""
Pure read-side engines for the billing ledger.

Engines take bill snapshots and an explicit ``now``; they never touch the
clock, the repository or the database.
"""

from billing_engines.revenue import (
    DailyPoint,
    MethodBreakdown,
    RevenuePeriod,
    RevenueReport,
    generate_revenue_report,
    period_start,
)
from billing_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "DailyPoint",
    "MethodBreakdown",
    "RevenuePeriod",
    "RevenueReport",
    "compute_input_fingerprint",
    "generate_revenue_report",
    "period_start",
    "traced_engine",
]
