"""
Config -> Kernel Bridges.

Functions that convert a BillingConfig into kernel-compatible inputs.  These
live in billing_config (the producer) because the kernel must NEVER import
billing_config.

Usage:
    from billing_config.bridges import build_ledger_settings, build_report_options

    config = get_active_config()
    settings = build_ledger_settings(config)
    ledger = BillLedger(repository, clock, settings)
    report = generate_revenue_report(bills, "month", now, **build_report_options(config))
"""

from __future__ import annotations

from typing import Any

from billing_config.schema import BillingConfig
from billing_kernel.services.settings import LedgerSettings


def build_ledger_settings(config: BillingConfig) -> LedgerSettings:
    """Project the service-relevant fields of ``config``."""
    return LedgerSettings(
        currency=config.currency,
        payment_terms_days=config.payment_terms_days,
        bill_number_prefix=config.bill_number_prefix,
        bill_number_width=config.bill_number_width,
        default_unit_price=config.default_unit_price,
        consultation_service_code=config.consultation_service_code,
        consultation_service_name=config.consultation_service_name,
        max_conflict_retries=config.max_conflict_retries,
        default_page_size=config.default_page_size,
        max_page_size=config.max_page_size,
    )


def build_report_options(config: BillingConfig) -> dict[str, Any]:
    """Keyword arguments for ``generate_revenue_report`` taken from ``config``."""
    return {
        "currency": config.currency,
        "timezone": config.tzinfo,
        "days": config.report_days,
    }
