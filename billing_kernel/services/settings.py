"""
LedgerSettings -- the knobs the billing services read.

Built from configuration by ``billing_config.bridges.build_ledger_settings``;
the kernel never reads configuration files itself.  The defaults match the
bundled ``defaults.yaml`` so tests can construct services directly.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LedgerSettings:
    """Immutable settings shared by the billing services."""

    currency: str = "VND"
    payment_terms_days: int = 30
    bill_number_prefix: str = "HD"
    bill_number_width: int = 6
    default_unit_price: int = 10000
    consultation_service_code: str = "CONSULT-001"
    consultation_service_name: str = "Consultation fee"
    max_conflict_retries: int = 3
    default_page_size: int = 10
    max_page_size: int = 100
