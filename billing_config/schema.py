"""
BillingConfig schema.

The typed form of a billing configuration file.  YAML documents are parsed
into this frozen dataclass by ``billing_config.loader``; validation happens
in ``__post_init__`` so an invalid configuration can never be constructed.
"""

from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from billing_kernel.domain.currency import CurrencyRegistry


@dataclass(frozen=True)
class BillingConfig:
    """Validated billing configuration."""

    config_id: str = "default"
    version: int = 1
    currency: str = "VND"
    payment_terms_days: int = 30
    bill_number_prefix: str = "HD"
    bill_number_width: int = 6
    default_unit_price: int = 10000
    consultation_service_code: str = "CONSULT-001"
    consultation_service_name: str = "Consultation fee"
    max_conflict_retries: int = 3
    report_days: int = 7
    timezone: str = "UTC"
    default_page_size: int = 10
    max_page_size: int = 100

    def __post_init__(self) -> None:
        if not CurrencyRegistry.is_valid(self.currency):
            raise ValueError(f"Unsupported currency code: {self.currency!r}")
        for name in (
            "version",
            "payment_terms_days",
            "bill_number_width",
            "default_unit_price",
            "max_conflict_retries",
            "report_days",
            "default_page_size",
            "max_page_size",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
        if self.payment_terms_days < 0:
            raise ValueError("payment_terms_days must not be negative")
        if self.default_unit_price < 0:
            raise ValueError("default_unit_price must not be negative")
        if not 1 <= self.bill_number_width <= 20:
            raise ValueError("bill_number_width must be within [1, 20]")
        if not self.bill_number_prefix:
            raise ValueError("bill_number_prefix is required")
        if self.max_conflict_retries < 0:
            raise ValueError("max_conflict_retries must not be negative")
        if self.report_days < 1:
            raise ValueError("report_days must be at least 1")
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError("default_page_size must be within [1, max_page_size]")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {self.timezone!r}") from e

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)
