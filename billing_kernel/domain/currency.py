"""
Currencies a clinic may bill in, with their minor-unit exponents.

Money is held in integer minor units, so the only currency facts the
ledger needs are how many minor units make a major unit and how to print
an amount.  VND has no minor unit: one dong is stored as 1.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    decimal_places: int
    name: str
    symbol: str | None = None
    symbol_suffix: bool = False

    @property
    def minor_per_major(self) -> int:
        return 10 ** self.decimal_places


def _table(*rows: CurrencyInfo) -> dict[str, CurrencyInfo]:
    return {row.code: row for row in rows}


class CurrencyRegistry:
    """Lookup of supported ISO 4217 codes."""

    _BY_CODE: ClassVar[dict[str, CurrencyInfo]] = _table(
        CurrencyInfo("VND", 0, "Vietnamese dong", "₫", symbol_suffix=True),
        CurrencyInfo("JPY", 0, "Japanese yen", "¥"),
        CurrencyInfo("KRW", 0, "South Korean won", "₩"),
        CurrencyInfo("USD", 2, "US dollar", "$"),
        CurrencyInfo("EUR", 2, "Euro", "€"),
        CurrencyInfo("GBP", 2, "Pound sterling", "£"),
        CurrencyInfo("SGD", 2, "Singapore dollar", "S$"),
        CurrencyInfo("THB", 2, "Thai baht", "฿"),
        CurrencyInfo("CNY", 2, "Chinese yuan", "¥"),
        CurrencyInfo("KWD", 3, "Kuwaiti dinar"),
    )

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return code in cls._BY_CODE

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._BY_CODE)

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        return cls._BY_CODE.get(code)

    @classmethod
    def _require(cls, code: str) -> CurrencyInfo:
        info = cls._BY_CODE.get(code)
        if info is None:
            raise ValueError(f"Unsupported currency code: {code}")
        return info

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Raises ValueError for an unsupported code."""
        return cls._require(code).decimal_places

    @classmethod
    def get_minor_per_major(cls, code: str) -> int:
        return cls._require(code).minor_per_major

    @classmethod
    def to_major(cls, code: str, minor: int) -> Decimal:
        """``to_major("USD", 1050)`` -> ``Decimal("10.50")``."""
        info = cls._require(code)
        return Decimal(minor).scaleb(-info.decimal_places)
