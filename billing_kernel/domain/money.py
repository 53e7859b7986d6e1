"""
Money -- Immutable, self-validating integer minor-unit amounts.

Responsibility:
    Provides the monetary value type for every ledger computation.  Amounts
    are integers in the currency's minor unit (cents for USD, dong for VND)
    so that sums and differences are exact.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module.  No outward dependencies except
    billing_kernel.domain.currency (CurrencyRegistry).

Invariants enforced:
    - Amounts are ``int`` minor units, never float or fractional Decimal.
    - Every Money pairs an amount with a supported ISO 4217 currency.
    - Arithmetic never mixes currencies (CurrencyMismatchError).
    - ``round_half_up`` is the ONLY rounding function; every percentage
      computation (tax, discount) goes through ``Money.percent_of``.

Failure modes:
    - TypeError when constructed from float/bool or multiplied by a
      non-integer.
    - ValueError on unsupported currency codes.
    - CurrencyMismatchError when arithmetic mixes currencies.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from billing_kernel.domain.currency import CurrencyRegistry
from billing_kernel.exceptions import CurrencyMismatchError

_HUNDRED = Decimal("100")


def round_half_up(value: Decimal) -> int:
    """
    Round a Decimal to the nearest integer, halves away from zero.

    This is the single rounding rule of the ledger.  All arithmetic that
    mixes money with a percentage ends here.
    """
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_rate(value: Decimal | int | str) -> Decimal:
    """Coerce a percentage rate to Decimal (float rejected)."""
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"rate must be Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid rate: {value!r}") from e


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount in integer minor units.

    Contract:
        Pairs an ``int`` amount of minor units with a currency code -- they
        are NEVER separated.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - ``minor`` is always an int
        - ``currency`` is always a supported, upper-case ISO 4217 code
        - Arithmetic operations enforce the same-currency constraint

    Non-goals:
        - Does NOT perform currency conversion
    """

    minor: int
    currency: str

    def __post_init__(self) -> None:
        if isinstance(self.minor, bool) or not isinstance(self.minor, int):
            raise TypeError(
                f"Money amount must be int minor units, got {type(self.minor).__name__}"
            )
        code = self.currency.upper().strip() if isinstance(self.currency, str) else ""
        if not CurrencyRegistry.is_valid(code):
            raise ValueError(f"Unsupported currency code: {self.currency!r}")
        object.__setattr__(self, "currency", code)

    @classmethod
    def of(cls, minor: int, currency: str) -> Money:
        """Factory method for creating Money from minor units."""
        return cls(minor=minor, currency=currency)

    @classmethod
    def zero(cls, currency: str) -> Money:
        """Create a zero amount in the given currency."""
        return cls(minor=0, currency=currency)

    @classmethod
    def from_major(cls, amount: Decimal | int | str, currency: str) -> Money:
        """
        Create Money from a major-unit amount ("10.50" USD -> 1050).

        Sub-minor fractions are rounded half-up.
        """
        if isinstance(amount, (bool, float)):
            raise TypeError("amount must be Decimal, int or str, never float")
        try:
            value = Decimal(str(amount))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {amount!r}") from e
        factor = CurrencyRegistry.get_minor_per_major(currency.upper().strip())
        return cls(minor=round_half_up(value * factor), currency=currency)

    @property
    def is_zero(self) -> bool:
        return self.minor == 0

    @property
    def is_positive(self) -> bool:
        return self.minor > 0

    @property
    def is_negative(self) -> bool:
        return self.minor < 0

    def to_major(self) -> Decimal:
        """Amount in major units as Decimal."""
        return CurrencyRegistry.to_major(self.currency, self.minor)

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: Money) -> Money:
        """Add two Money values. Must be same currency."""
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(minor=self.minor + other.minor, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        """Subtract two Money values. Must be same currency."""
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(minor=self.minor - other.minor, currency=self.currency)

    def __neg__(self) -> Money:
        return Money(minor=-self.minor, currency=self.currency)

    def __abs__(self) -> Money:
        return Money(minor=abs(self.minor), currency=self.currency)

    def __mul__(self, quantity: int) -> Money:
        """Multiply by an integer quantity."""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            return NotImplemented
        return Money(minor=self.minor * quantity, currency=self.currency)

    def __rmul__(self, quantity: int) -> Money:
        return self.__mul__(quantity)

    def percent_of(self, rate: Decimal | int | str) -> Money:
        """
        Return ``rate`` percent of this amount, rounded half-up.

        ``Money.of(50000, "VND").percent_of(10)`` -> 5000 VND.
        """
        pct = to_rate(rate)
        return Money(
            minor=round_half_up(Decimal(self.minor) * pct / _HUNDRED),
            currency=self.currency,
        )

    def divide(self, divisor: int) -> Money:
        """Divide by a positive integer, rounded half-up (used for averages)."""
        if isinstance(divisor, bool) or not isinstance(divisor, int) or divisor <= 0:
            raise ValueError(f"divisor must be a positive int, got {divisor!r}")
        return Money(
            minor=round_half_up(Decimal(self.minor) / Decimal(divisor)),
            currency=self.currency,
        )

    def max_zero(self) -> Money:
        """Clamp negative amounts to zero."""
        if self.minor < 0:
            return Money.zero(self.currency)
        return self

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor < other.minor

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor <= other.minor

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor > other.minor

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor >= other.minor

    def format(self, with_symbol: bool = False) -> str:
        """
        Display string with thousands separators.

        ``Money.of(105000, "VND").format()`` -> ``"105,000 VND"``;
        ``Money.of(105050, "USD").format(with_symbol=True)`` -> ``"$1,050.50"``.
        """
        info = CurrencyRegistry.get_info(self.currency)
        places = info.decimal_places if info else 0
        text = f"{self.to_major():,.{places}f}"
        if with_symbol and info and info.symbol:
            if info.symbol_suffix:
                return f"{text} {info.symbol}"
            return f"{info.symbol}{text}"
        return f"{text} {self.currency}"

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"Money({self.minor!r}, {self.currency!r})"


def sum_money(amounts: Iterable[Money], currency: str) -> Money:
    """Sum Money values, starting from zero in ``currency``."""
    total = Money.zero(currency)
    for amount in amounts:
        total = total + amount
    return total
