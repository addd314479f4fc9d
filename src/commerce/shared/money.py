"""Money: exact integer arithmetic in currency minor units.

Amounts are stored and passed around as ``int`` minor units (cents, yen,
fils). ``Decimal`` only appears at the display boundary and inside a single
multiplication, which is rounded once with ROUND_HALF_UP.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from functools import total_ordering


class MoneyError(ValueError):
    """Base class for money arithmetic failures."""


class CurrencyMismatch(MoneyError):
    def __init__(self, left: str, right: str) -> None:
        super().__init__(f"currencies must match: {left} != {right}")


class NegativeResult(MoneyError):
    def __init__(self, amount: int, currency: str) -> None:
        super().__init__(f"amount cannot be negative: {amount} {currency}")


class UnsupportedCurrency(MoneyError):
    def __init__(self, code: str) -> None:
        super().__init__(f"invalid currency: {code}")


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    precision: int
    symbol: str


CURRENCIES = {
    info.code: info
    for info in (
        CurrencyInfo("USD", 2, "$"),
        CurrencyInfo("EUR", 2, "€"),
        CurrencyInfo("GBP", 2, "£"),
        CurrencyInfo("CAD", 2, "CA$"),
        CurrencyInfo("AUD", 2, "A$"),
        CurrencyInfo("CHF", 2, "CHF "),
        CurrencyInfo("CNY", 2, "CN¥"),
        CurrencyInfo("INR", 2, "₹"),
        CurrencyInfo("BRL", 2, "R$"),
        CurrencyInfo("SEK", 2, "kr "),
        CurrencyInfo("NOK", 2, "kr "),
        CurrencyInfo("DKK", 2, "kr "),
        CurrencyInfo("JPY", 0, "¥"),
        CurrencyInfo("KWD", 3, "KD "),
        CurrencyInfo("BHD", 3, "BD "),
        CurrencyInfo("CLF", 4, "UF "),
    )
}


def currency_info(code: str) -> CurrencyInfo:
    """Look up a supported currency by ISO code."""
    try:
        return CURRENCIES[(code or "").upper()]
    except KeyError:
        raise UnsupportedCurrency(code) from None


def round_half_up(value: Decimal) -> int:
    """Round a Decimal to the nearest integer, ties away from zero."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # Go through repr so 0.1 stays 0.1 instead of its binary expansion
        return Decimal(repr(value))
    return Decimal(value)


@total_ordering
@dataclass(frozen=True)
class Money:
    """An amount of a single currency, in minor units."""

    amount: int
    currency: str

    def __post_init__(self):
        info = currency_info(self.currency)
        object.__setattr__(self, "currency", info.code)
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(f"Money amount must be an int of minor units, got {type(self.amount).__name__}")
        if self.amount < 0:
            raise NegativeResult(self.amount, info.code)

    # -------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------
    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(0, currency)

    @classmethod
    def from_display(cls, value, currency: str) -> "Money":
        """Build from a display value such as ``"19.99"`` or ``Decimal("19.99")``."""
        info = currency_info(currency)
        minor = _as_decimal(value).scaleb(info.precision)
        return cls(round_half_up(minor), info.code)

    # -------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------
    @property
    def precision(self) -> int:
        return currency_info(self.currency).precision

    def is_zero(self) -> bool:
        return self.amount == 0

    def to_display(self) -> Decimal:
        """Major-unit Decimal carrying exactly the currency's precision."""
        exponent = Decimal(1).scaleb(-self.precision)
        return Decimal(self.amount).scaleb(-self.precision).quantize(exponent)

    def format(self) -> str:
        info = currency_info(self.currency)
        return f"{info.symbol}{self.to_display():,.{info.precision}f}"

    def __str__(self) -> str:
        return self.format()

    # -------------------------------------------------------------------
    # Arithmetic
    # -------------------------------------------------------------------
    def _check_currency(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatch(self.currency, other.currency)

    def add(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: "Money") -> "Money":
        self._check_currency(other)
        if other.amount > self.amount:
            raise NegativeResult(self.amount - other.amount, self.currency)
        return Money(self.amount - other.amount, self.currency)

    def subtract_floor(self, other: "Money") -> "Money":
        """Subtract, clamping at zero instead of failing."""
        self._check_currency(other)
        return Money(max(self.amount - other.amount, 0), self.currency)

    def multiply(self, factor) -> "Money":
        """Scale by an int, Decimal or numeric string, rounding once."""
        result = Decimal(self.amount) * _as_decimal(factor)
        if result < 0:
            raise NegativeResult(round_half_up(result), self.currency)
        return Money(round_half_up(result), self.currency)

    def percentage(self, percent) -> "Money":
        """``percent`` percent of this amount (``percentage(10)`` is a tenth)."""
        return self.multiply(_as_decimal(percent) / Decimal(100))

    def convert(self, target_currency: str, rate) -> "Money":
        """Convert at ``rate`` target units per source unit, rounding once."""
        target = currency_info(target_currency)
        if target.code == self.currency:
            return self
        major = Decimal(self.amount).scaleb(-self.precision) * _as_decimal(rate)
        return Money(round_half_up(major.scaleb(target.precision)), target.code)

    def min(self, other: "Money") -> "Money":
        self._check_currency(other)
        return self if self.amount <= other.amount else other

    def __add__(self, other: "Money") -> "Money":
        return self.add(other)

    def __sub__(self, other: "Money") -> "Money":
        return self.subtract(other)

    def __lt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount < other.amount
