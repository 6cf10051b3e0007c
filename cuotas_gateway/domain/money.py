"""Minor-unit monetary amounts and installment division"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List

from cuotas_gateway.domain.exceptions import ValidationError

DEFAULT_CURRENCY = "ARS"

# Currencies without cents; everything else uses 2 decimals
MINOR_UNIT_EXPONENTS = {"CLP": 0, "JPY": 0, "PYG": 0}


def minor_unit_exponent(currency: str) -> int:
    return MINOR_UNIT_EXPONENTS.get(currency, 2)


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


@dataclass(frozen=True)
class MoneyAmount:
    """Monetary value stored as an integer number of minor units (cents)"""

    minor: int
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self):
        if isinstance(self.minor, bool) or not isinstance(self.minor, int):
            raise ValidationError(f"Money amount must be an integer number of minor units, got {self.minor!r}")

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> "MoneyAmount":
        return cls(0, currency)

    @classmethod
    def parse(cls, value, currency: str = DEFAULT_CURRENCY) -> "MoneyAmount":
        """
        Normalize a wire amount expressed in major units.

        Accepts a plain number ("120000.50", 120000, 120000.5) or the tagged
        object {"source": "ARS 120000.50", "parsedValue": 120000.5}.
        Rounds half-up to the currency's minor unit.
        """
        if isinstance(value, MoneyAmount):
            return value
        if isinstance(value, dict):
            if "parsedValue" not in value:
                raise ValidationError(f"Invalid money object: {value!r}")
            value = value["parsedValue"]
        if isinstance(value, bool) or value is None:
            raise ValidationError(f"Invalid money amount: {value!r}")

        try:
            major = Decimal(str(value))
        except InvalidOperation as e:
            raise ValidationError(f"Invalid money amount: {value!r}") from e
        if not major.is_finite():
            raise ValidationError(f"Invalid money amount: {value!r}")

        exponent = minor_unit_exponent(currency)
        minor = (major * (Decimal(10) ** exponent)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        return cls(int(minor), currency)

    def to_major(self) -> Decimal:
        exponent = minor_unit_exponent(self.currency)
        return Decimal(self.minor).scaleb(-exponent)

    def is_positive(self) -> bool:
        return self.minor > 0

    def _check_currency(self, other: "MoneyAmount") -> None:
        if self.currency != other.currency:
            raise ValidationError(f"Currency mismatch: {self.currency} vs {other.currency}")

    def __add__(self, other: "MoneyAmount") -> "MoneyAmount":
        self._check_currency(other)
        return MoneyAmount(self.minor + other.minor, self.currency)

    def __sub__(self, other: "MoneyAmount") -> "MoneyAmount":
        self._check_currency(other)
        return MoneyAmount(self.minor - other.minor, self.currency)

    # Ordering only makes sense within one currency
    def __lt__(self, other: "MoneyAmount") -> bool:
        self._check_currency(other)
        return self.minor < other.minor

    def __le__(self, other: "MoneyAmount") -> bool:
        self._check_currency(other)
        return self.minor <= other.minor

    def __gt__(self, other: "MoneyAmount") -> bool:
        self._check_currency(other)
        return self.minor > other.minor

    def __ge__(self, other: "MoneyAmount") -> bool:
        self._check_currency(other)
        return self.minor >= other.minor

    def percent_floor(self, percentage: int) -> "MoneyAmount":
        """percentage% of this amount, rounded down to the minor unit"""
        return MoneyAmount(self.minor * percentage // 100, self.currency)

    def __str__(self) -> str:
        return f"{self.currency} {self.to_major()}"


def total_of(amounts, currency: str = DEFAULT_CURRENCY) -> MoneyAmount:
    total = MoneyAmount.zero(currency)
    for amount in amounts:
        total = total + amount
    return total


def split_divided(total: MoneyAmount, count: int) -> List[MoneyAmount]:
    """
    Split a total into `count` installments for the DividedAmount strategy.

    Installments 1..n-1 pay ceil(T / n); the last absorbs the rounding
    remainder T - (n-1) * ceil(T / n), so the amounts always sum to T.

    Example:
        10003 / 4 -> [2501, 2501, 2501, 2500]
    """
    if count < 1:
        raise ValidationError(f"Installment count must be at least 1, got {count}")
    if not total.is_positive():
        raise ValidationError("Total amount must be positive")

    base = _ceil_div(total.minor, count)
    last = total.minor - (count - 1) * base
    if last <= 0:
        raise ValidationError(
            f"{total} cannot be divided into {count} positive installments"
        )

    return [MoneyAmount(base, total.currency)] * (count - 1) + [MoneyAmount(last, total.currency)]


def split_fixed(total: MoneyAmount, installment: MoneyAmount) -> List[MoneyAmount]:
    """
    Split a total into fixed-size installments for the FixedInstallment strategy.

    Count is ceil(T / fixed); the final installment is truncated to the
    remainder instead of overshooting T.
    """
    total._check_currency(installment)
    if not installment.is_positive():
        raise ValidationError("Fixed installment amount must be positive")
    if not total.is_positive():
        raise ValidationError("Total amount must be positive")

    count = _ceil_div(total.minor, installment.minor)
    last = total.minor - (count - 1) * installment.minor
    return [installment] * (count - 1) + [MoneyAmount(last, total.currency)]


def fixed_installment_count(total: MoneyAmount, installment: MoneyAmount) -> int:
    if not installment.is_positive():
        raise ValidationError("Fixed installment amount must be positive")
    return _ceil_div(total.minor, installment.minor)
