"""
Values -- Immutable, self-validating monetary value objects.

Responsibility:
    Provides Currency and Money, the only types allowed to carry monetary
    amounts through invoice, ledger and settlement logic, plus the single
    coercion helper that turns raw form values into Decimals.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every engine. No outward dependencies except
    ledger_kernel.domain.currency (CurrencyRegistry).

Invariants enforced:
    - Amounts are Decimal, never float.
    - Currency codes are validated against the registry at construction.
    - Exact comparisons are done in integer minor units (``minor_units``),
      so "sums to total" checks never need a float epsilon.

Failure modes:
    - ValueError on construction with invalid amounts or currencies.
    - TypeError when Money is built from a float or multiplied by one.
    - ValueError when arithmetic mixes different currencies.
    - ValueError from ``minor_units`` when the amount has sub-minor precision.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from ledger_kernel.domain.currency import CurrencyRegistry


@dataclass(frozen=True, slots=True)
class Currency:
    """
    ISO 4217 currency code value object.

    Contract:
        Wraps a three-letter code known to CurrencyRegistry. Normalized
        (uppercased, stripped) on construction.

    Guarantees:
        - Immutable and hashable.
        - ``decimal_places`` and ``minor_unit`` come from the registry.
    """

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.upper().strip() if isinstance(self.code, str) else ""
        if not CurrencyRegistry.is_valid(normalized):
            raise ValueError(f"Invalid ISO 4217 currency code: {self.code}")
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def minor_unit(self) -> Decimal:
        return CurrencyRegistry.get_minor_unit(self.code)

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its Currency. This is the canonical
        representation of every invoice total, ledger balance and
        distribution share.

    Guarantees:
        - Immutable and hashable.
        - amount is always a Decimal (never float).
        - Arithmetic and ordering enforce the same-currency constraint.

    Non-goals:
        - Does NOT auto-round; callers must call ``round()`` explicitly.
        - Does NOT convert between currencies.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        if isinstance(self.amount, float):
            raise TypeError("Money amount must not be a float; pass a Decimal or str")
        if not isinstance(self.amount, Decimal):
            try:
                object.__setattr__(self, "amount", Decimal(str(self.amount)))
            except (InvalidOperation, ValueError) as e:
                raise ValueError(f"Invalid amount: {self.amount}") from e
        if not self.amount.is_finite():
            raise ValueError(f"Invalid amount: {self.amount}")

        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(f"currency must be Currency or str, got {type(self.currency)}")

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """
        Factory method for creating Money.

        Raises:
            ValueError: If amount cannot be converted or currency is invalid.
        """
        if isinstance(amount, (str, int)):
            amount = Decimal(str(amount))
        if isinstance(currency, str):
            currency = Currency(currency)
        return cls(amount=amount, currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        """Create a zero amount in the given currency."""
        if isinstance(currency, str):
            currency = Currency(currency)
        return cls(amount=Decimal("0"), currency=currency)

    @classmethod
    def from_minor_units(cls, units: int, currency: str | Currency) -> Money:
        """Build Money from an integer count of minor units (e.g. cents)."""
        if isinstance(currency, str):
            currency = Currency(currency)
        if not isinstance(units, int) or isinstance(units, bool):
            raise TypeError(f"minor units must be int, got {type(units).__name__}")
        return cls(
            amount=Decimal(units).scaleb(-currency.decimal_places),
            currency=currency,
        )

    @property
    def minor_units(self) -> int:
        """
        Exact integer count of minor units.

        Raises:
            ValueError: If the amount is finer than the currency's minor unit.
        """
        scaled = self.amount.scaleb(self.currency.decimal_places)
        if scaled != scaled.to_integral_value():
            raise ValueError(
                f"{self.amount} has more precision than {self.currency.code} allows"
            )
        return int(scaled)

    @property
    def is_exact(self) -> bool:
        """True if the amount is representable in whole minor units."""
        scaled = self.amount.scaleb(self.currency.decimal_places)
        return scaled == scaled.to_integral_value()

    @property
    def is_zero(self) -> bool:
        return self.amount == Decimal("0")

    @property
    def is_positive(self) -> bool:
        return self.amount > Decimal("0")

    @property
    def is_negative(self) -> bool:
        return self.amount < Decimal("0")

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's minor unit. Returns a new Money."""
        rounded = self.amount.quantize(self.currency.minor_unit, rounding=rounding)
        return Money(amount=rounded, currency=self.currency)

    def _check_currency(self, other: Money, op: str) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {op} Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "add")
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "subtract")
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount, currency=self.currency)

    def __abs__(self) -> Money:
        return Money(amount=abs(self.amount), currency=self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, (int, str)) and not isinstance(factor, bool):
            factor = Decimal(str(factor))
        if not isinstance(factor, Decimal):
            return NotImplemented
        return Money(amount=self.amount * factor, currency=self.currency)

    def __rmul__(self, factor: Decimal | int | str) -> Money:
        return self.__mul__(factor)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


def sum_money(items: Iterable[Money], currency: str | Currency) -> Money:
    """Sum Money values, starting from zero in ``currency``."""
    total = Money.zero(currency)
    for item in items:
        total = total + item
    return total


def parse_decimal(raw: Any) -> Decimal | None:
    """
    Coerce a raw form value into a Decimal.

    Preconditions:
        raw is whatever the presentation layer collected: str, int,
        Decimal, None or an empty string. Form values are sent as text;
        floats are refused like they are for Money.

    Postconditions:
        - None and blank strings map to None (field not entered).
        - Everything else maps to a finite Decimal.

    Raises:
        ValueError: If the value is not numeric, not finite, a bool or a float.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError(f"Not a number: {raw!r}")
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, int):
        value = Decimal(raw)
    elif isinstance(raw, str):
        text = raw.strip().replace(",", "")
        if not text:
            return None
        try:
            value = Decimal(text)
        except InvalidOperation as e:
            raise ValueError(f"Not a number: {raw!r}") from e
    else:
        raise ValueError(f"Not a number: {raw!r}")

    if not value.is_finite():
        raise ValueError(f"Not a finite number: {raw!r}")
    return value
