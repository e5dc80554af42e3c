"""
Values -- Currency and Money.

Every fee balance, allocation, salary line and statutory amount is a
``Money``: a ``Decimal`` paired with its ``Currency``.  Floats are
rejected outright.  Nothing rounds implicitly; the statutory tables call
``round_whole`` and reports call ``round`` where they need to.

Negative amounts are allowed because a draft's net pay can go below zero
before validation rejects it.  Non-negativity of balances and payments is
checked by the objects that hold them.

Mixing currencies in arithmetic or comparison raises ``ValueError``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import total_ordering

from bursar_kernel.domain.currency import CurrencyInfo, CurrencyRegistry

_WHOLE_UNIT = Decimal("1")


@dataclass(frozen=True, slots=True)
class Currency:
    """A supported ISO 4217 code, uppercased on construction."""

    code: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", CurrencyRegistry.require(self.code).code)

    @property
    def info(self) -> CurrencyInfo:
        return CurrencyRegistry.require(self.code)

    @property
    def decimal_places(self) -> int:
        return self.info.decimal_places

    @property
    def rounding_tolerance(self) -> Decimal:
        return self.info.rounding_tolerance

    @property
    def name(self) -> str:
        return self.info.name

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


def _as_currency(currency: str | Currency) -> Currency:
    return currency if isinstance(currency, Currency) else Currency(currency)


def _as_decimal(value: Decimal | int | str) -> Decimal:
    if isinstance(value, float):
        raise TypeError("Money amounts and factors must not be float; pass Decimal, int or str")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


@total_ordering
@dataclass(frozen=True, slots=True)
class Money:
    """
    An amount in one currency.

    Equality ignores scale (``Money.of("5000", "NGN")`` equals
    ``Money.of("5000.000000000", "NGN")``), which keeps values read back
    from ``Numeric(38, 9)`` columns comparable with computed ones.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        amount = _as_decimal(self.amount)
        if not amount.is_finite():
            raise ValueError(f"Invalid amount: {self.amount}")
        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "currency", _as_currency(self.currency))

    # -- construction ---------------------------------------------------

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """``Money`` from a Decimal, int or numeric string."""
        return cls(amount=_as_decimal(amount), currency=_as_currency(currency))

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        return cls(amount=Decimal(0), currency=_as_currency(currency))

    @classmethod
    def total(cls, amounts: Iterable[Money], currency: str | Currency) -> Money:
        """Sum of ``amounts``; zero in ``currency`` when there are none."""
        result = cls.zero(currency)
        for amount in amounts:
            result = result + amount
        return result

    # -- predicates -----------------------------------------------------

    @property
    def is_zero(self) -> bool:
        return not self.amount

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def is_close_to(self, other: Money) -> bool:
        """Within one minor unit of ``other``."""
        return abs(self._other_amount(other, "compare") - self.amount) < (
            self.currency.rounding_tolerance
        )

    # -- rounding and display -------------------------------------------

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """To the currency's minor unit."""
        return self._with(self.amount.quantize(self.currency.info.minor_unit, rounding=rounding))

    def round_whole(self, rounding: str = ROUND_HALF_UP) -> Money:
        """To whole currency units; the statutory tables work in naira, not kobo."""
        return self._with(self.amount.quantize(_WHOLE_UNIT, rounding=rounding))

    def display(self) -> str:
        """``NGN 32,000.00``: code, thousands separators, minor-unit places."""
        places = self.currency.decimal_places
        return f"{self.currency.code} {self.round().amount:,.{places}f}"

    # -- arithmetic -----------------------------------------------------

    def _with(self, amount: Decimal) -> Money:
        return Money(amount=amount, currency=self.currency)

    def _other_amount(self, other: Money, verb: str) -> Decimal:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {verb} Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return other.amount

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return self._with(self.amount + self._other_amount(other, "add"))

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return self._with(self.amount - self._other_amount(other, "subtract"))

    def __neg__(self) -> Money:
        return self._with(-self.amount)

    def __abs__(self) -> Money:
        return self._with(abs(self.amount))

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, Money):
            return NotImplemented
        return self._with(self.amount * _as_decimal(factor))

    __rmul__ = __mul__

    def __truediv__(self, divisor: Decimal | int | str) -> Money:
        if isinstance(divisor, Money):
            return NotImplemented
        return self._with(self.amount / _as_decimal(divisor))

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount < self._other_amount(other, "compare")

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"
