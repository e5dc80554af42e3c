"""
Configuration Schema (``bursar_config.schema``).

Responsibility
--------------
Frozen dataclasses describing one jurisdiction's statutory deduction data
and the school's payroll/fee policy thresholds. Instances are produced by
``bursar_config.loader`` from YAML and consumed by the engines.

Invariants enforced
-------------------
* Rates lie in ``[0, 1]``; caps, thresholds and ceilings are non-negative.
* PAYE bands are ordered by strictly increasing upper bound and only the
  last band may be open-ended (``upper_bound is None``).
* ``min_year <= max_year``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


def _check_rate(name: str, rate: Decimal) -> None:
    if not Decimal("0") <= rate <= Decimal("1"):
        raise ValueError(f"{name} must be between 0 and 1, got {rate}")


def _check_non_negative(name: str, value: Decimal) -> None:
    if value < Decimal("0"):
        raise ValueError(f"{name} cannot be negative, got {value}")


@dataclass(frozen=True)
class TaxBand:
    """One progressive band of the annual PAYE table."""

    label: str
    upper_bound: Decimal | None  # None = no upper limit
    rate: Decimal

    def __post_init__(self) -> None:
        _check_rate(f"tax band {self.label!r} rate", self.rate)
        if self.upper_bound is not None:
            _check_non_negative(f"tax band {self.label!r} upper_bound", self.upper_bound)


@dataclass(frozen=True)
class PayeRules:
    """Annual PAYE table with its consolidated relief allowance."""

    bands: tuple[TaxBand, ...]
    relief_minimum: Decimal
    relief_rate: Decimal

    def __post_init__(self) -> None:
        if not self.bands:
            raise ValueError("PAYE rules require at least one band")
        _check_non_negative("relief_minimum", self.relief_minimum)
        _check_rate("relief_rate", self.relief_rate)
        previous = Decimal("0")
        for i, band in enumerate(self.bands):
            if band.upper_bound is None:
                if i != len(self.bands) - 1:
                    raise ValueError("Only the last PAYE band may be open-ended")
                continue
            if band.upper_bound <= previous:
                raise ValueError(
                    f"PAYE band {band.label!r} upper bound must exceed {previous}"
                )
            previous = band.upper_bound


@dataclass(frozen=True)
class StatutoryRates:
    """Monthly statutory contribution rules."""

    nhf_rate: Decimal
    nhf_min_basic: Decimal
    pension_employee_rate: Decimal
    pension_employer_rate: Decimal
    nhis_rate: Decimal
    nhis_cap: Decimal
    paye: PayeRules

    def __post_init__(self) -> None:
        _check_rate("nhf_rate", self.nhf_rate)
        _check_rate("pension_employee_rate", self.pension_employee_rate)
        _check_rate("pension_employer_rate", self.pension_employer_rate)
        _check_rate("nhis_rate", self.nhis_rate)
        _check_non_negative("nhf_min_basic", self.nhf_min_basic)
        _check_non_negative("nhis_cap", self.nhis_cap)


@dataclass(frozen=True)
class PayrollPolicy:
    """Payment-method compliance thresholds and sanity limits for payroll."""

    cash_ceiling: Decimal
    bank_transfer_threshold: Decimal
    net_pay_ceiling: Decimal
    min_year: int
    max_year: int
    max_allowance_lines: int
    max_deduction_lines: int

    def __post_init__(self) -> None:
        _check_non_negative("cash_ceiling", self.cash_ceiling)
        _check_non_negative("bank_transfer_threshold", self.bank_transfer_threshold)
        _check_non_negative("net_pay_ceiling", self.net_pay_ceiling)
        if self.min_year > self.max_year:
            raise ValueError("min_year cannot be after max_year")
        if self.max_allowance_lines < 0 or self.max_deduction_lines < 0:
            raise ValueError("line limits cannot be negative")


@dataclass(frozen=True)
class FeePolicy:
    """Fee collection shortcuts offered to the cashier."""

    quick_amount_fraction: Decimal
    quick_amount_increments: tuple[Decimal, ...]

    def __post_init__(self) -> None:
        _check_rate("quick_amount_fraction", self.quick_amount_fraction)
        for increment in self.quick_amount_increments:
            _check_non_negative("quick amount increment", increment)


@dataclass(frozen=True)
class BursarConfig:
    """The complete, validated configuration for one school."""

    jurisdiction: str
    currency: str
    statutory: StatutoryRates
    payroll: PayrollPolicy
    fees: FeePolicy
    checksum: str = ""
