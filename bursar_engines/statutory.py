"""
Module: bursar_engines.statutory
Responsibility:
    Map monthly income to government-mandated withholdings: housing fund
    (NHF), pension, health insurance (NHIS) and PAYE income tax.  The
    calculator is an injectable strategy; ``TableStatutoryCalculator``
    drives the arithmetic from a ``StatutoryRates`` table loaded by
    ``bursar_config``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Deterministic and side-effect free.
    - Monotonic: a higher gross income never yields a lower deduction.
    - Never negative.
    - Employer pension is reported but excluded from
      ``total_employee_deductions``.
    - Every component is rounded half-up to whole currency units, as the
      statutory tables are expressed.

Failure modes:
    - ValueError on negative income or mixed currencies.

Usage:
    calculator = TableStatutoryCalculator.from_config()
    deductions = calculator.compute_statutory_deductions(
        gross_income=Money.of("250000", "NGN"),
        basic_salary=Money.of("200000", "NGN"),
    )
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable

from bursar_config.schema import BursarConfig, StatutoryRates
from bursar_engines.tracer import traced_engine
from bursar_kernel.domain.payroll import StatutoryDeductions
from bursar_kernel.domain.values import Money
from bursar_kernel.logging_config import get_logger

logger = get_logger("engines.statutory")

MONTHS_PER_YEAR = Decimal("12")


@runtime_checkable
class StatutoryDeductionCalculator(Protocol):
    """Strategy interface for a jurisdiction's statutory deductions."""

    def compute_statutory_deductions(
        self, gross_income: Money, basic_salary: Money | None = None
    ) -> StatutoryDeductions:
        """All statutory deductions for one month.

        ``basic_salary`` is the base for basic-only levies; it defaults to
        ``gross_income``.
        """
        ...

    def compute_monthly_paye(self, gross_income: Money) -> Money:
        """Monthly PAYE for a monthly gross income."""
        ...


@dataclass(frozen=True)
class TaxBandSlice:
    """The portion of taxable income falling into one band."""

    label: str
    income: Money
    rate: Decimal
    tax: Money


@dataclass(frozen=True)
class PayeBreakdown:
    """Annual PAYE computation detail."""

    annual_gross: Money
    relief: Money
    taxable_income: Money
    bands: tuple[TaxBandSlice, ...]
    annual_tax: Money

    @property
    def monthly_tax(self) -> Money:
        return (self.annual_tax / MONTHS_PER_YEAR).round_whole()

    @property
    def net_income(self) -> Money:
        return self.annual_gross - self.annual_tax


class TableStatutoryCalculator:
    """
    Table-driven statutory deduction calculator.

    Contract:
        NHF = nhf_rate x basic, only when basic >= nhf_min_basic.
        Pension = employee/employer rate x gross emoluments.
        NHIS = nhis_rate x basic, capped at nhis_cap.
        PAYE = progressive bands over (12 x gross - relief) / 12, where
        relief = max(relief_minimum, relief_rate x annual gross).
    """

    def __init__(self, rates: StatutoryRates):
        self._rates = rates

    @classmethod
    def from_config(cls, config: BursarConfig | None = None) -> TableStatutoryCalculator:
        if config is None:
            from bursar_config import get_active_config

            config = get_active_config()
        return cls(config.statutory)

    @property
    def rates(self) -> StatutoryRates:
        return self._rates

    def compute_paye_breakdown(self, annual_gross: Money) -> PayeBreakdown:
        """Walk the PAYE bands over the annual taxable income."""
        if annual_gross.is_negative:
            raise ValueError(f"Gross income cannot be negative: {annual_gross}")
        paye = self._rates.paye
        currency = annual_gross.currency

        relief = annual_gross * paye.relief_rate
        floor = Money.of(paye.relief_minimum, currency)
        if relief < floor:
            relief = floor
        taxable = annual_gross - relief
        if taxable.is_negative:
            taxable = Money.zero(currency)

        slices: list[TaxBandSlice] = []
        remaining = taxable
        lower = Decimal("0")
        for band in paye.bands:
            if not remaining.is_positive:
                break
            if band.upper_bound is None:
                in_band = remaining
            else:
                width = Money.of(band.upper_bound - lower, currency)
                in_band = remaining if remaining < width else width
                lower = band.upper_bound
            if in_band.is_positive:
                slices.append(
                    TaxBandSlice(
                        label=band.label,
                        income=in_band,
                        rate=band.rate,
                        tax=in_band * band.rate,
                    )
                )
                remaining = remaining - in_band

        annual_tax = Money.total((s.tax for s in slices), currency)
        return PayeBreakdown(
            annual_gross=annual_gross,
            relief=relief,
            taxable_income=taxable,
            bands=tuple(slices),
            annual_tax=annual_tax,
        )

    @traced_engine("paye", "1.0", fingerprint_fields=("gross_income",))
    def compute_monthly_paye(self, gross_income: Money) -> Money:
        return self.compute_paye_breakdown(gross_income * MONTHS_PER_YEAR).monthly_tax

    @traced_engine(
        "statutory_deductions", "1.0", fingerprint_fields=("gross_income", "basic_salary")
    )
    def compute_statutory_deductions(
        self, gross_income: Money, basic_salary: Money | None = None
    ) -> StatutoryDeductions:
        if basic_salary is None:
            basic_salary = gross_income
        if gross_income.is_negative or basic_salary.is_negative:
            raise ValueError("Income cannot be negative for statutory deductions")
        if basic_salary.currency != gross_income.currency:
            raise ValueError(
                f"Currency mismatch: {basic_salary.currency} vs {gross_income.currency}"
            )
        r = self._rates
        currency = gross_income.currency

        if basic_salary >= Money.of(r.nhf_min_basic, currency):
            nhf = (basic_salary * r.nhf_rate).round_whole()
        else:
            nhf = Money.zero(currency)

        pension_employee = (gross_income * r.pension_employee_rate).round_whole()
        pension_employer = (gross_income * r.pension_employer_rate).round_whole()

        nhis = (basic_salary * r.nhis_rate).round_whole()
        cap = Money.of(r.nhis_cap, currency)
        if nhis > cap:
            nhis = cap

        paye = self.compute_monthly_paye(gross_income)

        deductions = StatutoryDeductions(
            nhf=nhf,
            pension_employee=pension_employee,
            pension_employer=pension_employer,
            nhis=nhis,
            paye=paye,
        )
        logger.debug(
            "statutory_deductions_computed",
            extra={
                "gross_income": str(gross_income.amount),
                "total_employee": str(deductions.total_employee_deductions.amount),
                "currency": currency.code,
            },
        )
        return deductions
