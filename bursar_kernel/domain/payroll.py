"""
Payroll Domain Types (``bursar_kernel.domain.payroll``).

Responsibility
--------------
Frozen value objects for the staff side of the ledger: staff members and
their standing allowances, loans and repayments, bonuses and penalties,
payroll line items with provenance, statutory deduction breakdowns, the
editable payroll draft and the finalized salary payment.

Invariants enforced
-------------------
* All monetary fields are ``Money`` -- NEVER ``float``.
* ``SalaryPayment``: ``total_gross == basic_salary + sum(allowances)``,
  ``total_deductions == sum(deductions)``,
  ``net_pay == total_gross - total_deductions``.
* ``StatutoryDeductions.total_employee_deductions`` excludes the employer
  pension contribution.
* Every payroll line carries a ``LineSource`` so auto-generated lines can be
  regenerated without touching manual ones.

Failure modes
-------------
* Construction with an inconsistent total, a month outside 1-12, or mixed
  currencies raises ``ValueError``.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from bursar_kernel.domain.values import Currency, Money
from bursar_kernel.logging_config import get_logger

logger = get_logger("domain.payroll")


class SalaryPaymentMethod(str, Enum):
    """Channels a salary can be paid through."""

    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CHEQUE = "cheque"


class SalaryPaymentStatus(str, Enum):
    """Salary payment lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


class FinancialItemStatus(str, Enum):
    """Bonus / penalty lifecycle states (one-directional from PENDING)."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class LoanStatus(str, Enum):
    """Staff loan lifecycle states."""

    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"
    CANCELLED = "cancelled"


class LineOrigin(str, Enum):
    """Where a payroll line came from."""

    MANUAL = "manual"
    STANDING = "standing"  # staff member's recurring allowance
    LOAN = "loan"
    BONUS = "bonus"
    PENALTY = "penalty"
    STATUTORY = "statutory"


@dataclass(frozen=True)
class LineSource:
    """
    Provenance tag of a payroll line.

    ``tag`` renders as ``manual`` or ``auto:<origin>:<ref>`` (for example
    ``auto:loan:7f3c...``).
    """

    origin: LineOrigin = LineOrigin.MANUAL
    ref: str | None = None

    @classmethod
    def manual(cls) -> LineSource:
        return cls(LineOrigin.MANUAL)

    @classmethod
    def auto(cls, origin: LineOrigin, ref: str | None = None) -> LineSource:
        if origin == LineOrigin.MANUAL:
            raise ValueError("auto provenance requires a non-manual origin")
        return cls(origin, ref)

    @classmethod
    def parse(cls, tag: str) -> LineSource:
        if tag == LineOrigin.MANUAL.value:
            return cls.manual()
        prefix, _, rest = tag.partition(":")
        if prefix != "auto" or not rest:
            raise ValueError(f"Invalid line source tag: {tag!r}")
        origin, _, ref = rest.partition(":")
        return cls(LineOrigin(origin), ref or None)

    @property
    def is_auto(self) -> bool:
        return self.origin != LineOrigin.MANUAL

    @property
    def tag(self) -> str:
        if not self.is_auto:
            return LineOrigin.MANUAL.value
        if self.ref is None:
            return f"auto:{self.origin.value}"
        return f"auto:{self.origin.value}:{self.ref}"

    def __str__(self) -> str:
        return self.tag


@dataclass(frozen=True)
class PaymentAllowance:
    """An allowance line on a salary payment.

    Name and amount are checked by the validation rules rather than here,
    so a draft can hold a half-typed line.
    """

    name: str
    amount: Money
    source: LineSource = field(default_factory=LineSource.manual)
    is_taxable: bool = True


@dataclass(frozen=True)
class PaymentDeduction:
    """A deduction line on a salary payment."""

    name: str
    amount: Money
    source: LineSource = field(default_factory=LineSource.manual)
    is_statutory: bool = False


@dataclass(frozen=True)
class StandingAllowance:
    """A recurring allowance attached to a staff member's contract."""

    name: str
    amount: Money


@dataclass(frozen=True)
class StaffMember:
    """The payroll-relevant facts about a staff member."""

    id: str
    staff_number: str
    full_name: str
    basic_salary: Money
    standing_allowances: tuple[StandingAllowance, ...] = ()
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.basic_salary.is_negative:
            raise ValueError("basic_salary cannot be negative")
        for allowance in self.standing_allowances:
            if allowance.amount.currency != self.basic_salary.currency:
                raise ValueError(
                    f"Standing allowance {allowance.name!r} is not in "
                    f"{self.basic_salary.currency}"
                )

    @property
    def currency(self) -> Currency:
        return self.basic_salary.currency


@dataclass(frozen=True)
class StaffLoan:
    """
    An approved staff loan repaid by monthly installment.

    The remaining balance is not stored: it is principal minus the sum of
    recorded repayments and is supplied by the persistence collaborator.
    """

    id: str
    staff_id: str
    principal: Money
    monthly_installment: Money
    purpose: str
    status: LoanStatus = LoanStatus.ACTIVE

    def __post_init__(self) -> None:
        if not self.principal.is_positive:
            raise ValueError("Loan principal must be greater than zero")
        if not self.monthly_installment.is_positive:
            raise ValueError("Loan monthly installment must be greater than zero")
        if self.monthly_installment.currency != self.principal.currency:
            raise ValueError("Loan installment and principal must share a currency")

    def remaining_after(self, repayments: Iterable[Money]) -> Money:
        """Principal minus repayments, floored at zero."""
        remaining = self.principal - Money.total(repayments, self.principal.currency)
        if remaining.is_negative:
            logger.warning(
                "loan_overrepaid",
                extra={"loan_id": self.id, "excess": str(-remaining.amount)},
            )
            return Money.zero(self.principal.currency)
        return remaining


@dataclass(frozen=True)
class LoanRepayment:
    """One installment applied against a loan through payroll."""

    id: str
    loan_id: str
    staff_id: str
    amount: Money
    month: int
    year: int
    payment_date: date
    salary_payment_id: str | None = None

    def __post_init__(self) -> None:
        if not self.amount.is_positive:
            raise ValueError("Loan repayment must be greater than zero")


@dataclass(frozen=True)
class StaffBonus:
    """A one-off bonus payable in a given month."""

    id: str
    staff_id: str
    amount: Money
    reason: str
    month: int
    year: int
    status: FinancialItemStatus = FinancialItemStatus.PENDING
    salary_payment_id: str | None = None

    def __post_init__(self) -> None:
        _check_month(self.month)
        if not self.amount.is_positive:
            raise ValueError("Bonus amount must be greater than zero")


@dataclass(frozen=True)
class StaffPenalty:
    """A one-off penalty deductible in a given month."""

    id: str
    staff_id: str
    amount: Money
    reason: str
    month: int
    year: int
    status: FinancialItemStatus = FinancialItemStatus.PENDING
    salary_payment_id: str | None = None

    def __post_init__(self) -> None:
        _check_month(self.month)
        if not self.amount.is_positive:
            raise ValueError("Penalty amount must be greater than zero")


@dataclass(frozen=True)
class StatutoryDeductions:
    """Government-mandated withholdings for one month of pay."""

    nhf: Money
    pension_employee: Money
    pension_employer: Money
    nhis: Money
    paye: Money

    def __post_init__(self) -> None:
        for name in ("nhf", "pension_employee", "pension_employer", "nhis", "paye"):
            value: Money = getattr(self, name)
            if value.is_negative:
                raise ValueError(f"Statutory {name} cannot be negative: {value}")
            if value.currency != self.paye.currency:
                raise ValueError("Statutory deductions must share a currency")

    @classmethod
    def zero(cls, currency: str | Currency) -> StatutoryDeductions:
        z = Money.zero(currency)
        return cls(nhf=z, pension_employee=z, pension_employer=z, nhis=z, paye=z)

    @property
    def total_employee_deductions(self) -> Money:
        """Deducted from the employee's pay; employer pension is excluded."""
        return self.nhf + self.pension_employee + self.nhis + self.paye

    @property
    def total_employer_contributions(self) -> Money:
        return self.pension_employer


@dataclass(frozen=True)
class PayrollDraft:
    """
    The editable state of one staff member's pay for one period.

    Lines are plain tuples; edits produce a new draft via
    ``dataclasses.replace``.
    """

    staff_id: str
    month: int
    year: int
    basic_salary: Money
    allowances: tuple[PaymentAllowance, ...] = ()
    deductions: tuple[PaymentDeduction, ...] = ()
    payment_method: SalaryPaymentMethod = SalaryPaymentMethod.BANK_TRANSFER
    payment_date: date | None = None

    @property
    def currency(self) -> Currency:
        return self.basic_salary.currency

    @property
    def manual_allowances(self) -> tuple[PaymentAllowance, ...]:
        return tuple(a for a in self.allowances if not a.source.is_auto)

    @property
    def manual_deductions(self) -> tuple[PaymentDeduction, ...]:
        return tuple(d for d in self.deductions if not d.source.is_auto)


@dataclass(frozen=True)
class SalaryPayment:
    """A computed salary payment for one staff member and period."""

    id: str
    reference: str
    staff_id: str
    month: int
    year: int
    basic_salary: Money
    allowances: tuple[PaymentAllowance, ...]
    deductions: tuple[PaymentDeduction, ...]
    total_gross: Money
    total_deductions: Money
    net_pay: Money
    payment_method: SalaryPaymentMethod
    payment_date: date
    status: SalaryPaymentStatus = SalaryPaymentStatus.PENDING
    statutory: StatutoryDeductions | None = None
    approved_by: str | None = None

    def __post_init__(self) -> None:
        _check_month(self.month)
        currency = self.basic_salary.currency
        gross = self.basic_salary + Money.total((a.amount for a in self.allowances), currency)
        deductions = Money.total((d.amount for d in self.deductions), currency)
        if gross != self.total_gross:
            raise ValueError(
                f"total_gross {self.total_gross} != basic + allowances {gross}"
            )
        if deductions != self.total_deductions:
            raise ValueError(
                f"total_deductions {self.total_deductions} != sum of deductions {deductions}"
            )
        if self.total_gross - self.total_deductions != self.net_pay:
            raise ValueError(
                f"net_pay {self.net_pay} != total_gross - total_deductions"
            )

    @property
    def period_start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def period_end(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    @property
    def is_live(self) -> bool:
        """Counts toward the one-payment-per-period rule."""
        return self.status != SalaryPaymentStatus.CANCELLED


def _check_month(month: int) -> None:
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
