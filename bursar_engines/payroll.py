"""
Module: bursar_engines.payroll
Responsibility:
    Combine basic salary, allowances and deductions (resolved, manual and
    statutory) into gross pay, total deductions and net pay; build the
    pending ``SalaryPayment``; drive its lifecycle; and summarize a
    period's payroll.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The statutory calculator
    is injected so the engine is not coupled to one jurisdiction.

Invariants enforced:
    - total_gross = basic_salary + sum(allowances)
    - total_deductions = sum(deductions)
    - net_pay = total_gross - total_deductions
    - Statutory items are counted once: when statutory deductions are
      computed, any deduction flagged statutory, or any manual deduction
      named like one, is replaced by the computed lines.  Resolved loan,
      penalty, bonus and standing lines always stay.
    - pending -> approved -> paid, with cancel from pending or approved;
      no transition skips a state or reverses.

Failure modes:
    - ValueError when building a payment from a draft without a
      payment date, or with mixed currencies.
    - InvalidTransitionError on an illegal lifecycle action.
"""

from __future__ import annotations

import re
import secrets
import string
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date

from bursar_engines.statutory import StatutoryDeductionCalculator
from bursar_engines.tracer import traced_engine
from bursar_engines.workflows import SALARY_PAYMENT_WORKFLOW, transition
from bursar_kernel.domain.payroll import (
    LineOrigin,
    LineSource,
    PaymentAllowance,
    PaymentDeduction,
    PayrollDraft,
    SalaryPayment,
    SalaryPaymentMethod,
    SalaryPaymentStatus,
    StatutoryDeductions,
)
from bursar_kernel.domain.values import Currency, Money
from bursar_kernel.logging_config import get_logger

logger = get_logger("engines.payroll")

STATUTORY_NAME_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"nhf",
        r"national housing",
        r"pension.*employee",
        r"nhis",
        r"national health",
        r"paye",
        r"pay as you earn",
    )
)

NHF_LINE = "NHF (National Housing Fund)"
PENSION_LINE = "Pension - Employee Contribution"
NHIS_LINE = "NHIS (National Health Insurance)"
PAYE_LINE = "PAYE (Pay As You Earn Tax)"
PAYE_MANUAL_LINE = "PAYE Tax"

_REFERENCE_ALPHABET = string.digits + string.ascii_uppercase


def _suffix(length: int) -> str:
    return "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(length))


def generate_salary_reference(year: int, month: int) -> str:
    """``SAL-YYYY-MM-XXXXXX`` with an uppercase alphanumeric suffix."""
    return f"SAL-{year:04d}-{month:02d}-{_suffix(6)}"


def generate_fee_payment_reference(year: int) -> str:
    """``PAY-YYYY-XXXXXXXX`` with an uppercase alphanumeric suffix."""
    return f"PAY-{year:04d}-{_suffix(8)}"


def is_statutory_deduction(deduction: PaymentDeduction) -> bool:
    """Flagged statutory, generated as statutory, or a manual line named like a levy.

    Lines resolved from loans, penalties, bonuses or standing items are never
    statutory, whatever their name.
    """
    if deduction.is_statutory or deduction.source.origin == LineOrigin.STATUTORY:
        return True
    if deduction.source.origin != LineOrigin.MANUAL:
        return False
    return any(pattern.search(deduction.name) for pattern in STATUTORY_NAME_PATTERNS)


def _is_paye_line(deduction: PaymentDeduction) -> bool:
    origin = deduction.source.origin
    if origin == LineOrigin.STATUTORY:
        return deduction.source.ref == "paye"
    if origin != LineOrigin.MANUAL:
        return False
    lowered = deduction.name.lower()
    return "paye" in lowered or "tax" in lowered


@dataclass(frozen=True)
class PayrollComputation:
    """The computed figures for one draft."""

    basic_salary: Money
    allowances: tuple[PaymentAllowance, ...]
    deductions: tuple[PaymentDeduction, ...]
    total_gross: Money
    total_deductions: Money
    net_pay: Money
    statutory: StatutoryDeductions | None = None

    @property
    def total_allowances(self) -> Money:
        return self.total_gross - self.basic_salary


@dataclass(frozen=True)
class MethodTotal:
    count: int
    amount: Money


@dataclass(frozen=True)
class PayrollSummary:
    """Dashboard figures for one period's live salary payments."""

    month: int
    year: int
    total_staff: int
    total_gross: Money
    total_deductions: Money
    total_net_pay: Money
    status_counts: dict[SalaryPaymentStatus, int]
    by_payment_method: dict[SalaryPaymentMethod, MethodTotal]


class PayrollComputationEngine:
    """
    Salary arithmetic with optional statutory deductions.

    Contract:
        ``compute`` is pure and deterministic for a given draft and
        calculator.  Without a calculator, deductions are taken as given.
    """

    def __init__(self, statutory_calculator: StatutoryDeductionCalculator | None = None):
        self._statutory = statutory_calculator

    @property
    def statutory_calculator(self) -> StatutoryDeductionCalculator | None:
        return self._statutory

    @staticmethod
    def statutory_lines(statutory: StatutoryDeductions) -> tuple[PaymentDeduction, ...]:
        """Materialize the employee-side statutory amounts as deduction lines.

        Zero amounts are omitted; employer pension is never a line.
        """
        lines = []
        for name, amount, origin_ref in (
            (NHF_LINE, statutory.nhf, "nhf"),
            (PENSION_LINE, statutory.pension_employee, "pension"),
            (NHIS_LINE, statutory.nhis, "nhis"),
            (PAYE_LINE, statutory.paye, "paye"),
        ):
            if amount.is_positive:
                lines.append(
                    PaymentDeduction(
                        name=name,
                        amount=amount,
                        source=LineSource.auto(LineOrigin.STATUTORY, origin_ref),
                        is_statutory=True,
                    )
                )
        return tuple(lines)

    @traced_engine("payroll", "1.0", fingerprint_fields=("draft", "include_statutory"))
    def compute(self, draft: PayrollDraft, include_statutory: bool = True) -> PayrollComputation:
        """
        Compute gross, deductions and net pay for a draft.

        Args:
            draft: The staff member's period draft.
            include_statutory: When True and a calculator is configured,
                statutory deductions are computed and replace any
                statutory-looking deduction in the draft.
        """
        currency = draft.currency
        allowances = tuple(draft.allowances)
        total_gross = draft.basic_salary + Money.total(
            (a.amount for a in allowances), currency
        )

        statutory: StatutoryDeductions | None = None
        deductions = tuple(draft.deductions)
        if include_statutory and self._statutory is not None:
            statutory = self._statutory.compute_statutory_deductions(
                total_gross, draft.basic_salary
            )
            regular = tuple(d for d in deductions if not is_statutory_deduction(d))
            replaced = len(deductions) - len(regular)
            if replaced:
                logger.info(
                    "statutory_deductions_replaced",
                    extra={"staff_id": draft.staff_id, "replaced_count": replaced},
                )
            deductions = regular + self.statutory_lines(statutory)

        total_deductions = Money.total((d.amount for d in deductions), currency)
        net_pay = total_gross - total_deductions

        logger.info(
            "payroll_computed",
            extra={
                "staff_id": draft.staff_id,
                "month": draft.month,
                "year": draft.year,
                "total_gross": str(total_gross.amount),
                "total_deductions": str(total_deductions.amount),
                "net_pay": str(net_pay.amount),
            },
        )
        return PayrollComputation(
            basic_salary=draft.basic_salary,
            allowances=allowances,
            deductions=deductions,
            total_gross=total_gross,
            total_deductions=total_deductions,
            net_pay=net_pay,
            statutory=statutory,
        )

    @staticmethod
    def apply_paye(draft: PayrollDraft, paye: Money) -> PayrollDraft:
        """Set the draft's PAYE line to ``paye``.

        Updates the computed PAYE line, or else the first manual deduction
        whose name mentions PAYE or tax, or appends a ``PAYE Tax`` line when
        neither exists.  Resolved loan, penalty and bonus lines are never
        touched.
        """
        deductions = list(draft.deductions)
        for i, deduction in enumerate(deductions):
            if _is_paye_line(deduction):
                deductions[i] = replace(deduction, amount=paye)
                break
        else:
            deductions.append(PaymentDeduction(name=PAYE_MANUAL_LINE, amount=paye))
        return replace(draft, deductions=tuple(deductions))

    def build_salary_payment(
        self,
        draft: PayrollDraft,
        payment_id: str,
        reference: str | None = None,
        computation: PayrollComputation | None = None,
        include_statutory: bool = True,
    ) -> SalaryPayment:
        """A new ``pending`` salary payment for the draft."""
        if draft.payment_date is None:
            raise ValueError("A salary payment requires a payment date")
        if computation is None:
            computation = self.compute(draft, include_statutory=include_statutory)
        return SalaryPayment(
            id=payment_id,
            reference=reference or generate_salary_reference(draft.year, draft.month),
            staff_id=draft.staff_id,
            month=draft.month,
            year=draft.year,
            basic_salary=computation.basic_salary,
            allowances=computation.allowances,
            deductions=computation.deductions,
            total_gross=computation.total_gross,
            total_deductions=computation.total_deductions,
            net_pay=computation.net_pay,
            payment_method=draft.payment_method,
            payment_date=draft.payment_date,
            status=SalaryPaymentStatus(SALARY_PAYMENT_WORKFLOW.initial_state),
            statutory=computation.statutory,
        )

    @staticmethod
    def transition(
        payment: SalaryPayment, action: str, actor_id: str | None = None
    ) -> SalaryPayment:
        """Apply a lifecycle action, returning the updated payment.

        ``approve`` records ``actor_id`` as the approver.
        """
        new_state = transition(
            SALARY_PAYMENT_WORKFLOW,
            "SalaryPayment",
            payment.id,
            payment.status.value,
            action,
        )
        updated = replace(payment, status=SalaryPaymentStatus(new_state))
        if action == "approve":
            updated = replace(updated, approved_by=actor_id)
        return updated

    @staticmethod
    def summarize_payroll(
        payments: Sequence[SalaryPayment],
        month: int,
        year: int,
        currency: str | Currency,
    ) -> PayrollSummary:
        """Counts and totals for the period's non-cancelled payments."""
        live = [
            p for p in payments if p.is_live and (p.month, p.year) == (month, year)
        ]
        status_counts = {status: 0 for status in SalaryPaymentStatus}
        by_method: dict[SalaryPaymentMethod, MethodTotal] = {}
        for p in payments:
            if (p.month, p.year) == (month, year):
                status_counts[p.status] += 1
        for p in live:
            current = by_method.get(p.payment_method)
            if current is None:
                by_method[p.payment_method] = MethodTotal(1, p.net_pay)
            else:
                by_method[p.payment_method] = MethodTotal(
                    current.count + 1, current.amount + p.net_pay
                )
        return PayrollSummary(
            month=month,
            year=year,
            total_staff=len(live),
            total_gross=Money.total((p.total_gross for p in live), currency),
            total_deductions=Money.total((p.total_deductions for p in live), currency),
            total_net_pay=Money.total((p.net_pay for p in live), currency),
            status_counts=status_counts,
            by_payment_method=by_method,
        )


def new_draft(
    staff_id: str,
    month: int,
    year: int,
    basic_salary: Money,
    payment_method: SalaryPaymentMethod = SalaryPaymentMethod.BANK_TRANSFER,
    payment_date: date | None = None,
) -> PayrollDraft:
    """An empty draft for a staff member and period."""
    return PayrollDraft(
        staff_id=staff_id,
        month=month,
        year=year,
        basic_salary=basic_salary,
        payment_method=payment_method,
        payment_date=payment_date,
    )
