"""
Module: bursar_engines.financial_items
Responsibility:
    Resolve a staff member's standing allowances, active loan installments,
    pending bonuses and pending penalties for one pay period into payroll
    lines tagged with their provenance, and merge them into a draft.

Architecture position:
    Engines -- calculation layer.  Reads through the ``FinancialItemSource``
    protocol (satisfied by the persistence store) and performs no writes.

Invariants enforced:
    - One line per source item: a loan, bonus or penalty appears at most
      once however many times resolution runs.
    - A loan contributes ``min(monthly_installment, remaining_balance)``
      and nothing once its remaining balance is zero.
    - ``apply`` replaces every auto-generated line and keeps manual lines
      untouched, so re-resolution is idempotent and never discards a
      user's edits.

Failure modes:
    - Errors raised by the source propagate unchanged; the service layer
      translates persistence failures.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Protocol

from bursar_engines.tracer import traced_engine
from bursar_kernel.domain.payroll import (
    FinancialItemStatus,
    LineOrigin,
    LineSource,
    LoanStatus,
    PaymentAllowance,
    PaymentDeduction,
    PayrollDraft,
    StaffBonus,
    StaffLoan,
    StaffMember,
    StaffPenalty,
)
from bursar_kernel.domain.values import Money
from bursar_kernel.logging_config import get_logger

logger = get_logger("engines.financial_items")

RESOLVED_ORIGINS = frozenset(
    {LineOrigin.STANDING, LineOrigin.LOAN, LineOrigin.BONUS, LineOrigin.PENALTY}
)


class FinancialItemSource(Protocol):
    """Read side of the staff finance store used during resolution."""

    def list_active_loans(self, staff_id: str) -> Sequence[StaffLoan]: ...

    def remaining_balance(self, loan_id: str) -> Money: ...

    def list_pending_bonuses(self, staff_id: str, month: int, year: int) -> Sequence[StaffBonus]: ...

    def list_pending_penalties(
        self, staff_id: str, month: int, year: int
    ) -> Sequence[StaffPenalty]: ...


@dataclass(frozen=True)
class LoanInstallment:
    """A loan's contribution to one period."""

    loan: StaffLoan
    remaining_balance: Money
    amount: Money


@dataclass(frozen=True)
class ResolvedItems:
    """Payroll lines generated from a staff member's financial items."""

    staff_id: str
    month: int
    year: int
    allowances: tuple[PaymentAllowance, ...]
    deductions: tuple[PaymentDeduction, ...]
    installments: tuple[LoanInstallment, ...] = ()
    bonuses: tuple[StaffBonus, ...] = ()
    penalties: tuple[StaffPenalty, ...] = ()

    @property
    def summary(self) -> str:
        """Human-readable list of what was applied, empty if nothing."""
        parts = []
        if self.bonuses:
            parts.append(f"{len(self.bonuses)} bonus(es)")
        if self.installments:
            parts.append(f"{len(self.installments)} loan(s)")
        if self.penalties:
            parts.append(f"{len(self.penalties)} penalty/penalties")
        return ", ".join(parts)


def _unique_by_id(items):
    seen: set[str] = set()
    out = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out


class FinancialItemResolver:
    """
    Translate financial items into provenance-tagged payroll lines.

    Contract:
        ``build`` is pure; ``resolve`` reads through a FinancialItemSource
        and then calls ``build``.
    """

    @staticmethod
    def loan_line_name(loan: StaffLoan) -> str:
        return f"Loan Repayment: {loan.purpose}"

    @staticmethod
    def bonus_line_name(bonus: StaffBonus) -> str:
        return f"Bonus: {bonus.reason}"

    @staticmethod
    def penalty_line_name(penalty: StaffPenalty) -> str:
        return f"Penalty: {penalty.reason}"

    @traced_engine(
        "financial_items", "1.0", fingerprint_fields=("month", "year", "loan_balances")
    )
    def build(
        self,
        staff: StaffMember,
        month: int,
        year: int,
        loan_balances: Sequence[tuple[StaffLoan, Money]] = (),
        bonuses: Sequence[StaffBonus] = (),
        penalties: Sequence[StaffPenalty] = (),
    ) -> ResolvedItems:
        """
        Generate lines from already-fetched financial items.

        Args:
            staff: The staff member; supplies the standing allowances.
            month, year: The pay period.
            loan_balances: (loan, remaining balance) pairs.
            bonuses: Bonuses to pay this period.
            penalties: Penalties to deduct this period.
        """
        allowances = [
            PaymentAllowance(
                name=standing.name,
                amount=standing.amount,
                source=LineSource.auto(LineOrigin.STANDING),
            )
            for standing in staff.standing_allowances
        ]
        deductions: list[PaymentDeduction] = []

        kept_bonuses = [
            b
            for b in _unique_by_id(bonuses)
            if b.staff_id == staff.id
            and b.status == FinancialItemStatus.PENDING
            and (b.month, b.year) == (month, year)
        ]
        for bonus in kept_bonuses:
            allowances.append(
                PaymentAllowance(
                    name=self.bonus_line_name(bonus),
                    amount=bonus.amount,
                    source=LineSource.auto(LineOrigin.BONUS, bonus.id),
                )
            )

        installments: list[LoanInstallment] = []
        seen_loans: set[str] = set()
        for loan, remaining in loan_balances:
            if loan.id in seen_loans or loan.staff_id != staff.id:
                continue
            seen_loans.add(loan.id)
            if loan.status != LoanStatus.ACTIVE or not remaining.is_positive:
                continue
            amount = (
                loan.monthly_installment
                if loan.monthly_installment <= remaining
                else remaining
            )
            installments.append(LoanInstallment(loan, remaining, amount))
            deductions.append(
                PaymentDeduction(
                    name=self.loan_line_name(loan),
                    amount=amount,
                    source=LineSource.auto(LineOrigin.LOAN, loan.id),
                )
            )

        kept_penalties = [
            p
            for p in _unique_by_id(penalties)
            if p.staff_id == staff.id
            and p.status == FinancialItemStatus.PENDING
            and (p.month, p.year) == (month, year)
        ]
        for penalty in kept_penalties:
            deductions.append(
                PaymentDeduction(
                    name=self.penalty_line_name(penalty),
                    amount=penalty.amount,
                    source=LineSource.auto(LineOrigin.PENALTY, penalty.id),
                )
            )

        resolved = ResolvedItems(
            staff_id=staff.id,
            month=month,
            year=year,
            allowances=tuple(allowances),
            deductions=tuple(deductions),
            installments=tuple(installments),
            bonuses=tuple(kept_bonuses),
            penalties=tuple(kept_penalties),
        )
        logger.info(
            "financial_items_resolved",
            extra={
                "staff_id": staff.id,
                "month": month,
                "year": year,
                "loan_count": len(installments),
                "bonus_count": len(kept_bonuses),
                "penalty_count": len(kept_penalties),
            },
        )
        return resolved

    def resolve(
        self,
        source: FinancialItemSource,
        staff: StaffMember,
        month: int,
        year: int,
    ) -> ResolvedItems:
        """Fetch the period's financial items from ``source`` and build lines."""
        loan_balances = [
            (loan, source.remaining_balance(loan.id))
            for loan in source.list_active_loans(staff.id)
        ]
        return self.build(
            staff,
            month,
            year,
            loan_balances=loan_balances,
            bonuses=source.list_pending_bonuses(staff.id, month, year),
            penalties=source.list_pending_penalties(staff.id, month, year),
        )

    @staticmethod
    def apply(draft: PayrollDraft, resolved: ResolvedItems) -> PayrollDraft:
        """
        Merge resolved lines into a draft.

        Lines previously generated by resolution are dropped and replaced;
        manual lines (and statutory lines, which the payroll engine owns)
        are kept in their original order after the resolved ones.
        """
        if (draft.staff_id, draft.month, draft.year) != (
            resolved.staff_id,
            resolved.month,
            resolved.year,
        ):
            raise ValueError(
                "Resolved items belong to a different staff member or period than the draft"
            )
        kept_allowances = tuple(
            a for a in draft.allowances if a.source.origin not in RESOLVED_ORIGINS
        )
        kept_deductions = tuple(
            d for d in draft.deductions if d.source.origin not in RESOLVED_ORIGINS
        )
        return replace(
            draft,
            allowances=resolved.allowances + kept_allowances,
            deductions=resolved.deductions + kept_deductions,
        )
