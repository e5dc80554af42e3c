"""
Tests for financial item resolution.

Covers:
- Standing allowances, bonuses, loans and penalties become tagged lines
- Loan installment capped by the remaining balance; exhausted loans skipped
- Filtering by staff member, period and status
- Idempotent re-application that keeps manual lines
"""

from dataclasses import replace
from datetime import date

import pytest

from bursar_engines.financial_items import FinancialItemResolver
from bursar_engines.payroll import new_draft
from bursar_kernel.domain.payroll import (
    FinancialItemStatus,
    LineOrigin,
    LineSource,
    LoanStatus,
    PaymentAllowance,
    PaymentDeduction,
    StaffBonus,
    StaffLoan,
    StaffMember,
    StaffPenalty,
    StandingAllowance,
)
from bursar_kernel.domain.values import Money


def ngn(value) -> Money:
    return Money.of(value, "NGN")


class InMemoryItems:
    """Minimal financial item source keyed by staff id."""

    def __init__(self, loans=(), balances=None, bonuses=(), penalties=()):
        self.loans = list(loans)
        self.balances = dict(balances or {})
        self.bonuses = list(bonuses)
        self.penalties = list(penalties)

    def list_active_loans(self, staff_id):
        return [l for l in self.loans if l.staff_id == staff_id and l.status == LoanStatus.ACTIVE]

    def remaining_balance(self, loan_id):
        return self.balances[loan_id]

    def list_pending_bonuses(self, staff_id, month, year):
        return [b for b in self.bonuses if b.staff_id == staff_id]

    def list_pending_penalties(self, staff_id, month, year):
        return [p for p in self.penalties if p.staff_id == staff_id]


STAFF = StaffMember(
    id="staff-1",
    staff_number="T-001",
    full_name="Adaeze Okafor",
    basic_salary=ngn("200000"),
    standing_allowances=(StandingAllowance("Transport", ngn("15000")),),
)


def _loan(loan_id="loan-1", installment="10000", principal="50000"):
    return StaffLoan(loan_id, STAFF.id, ngn(principal), ngn(installment), "Rent advance")


class TestBuild:
    """Pure line generation from fetched items."""

    def setup_method(self):
        self.resolver = FinancialItemResolver()

    def test_all_sources_tagged(self):
        loan = _loan()
        bonus = StaffBonus("bon-1", STAFF.id, ngn("25000"), "Exam results", 3, 2025)
        penalty = StaffPenalty("pen-1", STAFF.id, ngn("2000"), "Late", 3, 2025)
        resolved = self.resolver.build(
            STAFF, 3, 2025, [(loan, ngn("50000"))], [bonus], [penalty]
        )
        assert [(a.name, a.source.tag) for a in resolved.allowances] == [
            ("Transport", "auto:standing"),
            ("Bonus: Exam results", "auto:bonus:bon-1"),
        ]
        assert [(d.name, d.amount, d.source.tag) for d in resolved.deductions] == [
            ("Loan Repayment: Rent advance", ngn("10000"), "auto:loan:loan-1"),
            ("Penalty: Late", ngn("2000"), "auto:penalty:pen-1"),
        ]
        assert resolved.summary == "1 bonus(es), 1 loan(s), 1 penalty/penalties"

    def test_installment_capped_by_remaining(self):
        resolved = self.resolver.build(STAFF, 3, 2025, [(_loan(), ngn("5000"))])
        assert resolved.deductions[0].amount == ngn("5000")
        assert resolved.installments[0].remaining_balance == ngn("5000")

    def test_exhausted_loan_skipped(self):
        resolved = self.resolver.build(STAFF, 3, 2025, [(_loan(), ngn("0"))])
        assert resolved.deductions == ()
        assert resolved.installments == ()

    def test_inactive_loan_skipped(self):
        loan = StaffLoan(
            "loan-1", STAFF.id, ngn("50000"), ngn("10000"), "Rent", status=LoanStatus.DEFAULTED
        )
        resolved = self.resolver.build(STAFF, 3, 2025, [(loan, ngn("50000"))])
        assert resolved.deductions == ()

    def test_duplicate_items_counted_once(self):
        loan = _loan()
        bonus = StaffBonus("bon-1", STAFF.id, ngn("25000"), "Exam results", 3, 2025)
        resolved = self.resolver.build(
            STAFF,
            3,
            2025,
            [(loan, ngn("50000")), (loan, ngn("50000"))],
            [bonus, bonus],
        )
        assert len(resolved.deductions) == 1
        assert len(resolved.bonuses) == 1

    def test_other_period_and_settled_items_ignored(self):
        bonuses = [
            StaffBonus("bon-1", STAFF.id, ngn("100"), "Wrong month", 4, 2025),
            StaffBonus(
                "bon-2", STAFF.id, ngn("100"), "Paid", 3, 2025,
                status=FinancialItemStatus.PAID,
            ),
            StaffBonus("bon-3", "staff-2", ngn("100"), "Other staff", 3, 2025),
        ]
        resolved = self.resolver.build(STAFF, 3, 2025, bonuses=bonuses)
        assert resolved.bonuses == ()
        assert resolved.summary == ""


class TestResolveAndApply:
    """Fetch through a source and merge into a draft."""

    def setup_method(self):
        self.resolver = FinancialItemResolver()
        self.source = InMemoryItems(
            loans=[_loan()],
            balances={"loan-1": ngn("50000")},
            penalties=[StaffPenalty("pen-1", STAFF.id, ngn("2000"), "Late", 3, 2025)],
        )
        self.draft = new_draft(
            STAFF.id, 3, 2025, STAFF.basic_salary, payment_date=date(2025, 3, 28)
        )

    def test_resolve_reads_source(self):
        resolved = self.resolver.resolve(self.source, STAFF, 3, 2025)
        assert [i.loan.id for i in resolved.installments] == ["loan-1"]
        assert len(resolved.penalties) == 1

    def test_apply_is_idempotent(self):
        resolved = self.resolver.resolve(self.source, STAFF, 3, 2025)
        once = self.resolver.apply(self.draft, resolved)
        twice = self.resolver.apply(once, resolved)
        assert once == twice
        assert len(twice.deductions) == 2

    def test_manual_lines_kept(self):
        manual = PaymentDeduction("Union dues", ngn("1500"))
        extra = PaymentAllowance("Overtime", ngn("8000"))
        draft = self.resolver.apply(
            replace(self.draft, deductions=(manual,), allowances=(extra,)),
            self.resolver.resolve(self.source, STAFF, 3, 2025),
        )
        assert draft.manual_deductions == (manual,)
        assert draft.manual_allowances == (extra,)
        assert draft.deductions[-1] == manual

    def test_reapply_after_balance_change_replaces_lines(self):
        first = self.resolver.apply(
            self.draft, self.resolver.resolve(self.source, STAFF, 3, 2025)
        )
        self.source.balances["loan-1"] = ngn("4000")
        second = self.resolver.apply(
            first, self.resolver.resolve(self.source, STAFF, 3, 2025)
        )
        loan_lines = [d for d in second.deductions if d.source.origin == LineOrigin.LOAN]
        assert [d.amount for d in loan_lines] == [ngn("4000")]

    def test_statutory_lines_survive_apply(self):
        statutory = PaymentDeduction(
            "PAYE (Pay As You Earn Tax)",
            ngn("20000"),
            source=LineSource.auto(LineOrigin.STATUTORY, "paye"),
            is_statutory=True,
        )
        draft = self.resolver.apply(
            replace(self.draft, deductions=(statutory,)),
            self.resolver.resolve(self.source, STAFF, 3, 2025),
        )
        assert statutory in draft.deductions

    def test_period_mismatch_rejected(self):
        resolved = self.resolver.resolve(self.source, STAFF, 4, 2025)
        with pytest.raises(ValueError):
            self.resolver.apply(self.draft, resolved)
