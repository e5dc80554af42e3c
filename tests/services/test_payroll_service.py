"""
Tests for PayrollService against the SQLite-backed store.

Covers:
- Draft preparation with auto-applied loans, bonuses and penalties
- Processing: validation, one live payment per period, settlement
- Loan completion once the balance reaches zero
- Lifecycle actions and period summary
- Partial commit when settlement fails after the payment is created
"""

from dataclasses import replace
from datetime import date

import pytest

from bursar_engines.payroll import PAYE_MANUAL_LINE
from bursar_kernel.domain.payroll import (
    FinancialItemStatus,
    LineOrigin,
    LoanStatus,
    PaymentDeduction,
    SalaryPaymentMethod,
    SalaryPaymentStatus,
    StaffBonus,
    StaffLoan,
    StaffMember,
    StaffPenalty,
    StandingAllowance,
)
from bursar_kernel.domain.values import Money
from bursar_kernel.exceptions import (
    DuplicatePeriodError,
    InvalidTransitionError,
    PartialCommitError,
    UpstreamError,
    ValidationError,
)
from bursar_kernel.models import StaffBonusModel, StaffLoanModel, StaffPenaltyModel
from bursar_services.payroll import PayrollService
from bursar_services.sqlalchemy_store import SqlAlchemyBursarStore
from tests.conftest import TEST_ACTOR_ID


def ngn(value) -> Money:
    return Money.of(value, "NGN")


def _seed(store):
    store.add_staff(
        StaffMember(
            id="staff-1",
            staff_number="T-001",
            full_name="Ngozi Adeyemi",
            basic_salary=ngn("200000"),
            standing_allowances=(StandingAllowance("Transport", ngn("15000")),),
        )
    )
    store.add_loan(StaffLoan("loan-1", "staff-1", ngn("15000"), ngn("10000"), "Rent advance"))
    store.add_bonus(StaffBonus("bon-1", "staff-1", ngn("25000"), "Exam results", 3, 2025))
    store.add_penalty(StaffPenalty("pen-1", "staff-1", ngn("2000"), "Late arrival", 3, 2025))


class BlindStore(SqlAlchemyBursarStore):
    """Store whose early duplicate check never sees an existing payment."""

    def find_live_payment(self, staff_id, month, year):
        return None


class BrokenLoanStore(SqlAlchemyBursarStore):
    """Store that cannot record loan repayments."""

    def record_loan_repayment(self, repayment):
        raise UpstreamError("record_loan_repayment", "connection reset")


class TestPrepareDraft:

    @pytest.fixture(autouse=True)
    def _setup(self, store, clock, notifier):
        _seed(store)
        self.store = store
        self.notifier = notifier
        self.service = PayrollService(store, store, clock=clock, notifier=notifier)

    def test_financial_items_applied(self):
        draft = self.service.prepare_draft("staff-1", 3, 2025)
        assert [(a.name, a.amount) for a in draft.allowances] == [
            ("Transport", ngn("15000")),
            ("Bonus: Exam results", ngn("25000")),
        ]
        assert [(d.name, d.amount) for d in draft.deductions] == [
            ("Loan Repayment: Rent advance", ngn("10000")),
            ("Penalty: Late arrival", ngn("2000")),
        ]
        assert draft.payment_date == date(2025, 3, 15)
        assert draft.basic_salary == ngn("200000")
        assert self.notifier.of_kind("info") == [
            "Auto-applied: 1 bonus(es), 1 loan(s), 1 penalty/penalties"
        ]

    def test_repeat_preparation_keeps_manual_lines(self):
        draft = self.service.prepare_draft("staff-1", 3, 2025)
        draft = replace(
            draft, deductions=draft.deductions + (PaymentDeduction("Union dues", ngn("1500")),)
        )
        again = self.service.prepare_draft("staff-1", 3, 2025, draft=draft)
        assert len(again.deductions) == 3
        assert again.manual_deductions == (PaymentDeduction("Union dues", ngn("1500")),)

    def test_period_without_items(self):
        draft = self.service.prepare_draft("staff-1", 5, 2025)
        assert [d.source.origin for d in draft.deductions] == [LineOrigin.LOAN]
        assert self.notifier.of_kind("info") == ["Auto-applied: 1 loan(s)"]

    def test_existing_payment_reported(self):
        self.service.process(self.service.prepare_draft("staff-1", 3, 2025), include_statutory=False)
        self.service.prepare_draft("staff-1", 3, 2025)
        (error,) = self.notifier.of_kind("error")
        assert "already processed for 03/2025" in error
        assert "Status: pending" in error

    def test_unknown_staff(self):
        with pytest.raises(UpstreamError):
            self.service.prepare_draft("staff-404", 3, 2025)


class TestProcess:

    @pytest.fixture(autouse=True)
    def _setup(self, store, clock, notifier):
        _seed(store)
        self.store = store
        self.notifier = notifier
        self.service = PayrollService(store, store, clock=clock, notifier=notifier)

    def _process(self, month=3, **kwargs):
        draft = self.service.prepare_draft("staff-1", month, 2025)
        return self.service.process(draft, include_statutory=False, actor_id=TEST_ACTOR_ID, **kwargs)

    def test_creates_pending_payment(self, captured_logs):
        payment = self._process()
        assert payment.status == SalaryPaymentStatus.PENDING
        assert payment.total_gross == ngn("240000")
        assert payment.total_deductions == ngn("12000")
        assert payment.net_pay == ngn("228000")
        assert self.store.get(payment.id) == payment
        assert self.notifier.of_kind("success")[-1].startswith(f"Salary payment {payment.reference}")

        created = [r for r in captured_logs() if r["message"] == "salary_payment_created"]
        assert created[0]["staff_id"] == "staff-1"
        assert created[0]["payment_id"] == payment.id

    def test_settles_financial_items(self):
        payment = self._process()
        session = self.store.session
        session.expire_all()
        assert session.get(StaffBonusModel, "bon-1").status == FinancialItemStatus.PAID.value
        assert session.get(StaffBonusModel, "bon-1").salary_payment_id == payment.id
        assert session.get(StaffPenaltyModel, "pen-1").status == FinancialItemStatus.PAID.value
        assert self.store.remaining_balance("loan-1") == ngn("5000")
        assert session.get(StaffLoanModel, "loan-1").status == LoanStatus.ACTIVE.value

    def test_loan_completes_when_repaid(self, captured_logs):
        self._process(month=3)
        april = self._process(month=4)
        loan_lines = [d for d in april.deductions if d.source.origin == LineOrigin.LOAN]
        assert [d.amount for d in loan_lines] == [ngn("5000")]
        assert self.store.remaining_balance("loan-1").is_zero
        assert self.store.list_active_loans("staff-1") == []
        assert any(r["message"] == "loan_completed" for r in captured_logs())

        may = self.service.prepare_draft("staff-1", 5, 2025)
        assert not any(d.source.origin == LineOrigin.LOAN for d in may.deductions)

    def test_settled_items_not_reapplied(self):
        self._process()
        self.service.cancel(self.store.find_live_payment("staff-1", 3, 2025).id)
        draft = self.service.prepare_draft("staff-1", 3, 2025)
        assert all(a.source.origin != LineOrigin.BONUS for a in draft.allowances)
        assert all(d.source.origin != LineOrigin.PENALTY for d in draft.deductions)

    def test_duplicate_period_rejected(self):
        first = self._process()
        with pytest.raises(DuplicatePeriodError) as exc:
            self._process()
        assert exc.value.existing_reference == first.reference
        assert [p.id for p in self.store.list_for_period(3, 2025)] == [first.id]

    def test_index_is_authoritative(self, session, clock, notifier):
        blind = BlindStore(session)
        service = PayrollService(blind, blind, clock=clock, notifier=notifier)
        first = self._process()
        draft = replace(service.prepare_draft("staff-1", 3, 2025), deductions=())
        with pytest.raises(DuplicatePeriodError) as exc:
            service.process(draft, include_statutory=False)
        assert exc.value.existing_reference == first.reference

    def test_cancelled_period_can_be_reprocessed(self):
        first = self._process()
        self.service.cancel(first.id)
        second = self._process()
        assert second.id != first.id
        assert self.store.find_live_payment("staff-1", 3, 2025).id == second.id

    def test_cash_limit_writes_nothing(self):
        draft = self.service.prepare_draft("staff-1", 3, 2025, payment_method=SalaryPaymentMethod.CASH)
        with pytest.raises(ValidationError) as exc:
            self.service.process(draft, include_statutory=False)
        assert "payment_method" in exc.value.field_errors
        assert self.store.list_for_period(3, 2025) == []
        assert self.store.remaining_balance("loan-1") == ngn("15000")

    def test_invalid_line_writes_nothing(self):
        draft = self.service.prepare_draft("staff-1", 3, 2025)
        draft = replace(draft, deductions=draft.deductions + (PaymentDeduction("", ngn("0")),))
        with pytest.raises(ValidationError) as exc:
            self.service.process(draft)
        assert {"deduction_2_name", "deduction_2_amount"} <= set(exc.value.field_errors)
        assert self.store.list_for_period(3, 2025) == []

    def test_partial_commit_when_settlement_fails(self, session, clock, notifier, captured_logs):
        broken = BrokenLoanStore(session)
        service = PayrollService(broken, broken, clock=clock, notifier=notifier)
        draft = service.prepare_draft("staff-1", 3, 2025)

        with pytest.raises(PartialCommitError) as exc:
            service.process(draft, include_statutory=False)

        assert exc.value.record_type == "SalaryPayment"
        assert exc.value.failed_step == "settle_financial_items"
        assert broken.get(exc.value.record_id).status == SalaryPaymentStatus.PENDING
        assert notifier.of_kind("success") == []
        assert len(notifier.of_kind("error")) == 1
        assert any(r["message"] == "salary_payment_partial_commit" for r in captured_logs())


class TestStatutoryProcessing:

    @pytest.fixture(autouse=True)
    def _setup(self, store, clock, notifier):
        _seed(store)
        self.store = store
        self.service = PayrollService.from_config(store, store, clock=clock, notifier=notifier)

    def test_statutory_lines_included(self):
        payment = self.service.process(self.service.prepare_draft("staff-1", 3, 2025))
        statutory = [d for d in payment.deductions if d.is_statutory]
        assert {d.source.origin for d in statutory} == {LineOrigin.STATUTORY}
        assert payment.statutory is not None
        assert payment.total_deductions == ngn("12000") + payment.statutory.total_employee_deductions
        assert payment.net_pay == payment.total_gross - payment.total_deductions
        assert self.store.get(payment.id).statutory == payment.statutory

    def test_calculate_paye(self):
        draft = self.service.calculate_paye(self.service.prepare_draft("staff-1", 3, 2025))
        paye = [d for d in draft.deductions if d.name == PAYE_MANUAL_LINE]
        assert [d.amount for d in paye] == [ngn("30483")]

    def test_calculate_paye_needs_calculator(self, store, clock):
        service = PayrollService(store, store, clock=clock)
        with pytest.raises(ValueError):
            service.calculate_paye(service.prepare_draft("staff-1", 3, 2025))


class TestLifecycle:

    @pytest.fixture(autouse=True)
    def _setup(self, store, clock, notifier):
        _seed(store)
        self.store = store
        self.notifier = notifier
        self.service = PayrollService(store, store, clock=clock, notifier=notifier)
        self.payment = self.service.process(
            self.service.prepare_draft("staff-1", 3, 2025), include_statutory=False
        )

    def test_approve_then_pay(self):
        approved = self.service.approve(self.payment.id, actor_id="head-1")
        assert approved.approved_by == "head-1"
        paid = self.service.mark_as_paid(self.payment.id)
        assert paid.status == SalaryPaymentStatus.PAID
        assert self.store.get(self.payment.id).status == SalaryPaymentStatus.PAID
        assert self.notifier.of_kind("success")[-1].endswith("marked as paid")

    def test_pay_requires_approval(self):
        with pytest.raises(InvalidTransitionError):
            self.service.mark_as_paid(self.payment.id)
        assert self.store.get(self.payment.id).status == SalaryPaymentStatus.PENDING

    def test_paid_cannot_be_cancelled(self):
        self.service.approve(self.payment.id)
        self.service.mark_as_paid(self.payment.id)
        with pytest.raises(InvalidTransitionError):
            self.service.cancel(self.payment.id)
        assert self.store.get(self.payment.id).status == SalaryPaymentStatus.PAID

    def test_cancel_keeps_settlement(self):
        self.service.cancel(self.payment.id)
        assert self.store.get(self.payment.id).status == SalaryPaymentStatus.CANCELLED
        assert self.store.remaining_balance("loan-1") == ngn("5000")

    def test_summary(self):
        self.service.approve(self.payment.id)
        summary = self.service.summarize(3, 2025)
        assert summary.total_staff == 1
        assert summary.total_net_pay == ngn("228000")
        assert summary.status_counts[SalaryPaymentStatus.APPROVED] == 1
        assert summary.by_payment_method[SalaryPaymentMethod.BANK_TRANSFER].count == 1

    def test_summary_after_cancel(self):
        self.service.cancel(self.payment.id)
        summary = self.service.summarize(3, 2025)
        assert summary.total_staff == 0
        assert summary.total_net_pay.is_zero
        assert summary.status_counts[SalaryPaymentStatus.CANCELLED] == 1
