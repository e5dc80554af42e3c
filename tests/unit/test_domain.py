"""
Unit tests for the fee and payroll domain types.

Verifies construction-time invariants: non-negative balances, allocation
sums, salary arithmetic, provenance tags and period dates.
"""

from datetime import date, datetime, timezone

import pytest

from bursar_kernel.domain.fees import (
    FeeAssignment,
    FeeAssignmentStatus,
    FeeItem,
    FeePaymentMethod,
    Payment,
    PaymentAllocation,
)
from bursar_kernel.domain.payroll import (
    LineOrigin,
    LineSource,
    PaymentAllowance,
    PaymentDeduction,
    SalaryPayment,
    SalaryPaymentMethod,
    SalaryPaymentStatus,
    StaffLoan,
    StatutoryDeductions,
)
from bursar_kernel.domain.clock import DeterministicClock
from bursar_kernel.domain.values import Money


def ngn(value) -> Money:
    return Money.of(value, "NGN")


def _item(category_id, balance, mandatory=False, amount=None):
    return FeeItem(
        category_id=category_id,
        category_name=category_id.title(),
        fee_type="tuition",
        balance=ngn(balance),
        is_mandatory=mandatory,
        amount=ngn(amount) if amount is not None else None,
    )


class TestFeeItem:

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError):
            _item("tuition", "-1")

    def test_amount_defaults_to_balance(self):
        assert _item("tuition", "5000").amount == ngn("5000")

    def test_key_includes_assignment(self):
        assignment = FeeAssignment("fa-1", "stu-1", (_item("tuition", "5000"),))
        assert assignment.items[0].key == "fa-1:tuition"


class TestFeeAssignment:

    def setup_method(self):
        self.assignment = FeeAssignment(
            "fa-1",
            "stu-1",
            (_item("tuition", "50000"), _item("library", "5000")),
        )

    def test_duplicate_category_rejected(self):
        with pytest.raises(ValueError):
            FeeAssignment("fa-1", "stu-1", (_item("tuition", "1"), _item("tuition", "2")))

    def test_apply_allocations_decrements_balance(self):
        after = self.assignment.apply_allocations(
            [PaymentAllocation.for_item(self.assignment.items[0], ngn("20000"))]
        )
        assert after.items[0].balance == ngn("30000")
        assert after.items[1].balance == ngn("5000")
        assert self.assignment.items[0].balance == ngn("50000")

    def test_apply_allocations_rejects_over_balance(self):
        with pytest.raises(ValueError):
            self.assignment.apply_allocations(
                [PaymentAllocation.for_item(self.assignment.items[1], ngn("5001"))]
            )

    def test_apply_allocations_ignores_other_assignment(self):
        foreign = PaymentAllocation("tuition", "Tuition", "tuition", ngn("100"), "fa-2")
        after = self.assignment.apply_allocations([foreign])
        assert after.items[0].balance == ngn("50000")

    def test_status_progression(self):
        assert self.assignment.status == FeeAssignmentStatus.UNPAID
        partial = self.assignment.apply_allocations(
            [PaymentAllocation.for_item(self.assignment.items[1], ngn("5000"))]
        )
        assert partial.status == FeeAssignmentStatus.PARTIAL
        paid = partial.apply_allocations(
            [PaymentAllocation.for_item(partial.items[0], ngn("50000"))]
        )
        assert paid.status == FeeAssignmentStatus.PAID

    def test_add_charge(self):
        after = self.assignment.add_charge("library", ngn("2500"))
        assert after.items[1].balance == ngn("7500")
        assert after.items[1].amount == ngn("7500")


class TestPayment:

    def _payment(self, amount, *allocations):
        return Payment(
            id="pay-1",
            reference="PAY-2025-ABCDEFGH",
            student_id="stu-1",
            fee_assignment_id="fa-1",
            amount=ngn(amount),
            method=FeePaymentMethod.CASH,
            payment_date=date(2025, 3, 1),
            allocations=tuple(
                PaymentAllocation(cat, cat.title(), "tuition", ngn(value), "fa-1")
                for cat, value in allocations
            ),
        )

    def test_allocations_must_sum_to_amount(self):
        with pytest.raises(ValueError):
            self._payment("10000", ("tuition", "9000"))

    def test_sum_within_tolerance_accepted(self):
        payment = self._payment("10000", ("tuition", "6000"), ("library", "3999.995"))
        assert payment.amount == ngn("10000")

    def test_duplicate_category_rejected(self):
        with pytest.raises(ValueError):
            self._payment("10000", ("tuition", "5000"), ("tuition", "5000"))

    def test_zero_amount_rejected(self):
        with pytest.raises(ValueError):
            self._payment("0")


class TestLineSource:

    def test_manual_tag(self):
        assert LineSource.manual().tag == "manual"

    def test_auto_tag_round_trip(self):
        source = LineSource.auto(LineOrigin.LOAN, "loan-7")
        assert source.tag == "auto:loan:loan-7"
        assert LineSource.parse(source.tag) == source

    def test_auto_without_ref(self):
        assert LineSource.parse("auto:standing") == LineSource.auto(LineOrigin.STANDING)

    def test_auto_cannot_be_manual(self):
        with pytest.raises(ValueError):
            LineSource.auto(LineOrigin.MANUAL)

    def test_malformed_tag_rejected(self):
        with pytest.raises(ValueError):
            LineSource.parse("loan:123")


class TestStaffLoan:

    def test_remaining_after_repayments(self):
        loan = StaffLoan("loan-1", "staff-1", ngn("50000"), ngn("10000"), "Rent")
        assert loan.remaining_after([ngn("10000"), ngn("10000")]) == ngn("30000")

    def test_remaining_floored_at_zero(self):
        loan = StaffLoan("loan-1", "staff-1", ngn("15000"), ngn("10000"), "Rent")
        assert loan.remaining_after([ngn("10000"), ngn("10000")]) == ngn("0")

    def test_installment_must_be_positive(self):
        with pytest.raises(ValueError):
            StaffLoan("loan-1", "staff-1", ngn("15000"), ngn("0"), "Rent")


class TestStatutoryDeductions:

    def test_employee_total_excludes_employer_pension(self):
        statutory = StatutoryDeductions(
            nhf=ngn("5000"),
            pension_employee=ngn("16000"),
            pension_employer=ngn("20000"),
            nhis=ngn("10000"),
            paye=ngn("20000"),
        )
        assert statutory.total_employee_deductions == ngn("51000")
        assert statutory.total_employer_contributions == ngn("20000")


class TestSalaryPayment:

    def _payment(self, **overrides):
        fields = dict(
            id="sp-1",
            reference="SAL-2025-03-ABC123",
            staff_id="staff-1",
            month=2,
            year=2024,
            basic_salary=ngn("200000"),
            allowances=(PaymentAllowance("Transport", ngn("30000")),),
            deductions=(PaymentDeduction("Union dues", ngn("20000")),),
            total_gross=ngn("230000"),
            total_deductions=ngn("20000"),
            net_pay=ngn("210000"),
            payment_method=SalaryPaymentMethod.BANK_TRANSFER,
            payment_date=date(2024, 2, 28),
        )
        fields.update(overrides)
        return SalaryPayment(**fields)

    def test_consistent_totals_accepted(self):
        payment = self._payment()
        assert payment.status == SalaryPaymentStatus.PENDING
        assert payment.is_live

    def test_inconsistent_gross_rejected(self):
        with pytest.raises(ValueError):
            self._payment(total_gross=ngn("231000"))

    def test_inconsistent_net_rejected(self):
        with pytest.raises(ValueError):
            self._payment(net_pay=ngn("200000"))

    def test_month_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            self._payment(month=13)

    def test_period_dates_leap_year(self):
        payment = self._payment()
        assert payment.period_start == date(2024, 2, 1)
        assert payment.period_end == date(2024, 2, 29)

    def test_cancelled_is_not_live(self):
        assert not self._payment(status=SalaryPaymentStatus.CANCELLED).is_live


class TestDeterministicClock:

    def test_fixed_until_advanced(self):
        clock = DeterministicClock(datetime(2025, 3, 31, 23, 0, tzinfo=timezone.utc))
        assert clock.now() == clock.now()
        clock.advance(seconds=3600)
        assert clock.today() == date(2025, 4, 1)

    def test_set_date_keeps_time_of_day(self):
        clock = DeterministicClock(datetime(2025, 3, 15, 9, 30, tzinfo=timezone.utc))
        clock.set_date(date(2025, 6, 1))
        assert clock.now() == datetime(2025, 6, 1, 9, 30, tzinfo=timezone.utc)

    def test_naive_time_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2025, 3, 15))
