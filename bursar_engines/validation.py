"""
Module: bursar_engines.validation
Responsibility:
    Business-rule checks run before a fee payment or salary payment is
    committed: allocation sums, overpayment, payroll header fields, line
    items, and payment-method compliance thresholds.

Architecture position:
    Engines -- pure rule layer, zero I/O.  Thresholds come from
    ``bursar_config.schema.PayrollPolicy``.

Invariants enforced:
    - Allocations sum to the payment amount within the currency tolerance,
      each allocation is within its category's balance, and no allocation
      targets a zero-balance category.
    - A payment never exceeds the outstanding balance; it is rejected, not
      truncated.
    - Cash pay above the cash ceiling and any pay above the bank-transfer
      threshold by another method are rejected.
    - Net pay is neither negative nor above the sanity ceiling.

Failure modes:
    - ValidationError (or its AllocationMismatchError / OverpaymentError
      subclasses) carrying every failing field at once.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from bursar_config.schema import PayrollPolicy
from bursar_kernel.domain.fees import FeeItem, PaymentAllocation
from bursar_kernel.domain.payroll import PayrollDraft, SalaryPaymentMethod
from bursar_kernel.domain.values import Money
from bursar_kernel.exceptions import (
    AllocationMismatchError,
    OverpaymentError,
    ValidationError,
)
from bursar_kernel.logging_config import get_logger

logger = get_logger("engines.validation")

DEFAULT_PAYROLL_POLICY = PayrollPolicy(
    cash_ceiling=Decimal("100000"),
    bank_transfer_threshold=Decimal("500000"),
    net_pay_ceiling=Decimal("15000000"),
    min_year=2020,
    max_year=2050,
    max_allowance_lines=20,
    max_deduction_lines=20,
)


def _raise(errors: dict[str, str], rule: str) -> None:
    if errors:
        logger.info("validation_failed", extra={"rule": rule, "fields": sorted(errors)})
        raise ValidationError(errors)


class PaymentValidationRules:
    """Cross-cutting invariant checks shared by the fee and payroll flows."""

    def __init__(self, policy: PayrollPolicy | None = None):
        self._policy = policy or DEFAULT_PAYROLL_POLICY

    @property
    def policy(self) -> PayrollPolicy:
        return self._policy

    # -- fee payments ---------------------------------------------------

    def validate_payment_amount(self, amount: Money, outstanding: Money) -> None:
        """Amount must be positive and within the outstanding balance."""
        if not amount.is_positive:
            _raise({"amount": "Please enter a valid amount"}, "payment_amount")
        if amount > outstanding:
            logger.info(
                "validation_failed",
                extra={"rule": "overpayment", "fields": ["amount"]},
            )
            raise OverpaymentError(
                str(amount.amount), str(outstanding.amount), amount.currency.code
            )

    def validate_allocation(
        self,
        payment_amount: Money,
        allocations: Sequence[PaymentAllocation],
        items: Sequence[FeeItem] | None = None,
    ) -> None:
        """
        Check allocations against the payment amount and, when given, the
        fee items they draw on.

        Raises:
            ValidationError: an allocation is negative, duplicated, above
                its balance, or targets an unknown or settled category.
            AllocationMismatchError: allocations do not sum to the amount.
        """
        errors: dict[str, str] = {}
        if not allocations and payment_amount.is_positive:
            errors["allocations"] = "Please allocate the payment amount across fee categories"
        by_key = {item.key: item for item in items} if items is not None else None
        by_category: dict[str, list[FeeItem]] = {}
        for item in items or ():
            by_category.setdefault(item.category_id, []).append(item)

        seen: set[str] = set()
        for allocation in allocations:
            field = f"allocation_{allocation.category_id}"
            if allocation.key in seen:
                errors[field] = f"{allocation.category_name} is allocated more than once"
                continue
            seen.add(allocation.key)
            if allocation.amount.is_negative:
                errors[field] = "Allocation cannot be negative"
                continue
            if by_key is None:
                continue
            item = by_key.get(allocation.key)
            if item is None and allocation.fee_assignment_id is None:
                matches = by_category.get(allocation.category_id, [])
                item = matches[0] if len(matches) == 1 else None
            if item is None:
                errors[field] = f"Unknown fee category {allocation.category_id}"
            elif not item.has_balance and allocation.amount.is_positive:
                errors[field] = f"{item.category_name} has no outstanding balance"
            elif allocation.amount > item.balance:
                errors[field] = (
                    f"Allocation {allocation.amount.amount} exceeds "
                    f"{item.category_name} balance of {item.balance.amount}"
                )
        _raise(errors, "allocation")

        total = Money.total((a.amount for a in allocations), payment_amount.currency)
        if not total.is_close_to(payment_amount):
            logger.info(
                "validation_failed",
                extra={"rule": "allocation_sum", "fields": ["allocations"]},
            )
            raise AllocationMismatchError(
                str(payment_amount.amount), str(total.amount), payment_amount.currency.code
            )

    def validate_fee_payment(
        self,
        amount: Money,
        outstanding: Money,
        allocations: Sequence[PaymentAllocation],
        items: Sequence[FeeItem],
        payment_date: date | None,
        paid_by: str | None,
        has_assignments: bool = True,
    ) -> None:
        """All checks for recording a fee payment, required fields first."""
        errors: dict[str, str] = {}
        if not has_assignments:
            errors["amount"] = (
                "No fee assignments found. Please assign fees to this student first."
            )
        if payment_date is None:
            errors["payment_date"] = "Payment date is required"
        if not (paid_by or "").strip():
            errors["paid_by"] = "Payer name is required"
        _raise(errors, "fee_payment")
        self.validate_payment_amount(amount, outstanding)
        self.validate_allocation(amount, allocations, items)

    # -- salary payments ------------------------------------------------

    def draft_errors(self, draft: PayrollDraft) -> dict[str, str]:
        """Header, line-item and line-count problems in a draft."""
        p = self._policy
        errors: dict[str, str] = {}
        if not draft.staff_id:
            errors["staff_id"] = "Staff member is required"
        if not 1 <= draft.month <= 12:
            errors["month"] = "Month must be between 1 and 12"
        if not p.min_year <= draft.year <= p.max_year:
            errors["year"] = f"Year must be between {p.min_year} and {p.max_year}"
        if draft.payment_date is None:
            errors["payment_date"] = "Payment date is required"

        if len(draft.allowances) > p.max_allowance_lines:
            errors["allowances"] = f"At most {p.max_allowance_lines} allowances are allowed"
        if len(draft.deductions) > p.max_deduction_lines:
            errors["deductions"] = f"At most {p.max_deduction_lines} deductions are allowed"

        for kind, lines in (("allowance", draft.allowances), ("deduction", draft.deductions)):
            for i, line in enumerate(lines):
                if not line.name.strip():
                    errors[f"{kind}_{i}_name"] = f"{kind.capitalize()} name is required"
                if not line.amount.is_positive:
                    errors[f"{kind}_{i}_amount"] = (
                        f"{kind.capitalize()} amount must be greater than zero"
                    )
        return errors

    def net_pay_errors(
        self, net_pay: Money, payment_method: SalaryPaymentMethod
    ) -> dict[str, str]:
        """Compliance and sanity rules on the computed net pay."""
        p = self._policy
        currency = net_pay.currency
        errors: dict[str, str] = {}
        if net_pay.is_negative:
            errors["net_pay"] = "Net pay cannot be negative (deductions exceed gross pay)"
        elif net_pay > Money.of(p.net_pay_ceiling, currency):
            errors["net_pay"] = f"Net pay cannot exceed {p.net_pay_ceiling:,}"

        if payment_method == SalaryPaymentMethod.CASH and net_pay > Money.of(
            p.cash_ceiling, currency
        ):
            errors["payment_method"] = f"Cash payments cannot exceed {p.cash_ceiling:,}"
        elif payment_method != SalaryPaymentMethod.BANK_TRANSFER and net_pay > Money.of(
            p.bank_transfer_threshold, currency
        ):
            errors["payment_method"] = (
                f"Salary payments over {p.bank_transfer_threshold:,} must use bank transfer"
            )
        return errors

    def validate_draft(self, draft: PayrollDraft) -> None:
        _raise(self.draft_errors(draft), "salary_draft")

    def validate_salary_payment(self, draft: PayrollDraft, net_pay: Money) -> None:
        """Every payroll rule at once; raises with all failing fields."""
        errors = self.draft_errors(draft)
        errors.update(self.net_pay_errors(net_pay, draft.payment_method))
        _raise(errors, "salary_payment")
