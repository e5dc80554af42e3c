"""
Payroll Service (``bursar_services.payroll``).

Responsibility
--------------
Orchestrates one staff member's salary payment for one period: prepares
the draft from standing allowances, loans, bonuses and penalties;
computes and validates it; creates the payment under the one-live-payment
per period rule; settles the financial items it consumed; and drives the
approve / mark-as-paid / cancel lifecycle.

Architecture position
---------------------
Services -- orchestration over engines and the ``StaffFinanceStore`` and
``SalaryPaymentStore`` ports.  Composes ``FinancialItemResolver``,
``PayrollComputationEngine`` (with an injected statutory calculator) and
``PaymentValidationRules``.

Invariants enforced
-------------------
* No salary payment is created unless every payroll rule passes.
* One live payment per (staff, month, year).  ``find_live_payment`` is
  an early check only; ``SalaryPaymentStore.add`` is authoritative.
* Each loan, bonus and penalty line is settled through its provenance
  tag, never by matching line names.
* A loan whose remaining balance reaches zero moves to ``completed``.

Failure modes
-------------
* ``ValidationError`` -- draft or net-pay rule failed; nothing written.
* ``DuplicatePeriodError`` -- a live payment already exists for the period.
* ``InvalidTransitionError`` -- illegal lifecycle action.
* ``UpstreamError`` -- store failure before the payment was created.
* ``PartialCommitError`` -- the payment was created but settling a loan,
  bonus or penalty failed.  Logged at ERROR for operator reconciliation.

Usage::

    store = SqlAlchemyBursarStore(session, actor_id=actor_id)
    service = PayrollService(store, store)
    draft = service.prepare_draft(staff_id, month=3, year=2025,
                                  payment_date=date(2025, 3, 28))
    payment = service.process(draft, actor_id=actor_id)
    service.approve(payment.id, actor_id=approver_id)
    service.mark_as_paid(payment.id, actor_id=approver_id)
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date

from bursar_config import get_active_config
from bursar_config.schema import BursarConfig, PayrollPolicy
from bursar_engines.financial_items import FinancialItemResolver, ResolvedItems
from bursar_engines.payroll import (
    PayrollComputation,
    PayrollComputationEngine,
    PayrollSummary,
    generate_salary_reference,
    new_draft,
)
from bursar_engines.statutory import StatutoryDeductionCalculator, TableStatutoryCalculator
from bursar_engines.validation import PaymentValidationRules
from bursar_engines.workflows import FINANCIAL_ITEM_WORKFLOW, LOAN_WORKFLOW, transition
from bursar_kernel.db.base import new_id
from bursar_kernel.domain.clock import Clock, SystemClock
from bursar_kernel.domain.payroll import (
    FinancialItemStatus,
    LineOrigin,
    LoanRepayment,
    LoanStatus,
    PayrollDraft,
    SalaryPayment,
    SalaryPaymentMethod,
)
from bursar_kernel.domain.values import Currency
from bursar_kernel.exceptions import (
    BursarError,
    DuplicatePeriodError,
    PartialCommitError,
    UpstreamError,
)
from bursar_kernel.logging_config import LogContext, get_logger
from bursar_services.ports import (
    LoggingNotifier,
    Notifier,
    SalaryPaymentStore,
    StaffFinanceStore,
)

logger = get_logger("services.payroll")


class PayrollService:
    """
    Salary payment orchestration.

    Args:
        staff_store: Staff members and their financial items.
        payments: Salary payment store (compare-and-commit on ``add``).
        statutory_calculator: Jurisdiction strategy; when omitted no
            statutory deductions are computed.
        payroll_policy: Validation thresholds.
        clock: Default payment date when a draft is prepared without one.
        notifier: User feedback channel; logs when omitted.
    """

    def __init__(
        self,
        staff_store: StaffFinanceStore,
        payments: SalaryPaymentStore,
        statutory_calculator: StatutoryDeductionCalculator | None = None,
        payroll_policy: PayrollPolicy | None = None,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
    ):
        self._staff = staff_store
        self._payments = payments
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()
        self._resolver = FinancialItemResolver()
        self._engine = PayrollComputationEngine(statutory_calculator)
        self._rules = PaymentValidationRules(payroll_policy)

    @classmethod
    def from_config(
        cls,
        staff_store: StaffFinanceStore,
        payments: SalaryPaymentStore,
        config: BursarConfig | None = None,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
    ) -> PayrollService:
        """Build with the statutory table and policy of ``config`` (default: active config)."""
        if config is None:
            config = get_active_config()
        return cls(
            staff_store,
            payments,
            statutory_calculator=TableStatutoryCalculator.from_config(config),
            payroll_policy=config.payroll,
            clock=clock,
            notifier=notifier,
        )

    @property
    def engine(self) -> PayrollComputationEngine:
        return self._engine

    # =========================================================================
    # Drafts
    # =========================================================================

    def prepare_draft(
        self,
        staff_id: str,
        month: int,
        year: int,
        payment_method: SalaryPaymentMethod = SalaryPaymentMethod.BANK_TRANSFER,
        payment_date: date | None = None,
        draft: PayrollDraft | None = None,
    ) -> PayrollDraft:
        """
        A draft with the period's financial items applied.

        When ``draft`` is given its manual lines are kept and its
        auto-generated lines are replaced, so calling this repeatedly
        never duplicates a loan, bonus or penalty.
        """
        with LogContext.bind(staff_id=staff_id):
            staff = self._staff.get_staff(staff_id)
            if draft is None:
                draft = new_draft(
                    staff_id,
                    month,
                    year,
                    staff.basic_salary,
                    payment_method=payment_method,
                    payment_date=payment_date or self._clock.today(),
                )
            elif (draft.month, draft.year) != (month, year):
                draft = replace(draft, month=month, year=year)

            resolved = self._resolver.resolve(self._staff, staff, month, year)
            draft = self._resolver.apply(draft, resolved)

            existing = self._payments.find_live_payment(staff_id, month, year)
            if existing is not None:
                self._notifier.error(
                    f"Salary for {staff.full_name} already processed for "
                    f"{month:02d}/{year} (Status: {existing.status.value}. "
                    f"Reference: {existing.reference})"
                )
            if resolved.summary:
                self._notifier.info(f"Auto-applied: {resolved.summary}")
        return draft

    def resolve_items(self, staff_id: str, month: int, year: int) -> ResolvedItems:
        staff = self._staff.get_staff(staff_id)
        return self._resolver.resolve(self._staff, staff, month, year)

    def compute(self, draft: PayrollDraft, include_statutory: bool = True) -> PayrollComputation:
        """Preview the figures for a draft without validating or storing it."""
        return self._engine.compute(draft, include_statutory=include_statutory)

    def calculate_paye(self, draft: PayrollDraft) -> PayrollDraft:
        """Set the draft's PAYE line from its current gross pay."""
        calculator = self._engine.statutory_calculator
        if calculator is None:
            raise ValueError("No statutory calculator configured")
        gross = self._engine.compute(draft, include_statutory=False).total_gross
        return self._engine.apply_paye(draft, calculator.compute_monthly_paye(gross))

    # =========================================================================
    # Processing
    # =========================================================================

    def process(
        self,
        draft: PayrollDraft,
        include_statutory: bool = True,
        actor_id: str | None = None,
    ) -> SalaryPayment:
        """
        Validate and create a pending salary payment, then settle the loans,
        bonuses and penalties it consumed.

        Raises:
            ValidationError: a payroll rule failed.
            DuplicatePeriodError: a live payment exists for the period.
            UpstreamError: the store failed before the payment was created.
            PartialCommitError: the payment exists but settlement failed.
        """
        with LogContext.bind(staff_id=draft.staff_id, actor_id=actor_id):
            self._rules.validate_draft(draft)
            computation = self._engine.compute(draft, include_statutory=include_statutory)
            self._rules.validate_salary_payment(draft, computation.net_pay)

            existing = self._payments.find_live_payment(draft.staff_id, draft.month, draft.year)
            if existing is not None:
                raise DuplicatePeriodError(
                    draft.staff_id,
                    draft.month,
                    draft.year,
                    existing_status=existing.status.value,
                    existing_reference=existing.reference,
                )

            payment = self._engine.build_salary_payment(
                draft,
                new_id(),
                reference=generate_salary_reference(draft.year, draft.month),
                computation=computation,
            )
            with LogContext.bind(payment_id=payment.id):
                self._payments.add(payment)
                logger.info(
                    "salary_payment_created",
                    extra={
                        "reference": payment.reference,
                        "month": payment.month,
                        "year": payment.year,
                        "net_pay": str(payment.net_pay.amount),
                    },
                )
                try:
                    self._settle(payment)
                except BursarError as exc:
                    logger.error(
                        "salary_payment_partial_commit",
                        extra={
                            "reference": payment.reference,
                            "failed_step": "settle_financial_items",
                            "error": str(exc),
                        },
                    )
                    self._notifier.error(
                        f"Salary payment {payment.reference} was created but its loans, "
                        "bonuses or penalties were not all settled."
                    )
                    raise PartialCommitError(
                        "SalaryPayment", payment.id, "settle_financial_items", str(exc)
                    ) from exc

        self._notifier.success(
            f"Salary payment {payment.reference} created for {payment.month:02d}/{payment.year}"
        )
        return payment

    def _settle(self, payment: SalaryPayment) -> None:
        """Apply the payment's loan, bonus and penalty lines to their sources."""
        loans = {loan.id: loan for loan in self._staff.list_active_loans(payment.staff_id)}
        bonuses = {
            b.id: b
            for b in self._staff.list_pending_bonuses(payment.staff_id, payment.month, payment.year)
        }
        penalties = {
            p.id: p
            for p in self._staff.list_pending_penalties(
                payment.staff_id, payment.month, payment.year
            )
        }

        for line in payment.deductions:
            origin, ref = line.source.origin, line.source.ref
            if origin == LineOrigin.LOAN:
                loan = loans.get(ref)
                if loan is None:
                    raise UpstreamError("settle_loan", f"Loan {ref} is no longer active")
                remaining = self._staff.record_loan_repayment(
                    LoanRepayment(
                        id=new_id(),
                        loan_id=loan.id,
                        staff_id=payment.staff_id,
                        amount=line.amount,
                        month=payment.month,
                        year=payment.year,
                        payment_date=payment.payment_date,
                        salary_payment_id=payment.id,
                    )
                )
                if not remaining.is_positive:
                    new_state = transition(
                        LOAN_WORKFLOW, "StaffLoan", loan.id, loan.status.value, "complete"
                    )
                    self._staff.update_loan_status(loan.id, LoanStatus(new_state))
                    logger.info("loan_completed", extra={"loan_id": loan.id})
            elif origin == LineOrigin.PENALTY:
                penalty = penalties.get(ref)
                if penalty is None:
                    raise UpstreamError("settle_penalty", f"Penalty {ref} is no longer pending")
                new_state = transition(
                    FINANCIAL_ITEM_WORKFLOW, "StaffPenalty", ref, penalty.status.value, "settle"
                )
                self._staff.update_penalty_status(
                    ref, FinancialItemStatus(new_state), salary_payment_id=payment.id
                )

        for line in payment.allowances:
            if line.source.origin != LineOrigin.BONUS:
                continue
            ref = line.source.ref
            bonus = bonuses.get(ref)
            if bonus is None:
                raise UpstreamError("settle_bonus", f"Bonus {ref} is no longer pending")
            new_state = transition(
                FINANCIAL_ITEM_WORKFLOW, "StaffBonus", ref, bonus.status.value, "settle"
            )
            self._staff.update_bonus_status(
                ref, FinancialItemStatus(new_state), salary_payment_id=payment.id
            )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def approve(self, payment_id: str, actor_id: str | None = None) -> SalaryPayment:
        return self._apply_action(payment_id, "approve", actor_id, "approved")

    def mark_as_paid(self, payment_id: str, actor_id: str | None = None) -> SalaryPayment:
        return self._apply_action(payment_id, "mark_as_paid", actor_id, "marked as paid")

    def cancel(self, payment_id: str, actor_id: str | None = None) -> SalaryPayment:
        """Cancel a pending or approved payment.

        Settled loans, bonuses and penalties are not reversed.
        """
        return self._apply_action(payment_id, "cancel", actor_id, "cancelled")

    def _apply_action(
        self, payment_id: str, action: str, actor_id: str | None, verb: str
    ) -> SalaryPayment:
        with LogContext.bind(payment_id=payment_id, actor_id=actor_id):
            payment = self._payments.get(payment_id)
            updated = self._engine.transition(payment, action, actor_id=actor_id)
            self._payments.save_status(updated)
            logger.info(
                "salary_payment_transitioned",
                extra={
                    "reference": payment.reference,
                    "action": action,
                    "from_status": payment.status.value,
                    "to_status": updated.status.value,
                },
            )
        self._notifier.success(f"Salary payment {payment.reference} {verb}")
        return updated

    # =========================================================================
    # Reporting
    # =========================================================================

    def summarize(
        self, month: int, year: int, currency: str | Currency | None = None
    ) -> PayrollSummary:
        """Counts and totals for one period's salary payments."""
        payments = self._payments.list_for_period(month, year)
        if currency is None:
            currency = get_active_config().currency
        return self._engine.summarize_payroll(payments, month, year, currency)
