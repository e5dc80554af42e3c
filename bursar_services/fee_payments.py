"""
Fee Payment Service (``bursar_services.fee_payments``).

Responsibility
--------------
Records a student's fee payment: reads the student's fee assignments,
validates the amount and its per-category allocation, stores the payment
and then decrements the fee item balances.

Architecture position
---------------------
Services -- orchestration over engines and the ``FeeLedgerStore`` port.
Composes ``OutstandingBalanceAggregator``, ``FeeAllocationEngine`` and
``PaymentValidationRules`` (pure engines).

Invariants enforced
-------------------
* Nothing is written unless every validation rule passes.
* Allocations sum to the payment amount within the currency tolerance.
* A payment never exceeds the student's total outstanding balance.

Failure modes
-------------
* ``ValidationError`` / ``OverpaymentError`` / ``AllocationMismatchError``
  -- nothing was written.
* ``UpstreamError`` -- the store failed before or while saving the
  payment; nothing was written.
* ``PartialCommitError`` -- the payment was saved but the balance
  decrement failed.  Logged at ERROR; the caller must reconcile rather
  than retry, or the balances would be reduced twice.

Usage::

    service = FeePaymentService(SqlAlchemyBursarStore(session), currency="NGN")
    session = service.start_allocation(student_id, Money.of("50000", "NGN"))
    session.set_amount("tuition", Money.of("30000", "NGN"))
    recorded = service.record_payment(
        student_id=student_id,
        amount=session.payment_amount,
        allocations=session.allocations,
        method=FeePaymentMethod.BANK_TRANSFER,
        payment_date=date(2025, 1, 15),
        paid_by="Mrs. Okafor",
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date

from bursar_config import get_active_config
from bursar_config.schema import BursarConfig, FeePolicy, PayrollPolicy
from bursar_engines.allocation import AllocationSession, FeeAllocationEngine
from bursar_engines.balance import CategoryBalance, OutstandingBalanceAggregator, QuickAmount
from bursar_engines.payroll import generate_fee_payment_reference
from bursar_engines.validation import PaymentValidationRules
from bursar_kernel.db.base import new_id
from bursar_kernel.domain.clock import Clock, SystemClock
from bursar_kernel.domain.fees import (
    FeeAssignment,
    FeeItem,
    FeePaymentMethod,
    Payment,
    PaymentAllocation,
)
from bursar_kernel.domain.values import Currency, Money
from bursar_kernel.exceptions import (
    BursarError,
    PartialCommitError,
    UpstreamError,
    ValidationError,
)
from bursar_kernel.logging_config import LogContext, get_logger
from bursar_services.ports import FeeLedgerStore, LoggingNotifier, Notifier

logger = get_logger("services.fee_payments")


@dataclass(frozen=True)
class StudentBalance:
    """What a student owes, ready for a payment form."""

    student_id: str
    assignments: tuple[FeeAssignment, ...]
    total_outstanding: Money
    by_category: tuple[CategoryBalance, ...]
    quick_amounts: tuple[QuickAmount, ...]

    @property
    def has_assignments(self) -> bool:
        return bool(self.assignments)

    @property
    def is_settled(self) -> bool:
        return self.has_assignments and self.total_outstanding.is_zero


@dataclass(frozen=True)
class RecordedPayment:
    """A stored payment and the fee assignments as they stand after it."""

    payment: Payment
    assignments: tuple[FeeAssignment, ...]


class FeePaymentService:
    """
    Student fee payment recording.

    Args:
        ledger: Fee assignment and payment store.
        currency: The school's currency; fee assignments in any other
            currency are rejected as malformed.
        clock: Supplies the year of the payment reference.
        fee_policy: Quick-amount shortcuts.
        payroll_policy: Passed to the shared validation rules.
        notifier: User feedback channel; logs when omitted.
    """

    def __init__(
        self,
        ledger: FeeLedgerStore,
        currency: str | Currency,
        clock: Clock | None = None,
        fee_policy: FeePolicy | None = None,
        payroll_policy: PayrollPolicy | None = None,
        notifier: Notifier | None = None,
    ):
        self._ledger = ledger
        self._currency = Currency(currency) if isinstance(currency, str) else currency
        self._clock = clock or SystemClock()
        self._aggregator = OutstandingBalanceAggregator(self._currency, fee_policy)
        self._engine = FeeAllocationEngine()
        self._rules = PaymentValidationRules(payroll_policy)
        self._notifier = notifier or LoggingNotifier()

    @classmethod
    def from_config(
        cls,
        ledger: FeeLedgerStore,
        config: BursarConfig | None = None,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
    ) -> FeePaymentService:
        """Build with the currency and policies of ``config`` (default: active config)."""
        if config is None:
            config = get_active_config()
        return cls(
            ledger,
            config.currency,
            clock=clock,
            fee_policy=config.fees,
            payroll_policy=config.payroll,
            notifier=notifier,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def student_balance(self, student_id: str) -> StudentBalance:
        """Outstanding totals, per-category balances and quick amounts."""
        assignments = self._load_assignments(student_id)
        total = self._aggregator.total_outstanding(assignments)
        return StudentBalance(
            student_id=student_id,
            assignments=assignments,
            total_outstanding=total,
            by_category=self._aggregator.outstanding_by_category(assignments),
            quick_amounts=self._aggregator.quick_amounts(total),
        )

    def start_allocation(
        self, student_id: str, payment_amount: Money | None = None
    ) -> AllocationSession:
        """An allocation session over the student's outstanding items, in auto mode."""
        assignments = self._load_assignments(student_id)
        return AllocationSession(
            self._aggregator.outstanding_items(assignments),
            payment_amount=payment_amount or Money.zero(self._currency),
            engine=self._engine,
        )

    # =========================================================================
    # Commands
    # =========================================================================

    def record_payment(
        self,
        student_id: str,
        amount: Money,
        allocations: Sequence[PaymentAllocation],
        method: FeePaymentMethod,
        payment_date: date | None,
        paid_by: str | None,
        notes: str | None = None,
        actor_id: str | None = None,
    ) -> RecordedPayment:
        """
        Validate, store and apply one fee payment.

        Raises:
            ValidationError: a rule failed (see module docstring).
            UpstreamError: the store failed before the payment was saved.
            PartialCommitError: the payment was saved, balances were not
                updated.
        """
        with LogContext.bind(student_id=student_id, actor_id=actor_id):
            logger.info(
                "fee_payment_started",
                extra={"amount": str(amount.amount), "method": method.value},
            )
            assignments = self._load_assignments(student_id)
            items = tuple(item for a in assignments for item in a.items)
            outstanding = self._aggregator.total_outstanding(assignments)
            allocations = [a for a in allocations if a.amount.is_positive]

            self._rules.validate_fee_payment(
                amount,
                outstanding,
                allocations,
                items,
                payment_date=payment_date,
                paid_by=paid_by,
                has_assignments=bool(assignments),
            )
            bound = self._bind_to_items(allocations, items)

            try:
                payment = Payment(
                    id=new_id(),
                    reference=generate_fee_payment_reference(self._clock.today().year),
                    student_id=student_id,
                    fee_assignment_id=bound[0].fee_assignment_id or assignments[0].id,
                    amount=amount,
                    method=method,
                    payment_date=payment_date,
                    allocations=tuple(bound),
                    paid_by=paid_by.strip(),
                    notes=notes,
                )
            except ValueError as exc:
                raise ValidationError({"general": str(exc)}) from exc

            with LogContext.bind(payment_id=payment.id):
                self._ledger.save_payment(payment)
                try:
                    updated = tuple(self._ledger.apply_allocations(payment))
                except BursarError as exc:
                    logger.error(
                        "fee_payment_partial_commit",
                        extra={
                            "reference": payment.reference,
                            "failed_step": "apply_allocations",
                            "error": str(exc),
                        },
                    )
                    self._notifier.error(
                        f"Payment {payment.reference} was saved but fee balances "
                        "were not updated. Please contact the bursar."
                    )
                    raise PartialCommitError(
                        "Payment", payment.id, "apply_allocations", str(exc)
                    ) from exc

                logger.info(
                    "fee_payment_recorded",
                    extra={
                        "reference": payment.reference,
                        "amount": str(amount.amount),
                        "allocation_count": len(bound),
                    },
                )

        self._notifier.success(f"Payment of {amount.display()} recorded successfully")
        by_id = {a.id: a for a in updated}
        return RecordedPayment(
            payment=payment,
            assignments=tuple(by_id.get(a.id, a) for a in assignments),
        )

    def _load_assignments(self, student_id: str) -> tuple[FeeAssignment, ...]:
        assignments = tuple(self._ledger.list_fee_assignments(student_id))
        try:
            self._aggregator.outstanding_items(assignments)
        except ValueError as exc:
            raise UpstreamError("list_fee_assignments", str(exc)) from exc
        return assignments

    @staticmethod
    def _bind_to_items(
        allocations: Sequence[PaymentAllocation], items: Sequence[FeeItem]
    ) -> list[PaymentAllocation]:
        """Stamp each allocation with the fee assignment of the item it targets.

        Validation has already rejected unknown or ambiguous categories.
        """
        by_category: dict[str, FeeItem] = {}
        for item in items:
            by_category.setdefault(item.category_id, item)
        bound = []
        for allocation in allocations:
            if allocation.fee_assignment_id is None:
                item = by_category[allocation.category_id]
                allocation = replace(allocation, fee_assignment_id=item.fee_assignment_id)
            bound.append(allocation)
        return bound
