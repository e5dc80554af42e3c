"""
Collaborator Interfaces (``bursar_services.ports``).

Responsibility
--------------
The persistence and notification seams the services are written against.
``bursar_services.sqlalchemy_store`` satisfies the store protocols; tests
and UI shells can substitute their own.

Contract
--------
* Every write method is atomic on its own: it either persists fully or
  raises.  Two consecutive writes are NOT atomic together; the services
  surface a failure between them as ``PartialCommitError``.
* Persistence failures are raised as ``UpstreamError``.
* ``SalaryPaymentStore.add`` is the compare-and-commit point for the
  one-live-payment-per-period rule and raises ``DuplicatePeriodError``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from bursar_engines.financial_items import FinancialItemSource
from bursar_kernel.domain.fees import FeeAssignment, Payment
from bursar_kernel.domain.payroll import (
    FinancialItemStatus,
    LoanRepayment,
    LoanStatus,
    SalaryPayment,
    StaffMember,
)
from bursar_kernel.domain.values import Money
from bursar_kernel.logging_config import get_logger


@runtime_checkable
class FeeLedgerStore(Protocol):
    """Student fee assignments and the payments recorded against them."""

    def list_fee_assignments(self, student_id: str) -> Sequence[FeeAssignment]: ...

    def save_payment(self, payment: Payment) -> Payment: ...

    def apply_allocations(self, payment: Payment) -> Sequence[FeeAssignment]:
        """Decrement fee item balances by the payment's allocations."""
        ...

    def list_payments(self, student_id: str) -> Sequence[Payment]: ...


@runtime_checkable
class StaffFinanceStore(FinancialItemSource, Protocol):
    """Staff members and their loans, bonuses and penalties."""

    def get_staff(self, staff_id: str) -> StaffMember: ...

    def record_loan_repayment(self, repayment: LoanRepayment) -> Money:
        """Persist a repayment and return the loan's remaining balance."""
        ...

    def update_loan_status(self, loan_id: str, status: LoanStatus) -> None: ...

    def update_bonus_status(
        self, bonus_id: str, status: FinancialItemStatus, salary_payment_id: str | None = None
    ) -> None: ...

    def update_penalty_status(
        self, penalty_id: str, status: FinancialItemStatus, salary_payment_id: str | None = None
    ) -> None: ...


@runtime_checkable
class SalaryPaymentStore(Protocol):
    """Salary payments, keyed by id and by (staff, month, year)."""

    def has_existing_payment(self, staff_id: str, month: int, year: int) -> bool: ...

    def find_live_payment(self, staff_id: str, month: int, year: int) -> SalaryPayment | None: ...

    def add(self, payment: SalaryPayment) -> SalaryPayment: ...

    def get(self, payment_id: str) -> SalaryPayment: ...

    def save_status(self, payment: SalaryPayment) -> SalaryPayment:
        """Persist ``payment.status`` and ``payment.approved_by``."""
        ...

    def list_for_period(self, month: int, year: int) -> Sequence[SalaryPayment]: ...


@runtime_checkable
class Notifier(Protocol):
    """User-facing feedback channel (toast, banner, log line)."""

    def success(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LoggingNotifier:
    """Notifier that writes to the structured log; the default outside a UI."""

    def __init__(self, logger_name: str = "services.notifications"):
        self._logger = get_logger(logger_name)

    def success(self, message: str) -> None:
        self._logger.info("notify_success", extra={"notification": message})

    def info(self, message: str) -> None:
        self._logger.info("notify_info", extra={"notification": message})

    def error(self, message: str) -> None:
        self._logger.warning("notify_error", extra={"notification": message})
