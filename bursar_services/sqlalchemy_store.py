"""
SQLAlchemy-backed Store (``bursar_services.sqlalchemy_store``).

Responsibility
--------------
Implements ``FeeLedgerStore``, ``StaffFinanceStore`` and
``SalaryPaymentStore`` over one SQLAlchemy ``Session``, mapping between the
ORM models in ``bursar_kernel.models`` and the frozen domain objects.

Architecture position
---------------------
Services layer -- the only module that touches the ORM.  Services and
engines see domain objects only.

Invariants enforced
-------------------
* Each write method is one transaction: flush, commit, or roll back.
* One live salary payment per (staff, month, year): the partial unique
  index ``uq_salary_payments_live_period`` is the authority.  A violation
  at insert time is reported as ``DuplicatePeriodError`` even when the
  caller's early check saw no existing payment.
* Fee balances are decremented through ``FeeAssignment.apply_allocations``
  so a balance can never go negative.

Failure modes
-------------
* ``DuplicatePeriodError`` -- live-period index violated on ``add``.
* ``UpstreamError`` -- any other ``SQLAlchemyError``, a missing row, or a
  stored row that no longer converts to a valid domain object.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from bursar_kernel.domain.fees import FeeAssignment, Payment
from bursar_kernel.domain.payroll import (
    FinancialItemStatus,
    LoanRepayment,
    LoanStatus,
    SalaryPayment,
    SalaryPaymentStatus,
    StaffBonus,
    StaffLoan,
    StaffMember,
    StaffPenalty,
)
from bursar_kernel.domain.values import Money
from bursar_kernel.exceptions import BursarError, DuplicatePeriodError, UpstreamError
from bursar_kernel.logging_config import get_logger
from bursar_kernel.models import (
    FeeAssignmentModel,
    FeePaymentModel,
    LoanRepaymentModel,
    SalaryPaymentModel,
    StaffBonusModel,
    StaffLoanModel,
    StaffMemberModel,
    StaffPenaltyModel,
)

logger = get_logger("services.store")

_CANCELLED = SalaryPaymentStatus.CANCELLED.value


class SqlAlchemyBursarStore:
    """
    Session-backed persistence collaborator.

    Args:
        session: The SQLAlchemy session to read and write through.
        actor_id: Recorded as ``created_by_id`` / ``updated_by_id``.
    """

    def __init__(self, session: Session, actor_id: str | None = None):
        self._session = session
        self._actor_id = actor_id

    @property
    def session(self) -> Session:
        return self._session

    # =========================================================================
    # Transaction helpers
    # =========================================================================

    @contextmanager
    def _reading(self, operation: str) -> Iterator[None]:
        try:
            yield
        except BursarError:
            raise
        except (SQLAlchemyError, ValueError) as exc:
            logger.error(
                "store_read_failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise UpstreamError(operation, str(exc)) from exc

    @contextmanager
    def _writing(self, operation: str) -> Iterator[None]:
        try:
            yield
            self._session.commit()
        except BursarError:
            self._session.rollback()
            raise
        except (SQLAlchemyError, ValueError) as exc:
            self._session.rollback()
            logger.error(
                "store_write_failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise UpstreamError(operation, str(exc)) from exc

    def _require(self, model_cls, row_id: str, operation: str):
        row = self._session.get(model_cls, row_id)
        if row is None:
            raise UpstreamError(operation, f"{model_cls.__name__} {row_id} not found")
        return row

    # =========================================================================
    # Seeding (fee assignments, staff and their financial items)
    # =========================================================================

    def add_fee_assignment(self, assignment: FeeAssignment) -> FeeAssignment:
        with self._writing("add_fee_assignment"):
            self._session.add(FeeAssignmentModel.from_dto(assignment, self._actor_id))
        return assignment

    def add_staff(self, staff: StaffMember) -> StaffMember:
        with self._writing("add_staff"):
            self._session.add(StaffMemberModel.from_dto(staff, self._actor_id))
        return staff

    def add_loan(self, loan: StaffLoan) -> StaffLoan:
        with self._writing("add_loan"):
            self._session.add(StaffLoanModel.from_dto(loan, self._actor_id))
        return loan

    def add_bonus(self, bonus: StaffBonus) -> StaffBonus:
        with self._writing("add_bonus"):
            self._session.add(StaffBonusModel.from_dto(bonus, self._actor_id))
        return bonus

    def add_penalty(self, penalty: StaffPenalty) -> StaffPenalty:
        with self._writing("add_penalty"):
            self._session.add(StaffPenaltyModel.from_dto(penalty, self._actor_id))
        return penalty

    # =========================================================================
    # FeeLedgerStore
    # =========================================================================

    def list_fee_assignments(self, student_id: str) -> Sequence[FeeAssignment]:
        with self._reading("list_fee_assignments"):
            rows = self._session.scalars(
                select(FeeAssignmentModel)
                .where(FeeAssignmentModel.student_id == student_id)
                .order_by(FeeAssignmentModel.created_at, FeeAssignmentModel.id)
            ).all()
            return [row.to_dto() for row in rows]

    def save_payment(self, payment: Payment) -> Payment:
        with self._writing("save_payment"):
            self._session.add(FeePaymentModel.from_dto(payment, self._actor_id))
        logger.info(
            "fee_payment_stored",
            extra={"payment_id": payment.id, "reference": payment.reference},
        )
        return payment

    def apply_allocations(self, payment: Payment) -> Sequence[FeeAssignment]:
        updated: list[FeeAssignment] = []
        with self._writing("apply_allocations"):
            for assignment_id in payment.fee_assignment_ids:
                row = self._require(FeeAssignmentModel, assignment_id, "apply_allocations")
                allocations = [
                    a
                    for a in payment.allocations
                    if (a.fee_assignment_id or payment.fee_assignment_id) == assignment_id
                ]
                after = row.to_dto().apply_allocations(allocations)
                balances = {item.category_id: item.balance for item in after.items}
                for item_row in row.items:
                    item_row.balance = balances[item_row.category_id].amount
                    item_row.updated_by_id = self._actor_id
                updated.append(after)
        return updated

    def list_payments(self, student_id: str) -> Sequence[Payment]:
        with self._reading("list_payments"):
            rows = self._session.scalars(
                select(FeePaymentModel)
                .where(FeePaymentModel.student_id == student_id)
                .order_by(FeePaymentModel.payment_date, FeePaymentModel.reference)
            ).all()
            return [row.to_dto() for row in rows]

    # =========================================================================
    # StaffFinanceStore
    # =========================================================================

    def get_staff(self, staff_id: str) -> StaffMember:
        with self._reading("get_staff"):
            return self._require(StaffMemberModel, staff_id, "get_staff").to_dto()

    def list_active_loans(self, staff_id: str) -> Sequence[StaffLoan]:
        with self._reading("list_active_loans"):
            rows = self._session.scalars(
                select(StaffLoanModel)
                .where(
                    StaffLoanModel.staff_id == staff_id,
                    StaffLoanModel.status == LoanStatus.ACTIVE.value,
                )
                .order_by(StaffLoanModel.created_at, StaffLoanModel.id)
            ).all()
            return [row.to_dto() for row in rows]

    def remaining_balance(self, loan_id: str) -> Money:
        with self._reading("remaining_balance"):
            return self._require(StaffLoanModel, loan_id, "remaining_balance").remaining_balance()

    def list_pending_bonuses(self, staff_id: str, month: int, year: int) -> Sequence[StaffBonus]:
        with self._reading("list_pending_bonuses"):
            rows = self._session.scalars(
                select(StaffBonusModel).where(
                    StaffBonusModel.staff_id == staff_id,
                    StaffBonusModel.month == month,
                    StaffBonusModel.year == year,
                    StaffBonusModel.status == FinancialItemStatus.PENDING.value,
                )
            ).all()
            return [row.to_dto() for row in rows]

    def list_pending_penalties(
        self, staff_id: str, month: int, year: int
    ) -> Sequence[StaffPenalty]:
        with self._reading("list_pending_penalties"):
            rows = self._session.scalars(
                select(StaffPenaltyModel).where(
                    StaffPenaltyModel.staff_id == staff_id,
                    StaffPenaltyModel.month == month,
                    StaffPenaltyModel.year == year,
                    StaffPenaltyModel.status == FinancialItemStatus.PENDING.value,
                )
            ).all()
            return [row.to_dto() for row in rows]

    def record_loan_repayment(self, repayment: LoanRepayment) -> Money:
        with self._writing("record_loan_repayment"):
            loan = self._require(StaffLoanModel, repayment.loan_id, "record_loan_repayment")
            loan.repayments.append(LoanRepaymentModel.from_dto(repayment, self._actor_id))
            self._session.flush()
            remaining = loan.remaining_balance()
        logger.info(
            "loan_repayment_recorded",
            extra={
                "loan_id": repayment.loan_id,
                "amount": str(repayment.amount.amount),
                "remaining_balance": str(remaining.amount),
            },
        )
        return remaining

    def update_loan_status(self, loan_id: str, status: LoanStatus) -> None:
        with self._writing("update_loan_status"):
            row = self._require(StaffLoanModel, loan_id, "update_loan_status")
            row.status = status.value
            row.updated_by_id = self._actor_id

    def update_bonus_status(
        self, bonus_id: str, status: FinancialItemStatus, salary_payment_id: str | None = None
    ) -> None:
        with self._writing("update_bonus_status"):
            row = self._require(StaffBonusModel, bonus_id, "update_bonus_status")
            row.status = status.value
            row.salary_payment_id = salary_payment_id
            row.updated_by_id = self._actor_id

    def update_penalty_status(
        self, penalty_id: str, status: FinancialItemStatus, salary_payment_id: str | None = None
    ) -> None:
        with self._writing("update_penalty_status"):
            row = self._require(StaffPenaltyModel, penalty_id, "update_penalty_status")
            row.status = status.value
            row.salary_payment_id = salary_payment_id
            row.updated_by_id = self._actor_id

    # =========================================================================
    # SalaryPaymentStore
    # =========================================================================

    def _live_payment_row(self, staff_id: str, month: int, year: int) -> SalaryPaymentModel | None:
        return self._session.scalars(
            select(SalaryPaymentModel).where(
                SalaryPaymentModel.staff_id == staff_id,
                SalaryPaymentModel.month == month,
                SalaryPaymentModel.year == year,
                SalaryPaymentModel.status != _CANCELLED,
            )
        ).first()

    def has_existing_payment(self, staff_id: str, month: int, year: int) -> bool:
        with self._reading("has_existing_payment"):
            return self._live_payment_row(staff_id, month, year) is not None

    def find_live_payment(self, staff_id: str, month: int, year: int) -> SalaryPayment | None:
        with self._reading("find_live_payment"):
            row = self._live_payment_row(staff_id, month, year)
            return row.to_dto() if row is not None else None

    def add(self, payment: SalaryPayment) -> SalaryPayment:
        """Insert a salary payment; the live-period index decides duplicates."""
        try:
            self._session.add(SalaryPaymentModel.from_dto(payment, self._actor_id))
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            existing = self._live_payment_row(payment.staff_id, payment.month, payment.year)
            if existing is None:
                logger.error(
                    "store_write_failed",
                    extra={"operation": "add_salary_payment", "error": str(exc)},
                )
                raise UpstreamError("add_salary_payment", str(exc)) from exc
            logger.warning(
                "salary_payment_duplicate_rejected",
                extra={
                    "staff_id": payment.staff_id,
                    "month": payment.month,
                    "year": payment.year,
                    "existing_reference": existing.reference,
                },
            )
            raise DuplicatePeriodError(
                payment.staff_id,
                payment.month,
                payment.year,
                existing_status=existing.status,
                existing_reference=existing.reference,
            ) from exc
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "store_write_failed",
                extra={"operation": "add_salary_payment", "error": str(exc)},
            )
            raise UpstreamError("add_salary_payment", str(exc)) from exc
        return payment

    def get(self, payment_id: str) -> SalaryPayment:
        with self._reading("get_salary_payment"):
            return self._require(SalaryPaymentModel, payment_id, "get_salary_payment").to_dto()

    def save_status(self, payment: SalaryPayment) -> SalaryPayment:
        with self._writing("save_salary_payment_status"):
            row = self._require(SalaryPaymentModel, payment.id, "save_salary_payment_status")
            row.status = payment.status.value
            row.approved_by = payment.approved_by
            row.updated_by_id = self._actor_id
        return payment

    def list_for_period(self, month: int, year: int) -> Sequence[SalaryPayment]:
        with self._reading("list_salary_payments"):
            rows = self._session.scalars(
                select(SalaryPaymentModel)
                .where(SalaryPaymentModel.month == month, SalaryPaymentModel.year == year)
                .order_by(SalaryPaymentModel.reference)
            ).all()
            return [row.to_dto() for row in rows]
