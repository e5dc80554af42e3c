"""
Payroll ORM Models (``bursar_kernel.models.payroll``).

Responsibility
--------------
SQLAlchemy persistence for staff, their standing allowances, loans and
repayments, bonuses, penalties, and salary payments with their lines.
Maps to the frozen dataclasses in ``bursar_kernel.domain.payroll``.

Invariants enforced
-------------------
* At most one non-cancelled salary payment per (staff_id, month, year),
  enforced by the partial unique index ``uq_salary_payments_live_period``.
  This is the compare-and-commit that closes the check-then-insert race
  between two concurrent payroll runs.
* At most one repayment per (loan, salary payment), so re-running
  settlement for the same payment cannot double-apply an installment.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bursar_kernel.db.base import TrackedBase
from bursar_kernel.domain.payroll import (
    FinancialItemStatus,
    LineSource,
    LoanRepayment,
    LoanStatus,
    PaymentAllowance,
    PaymentDeduction,
    SalaryPayment,
    SalaryPaymentMethod,
    SalaryPaymentStatus,
    StaffBonus,
    StaffLoan,
    StaffMember,
    StaffPenalty,
    StandingAllowance,
    StatutoryDeductions,
)
from bursar_kernel.domain.values import Money

_LIVE_PAYMENT = text("status <> 'cancelled'")


# ---------------------------------------------------------------------------
# Staff
# ---------------------------------------------------------------------------


class StaffMemberModel(TrackedBase):
    """ORM model for a staff member's payroll profile."""

    __tablename__ = "staff"

    __table_args__ = (
        UniqueConstraint("staff_number", name="uq_staff_staff_number"),
        Index("idx_staff_is_active", "is_active"),
    )

    staff_number: Mapped[str] = mapped_column(String(50), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    basic_salary: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    standing_allowances: Mapped[list["StandingAllowanceModel"]] = relationship(
        back_populates="staff",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="StandingAllowanceModel.position",
    )

    def to_dto(self) -> StaffMember:
        return StaffMember(
            id=self.id,
            staff_number=self.staff_number,
            full_name=self.full_name,
            basic_salary=Money.of(self.basic_salary, self.currency),
            standing_allowances=tuple(
                StandingAllowance(a.name, Money.of(a.amount, self.currency))
                for a in self.standing_allowances
            ),
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(
        cls, dto: StaffMember, created_by_id: str | None = None
    ) -> "StaffMemberModel":
        model = cls(
            id=dto.id,
            staff_number=dto.staff_number,
            full_name=dto.full_name,
            basic_salary=dto.basic_salary.amount,
            currency=dto.currency.code,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )
        model.standing_allowances = [
            StandingAllowanceModel(
                position=i,
                name=a.name,
                amount=a.amount.amount,
                created_by_id=created_by_id,
            )
            for i, a in enumerate(dto.standing_allowances)
        ]
        return model

    def __repr__(self) -> str:
        return f"<StaffMemberModel {self.staff_number}: {self.full_name}>"


class StandingAllowanceModel(TrackedBase):
    """A recurring allowance on a staff member's contract."""

    __tablename__ = "staff_allowances"

    __table_args__ = (Index("idx_staff_allowances_staff_id", "staff_id"),)

    staff_id: Mapped[str] = mapped_column(ForeignKey("staff.id"), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    staff: Mapped["StaffMemberModel"] = relationship(back_populates="standing_allowances")


# ---------------------------------------------------------------------------
# Loans
# ---------------------------------------------------------------------------


class StaffLoanModel(TrackedBase):
    """
    ORM model for a staff loan.

    The remaining balance is derived from ``repayments`` rather than stored.
    """

    __tablename__ = "staff_loans"

    __table_args__ = (
        Index("idx_staff_loans_staff_status", "staff_id", "status"),
    )

    staff_id: Mapped[str] = mapped_column(ForeignKey("staff.id"), nullable=False)
    principal: Mapped[Decimal] = mapped_column(nullable=False)
    monthly_installment: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    purpose: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=LoanStatus.ACTIVE.value)

    repayments: Mapped[list["LoanRepaymentModel"]] = relationship(
        back_populates="loan",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self) -> StaffLoan:
        return StaffLoan(
            id=self.id,
            staff_id=self.staff_id,
            principal=Money.of(self.principal, self.currency),
            monthly_installment=Money.of(self.monthly_installment, self.currency),
            purpose=self.purpose,
            status=LoanStatus(self.status),
        )

    @classmethod
    def from_dto(cls, dto: StaffLoan, created_by_id: str | None = None) -> "StaffLoanModel":
        return cls(
            id=dto.id,
            staff_id=dto.staff_id,
            principal=dto.principal.amount,
            monthly_installment=dto.monthly_installment.amount,
            currency=dto.principal.currency.code,
            purpose=dto.purpose,
            status=dto.status.value,
            created_by_id=created_by_id,
        )

    def total_repaid(self) -> Money:
        return Money.total(
            (Money.of(r.amount, self.currency) for r in self.repayments), self.currency
        )

    def remaining_balance(self) -> Money:
        return self.to_dto().remaining_after(
            Money.of(r.amount, self.currency) for r in self.repayments
        )


class LoanRepaymentModel(TrackedBase):
    """One installment deducted through payroll."""

    __tablename__ = "loan_repayments"

    __table_args__ = (
        UniqueConstraint(
            "loan_id", "salary_payment_id", name="uq_loan_repayments_salary_payment"
        ),
        Index("idx_loan_repayments_loan_id", "loan_id"),
    )

    loan_id: Mapped[str] = mapped_column(ForeignKey("staff_loans.id"), nullable=False)
    staff_id: Mapped[str] = mapped_column(String(36), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    month: Mapped[int] = mapped_column(nullable=False)
    year: Mapped[int] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    salary_payment_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    loan: Mapped["StaffLoanModel"] = relationship(back_populates="repayments")

    def to_dto(self) -> LoanRepayment:
        return LoanRepayment(
            id=self.id,
            loan_id=self.loan_id,
            staff_id=self.staff_id,
            amount=Money.of(self.amount, self.loan.currency),
            month=self.month,
            year=self.year,
            payment_date=self.payment_date,
            salary_payment_id=self.salary_payment_id,
        )

    @classmethod
    def from_dto(
        cls, dto: LoanRepayment, created_by_id: str | None = None
    ) -> "LoanRepaymentModel":
        return cls(
            id=dto.id,
            loan_id=dto.loan_id,
            staff_id=dto.staff_id,
            amount=dto.amount.amount,
            month=dto.month,
            year=dto.year,
            payment_date=dto.payment_date,
            salary_payment_id=dto.salary_payment_id,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# Bonuses and penalties
# ---------------------------------------------------------------------------


class StaffBonusModel(TrackedBase):
    """A one-off bonus payable in a given month."""

    __tablename__ = "staff_bonuses"

    __table_args__ = (
        Index("idx_staff_bonuses_period", "staff_id", "year", "month", "status"),
    )

    staff_id: Mapped[str] = mapped_column(ForeignKey("staff.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    month: Mapped[int] = mapped_column(nullable=False)
    year: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=FinancialItemStatus.PENDING.value
    )
    salary_payment_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    def to_dto(self) -> StaffBonus:
        return StaffBonus(
            id=self.id,
            staff_id=self.staff_id,
            amount=Money.of(self.amount, self.currency),
            reason=self.reason,
            month=self.month,
            year=self.year,
            status=FinancialItemStatus(self.status),
            salary_payment_id=self.salary_payment_id,
        )

    @classmethod
    def from_dto(cls, dto: StaffBonus, created_by_id: str | None = None) -> "StaffBonusModel":
        return cls(
            id=dto.id,
            staff_id=dto.staff_id,
            amount=dto.amount.amount,
            currency=dto.amount.currency.code,
            reason=dto.reason,
            month=dto.month,
            year=dto.year,
            status=dto.status.value,
            salary_payment_id=dto.salary_payment_id,
            created_by_id=created_by_id,
        )


class StaffPenaltyModel(TrackedBase):
    """A one-off penalty deductible in a given month."""

    __tablename__ = "staff_penalties"

    __table_args__ = (
        Index("idx_staff_penalties_period", "staff_id", "year", "month", "status"),
    )

    staff_id: Mapped[str] = mapped_column(ForeignKey("staff.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    month: Mapped[int] = mapped_column(nullable=False)
    year: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=FinancialItemStatus.PENDING.value
    )
    salary_payment_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    def to_dto(self) -> StaffPenalty:
        return StaffPenalty(
            id=self.id,
            staff_id=self.staff_id,
            amount=Money.of(self.amount, self.currency),
            reason=self.reason,
            month=self.month,
            year=self.year,
            status=FinancialItemStatus(self.status),
            salary_payment_id=self.salary_payment_id,
        )

    @classmethod
    def from_dto(
        cls, dto: StaffPenalty, created_by_id: str | None = None
    ) -> "StaffPenaltyModel":
        return cls(
            id=dto.id,
            staff_id=dto.staff_id,
            amount=dto.amount.amount,
            currency=dto.amount.currency.code,
            reason=dto.reason,
            month=dto.month,
            year=dto.year,
            status=dto.status.value,
            salary_payment_id=dto.salary_payment_id,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# Salary payments
# ---------------------------------------------------------------------------


class SalaryPaymentModel(TrackedBase):
    """
    ORM model for a computed salary payment.

    Guarantees:
        - reference is unique (uq_salary_payments_reference).
        - one live payment per staff member and period
          (uq_salary_payments_live_period, partial on status).
        - the statutory breakdown columns are null when the payment was
          computed without a statutory calculator.
    """

    __tablename__ = "salary_payments"

    __table_args__ = (
        UniqueConstraint("reference", name="uq_salary_payments_reference"),
        Index(
            "uq_salary_payments_live_period",
            "staff_id",
            "month",
            "year",
            unique=True,
            sqlite_where=_LIVE_PAYMENT,
            postgresql_where=_LIVE_PAYMENT,
        ),
        Index("idx_salary_payments_period", "year", "month"),
        Index("idx_salary_payments_status", "status"),
    )

    reference: Mapped[str] = mapped_column(String(50), nullable=False)
    staff_id: Mapped[str] = mapped_column(ForeignKey("staff.id"), nullable=False)
    month: Mapped[int] = mapped_column(nullable=False)
    year: Mapped[int] = mapped_column(nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    basic_salary: Mapped[Decimal] = mapped_column(nullable=False)
    total_gross: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=SalaryPaymentStatus.PENDING.value, nullable=False
    )
    approved_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    nhf: Mapped[Decimal | None] = mapped_column(nullable=True)
    pension_employee: Mapped[Decimal | None] = mapped_column(nullable=True)
    pension_employer: Mapped[Decimal | None] = mapped_column(nullable=True)
    nhis: Mapped[Decimal | None] = mapped_column(nullable=True)
    paye: Mapped[Decimal | None] = mapped_column(nullable=True)

    lines: Mapped[list["SalaryPaymentLineModel"]] = relationship(
        back_populates="salary_payment",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SalaryPaymentLineModel.position",
    )

    def to_dto(self) -> SalaryPayment:
        """Convert ORM model to frozen dataclass."""
        c = self.currency
        statutory = None
        if self.paye is not None:
            statutory = StatutoryDeductions(
                nhf=Money.of(self.nhf or 0, c),
                pension_employee=Money.of(self.pension_employee or 0, c),
                pension_employer=Money.of(self.pension_employer or 0, c),
                nhis=Money.of(self.nhis or 0, c),
                paye=Money.of(self.paye, c),
            )
        allowances = []
        deductions = []
        for line in self.lines:
            if line.kind == SalaryPaymentLineModel.ALLOWANCE:
                allowances.append(
                    PaymentAllowance(
                        name=line.name,
                        amount=Money.of(line.amount, c),
                        source=LineSource.parse(line.source),
                        is_taxable=line.is_taxable,
                    )
                )
            else:
                deductions.append(
                    PaymentDeduction(
                        name=line.name,
                        amount=Money.of(line.amount, c),
                        source=LineSource.parse(line.source),
                        is_statutory=line.is_statutory,
                    )
                )
        return SalaryPayment(
            id=self.id,
            reference=self.reference,
            staff_id=self.staff_id,
            month=self.month,
            year=self.year,
            basic_salary=Money.of(self.basic_salary, c),
            allowances=tuple(allowances),
            deductions=tuple(deductions),
            total_gross=Money.of(self.total_gross, c),
            total_deductions=Money.of(self.total_deductions, c),
            net_pay=Money.of(self.net_pay, c),
            payment_method=SalaryPaymentMethod(self.payment_method),
            payment_date=self.payment_date,
            status=SalaryPaymentStatus(self.status),
            statutory=statutory,
            approved_by=self.approved_by,
        )

    @classmethod
    def from_dto(
        cls, dto: SalaryPayment, created_by_id: str | None = None
    ) -> "SalaryPaymentModel":
        """Create ORM model from frozen dataclass."""
        statutory = dto.statutory
        model = cls(
            id=dto.id,
            reference=dto.reference,
            staff_id=dto.staff_id,
            month=dto.month,
            year=dto.year,
            period_start=dto.period_start,
            period_end=dto.period_end,
            currency=dto.basic_salary.currency.code,
            basic_salary=dto.basic_salary.amount,
            total_gross=dto.total_gross.amount,
            total_deductions=dto.total_deductions.amount,
            net_pay=dto.net_pay.amount,
            payment_method=dto.payment_method.value,
            payment_date=dto.payment_date,
            status=dto.status.value,
            approved_by=dto.approved_by,
            nhf=statutory.nhf.amount if statutory else None,
            pension_employee=statutory.pension_employee.amount if statutory else None,
            pension_employer=statutory.pension_employer.amount if statutory else None,
            nhis=statutory.nhis.amount if statutory else None,
            paye=statutory.paye.amount if statutory else None,
            created_by_id=created_by_id,
        )
        lines = [
            SalaryPaymentLineModel(
                kind=SalaryPaymentLineModel.ALLOWANCE,
                name=a.name,
                amount=a.amount.amount,
                source=a.source.tag,
                is_taxable=a.is_taxable,
                is_statutory=False,
                created_by_id=created_by_id,
            )
            for a in dto.allowances
        ]
        lines.extend(
            SalaryPaymentLineModel(
                kind=SalaryPaymentLineModel.DEDUCTION,
                name=d.name,
                amount=d.amount.amount,
                source=d.source.tag,
                is_taxable=False,
                is_statutory=d.is_statutory,
                created_by_id=created_by_id,
            )
            for d in dto.deductions
        )
        for position, line in enumerate(lines):
            line.position = position
        model.lines = lines
        return model

    def __repr__(self) -> str:
        return (
            f"<SalaryPaymentModel {self.reference} "
            f"{self.month:02d}/{self.year} status={self.status}>"
        )


class SalaryPaymentLineModel(TrackedBase):
    """An allowance or deduction line of a salary payment, with provenance."""

    ALLOWANCE = "allowance"
    DEDUCTION = "deduction"

    __tablename__ = "salary_payment_lines"

    __table_args__ = (
        Index("idx_salary_payment_lines_payment", "salary_payment_id"),
    )

    salary_payment_id: Mapped[str] = mapped_column(
        ForeignKey("salary_payments.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    source: Mapped[str] = mapped_column(String(100), nullable=False, default="manual")
    is_taxable: Mapped[bool] = mapped_column(Boolean, default=True)
    is_statutory: Mapped[bool] = mapped_column(Boolean, default=False)

    salary_payment: Mapped["SalaryPaymentModel"] = relationship(back_populates="lines")
