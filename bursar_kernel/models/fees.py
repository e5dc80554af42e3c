"""
Fee ORM Models (``bursar_kernel.models.fees``).

Responsibility
--------------
SQLAlchemy persistence for fee assignments, their per-category items, and
recorded fee payments with their allocations.  Maps to the frozen
dataclasses in ``bursar_kernel.domain.fees``.

Architecture position
---------------------
Kernel > Models.  Imports from ``bursar_kernel.db.base`` and the domain
layer only.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bursar_kernel.db.base import TrackedBase
from bursar_kernel.domain.fees import (
    FeeAssignment,
    FeeItem,
    FeePaymentMethod,
    Payment,
    PaymentAllocation,
)
from bursar_kernel.domain.values import Money


class FeeAssignmentModel(TrackedBase):
    """
    ORM model for a student's fee assignment.

    Items live in ``fee_assignment_items``; their balances are the only
    mutable financial fields and change only through recorded payments.
    """

    __tablename__ = "fee_assignments"

    __table_args__ = (
        Index("idx_fee_assignments_student_id", "student_id"),
    )

    student_id: Mapped[str] = mapped_column(String(36), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    term: Mapped[str | None] = mapped_column(String(50), nullable=True)
    academic_year: Mapped[str | None] = mapped_column(String(20), nullable=True)

    items: Mapped[list["FeeItemModel"]] = relationship(
        back_populates="assignment",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FeeItemModel.position",
    )

    def to_dto(self) -> FeeAssignment:
        """Convert ORM model to frozen dataclass."""
        return FeeAssignment(
            id=self.id,
            student_id=self.student_id,
            items=tuple(item.to_dto(self.currency) for item in self.items),
            term=self.term,
            academic_year=self.academic_year,
        )

    @classmethod
    def from_dto(
        cls, dto: FeeAssignment, created_by_id: str | None = None
    ) -> "FeeAssignmentModel":
        """Create ORM model from frozen dataclass."""
        if dto.currency is None:
            raise ValueError(f"Fee assignment {dto.id} has no items")
        model = cls(
            id=dto.id,
            student_id=dto.student_id,
            currency=dto.currency.code,
            term=dto.term,
            academic_year=dto.academic_year,
            created_by_id=created_by_id,
        )
        model.items = [
            FeeItemModel.from_dto(item, position, created_by_id)
            for position, item in enumerate(dto.items)
        ]
        return model

    def __repr__(self) -> str:
        return f"<FeeAssignmentModel {self.id} student={self.student_id}>"


class FeeItemModel(TrackedBase):
    """One fee category within an assignment."""

    __tablename__ = "fee_assignment_items"

    __table_args__ = (
        UniqueConstraint(
            "fee_assignment_id", "category_id", name="uq_fee_assignment_items_category"
        ),
        Index("idx_fee_assignment_items_assignment", "fee_assignment_id"),
    )

    fee_assignment_id: Mapped[str] = mapped_column(
        ForeignKey("fee_assignments.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    category_id: Mapped[str] = mapped_column(String(36), nullable=False)
    category_name: Mapped[str] = mapped_column(String(255), nullable=False)
    fee_type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    balance: Mapped[Decimal] = mapped_column(nullable=False)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=False)

    assignment: Mapped["FeeAssignmentModel"] = relationship(back_populates="items")

    def to_dto(self, currency: str) -> FeeItem:
        return FeeItem(
            category_id=self.category_id,
            category_name=self.category_name,
            fee_type=self.fee_type,
            balance=Money.of(self.balance, currency),
            is_mandatory=self.is_mandatory,
            fee_assignment_id=self.fee_assignment_id,
            amount=Money.of(self.amount, currency),
        )

    @classmethod
    def from_dto(
        cls, dto: FeeItem, position: int, created_by_id: str | None = None
    ) -> "FeeItemModel":
        return cls(
            position=position,
            category_id=dto.category_id,
            category_name=dto.category_name,
            fee_type=dto.fee_type,
            amount=dto.amount.amount,
            balance=dto.balance.amount,
            is_mandatory=dto.is_mandatory,
            created_by_id=created_by_id,
        )


class FeePaymentModel(TrackedBase):
    """
    ORM model for a recorded fee payment.

    Guarantees:
        - reference is unique (uq_fee_payments_reference).
        - allocations sum to amount (checked by the domain object before
          the row is written).
    """

    __tablename__ = "fee_payments"

    __table_args__ = (
        UniqueConstraint("reference", name="uq_fee_payments_reference"),
        Index("idx_fee_payments_student_id", "student_id"),
        Index("idx_fee_payments_payment_date", "payment_date"),
    )

    reference: Mapped[str] = mapped_column(String(50), nullable=False)
    student_id: Mapped[str] = mapped_column(String(36), nullable=False)
    fee_assignment_id: Mapped[str] = mapped_column(
        ForeignKey("fee_assignments.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    allocations: Mapped[list["FeePaymentAllocationModel"]] = relationship(
        back_populates="payment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self) -> Payment:
        """Convert ORM model to frozen dataclass."""
        return Payment(
            id=self.id,
            reference=self.reference,
            student_id=self.student_id,
            fee_assignment_id=self.fee_assignment_id,
            amount=Money.of(self.amount, self.currency),
            method=FeePaymentMethod(self.method),
            payment_date=self.payment_date,
            allocations=tuple(a.to_dto(self.currency) for a in self.allocations),
            paid_by=self.paid_by,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto: Payment, created_by_id: str | None = None) -> "FeePaymentModel":
        """Create ORM model from frozen dataclass."""
        model = cls(
            id=dto.id,
            reference=dto.reference,
            student_id=dto.student_id,
            fee_assignment_id=dto.fee_assignment_id,
            amount=dto.amount.amount,
            currency=dto.amount.currency.code,
            method=dto.method.value,
            payment_date=dto.payment_date,
            paid_by=dto.paid_by,
            notes=dto.notes,
            created_by_id=created_by_id,
        )
        model.allocations = [
            FeePaymentAllocationModel(
                fee_assignment_id=a.fee_assignment_id or dto.fee_assignment_id,
                category_id=a.category_id,
                category_name=a.category_name,
                fee_type=a.fee_type,
                amount=a.amount.amount,
                created_by_id=created_by_id,
            )
            for a in dto.allocations
        ]
        return model

    def __repr__(self) -> str:
        return f"<FeePaymentModel {self.reference} amount={self.amount} {self.currency}>"


class FeePaymentAllocationModel(TrackedBase):
    """The share of a payment applied to one fee category."""

    __tablename__ = "fee_payment_allocations"

    __table_args__ = (
        Index("idx_fee_payment_allocations_payment", "payment_id"),
    )

    payment_id: Mapped[str] = mapped_column(
        ForeignKey("fee_payments.id"), nullable=False
    )
    fee_assignment_id: Mapped[str] = mapped_column(String(36), nullable=False)
    category_id: Mapped[str] = mapped_column(String(36), nullable=False)
    category_name: Mapped[str] = mapped_column(String(255), nullable=False)
    fee_type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment: Mapped["FeePaymentModel"] = relationship(back_populates="allocations")

    def to_dto(self, currency: str) -> PaymentAllocation:
        return PaymentAllocation(
            category_id=self.category_id,
            category_name=self.category_name,
            fee_type=self.fee_type,
            amount=Money.of(self.amount, currency),
            fee_assignment_id=self.fee_assignment_id,
        )
