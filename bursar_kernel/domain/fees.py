"""
Fee Domain Types (``bursar_kernel.domain.fees``).

Responsibility
--------------
Frozen value objects for the student side of the ledger: fee items grouped
into fee assignments, the per-category allocations of a payment, and the
immutable payment record itself.

Invariants enforced
-------------------
* ``FeeItem.balance >= 0``.
* ``PaymentAllocation.amount >= 0`` and in the item's currency.
* ``Payment.allocations`` sum to ``Payment.amount`` within the currency
  tolerance, and no category appears twice.
* ``FeeAssignment.apply_allocations`` never drives a balance below zero.

Failure modes
-------------
* Construction with an invalid amount, negative balance or mismatched
  allocation total raises ``ValueError``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum

from bursar_kernel.domain.values import Currency, Money


class FeePaymentMethod(str, Enum):
    """Channels a fee payment can arrive through."""

    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    POS = "pos"
    ONLINE = "online"
    CHEQUE = "cheque"


class FeeAssignmentStatus(str, Enum):
    """Derived settlement status of a fee assignment."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


@dataclass(frozen=True)
class FeeItem:
    """
    One fee category's outstanding obligation within a fee assignment.

    ``amount`` is the originally billed figure (defaults to ``balance`` when
    unknown); ``balance`` is what remains to be paid.
    """

    category_id: str
    category_name: str
    fee_type: str
    balance: Money
    is_mandatory: bool = False
    fee_assignment_id: str | None = None
    amount: Money | None = None

    def __post_init__(self) -> None:
        if not self.category_id:
            raise ValueError("FeeItem requires a category_id")
        if self.balance.is_negative:
            raise ValueError(
                f"FeeItem {self.category_id} balance cannot be negative: {self.balance}"
            )
        if self.amount is None:
            object.__setattr__(self, "amount", self.balance)
        elif self.amount.currency != self.balance.currency:
            raise ValueError(f"FeeItem {self.category_id} mixes currencies")

    @property
    def key(self) -> str:
        """Identity of the item across all of a student's assignments."""
        if self.fee_assignment_id is None:
            return self.category_id
        return f"{self.fee_assignment_id}:{self.category_id}"

    @property
    def has_balance(self) -> bool:
        return self.balance.is_positive

    @property
    def amount_paid(self) -> Money:
        return self.amount - self.balance


@dataclass(frozen=True)
class FeeAssignment:
    """
    The fee obligations (by category) assigned to one student for a term.

    Items are stamped with this assignment's id on construction so every
    allocation can be routed back to the assignment that owns it.
    """

    id: str
    student_id: str
    items: tuple[FeeItem, ...]
    term: str | None = None
    academic_year: str | None = None

    def __post_init__(self) -> None:
        stamped = tuple(
            item if item.fee_assignment_id == self.id else replace(item, fee_assignment_id=self.id)
            for item in self.items
        )
        object.__setattr__(self, "items", stamped)
        seen: set[str] = set()
        for item in stamped:
            if item.category_id in seen:
                raise ValueError(
                    f"FeeAssignment {self.id} lists category {item.category_id} twice"
                )
            seen.add(item.category_id)

    @property
    def currency(self) -> Currency | None:
        return self.items[0].balance.currency if self.items else None

    @property
    def outstanding_items(self) -> tuple[FeeItem, ...]:
        return tuple(item for item in self.items if item.has_balance)

    @property
    def status(self) -> FeeAssignmentStatus:
        if not self.outstanding_items:
            return FeeAssignmentStatus.PAID
        if all(item.amount_paid.is_zero for item in self.items):
            return FeeAssignmentStatus.UNPAID
        return FeeAssignmentStatus.PARTIAL

    def apply_allocations(self, allocations: Iterable[PaymentAllocation]) -> FeeAssignment:
        """
        Return a copy with balances decreased by the allocations that belong
        to this assignment. Allocations for other assignments are ignored.

        Raises:
            ValueError: an allocation names an unknown category or exceeds
                the category's balance.
        """
        by_category = {item.category_id: item for item in self.items}
        updated = dict(by_category)
        for allocation in allocations:
            if allocation.fee_assignment_id not in (None, self.id):
                continue
            item = by_category.get(allocation.category_id)
            if item is None:
                raise ValueError(
                    f"Allocation targets unknown category {allocation.category_id} "
                    f"on fee assignment {self.id}"
                )
            current = updated[allocation.category_id]
            if allocation.amount > current.balance:
                raise ValueError(
                    f"Allocation {allocation.amount} exceeds balance {current.balance} "
                    f"for category {allocation.category_id}"
                )
            updated[allocation.category_id] = replace(
                current, balance=current.balance - allocation.amount
            )
        return replace(self, items=tuple(updated[item.category_id] for item in self.items))

    def add_charge(self, category_id: str, amount: Money) -> FeeAssignment:
        """Return a copy with one category's balance increased (fee reassignment)."""
        if amount.is_negative:
            raise ValueError("A fee charge cannot be negative")
        items = []
        found = False
        for item in self.items:
            if item.category_id == category_id:
                found = True
                item = replace(item, balance=item.balance + amount, amount=item.amount + amount)
            items.append(item)
        if not found:
            raise ValueError(f"Unknown category {category_id} on fee assignment {self.id}")
        return replace(self, items=tuple(items))


@dataclass(frozen=True)
class PaymentAllocation:
    """The portion of one payment attributed to one fee category."""

    category_id: str
    category_name: str
    fee_type: str
    amount: Money
    fee_assignment_id: str | None = None

    def __post_init__(self) -> None:
        if self.amount.is_negative:
            raise ValueError(
                f"Allocation for {self.category_id} cannot be negative: {self.amount}"
            )

    @classmethod
    def for_item(cls, item: FeeItem, amount: Money) -> PaymentAllocation:
        return cls(
            category_id=item.category_id,
            category_name=item.category_name,
            fee_type=item.fee_type,
            amount=amount,
            fee_assignment_id=item.fee_assignment_id,
        )

    @property
    def key(self) -> str:
        if self.fee_assignment_id is None:
            return self.category_id
        return f"{self.fee_assignment_id}:{self.category_id}"


@dataclass(frozen=True)
class Payment:
    """
    An immutable student fee payment.

    ``fee_assignment_id`` is the assignment the payment was recorded against;
    when the allocations span several assignments it is the first of them.
    """

    id: str
    reference: str
    student_id: str
    fee_assignment_id: str
    amount: Money
    method: FeePaymentMethod
    payment_date: date
    allocations: tuple[PaymentAllocation, ...] = field(default_factory=tuple)
    paid_by: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        if not self.amount.is_positive:
            raise ValueError("Payment amount must be greater than zero")
        keys = [a.key for a in self.allocations]
        if len(keys) != len(set(keys)):
            raise ValueError("Payment allocations list a fee category more than once")
        total = Money.total((a.amount for a in self.allocations), self.amount.currency)
        if not total.is_close_to(self.amount):
            raise ValueError(
                f"Payment {self.reference}: allocations total {total} "
                f"but payment amount is {self.amount}"
            )

    @property
    def fee_assignment_ids(self) -> tuple[str, ...]:
        ids: list[str] = []
        for allocation in self.allocations:
            assignment_id = allocation.fee_assignment_id or self.fee_assignment_id
            if assignment_id not in ids:
                ids.append(assignment_id)
        return tuple(ids)
