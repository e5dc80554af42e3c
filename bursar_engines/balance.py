"""
Module: bursar_engines.balance
Responsibility:
    Aggregate a student's outstanding fee balance, in total and per
    category, and derive the quick-amount shortcuts offered when a
    payment is captured.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Only items with ``balance > 0`` contribute.
    - Quick amounts always lie in ``(0, outstanding]``.
    - Decimal-only arithmetic; every figure is ``Money``.

Failure modes:
    - ValueError when assignments mix currencies.

Usage:
    aggregator = OutstandingBalanceAggregator("NGN")
    total = aggregator.total_outstanding(assignments)
    shortcuts = aggregator.quick_amounts(total)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from bursar_config.schema import FeePolicy
from bursar_engines.tracer import traced_engine
from bursar_kernel.domain.fees import FeeAssignment, FeeItem
from bursar_kernel.domain.values import Currency, Money
from bursar_kernel.logging_config import get_logger

logger = get_logger("engines.balance")

DEFAULT_FEE_POLICY = FeePolicy(
    quick_amount_fraction=Decimal("0.5"),
    quick_amount_increments=(Decimal("10000"), Decimal("20000"), Decimal("50000")),
)


@dataclass(frozen=True)
class CategoryBalance:
    """Outstanding balance of one fee category across all assignments."""

    category_id: str
    category_name: str
    fee_type: str
    balance: Money
    is_mandatory: bool


@dataclass(frozen=True)
class QuickAmount:
    """A one-click payment amount shortcut."""

    label: str
    amount: Money


class OutstandingBalanceAggregator:
    """
    Sum outstanding fee balances for a student.

    Contract:
        Pure functions over ``FeeAssignment`` value objects.
    Guarantees:
        - ``total_outstanding`` equals the sum of ``outstanding_by_category``.
        - Empty input yields zero in the aggregator's currency.
    """

    def __init__(
        self,
        currency: str | Currency,
        fee_policy: FeePolicy | None = None,
    ):
        self._currency = Currency(currency) if isinstance(currency, str) else currency
        self._policy = fee_policy or DEFAULT_FEE_POLICY

    @property
    def currency(self) -> Currency:
        return self._currency

    def outstanding_items(self, assignments: Sequence[FeeAssignment]) -> tuple[FeeItem, ...]:
        """Every item with a positive balance, in assignment then item order."""
        items: list[FeeItem] = []
        for assignment in assignments:
            for item in assignment.items:
                if item.balance.currency != self._currency:
                    raise ValueError(
                        f"Fee assignment {assignment.id} is in {item.balance.currency}, "
                        f"expected {self._currency}"
                    )
                if item.has_balance:
                    items.append(item)
        return tuple(items)

    @traced_engine("outstanding_balance", "1.0")
    def total_outstanding(self, assignments: Sequence[FeeAssignment]) -> Money:
        total = Money.total(
            (item.balance for item in self.outstanding_items(assignments)), self._currency
        )
        logger.debug(
            "outstanding_balance_computed",
            extra={
                "assignment_count": len(assignments),
                "outstanding": str(total.amount),
                "currency": self._currency.code,
            },
        )
        return total

    def outstanding_by_category(
        self, assignments: Sequence[FeeAssignment]
    ) -> tuple[CategoryBalance, ...]:
        """Per-category outstanding balance, merged across assignments.

        Categories appear in the order first seen; a category is mandatory
        if any of its items is.
        """
        merged: dict[str, CategoryBalance] = {}
        for item in self.outstanding_items(assignments):
            existing = merged.get(item.category_id)
            if existing is None:
                merged[item.category_id] = CategoryBalance(
                    category_id=item.category_id,
                    category_name=item.category_name,
                    fee_type=item.fee_type,
                    balance=item.balance,
                    is_mandatory=item.is_mandatory,
                )
            else:
                merged[item.category_id] = CategoryBalance(
                    category_id=existing.category_id,
                    category_name=existing.category_name,
                    fee_type=existing.fee_type,
                    balance=existing.balance + item.balance,
                    is_mandatory=existing.is_mandatory or item.is_mandatory,
                )
        return tuple(merged.values())

    def quick_amounts(self, outstanding: Money) -> tuple[QuickAmount, ...]:
        """Full balance, a rounded fraction of it, then the fixed increments.

        Only shortcuts with ``0 < amount <= outstanding`` are returned.
        """
        candidates = [
            QuickAmount("Full Balance", outstanding),
            QuickAmount(
                f"{(self._policy.quick_amount_fraction * 100).normalize():f}%",
                (outstanding * self._policy.quick_amount_fraction).round_whole(),
            ),
        ]
        for increment in self._policy.quick_amount_increments:
            candidates.append(
                QuickAmount(
                    f"{outstanding.currency.code} {increment:,.0f}",
                    Money.of(increment, outstanding.currency),
                )
            )
        return tuple(
            qa for qa in candidates if qa.amount.is_positive and qa.amount <= outstanding
        )
