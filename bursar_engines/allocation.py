"""
Module: bursar_engines.allocation
Responsibility:
    Distribute a student payment across outstanding fee categories, either
    automatically by priority or under manual override within an editing
    session.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Every allocation is in ``[0, item.balance]``.
    - Automatic mode allocates ``min(remaining, balance)`` greedily over
      items ordered mandatory-first, then by balance descending, with the
      original order as a stable tie-break.
    - A manual edit is sticky: once an amount is edited by hand, automatic
      allocation does not run again until explicitly re-enabled.
    - Items with zero balance never receive an allocation.

Failure modes:
    - ValueError on a negative payment amount or a currency mismatch.
    - KeyError when a session edit names an unknown category.
    - An amount above the total outstanding balance is NOT truncated; the
      excess is reported in ``AllocationResult.unallocated`` and rejected
      by ``PaymentValidationRules``.

Usage:
    engine = FeeAllocationEngine()
    result = engine.auto_allocate(Money.of("3000", "NGN"), items)

    session = AllocationSession(items, Money.of("3000", "NGN"))
    session.set_amount("tuition", Money.of("500", "NGN"))   # auto mode off
    session.enable_auto()                                   # re-runs auto
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from bursar_engines.tracer import traced_engine
from bursar_kernel.domain.fees import FeeItem, PaymentAllocation
from bursar_kernel.domain.values import Currency, Money
from bursar_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class AllocationResult:
    """
    Outcome of an automatic allocation run.

    Guarantees:
        - ``total_allocated + unallocated == source_amount``.
        - ``allocations`` holds only positive amounts, in the items'
          original order.
    """

    source_amount: Money
    allocations: tuple[PaymentAllocation, ...]
    total_allocated: Money
    unallocated: Money

    @property
    def is_fully_allocated(self) -> bool:
        return self.unallocated.is_zero


class FeeAllocationEngine:
    """
    Priority-ordered greedy allocation of a payment across fee items.

    Contract:
        Pure function of (amount, items); deterministic for identical input.
    """

    @staticmethod
    def priority_order(items: Sequence[FeeItem]) -> list[FeeItem]:
        """Mandatory first, then larger balance first; stable on ties."""
        return sorted(items, key=lambda item: (not item.is_mandatory, -item.balance.amount))

    @traced_engine("fee_allocation", "1.0", fingerprint_fields=("amount", "items"))
    def auto_allocate(self, amount: Money, items: Sequence[FeeItem]) -> AllocationResult:
        """
        Allocate ``amount`` greedily over the positive-balance items.

        Args:
            amount: Total payment amount (>= 0).
            items: Fee items in display order; zero-balance items are skipped.

        Returns:
            AllocationResult; ``unallocated`` is positive when the amount
            exceeds the total outstanding balance.
        """
        if amount.is_negative:
            raise ValueError(f"Payment amount cannot be negative: {amount}")
        for item in items:
            if item.balance.currency != amount.currency:
                raise ValueError(
                    f"Currency mismatch: {item.balance.currency} vs {amount.currency}"
                )

        eligible = [item for item in items if item.has_balance]
        allocated: dict[str, Money] = {}
        remaining = amount
        for item in self.priority_order(eligible):
            if not remaining.is_positive:
                break
            share = remaining if remaining < item.balance else item.balance
            allocated[item.key] = share
            remaining = remaining - share

        allocations = tuple(
            PaymentAllocation.for_item(item, allocated[item.key])
            for item in eligible
            if item.key in allocated
        )
        total = amount - remaining
        result = AllocationResult(
            source_amount=amount,
            allocations=allocations,
            total_allocated=total,
            unallocated=remaining,
        )

        if remaining.is_positive:
            logger.warning(
                "allocation_exceeds_outstanding",
                extra={
                    "amount": str(amount.amount),
                    "unallocated": str(remaining.amount),
                    "currency": amount.currency.code,
                },
            )
        logger.info(
            "allocation_completed",
            extra={
                "amount": str(amount.amount),
                "currency": amount.currency.code,
                "item_count": len(eligible),
                "allocation_count": len(allocations),
            },
        )
        return result


class AllocationSession:
    """
    Mutable allocation state for one payment-capture session.

    Holds one allocated amount per positive-balance item, starts in
    automatic mode, and switches to manual mode on the first hand edit.
    Items are addressed by ``FeeItem.key`` or, when unambiguous, by
    ``category_id``.
    """

    def __init__(
        self,
        items: Sequence[FeeItem],
        payment_amount: Money | None = None,
        engine: FeeAllocationEngine | None = None,
    ):
        self._items = [item for item in items if item.has_balance]
        if payment_amount is not None:
            currency = payment_amount.currency
        elif self._items:
            currency = self._items[0].balance.currency
        else:
            raise ValueError("An allocation session needs a payment amount or fee items")
        self._currency: Currency = currency
        self._engine = engine or FeeAllocationEngine()
        self._payment_amount = payment_amount or Money.zero(currency)
        self._amounts: dict[str, Money] = {item.key: Money.zero(currency) for item in self._items}
        self._auto = True
        self._run_auto()

    # -- state ----------------------------------------------------------

    @property
    def auto_mode(self) -> bool:
        return self._auto

    @property
    def payment_amount(self) -> Money:
        return self._payment_amount

    @property
    def items(self) -> tuple[FeeItem, ...]:
        return tuple(self._items)

    @property
    def outstanding(self) -> Money:
        return Money.total((item.balance for item in self._items), self._currency)

    def allocated_amount(self, key: str) -> Money:
        return self._amounts[self._resolve(key).key]

    @property
    def allocations(self) -> tuple[PaymentAllocation, ...]:
        """Positive allocations only, in item order."""
        return tuple(
            PaymentAllocation.for_item(item, self._amounts[item.key])
            for item in self._items
            if self._amounts[item.key].is_positive
        )

    @property
    def total_allocated(self) -> Money:
        return Money.total(self._amounts.values(), self._currency)

    @property
    def remaining(self) -> Money:
        """Payment amount not yet allocated (negative when over-allocated)."""
        return self._payment_amount - self.total_allocated

    @property
    def is_valid(self) -> bool:
        return self._payment_amount.is_positive and self.total_allocated.is_close_to(
            self._payment_amount
        )

    # -- edits ----------------------------------------------------------

    def set_payment_amount(self, amount: Money) -> None:
        """Change the payment amount; re-allocates only in automatic mode."""
        if amount.is_negative:
            raise ValueError(f"Payment amount cannot be negative: {amount}")
        self._payment_amount = amount
        if self._auto:
            self._run_auto()

    def set_amount(self, key: str, amount: Money) -> Money:
        """Manually set one category's allocation, clamped to [0, balance].

        Leaves every other category untouched and switches off automatic
        mode.  Returns the amount actually stored.
        """
        item = self._resolve(key)
        if amount.is_negative:
            clamped = Money.zero(self._currency)
        elif amount > item.balance:
            clamped = item.balance
        else:
            clamped = amount
        if clamped != amount:
            logger.debug(
                "allocation_clamped",
                extra={
                    "category_id": item.category_id,
                    "requested": str(amount.amount),
                    "stored": str(clamped.amount),
                },
            )
        self._amounts[item.key] = clamped
        self._auto = False
        return clamped

    def max(self, key: str) -> Money:
        """Allocate one category's full balance without redistributing others."""
        item = self._resolve(key)
        return self.set_amount(item.key, item.balance)

    def clear(self) -> None:
        """Zero every allocation and leave automatic mode."""
        for key in self._amounts:
            self._amounts[key] = Money.zero(self._currency)
        self._auto = False

    def enable_auto(self) -> None:
        """Return to automatic mode and re-run allocation immediately."""
        self._auto = True
        self._run_auto()

    def disable_auto(self) -> None:
        self._auto = False

    # -- internals ------------------------------------------------------

    def _run_auto(self) -> None:
        result = self._engine.auto_allocate(self._payment_amount, self._items)
        for key in self._amounts:
            self._amounts[key] = Money.zero(self._currency)
        for allocation in result.allocations:
            self._amounts[allocation.key] = allocation.amount

    def _resolve(self, key: str) -> FeeItem:
        for item in self._items:
            if item.key == key:
                return item
        matches = [item for item in self._items if item.category_id == key]
        if len(matches) == 1:
            return matches[0]
        if not matches:
            raise KeyError(f"No outstanding fee item {key!r} in this session")
        raise KeyError(f"Category {key!r} is ambiguous across fee assignments; use the item key")
