"""
Module: bursar_engines
Responsibility:
    Package entrypoint re-exporting the public symbols of the calculation
    engines.  This is the import surface for ``bursar_services``.

Architecture position:
    Engines -- calculation layer, zero writes.
    May import bursar_kernel and bursar_config.schema.
    MUST NOT import bursar_services.

Invariants enforced:
    - Purity: engines NEVER read the clock; dates are passed in.
    - Decimal-only arithmetic through ``Money``.
    - Determinism: identical inputs always produce identical outputs
      (payment references excepted).

Audit relevance:
    Engine entry points are wrapped by ``@traced_engine`` and emit
    BURSAR_ENGINE_TRACE records with an input fingerprint and duration.

Usage:
    from bursar_engines import FeeAllocationEngine, TableStatutoryCalculator
"""

from bursar_engines.allocation import (
    AllocationResult,
    AllocationSession,
    FeeAllocationEngine,
)
from bursar_engines.balance import (
    CategoryBalance,
    OutstandingBalanceAggregator,
    QuickAmount,
)
from bursar_engines.financial_items import (
    FinancialItemResolver,
    FinancialItemSource,
    LoanInstallment,
    ResolvedItems,
)
from bursar_engines.payroll import (
    PayrollComputation,
    PayrollComputationEngine,
    PayrollSummary,
    generate_fee_payment_reference,
    generate_salary_reference,
    is_statutory_deduction,
)
from bursar_engines.statutory import (
    PayeBreakdown,
    StatutoryDeductionCalculator,
    TableStatutoryCalculator,
    TaxBandSlice,
)
from bursar_engines.tracer import traced_engine
from bursar_engines.validation import PaymentValidationRules
from bursar_engines.workflows import (
    FINANCIAL_ITEM_WORKFLOW,
    LOAN_WORKFLOW,
    SALARY_PAYMENT_WORKFLOW,
    transition,
)

__all__ = [
    "AllocationResult",
    "AllocationSession",
    "CategoryBalance",
    "FINANCIAL_ITEM_WORKFLOW",
    "FeeAllocationEngine",
    "FinancialItemResolver",
    "FinancialItemSource",
    "LOAN_WORKFLOW",
    "LoanInstallment",
    "OutstandingBalanceAggregator",
    "PayeBreakdown",
    "PaymentValidationRules",
    "PayrollComputation",
    "PayrollComputationEngine",
    "PayrollSummary",
    "QuickAmount",
    "ResolvedItems",
    "SALARY_PAYMENT_WORKFLOW",
    "StatutoryDeductionCalculator",
    "TableStatutoryCalculator",
    "TaxBandSlice",
    "generate_fee_payment_reference",
    "generate_salary_reference",
    "is_statutory_deduction",
    "traced_engine",
    "transition",
]
