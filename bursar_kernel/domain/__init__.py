"""
Pure domain layer.

Value objects and domain types with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the Clock abstraction itself)
- I/O

All domain objects are immutable and deterministic.
"""

from bursar_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from bursar_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from bursar_kernel.domain.fees import (
    FeeAssignment,
    FeeAssignmentStatus,
    FeeItem,
    FeePaymentMethod,
    Payment,
    PaymentAllocation,
)
from bursar_kernel.domain.payroll import (
    FinancialItemStatus,
    LineOrigin,
    LineSource,
    LoanRepayment,
    LoanStatus,
    PaymentAllowance,
    PaymentDeduction,
    PayrollDraft,
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
from bursar_kernel.domain.values import Currency, Money
from bursar_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DeterministicClock",
    "FeeAssignment",
    "FeeAssignmentStatus",
    "FeeItem",
    "FeePaymentMethod",
    "FinancialItemStatus",
    "Guard",
    "LineOrigin",
    "LineSource",
    "LoanRepayment",
    "LoanStatus",
    "Money",
    "Payment",
    "PaymentAllocation",
    "PaymentAllowance",
    "PaymentDeduction",
    "PayrollDraft",
    "SalaryPayment",
    "SalaryPaymentMethod",
    "SalaryPaymentStatus",
    "StaffBonus",
    "StaffLoan",
    "StaffMember",
    "StaffPenalty",
    "StandingAllowance",
    "StatutoryDeductions",
    "SystemClock",
    "Transition",
    "Workflow",
]
