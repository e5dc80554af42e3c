"""
Module: bursar_services
Responsibility:
    Stateful orchestration over the pure engines: recording fee payments,
    processing salary payments and their lifecycle, and the persistence
    and notification ports those flows are written against.

Architecture position:
    Services -- may import bursar_engines, bursar_kernel and bursar_config.
    Owns the write sequence and turns a failure between two writes into
    PartialCommitError.

Usage:
    from bursar_services import FeePaymentService, PayrollService, SqlAlchemyBursarStore
"""

from bursar_services.fee_payments import FeePaymentService, RecordedPayment, StudentBalance
from bursar_services.payroll import PayrollService
from bursar_services.ports import (
    FeeLedgerStore,
    LoggingNotifier,
    Notifier,
    SalaryPaymentStore,
    StaffFinanceStore,
)
from bursar_services.sqlalchemy_store import SqlAlchemyBursarStore

__all__ = [
    "FeeLedgerStore",
    "FeePaymentService",
    "LoggingNotifier",
    "Notifier",
    "PayrollService",
    "RecordedPayment",
    "SalaryPaymentStore",
    "SqlAlchemyBursarStore",
    "StaffFinanceStore",
    "StudentBalance",
]
