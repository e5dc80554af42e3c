"""SQLAlchemy ORM models.  Importing this package registers every table."""

from bursar_kernel.models.fees import (
    FeeAssignmentModel,
    FeeItemModel,
    FeePaymentAllocationModel,
    FeePaymentModel,
)
from bursar_kernel.models.payroll import (
    LoanRepaymentModel,
    SalaryPaymentLineModel,
    SalaryPaymentModel,
    StaffBonusModel,
    StaffLoanModel,
    StaffMemberModel,
    StaffPenaltyModel,
    StandingAllowanceModel,
)

__all__ = [
    "FeeAssignmentModel",
    "FeeItemModel",
    "FeePaymentAllocationModel",
    "FeePaymentModel",
    "LoanRepaymentModel",
    "SalaryPaymentLineModel",
    "SalaryPaymentModel",
    "StaffBonusModel",
    "StaffLoanModel",
    "StaffMemberModel",
    "StaffPenaltyModel",
    "StandingAllowanceModel",
]
