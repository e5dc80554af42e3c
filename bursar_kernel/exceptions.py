"""
Typed Exception Hierarchy for the Bursar computation core.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (UI handlers, batch jobs) must react differently to a form the user
can correct, a blocked state transition, and a half-written payment that an
operator has to reconcile. Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BursarError (base)
    |
    +-- ValidationError                 caller-correctable, reported per field
    |   +-- AllocationMismatchError
    |   +-- OverpaymentError
    |
    +-- StateError                      single blocking error
    |   +-- InvalidTransitionError
    |   +-- DuplicatePeriodError
    |
    +-- PartialCommitError              first write succeeded, second failed
    |
    +-- UpstreamError                   persistence unreachable / malformed

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                 | When Raised
------------|----------------------|--------------------------------------------
Validation  | VALIDATION_FAILED    | Payroll business rule or line item invalid
            | ALLOCATION_MISMATCH  | Sum of allocations != payment amount
            | OVERPAYMENT          | Payment exceeds total outstanding balance
------------|----------------------|--------------------------------------------
State       | INVALID_TRANSITION   | e.g. pending -> paid, paid -> approved
            | DUPLICATE_PERIOD     | Second live salary payment for staff/period
------------|----------------------|--------------------------------------------
Commit      | PARTIAL_COMMIT       | Payment stored, follow-up write failed
------------|----------------------|--------------------------------------------
Upstream    | UPSTREAM_ERROR       | Store unreachable or returned bad data

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        service.record_payment(...)
    except ValidationError as e:
        show_field_errors(e.field_errors)
    except PartialCommitError as e:
        # Do NOT retry blindly: the payment exists, balances were not updated.
        open_reconciliation_ticket(e.record_id, e.failed_step)
"""

from __future__ import annotations


class BursarError(Exception):
    """
    Base exception for all Bursar errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BURSAR_ERROR"


# Validation


class ValidationError(BursarError):
    """
    One or more caller-correctable rules failed.

    ``field_errors`` maps a field key (``"payment_method"``,
    ``"allowance_0_amount"``, ``"general"``) to a human readable message.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(self, field_errors: dict[str, str], message: str | None = None):
        self.field_errors = dict(field_errors)
        if message is None:
            message = "; ".join(f"{k}: {v}" for k, v in self.field_errors.items())
        super().__init__(message)


class AllocationMismatchError(ValidationError):
    """Allocations do not sum to the payment amount within tolerance."""

    code: str = "ALLOCATION_MISMATCH"

    def __init__(self, payment_amount: str, total_allocated: str, currency: str):
        self.payment_amount = payment_amount
        self.total_allocated = total_allocated
        self.currency = currency
        super().__init__(
            {
                "allocations": (
                    f"Total allocation {total_allocated} {currency} must equal "
                    f"payment amount {payment_amount} {currency}"
                ),
            }
        )


class OverpaymentError(ValidationError):
    """Payment amount exceeds the student's total outstanding balance."""

    code: str = "OVERPAYMENT"

    def __init__(self, payment_amount: str, outstanding: str, currency: str):
        self.payment_amount = payment_amount
        self.outstanding = outstanding
        self.currency = currency
        super().__init__(
            {
                "amount": (
                    f"Amount {payment_amount} {currency} cannot exceed "
                    f"outstanding balance of {outstanding} {currency}"
                ),
            }
        )


# State


class StateError(BursarError):
    """Base exception for lifecycle/state violations."""

    code: str = "STATE_ERROR"


class InvalidTransitionError(StateError):
    """Requested action is not a legal transition from the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, current_state: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in state '{current_state}'"
        )


class DuplicatePeriodError(StateError):
    """A live (non-cancelled) salary payment already exists for the period."""

    code: str = "DUPLICATE_PERIOD"

    def __init__(
        self,
        staff_id: str,
        month: int,
        year: int,
        existing_status: str | None = None,
        existing_reference: str | None = None,
    ):
        self.staff_id = staff_id
        self.month = month
        self.year = year
        self.existing_status = existing_status
        self.existing_reference = existing_reference
        detail = ""
        if existing_status or existing_reference:
            detail = f" (Status: {existing_status}. Reference: {existing_reference})"
        super().__init__(
            f"Salary payment already exists for staff {staff_id} in "
            f"{month:02d}/{year}{detail}"
        )


# Commit


class PartialCommitError(BursarError):
    """
    A record was persisted but a dependent write failed.

    Naive retry can double-apply the first write, so the error is flagged
    non-retryable and must go to an operator for reconciliation.
    """

    code: str = "PARTIAL_COMMIT"
    retryable: bool = False

    def __init__(self, record_type: str, record_id: str, failed_step: str, reason: str):
        self.record_type = record_type
        self.record_id = record_id
        self.failed_step = failed_step
        self.reason = reason
        super().__init__(
            f"{record_type} {record_id} was committed but '{failed_step}' failed: {reason}"
        )


# Upstream


class UpstreamError(BursarError):
    """Persistence collaborator unreachable or returned malformed data."""

    code: str = "UPSTREAM_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Upstream failure during {operation}: {reason}")
