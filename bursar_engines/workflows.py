"""Lifecycle Workflows.

State machines for salary payments, bonuses/penalties and staff loans,
plus the single ``transition`` helper every service uses to move a record
between states.
"""

from bursar_kernel.domain.workflow import Guard, Transition, Workflow
from bursar_kernel.exceptions import InvalidTransitionError
from bursar_kernel.logging_config import get_logger

logger = get_logger("engines.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

LOAN_FULLY_REPAID = Guard(
    name="loan_fully_repaid",
    description="Loan remaining balance has reached zero",
)


# -----------------------------------------------------------------------------
# Salary Payment Workflow
# -----------------------------------------------------------------------------

SALARY_PAYMENT_WORKFLOW = Workflow(
    name="salary_payment",
    description="Salary payment lifecycle: pending -> approved -> paid, cancellable until paid",
    initial_state="pending",
    states=("pending", "approved", "paid", "cancelled"),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("approved", "paid", action="mark_as_paid"),
        Transition("pending", "cancelled", action="cancel"),
        Transition("approved", "cancelled", action="cancel"),
    ),
    terminal_states=("paid", "cancelled"),
)


# -----------------------------------------------------------------------------
# Bonus / Penalty Workflow
# -----------------------------------------------------------------------------

FINANCIAL_ITEM_WORKFLOW = Workflow(
    name="financial_item",
    description="Bonus or penalty: settled through payroll or cancelled, once",
    initial_state="pending",
    states=("pending", "paid", "cancelled"),
    transitions=(
        Transition("pending", "paid", action="settle"),
        Transition("pending", "cancelled", action="cancel"),
    ),
    terminal_states=("paid", "cancelled"),
)


# -----------------------------------------------------------------------------
# Staff Loan Workflow
# -----------------------------------------------------------------------------

LOAN_WORKFLOW = Workflow(
    name="staff_loan",
    description="Staff loan: active until repaid, defaulted or cancelled",
    initial_state="active",
    states=("active", "completed", "defaulted", "cancelled"),
    transitions=(
        Transition("active", "completed", action="complete", guard=LOAN_FULLY_REPAID),
        Transition("active", "defaulted", action="default"),
        Transition("active", "cancelled", action="cancel"),
    ),
    terminal_states=("completed", "cancelled"),
)


def transition(
    workflow: Workflow,
    entity_type: str,
    entity_id: str,
    current_state: str,
    action: str,
) -> str:
    """Return the state reached by ``action`` or raise.

    Raises:
        InvalidTransitionError: ``action`` is not legal from ``current_state``.
    """
    found = workflow.find_transition(current_state, action)
    if found is None:
        logger.warning(
            "invalid_transition",
            extra={
                "workflow": workflow.name,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "action": action,
            },
        )
        raise InvalidTransitionError(entity_type, entity_id, current_state, action)
    return found.to_state
