"""
Tests for lifecycle workflow definitions and the transition helper.
"""

import pytest

from bursar_engines import workflows
from bursar_engines.workflows import (
    FINANCIAL_ITEM_WORKFLOW,
    LOAN_WORKFLOW,
    SALARY_PAYMENT_WORKFLOW,
    transition,
)
from bursar_kernel.domain.workflow import Guard, Transition, Workflow
from bursar_kernel.exceptions import InvalidTransitionError


class TestSalaryPaymentWorkflow:

    def test_initial_state(self):
        assert SALARY_PAYMENT_WORKFLOW.initial_state == "pending"

    def test_actions_from_each_state(self):
        assert set(SALARY_PAYMENT_WORKFLOW.actions_from("pending")) == {"approve", "cancel"}
        assert set(SALARY_PAYMENT_WORKFLOW.actions_from("approved")) == {
            "mark_as_paid",
            "cancel",
        }
        assert SALARY_PAYMENT_WORKFLOW.actions_from("paid") == ()
        assert SALARY_PAYMENT_WORKFLOW.actions_from("cancelled") == ()

    def test_nothing_returns_to_pending(self):
        assert all(t.to_state != "pending" for t in SALARY_PAYMENT_WORKFLOW.transitions)

    def test_paid_cannot_go_back_to_approved(self):
        with pytest.raises(InvalidTransitionError):
            transition(SALARY_PAYMENT_WORKFLOW, "SalaryPayment", "sp-1", "paid", "approve")


class TestFinancialItemAndLoanWorkflows:

    def test_bonus_settles_once(self):
        assert transition(FINANCIAL_ITEM_WORKFLOW, "StaffBonus", "b-1", "pending", "settle") == (
            "paid"
        )
        with pytest.raises(InvalidTransitionError):
            transition(FINANCIAL_ITEM_WORKFLOW, "StaffBonus", "b-1", "paid", "settle")

    def test_loan_completion_is_guarded(self):
        found = LOAN_WORKFLOW.find_transition("active", "complete")
        assert found.to_state == "completed"
        assert found.guard.name == "loan_fully_repaid"

    def test_completed_loan_is_terminal(self):
        with pytest.raises(InvalidTransitionError):
            transition(LOAN_WORKFLOW, "StaffLoan", "loan-1", "completed", "complete")

    def test_every_declared_guard_is_attached(self):
        declared = {v for v in vars(workflows).values() if isinstance(v, Guard)}
        attached = {
            t.guard
            for wf in (SALARY_PAYMENT_WORKFLOW, FINANCIAL_ITEM_WORKFLOW, LOAN_WORKFLOW)
            for t in wf.transitions
            if t.guard is not None
        }
        assert declared == attached


class TestTransitionHelper:

    def test_logs_rejection(self, captured_logs):
        with pytest.raises(InvalidTransitionError) as exc:
            transition(SALARY_PAYMENT_WORKFLOW, "SalaryPayment", "sp-9", "pending", "mark_as_paid")
        assert exc.value.entity_id == "sp-9"
        assert exc.value.action == "mark_as_paid"
        rejected = [r for r in captured_logs() if r["message"] == "invalid_transition"]
        assert rejected[0]["workflow"] == "salary_payment"


class TestWorkflowDefinition:
    """Construction-time checks on workflow data."""

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="w",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )

    def test_duplicate_action_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="w",
                description="",
                initial_state="a",
                states=("a", "b", "c"),
                transitions=(
                    Transition("a", "b", action="go"),
                    Transition("a", "c", action="go"),
                ),
            )

    def test_terminal_state_with_exit_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="w",
                description="",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("b", "a", action="back"),),
                terminal_states=("b",),
            )
