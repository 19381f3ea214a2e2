"""Tests for the pure transition resolver"""
import pytest

from foundation_ops.domain.enums import (
    ApprovalAction, ApprovalDecision, ApprovalMode, DecisionType, InstanceStatus, StepOutcome, WorkflowKind
)
from foundation_ops.domain.errors import IllegalTransitionError, InvalidDecisionError, PermissionDeniedError
from foundation_ops.domain.models import ApprovalStepState, Reason, WorkflowInstance
from foundation_ops.engine.definitions import REGISTRATION_DEFINITION
from foundation_ops.engine.transition_resolver import TransitionResolver


@pytest.fixture
def resolver() -> TransitionResolver:
    return TransitionResolver()


@pytest.fixture
def instance() -> WorkflowInstance:
    return WorkflowInstance(instance_id="WFI-test", definition_kind=WorkflowKind.REGISTRATION)


def chain_instance(mode: ApprovalMode, *actions: ApprovalAction) -> WorkflowInstance:
    return WorkflowInstance(
        instance_id="WFI-chain",
        definition_kind=WorkflowKind.DOCUMENT_APPROVAL,
        approval_mode=mode,
        approval_steps=[
            ApprovalStepState(index=i, name=f"Step {i}", assignee=f"u-{i}", action=action)
            for i, action in enumerate(actions, start=1)
        ],
    )


# =============================================================================
# Advance / reject / retreat
# =============================================================================

def test_passing_step_merges_input_and_moves_on(resolver, instance, basic_info):
    updated, evaluation = resolver.advance(instance, REGISTRATION_DEFINITION, basic_info, "u-admin")

    assert evaluation.passed
    assert updated.current_step_index == 2
    assert updated.status == InstanceStatus.IN_PROGRESS
    assert updated.data == basic_info
    assert [r.outcome for r in updated.history] == [StepOutcome.PASS]
    assert updated.history[0].actor_id == "u-admin"
    assert instance.current_step_index == 1


def test_failing_step_blocks_and_keeps_data(resolver, instance):
    updated, evaluation = resolver.advance(instance, REGISTRATION_DEFINITION, {"foundation_name": "Stiftelsen"})

    assert not evaluation.passed
    assert updated.status == InstanceStatus.BLOCKED
    assert updated.current_step_index == 1
    assert updated.data == {}
    assert updated.history[0].outcome == StepOutcome.FAIL
    assert len(updated.history[0].reasons) == 2


def test_terminal_step_completes(resolver):
    at_last = WorkflowInstance(
        instance_id="WFI-last", definition_kind=WorkflowKind.REGISTRATION, current_step_index=7
    )

    updated, _ = resolver.advance(at_last, REGISTRATION_DEFINITION, {"submission_reference": "LST-2025-001"})

    assert updated.status == InstanceStatus.COMPLETED
    assert updated.current_step_index == 8
    assert updated.completed_at is not None


def test_terminal_instances_do_not_move(resolver, instance):
    rejected = resolver.reject(instance, Reason(code="REJECTED_BY_OPERATOR", message="Duplicate"))

    assert rejected.status == InstanceStatus.REJECTED
    with pytest.raises(IllegalTransitionError):
        resolver.advance(rejected, REGISTRATION_DEFINITION, {})
    with pytest.raises(IllegalTransitionError):
        resolver.reject(rejected, Reason(code="X", message="again"))
    with pytest.raises(IllegalTransitionError):
        resolver.retreat(rejected)


def test_retreat(resolver, instance, basic_info):
    advanced, _ = resolver.advance(instance, REGISTRATION_DEFINITION, basic_info)

    back = resolver.retreat(advanced)

    assert back.current_step_index == 1
    assert back.status == InstanceStatus.IN_PROGRESS
    assert len(back.history) == 1
    with pytest.raises(IllegalTransitionError):
        resolver.retreat(back)


def test_history_orders_by_step_then_time(resolver, instance, basic_info):
    advanced, _ = resolver.advance(instance, REGISTRATION_DEFINITION, basic_info)
    blocked, _ = resolver.advance(advanced, REGISTRATION_DEFINITION, {})
    back = resolver.retreat(blocked)
    again, _ = resolver.advance(back, REGISTRATION_DEFINITION, {})

    assert [r.seq for r in again.history] == [1, 2, 3]
    assert [(r.step_index, r.seq) for r in again.ordered_history()] == [(1, 1), (1, 3), (2, 2)]


def test_chains_do_not_advance(resolver):
    with pytest.raises(IllegalTransitionError):
        resolver.advance(chain_instance(ApprovalMode.SEQUENTIAL, ApprovalAction.APPROVE), REGISTRATION_DEFINITION, {})


# =============================================================================
# Approval decisions
# =============================================================================

def test_sequential_chain_only_accepts_current_step(resolver):
    chain = chain_instance(ApprovalMode.SEQUENTIAL, ApprovalAction.APPROVE, ApprovalAction.APPROVE)

    with pytest.raises(InvalidDecisionError):
        resolver.check_decision(chain, 2, "u-2", DecisionType.APPROVE)
    resolver.check_decision(chain, 1, "u-1", DecisionType.APPROVE)


def test_parallel_chain_accepts_any_order(resolver):
    chain = chain_instance(ApprovalMode.PARALLEL, ApprovalAction.APPROVE, ApprovalAction.APPROVE)

    resolver.check_decision(chain, 2, "u-2", DecisionType.APPROVE)
    updated = resolver.apply_decision(chain, 2, DecisionType.APPROVE, "u-2")

    assert updated.status == InstanceStatus.IN_PROGRESS
    assert updated.current_step_index == 1


def test_only_the_assignee_may_decide(resolver):
    chain = chain_instance(ApprovalMode.SEQUENTIAL, ApprovalAction.APPROVE)

    with pytest.raises(PermissionDeniedError):
        resolver.check_decision(chain, 1, "u-2", DecisionType.APPROVE)


@pytest.mark.parametrize("action, decision", [
    (ApprovalAction.APPROVE, DecisionType.SIGN),
    (ApprovalAction.REVIEW, DecisionType.SIGN),
    (ApprovalAction.SIGN, DecisionType.APPROVE),
])
def test_decision_must_match_action(resolver, action, decision):
    with pytest.raises(InvalidDecisionError):
        resolver.check_decision(chain_instance(ApprovalMode.SEQUENTIAL, action), 1, "u-1", decision)


def test_unknown_and_decided_steps(resolver):
    chain = chain_instance(ApprovalMode.PARALLEL, ApprovalAction.APPROVE, ApprovalAction.APPROVE)
    decided = resolver.apply_decision(chain, 1, DecisionType.APPROVE, "u-1")

    with pytest.raises(InvalidDecisionError):
        resolver.check_decision(decided, 3, "u-3", DecisionType.APPROVE)
    with pytest.raises(InvalidDecisionError):
        resolver.check_decision(decided, 1, "u-1", DecisionType.APPROVE)


def test_reject_ends_chain_and_leaves_pending_steps(resolver):
    chain = chain_instance(
        ApprovalMode.SEQUENTIAL, ApprovalAction.APPROVE, ApprovalAction.APPROVE, ApprovalAction.APPROVE
    )
    chain = resolver.apply_decision(chain, 1, DecisionType.APPROVE, "u-1")
    chain = resolver.apply_decision(chain, 2, DecisionType.REJECT, "u-2", comment="Wrong figures")

    assert chain.status == InstanceStatus.REJECTED
    assert chain.rejection_reason.code == "REJECTED_BY_APPROVER"
    assert chain.rejection_reason.message == "Wrong figures"
    assert chain.approval_step(3).decision == ApprovalDecision.PENDING
    with pytest.raises(IllegalTransitionError):
        resolver.check_decision(chain, 3, "u-3", DecisionType.APPROVE)


def test_all_decided_completes_chain(resolver):
    chain = chain_instance(ApprovalMode.SEQUENTIAL, ApprovalAction.REVIEW, ApprovalAction.APPROVE)
    chain = resolver.apply_decision(chain, 1, DecisionType.APPROVE, "u-1")
    chain = resolver.apply_decision(chain, 2, DecisionType.APPROVE, "u-2")

    assert chain.status == InstanceStatus.COMPLETED
    assert chain.current_step_index == 3
    assert chain.approval_step(1).decided_by == "u-1"
    assert len(chain.history) == 2
