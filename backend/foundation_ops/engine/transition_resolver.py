"""Transition Resolver - Pure state machine over workflow instances"""
from typing import Any, Dict, Optional, Tuple

from ..domain.models import (
    WorkflowInstance, StepResult, StepEvaluation, Reason, DigitalSignatureRecord
)
from ..domain.enums import (
    InstanceStatus, StepOutcome, ApprovalAction, ApprovalDecision, ApprovalMode, DecisionType
)
from ..domain.errors import IllegalTransitionError, InvalidDecisionError, PermissionDeniedError
from ..utils.time import utc_now
from ..utils.logger import get_logger
from .definitions import WorkflowDefinition

logger = get_logger(__name__)


_ACCEPTED_DECISIONS = {
    ApprovalAction.REVIEW: {DecisionType.APPROVE, DecisionType.REJECT},
    ApprovalAction.APPROVE: {DecisionType.APPROVE, DecisionType.REJECT},
    ApprovalAction.SIGN: {DecisionType.SIGN, DecisionType.REJECT},
}

_RECORDED_AS = {
    DecisionType.APPROVE: ApprovalDecision.APPROVED,
    DecisionType.SIGN: ApprovalDecision.SIGNED,
    DecisionType.REJECT: ApprovalDecision.REJECTED,
}


class TransitionResolver:
    """
    Compute the next state of an instance

    Every method takes an instance and returns a new one; nothing here
    loads, saves or calls out. Version bumps belong to the store.

    Status machine:
    - in_progress -> in_progress (step passed) | blocked (step failed)
      | completed (terminal or last step passed) | rejected
    - blocked -> in_progress (retry passed, or retreat) | blocked | rejected
    - completed, rejected -> nothing
    """

    def advance(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        step_input: Dict[str, Any],
        actor_id: Optional[str] = None
    ) -> Tuple[WorkflowInstance, StepEvaluation]:
        """
        Run the current step's guard against data merged with input

        On pass the input is merged and the index moves forward; on fail the
        data is left untouched and the instance is blocked. Both append a
        StepResult.

        Raises:
            IllegalTransitionError: Terminal instance or approval chain
        """
        self._require_open(instance, "advance")
        if instance.is_approval_chain:
            raise IllegalTransitionError(
                "Approval chains move only by decisions",
                details={"instance_id": instance.instance_id}
            )

        step = definition.step(instance.current_step_index)
        if step is None:
            raise IllegalTransitionError(
                f"No step {instance.current_step_index} to advance past",
                details={"instance_id": instance.instance_id}
            )

        merged = {**instance.data, **step_input}
        evaluation = step.guard(merged)
        now = utc_now()

        result = StepResult(
            seq=instance.next_seq(),
            step_index=step.index,
            outcome=StepOutcome.PASS if evaluation.passed else StepOutcome.FAIL,
            reasons=evaluation.reasons,
            checks=evaluation.checks,
            actor_id=actor_id,
            timestamp=now,
        )
        history = [*instance.history, result]

        if not evaluation.passed:
            return instance.model_copy(update={
                "status": InstanceStatus.BLOCKED,
                "history": history,
                "updated_at": now,
            }), evaluation

        next_index = step.index + 1
        finished = step.terminal or next_index > len(definition)
        update: Dict[str, Any] = {
            "data": merged,
            "history": history,
            "current_step_index": next_index,
            "status": InstanceStatus.COMPLETED if finished else InstanceStatus.IN_PROGRESS,
            "updated_at": now,
        }
        if finished:
            update["completed_at"] = now
        return instance.model_copy(update=update), evaluation

    def reject(self, instance: WorkflowInstance, reason: Reason) -> WorkflowInstance:
        """
        Raises:
            IllegalTransitionError: Instance already completed or rejected
        """
        self._require_open(instance, "reject")
        return instance.model_copy(update={
            "status": InstanceStatus.REJECTED,
            "rejection_reason": reason,
            "updated_at": utc_now(),
        })

    def retreat(self, instance: WorkflowInstance) -> WorkflowInstance:
        """
        Raises:
            IllegalTransitionError: Terminal instance, approval chain, or already at step 1
        """
        self._require_open(instance, "retreat")
        if instance.is_approval_chain:
            raise IllegalTransitionError(
                "Approval chains cannot retreat",
                details={"instance_id": instance.instance_id}
            )
        if instance.current_step_index <= 1:
            raise IllegalTransitionError(
                "Cannot retreat from the first step",
                details={"instance_id": instance.instance_id}
            )
        return instance.model_copy(update={
            "current_step_index": instance.current_step_index - 1,
            "status": InstanceStatus.IN_PROGRESS,
            "updated_at": utc_now(),
        })

    # =========================================================================
    # Approval decisions
    # =========================================================================

    def check_decision(
        self,
        instance: WorkflowInstance,
        step_index: int,
        actor_id: str,
        decision: DecisionType
    ) -> None:
        """
        Raises:
            IllegalTransitionError: Chain already completed or rejected
            InvalidDecisionError: Unknown or decided step, out-of-turn step,
                or a decision the step's action does not accept
            PermissionDeniedError: Actor is not the step's assignee
        """
        self._require_open(instance, "decide")

        step = instance.approval_step(step_index)
        if step is None:
            raise InvalidDecisionError(
                f"Approval step {step_index} does not exist",
                details={"instance_id": instance.instance_id, "step_index": step_index}
            )
        if step.assignee != actor_id:
            raise PermissionDeniedError(
                f"Approval step {step_index} is assigned to someone else",
                details={"instance_id": instance.instance_id, "step_index": step_index}
            )
        if not step.is_pending:
            raise InvalidDecisionError(
                f"Approval step {step_index} was already decided",
                details={"decision": step.decision.value}
            )
        if instance.approval_mode == ApprovalMode.SEQUENTIAL and step_index != instance.current_step_index:
            raise InvalidDecisionError(
                f"Step {step_index} is not the current step",
                details={"current_step_index": instance.current_step_index}
            )
        if decision not in _ACCEPTED_DECISIONS[step.action]:
            raise InvalidDecisionError(
                f"A {step.action.value} step does not accept {decision.value}",
                details={"accepted": sorted(d.value for d in _ACCEPTED_DECISIONS[step.action])}
            )

    def apply_decision(
        self,
        instance: WorkflowInstance,
        step_index: int,
        decision: DecisionType,
        actor_id: str,
        comment: Optional[str] = None,
        signature: Optional[DigitalSignatureRecord] = None
    ) -> WorkflowInstance:
        """
        Record a checked decision and settle the chain's status

        Any reject ends the chain as rejected; once every step is approved
        or signed it is completed. Pending steps stay pending either way.
        """
        now = utc_now()
        steps = []
        for step in instance.approval_steps:
            if step.index == step_index:
                step = step.model_copy(update={
                    "decision": _RECORDED_AS[decision],
                    "comment": comment,
                    "decided_by": actor_id,
                    "decided_at": now,
                })
            steps.append(step)

        rejected = decision == DecisionType.REJECT
        reasons = [Reason(code="REJECTED_BY_APPROVER", message=comment or "Rejected")] if rejected else []
        history = [*instance.history, StepResult(
            seq=instance.next_seq(),
            step_index=step_index,
            outcome=StepOutcome.FAIL if rejected else StepOutcome.PASS,
            reasons=reasons,
            actor_id=actor_id,
            timestamp=now,
        )]

        update: Dict[str, Any] = {
            "approval_steps": steps,
            "history": history,
            "updated_at": now,
        }
        if signature is not None:
            update["signatures"] = [*instance.signatures, signature]

        pending = [s.index for s in steps if s.is_pending]
        if rejected:
            update["status"] = InstanceStatus.REJECTED
            update["rejection_reason"] = reasons[0]
        elif not pending:
            update["status"] = InstanceStatus.COMPLETED
            update["current_step_index"] = len(steps) + 1
            update["completed_at"] = now
        else:
            update["status"] = InstanceStatus.IN_PROGRESS
            update["current_step_index"] = min(pending)

        return instance.model_copy(update=update)

    def _require_open(self, instance: WorkflowInstance, operation: str) -> None:
        if instance.is_terminal:
            raise IllegalTransitionError(
                f"Cannot {operation} a {instance.status.value} instance",
                details={"instance_id": instance.instance_id, "status": instance.status.value}
            )
