"""Translates engine transitions into audit events"""
from typing import Any, Dict, Optional

from ..domain.models import AuditEvent, UserSnapshot, ActorContext, WorkflowInstance, StepEvaluation
from ..domain.enums import AuditEventType, DecisionType, SideEffectKind
from ..repositories.audit_repo import AuditRepository
from ..utils.idgen import generate_audit_event_id
from ..utils.time import utc_now
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)

SYSTEM_ACTOR = UserSnapshot(user_id="system", display_name="System")


class AuditWriter:
    """
    One event per persisted transition, plus ACCESS_DENIED for refused callers

    Events without an actor (side-effect completions from the processor) are
    attributed to the system actor.
    """

    def __init__(self, repo: Optional[AuditRepository] = None):
        self.repo = repo or AuditRepository()

    def write_event(
        self,
        instance_id: str,
        event_type: AuditEventType,
        actor: Optional[ActorContext] = None,
        step_index: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Snapshot the actor as they are now and append the event"""
        snapshot = SYSTEM_ACTOR
        if actor is not None:
            snapshot = UserSnapshot(
                user_id=actor.user_id,
                display_name=actor.display_name,
                role_at_time=actor.role or None,
            )

        event = AuditEvent(
            audit_event_id=generate_audit_event_id(),
            instance_id=instance_id,
            step_index=step_index,
            event_type=event_type,
            actor=snapshot,
            details=details or {},
            timestamp=utc_now(),
            correlation_id=correlation_id or get_correlation_id(),
        )
        return self.repo.create_event(event)

    def write_started(self, instance: WorkflowInstance, actor: ActorContext) -> AuditEvent:
        return self.write_event(
            instance_id=instance.instance_id,
            event_type=AuditEventType.WORKFLOW_STARTED,
            actor=actor,
            step_index=instance.current_step_index,
            details={"kind": instance.definition_kind.value},
        )

    def write_step_result(
        self,
        instance: WorkflowInstance,
        step_index: int,
        evaluation: StepEvaluation,
        actor: ActorContext
    ) -> AuditEvent:
        """Step passed or failed; a pass that finished the run is also written as completed"""
        event = self.write_event(
            instance_id=instance.instance_id,
            event_type=AuditEventType.STEP_PASSED if evaluation.passed else AuditEventType.STEP_FAILED,
            actor=actor,
            step_index=step_index,
            details={"reasons": [r.model_dump() for r in evaluation.reasons]} if evaluation.reasons else {},
        )
        if instance.is_terminal:
            self.write_completed(instance, actor)
        return event

    def write_completed(self, instance: WorkflowInstance, actor: Optional[ActorContext]) -> AuditEvent:
        return self.write_event(
            instance_id=instance.instance_id,
            event_type=AuditEventType.COMPLETED,
            actor=actor,
            details={"status": instance.status.value},
        )

    def write_retreated(self, instance: WorkflowInstance, from_step: int, actor: ActorContext) -> AuditEvent:
        return self.write_event(
            instance_id=instance.instance_id,
            event_type=AuditEventType.RETREATED,
            actor=actor,
            step_index=instance.current_step_index,
            details={"from_step": from_step},
        )

    def write_rejected(self, instance: WorkflowInstance, actor: ActorContext) -> AuditEvent:
        reason = instance.rejection_reason
        return self.write_event(
            instance_id=instance.instance_id,
            event_type=AuditEventType.REJECTED,
            actor=actor,
            step_index=instance.current_step_index,
            details={"reason": reason.model_dump() if reason else None},
        )

    def write_decision(
        self,
        instance: WorkflowInstance,
        step_index: int,
        decision: DecisionType,
        actor: ActorContext,
        comment: Optional[str] = None
    ) -> AuditEvent:
        return self.write_event(
            instance_id=instance.instance_id,
            event_type=AuditEventType.DECISION_RECORDED,
            actor=actor,
            step_index=step_index,
            details={"decision": decision.value, "comment": comment, "status": instance.status.value},
        )

    def write_signature(self, instance: WorkflowInstance, step_index: int, signature_id: str, actor: ActorContext) -> AuditEvent:
        return self.write_event(
            instance_id=instance.instance_id,
            event_type=AuditEventType.SIGNATURE_RECORDED,
            actor=actor,
            step_index=step_index,
            details={"signature_id": signature_id},
        )

    def write_side_effect(
        self,
        instance_id: str,
        step_index: int,
        event_type: AuditEventType,
        kind: SideEffectKind,
        actor: Optional[ActorContext] = None,
        error: Optional[str] = None
    ) -> AuditEvent:
        details: Dict[str, Any] = {"kind": kind.value}
        if error:
            details["error"] = error
        return self.write_event(
            instance_id=instance_id,
            event_type=event_type,
            actor=actor,
            step_index=step_index,
            details=details,
        )

    def write_access_denied(self, instance_id: str, actor: ActorContext, screen: str) -> AuditEvent:
        return self.write_event(
            instance_id=instance_id,
            event_type=AuditEventType.ACCESS_DENIED,
            actor=actor,
            details={"screen": screen, "role": actor.role},
        )
