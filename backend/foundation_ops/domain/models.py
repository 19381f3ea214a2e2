"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict

from .enums import (
    Screen, WorkflowKind, InstanceStatus, StepOutcome, CheckOutcome, ComplianceCheckKind, ConditionOperator,
    SideEffectKind, SideEffectStatus, OutboxStatus, ApprovalAction, ApprovalDecision,
    ApprovalMode, SignatureMethod, AuditEventType, TERMINAL_STATUSES
)
from .errors import DomainError


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# User & Identity
# ============================================================================

class ActorContext(BaseModel):
    """Current actor context from the identity provider's token"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="Subject identifier")
    email: Optional[EmailStr] = Field(None, description="User email")
    display_name: str = Field(..., description="User display name")
    role: str = Field("", description="Role claim, trusted as supplied")


class UserSnapshot(BaseModel):
    """Snapshot of actor identity at a point in time"""
    model_config = ConfigDict(extra="forbid")

    user_id: str
    display_name: Optional[str] = None
    role_at_time: Optional[str] = Field(None, description="Role when snapshot was taken")


# ============================================================================
# Authorization projections
# ============================================================================

class MenuItem(BaseModel):
    """Navigation entry gated behind a screen"""
    model_config = ConfigDict(frozen=True)

    name: str
    href: str
    screen: Screen


class GovernanceRestrictions(BaseModel):
    """Governance sub-features hidden from a role"""
    model_config = ConfigDict(frozen=True)

    hide_role_management: bool = False
    hide_document_workflows: bool = False
    hide_role_based_access_control: bool = False


class RouteDecision(BaseModel):
    """Outcome of a route guard check"""
    model_config = ConfigDict(frozen=True)

    screen: str
    admitted: bool
    redirect_to: Optional[Screen] = None


# ============================================================================
# Validation
# ============================================================================

class Reason(BaseModel):
    """Typed reason a check or step failed"""
    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class ComplianceCheck(BaseModel):
    """Result of one compliance sub-check"""
    model_config = ConfigDict(frozen=True)

    kind: ComplianceCheckKind
    outcome: CheckOutcome
    detail: str
    checked_at: datetime = Field(default_factory=_now)

    @property
    def passed(self) -> bool:
        return self.outcome == CheckOutcome.PASSED


class Condition(BaseModel):
    """Single declarative condition over the data snapshot"""
    model_config = ConfigDict(extra="forbid")

    field: str = Field(..., description="Dotted path into the data snapshot")
    operator: ConditionOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Value to compare against")


class ConditionGroup(BaseModel):
    """Group of conditions with AND/OR logic"""
    model_config = ConfigDict(extra="forbid")

    logic: str = Field("AND", description="AND or OR")
    conditions: List[Condition] = Field(default_factory=list)


class StepEvaluation(BaseModel):
    """Aggregated outcome of a step guard"""
    model_config = ConfigDict(frozen=True)

    passed: bool
    reasons: List[Reason] = Field(default_factory=list)
    checks: List[ComplianceCheck] = Field(default_factory=list)

    @classmethod
    def ok(cls, checks: Optional[List[ComplianceCheck]] = None) -> "StepEvaluation":
        return cls(passed=True, checks=checks or [])

    @classmethod
    def fail(cls, reasons: List[Reason], checks: Optional[List[ComplianceCheck]] = None) -> "StepEvaluation":
        return cls(passed=False, reasons=reasons, checks=checks or [])


# ============================================================================
# Workflow instance
# ============================================================================

class StepResult(BaseModel):
    """Audit-trail entry for one step evaluation (append-only)"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    seq: int = Field(..., description="Position in the instance history")
    step_index: int = Field(..., ge=1)
    outcome: StepOutcome
    reasons: List[Reason] = Field(default_factory=list)
    checks: List[ComplianceCheck] = Field(default_factory=list)
    actor_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class SideEffectMarker(BaseModel):
    """Tracks the external action fired when a step was entered"""
    model_config = ConfigDict(extra="forbid")

    step_index: int = Field(..., ge=1)
    kind: SideEffectKind
    status: SideEffectStatus = SideEffectStatus.PENDING
    attempts: int = 1
    result: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    fired_at: datetime = Field(default_factory=_now)
    completed_at: Optional[datetime] = None


class DigitalSignatureRecord(BaseModel):
    """Signature captured for a sign decision (append-only)"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    signature_id: str
    step_index: int = Field(..., ge=1)
    signer_id: str
    signer_name: Optional[str] = None
    method: SignatureMethod = SignatureMethod.BANKID
    document_ids: List[str] = Field(default_factory=list)
    signature_data: Optional[str] = None
    signed_at: datetime = Field(default_factory=_now)


class ApprovalStepState(BaseModel):
    """Runtime state of one approval step in a chain"""
    model_config = ConfigDict(extra="forbid")

    index: int = Field(..., ge=1)
    name: str
    assignee: str = Field(..., description="User id of the party expected to decide")
    action: ApprovalAction
    decision: ApprovalDecision = ApprovalDecision.PENDING
    comment: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.decision == ApprovalDecision.PENDING


class WorkflowInstance(BaseModel):
    """A live run of a workflow definition for one business entity"""
    model_config = ConfigDict(extra="forbid")

    instance_id: str
    definition_kind: WorkflowKind
    current_step_index: int = Field(1, ge=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    status: InstanceStatus = InstanceStatus.IN_PROGRESS
    history: List[StepResult] = Field(default_factory=list)
    side_effects: List[SideEffectMarker] = Field(default_factory=list)

    # Approval chains only
    approval_mode: Optional[ApprovalMode] = None
    approval_steps: List[ApprovalStepState] = Field(default_factory=list)
    signatures: List[DigitalSignatureRecord] = Field(default_factory=list)

    rejection_reason: Optional[Reason] = None
    started_by: Optional[str] = None
    version: int = Field(1, ge=1, description="Optimistic concurrency version")
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_approval_chain(self) -> bool:
        return bool(self.approval_steps)

    def marker_for(self, step_index: int) -> Optional[SideEffectMarker]:
        for marker in self.side_effects:
            if marker.step_index == step_index:
                return marker
        return None

    def approval_step(self, step_index: int) -> Optional[ApprovalStepState]:
        for step in self.approval_steps:
            if step.index == step_index:
                return step
        return None

    def next_seq(self) -> int:
        return len(self.history) + 1

    def ordered_history(self) -> List[StepResult]:
        """History ordered by (step_index, timestamp)"""
        return sorted(self.history, key=lambda r: (r.step_index, r.timestamp, r.seq))


class PendingAction(BaseModel):
    """An undecided approval step waiting on its assignee"""
    instance_id: str
    definition_kind: WorkflowKind
    step_index: int
    step_name: str
    action: ApprovalAction
    document_ids: List[str] = Field(default_factory=list)
    actionable: bool = Field(..., description="False while a sequential chain waits on an earlier step")
    version: int
    created_at: datetime


# ============================================================================
# Engine results
# ============================================================================

class TransitionError(BaseModel):
    """Typed error returned in place of a raised exception"""
    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    http_status: int = 400
    reasons: List[Reason] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: DomainError) -> "TransitionError":
        return cls(
            code=exc.error_code,
            message=exc.message,
            http_status=exc.http_status,
            reasons=list(getattr(exc, "reasons", [])),
            details=exc.details,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Shape used by API error bodies"""
        details = dict(self.details)
        if self.reasons:
            details["reasons"] = [r.model_dump() for r in self.reasons]
        return {"error": {"code": self.code, "message": self.message, "details": details}}


class TransitionResult(BaseModel):
    """Result of every engine operation: the instance and/or a typed error"""

    instance: Optional[WorkflowInstance] = None
    error: Optional[TransitionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, instance: WorkflowInstance) -> "TransitionResult":
        return cls(instance=instance)

    @classmethod
    def failure(cls, exc: DomainError, instance: Optional[WorkflowInstance] = None) -> "TransitionResult":
        return cls(instance=instance, error=TransitionError.from_exception(exc))


# ============================================================================
# Side-effect outbox
# ============================================================================

class OutboxEntry(BaseModel):
    """Queued side effect awaiting the processor"""
    model_config = ConfigDict(extra="forbid")

    outbox_id: str
    key: str = Field(..., description="instance_id:step_index idempotency key")
    instance_id: str
    step_index: int
    kind: SideEffectKind
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    locked_until: Optional[datetime] = None
    locked_by: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


# ============================================================================
# Audit Events
# ============================================================================

class AuditEvent(BaseModel):
    """Audit event (append-only)"""
    model_config = ConfigDict(extra="forbid")

    audit_event_id: str
    instance_id: str
    step_index: Optional[int] = None
    event_type: AuditEventType
    actor: UserSnapshot
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    correlation_id: Optional[str] = None
