"""Domain Enumerations - All status and type definitions"""
from enum import Enum
from typing import Optional


# ============================================================================
# Authorization
# ============================================================================

class Role(str, Enum):
    """Roles a session can carry"""
    ADMIN = "admin"
    FOUNDATION_OWNER = "foundation_owner"
    MEMBER = "member"

    @classmethod
    def parse(cls, value) -> Optional["Role"]:
        """Known Role for a raw session value, None for anything else"""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except (ValueError, TypeError):
            return None


class Screen(str, Enum):
    """Screens / capabilities a route or feature is gated behind"""
    DASHBOARD = "dashboard"
    MANAGER_DASHBOARD = "manager-dashboard"
    LIMITED_DASHBOARD = "dashboard-limited"
    FOUNDATIONS = "foundations"
    GOVERNANCE = "governance"
    DOCUMENTS = "documents"
    FINANCIAL = "financial"
    MEETINGS = "meetings"
    EXPENSES = "expenses"
    INVESTMENTS = "investments"
    PROJECTS = "projects"
    GRANTS = "grants"
    REPORTS = "reports"
    PROFILE = "profile"
    SETTINGS = "settings"
    # Public screens, reachable without a session
    LANDING = "landing"
    LOGIN = "login"
    REGISTER = "register"
    ACCESS_DENIED = "access-denied"

    @classmethod
    def parse(cls, value) -> Optional["Screen"]:
        """Known Screen for a raw value, None for anything else"""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except (ValueError, TypeError):
            return None


PUBLIC_SCREENS = frozenset({Screen.LANDING, Screen.LOGIN, Screen.REGISTER, Screen.ACCESS_DENIED})


# ============================================================================
# Workflow
# ============================================================================

class WorkflowKind(str, Enum):
    """Workflow kinds with a definition or an approval-chain template"""
    REGISTRATION = "registration"
    DOCUMENT_APPROVAL = "document_approval"
    MEETING_SIGNOFF = "meeting_signoff"


class InstanceStatus(str, Enum):
    """Workflow instance status"""
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    REJECTED = "rejected"


TERMINAL_STATUSES = frozenset({InstanceStatus.COMPLETED, InstanceStatus.REJECTED})


class StepOutcome(str, Enum):
    """Outcome of one step evaluation"""
    PASS = "pass"
    FAIL = "fail"


class CheckOutcome(str, Enum):
    """Outcome of one compliance check"""
    PASSED = "passed"
    FAILED = "failed"


class ComplianceCheckKind(str, Enum):
    """Compliance checks a validator can produce"""
    MINIMUM_CAPITAL = "minimum_capital"
    BOARD_COMPOSITION = "board_composition"
    PURPOSE_VALIDITY = "purpose_validity"
    NAME_AVAILABILITY = "name_availability"
    BALANCED_LEDGER = "balanced_ledger"
    REQUIRED_FIELDS = "required_fields"
    CONDITION = "condition"
    SIGNATURES = "signatures"


class ConditionOperator(str, Enum):
    """Operators for declarative requirement conditions"""
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    GREATER_THAN_OR_EQUALS = "GREATER_THAN_OR_EQUALS"
    LESS_THAN_OR_EQUALS = "LESS_THAN_OR_EQUALS"
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT_CONTAINS"
    IN = "IN"
    NOT_IN = "NOT_IN"
    IS_EMPTY = "IS_EMPTY"
    IS_NOT_EMPTY = "IS_NOT_EMPTY"


class RequirementType(str, Enum):
    """Regulatory requirement packages"""
    ANNUAL_REPORT = "annual_report"
    TAX_FILING = "tax_filing"
    BOARD_REGISTRATION = "board_registration"


class SideEffectKind(str, Enum):
    """External actions fired on step entry"""
    DOCUMENT_GENERATION = "document_generation"
    SIGNATURE = "signature"


class SideEffectStatus(str, Enum):
    """Side-effect marker status"""
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


class OutboxStatus(str, Enum):
    """Side-effect outbox entry status"""
    PENDING = "PENDING"
    DONE = "DONE"
    FAILED = "FAILED"


# ============================================================================
# Approval chains
# ============================================================================

class ApprovalAction(str, Enum):
    """What an approval step asks of its assignee"""
    REVIEW = "review"
    APPROVE = "approve"
    SIGN = "sign"


class DecisionType(str, Enum):
    """Decision an assignee submits"""
    APPROVE = "approve"
    SIGN = "sign"
    REJECT = "reject"


class ApprovalDecision(str, Enum):
    """Recorded decision state of an approval step"""
    PENDING = "pending"
    APPROVED = "approved"
    SIGNED = "signed"
    REJECTED = "rejected"


class ApprovalMode(str, Enum):
    """How assignees of a chain take turns"""
    SEQUENTIAL = "sequential"  # Only the current step may be decided
    PARALLEL = "parallel"      # N-of-N, any order


class SignatureMethod(str, Enum):
    """How a signature was produced"""
    BANKID = "bankid"
    MANUAL = "manual"


# ============================================================================
# Audit
# ============================================================================

class AuditEventType(str, Enum):
    """Types of audit events"""
    WORKFLOW_STARTED = "WORKFLOW_STARTED"
    STEP_PASSED = "STEP_PASSED"
    STEP_FAILED = "STEP_FAILED"
    RETREATED = "RETREATED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    DECISION_RECORDED = "DECISION_RECORDED"
    SIGNATURE_RECORDED = "SIGNATURE_RECORDED"
    SIDE_EFFECT_FIRED = "SIDE_EFFECT_FIRED"
    SIDE_EFFECT_DONE = "SIDE_EFFECT_DONE"
    SIDE_EFFECT_FAILED = "SIDE_EFFECT_FAILED"
    SIDE_EFFECT_RETRIED = "SIDE_EFFECT_RETRIED"
    ACCESS_DENIED = "ACCESS_DENIED"
