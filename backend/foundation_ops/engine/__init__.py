"""Workflow Engine - Authorization, validation and state transitions"""
from .engine import WorkflowEngine
from .approval_chain import ApprovalChain
from .authorization import AuthorizationEngine
from .route_guard import RouteGuard
from .permission_table import PermissionTable
from .transition_resolver import TransitionResolver
from .condition_evaluator import ConditionEvaluator
from .validators import ComplianceChecker
from .audit_writer import AuditWriter

__all__ = [
    "WorkflowEngine",
    "ApprovalChain",
    "AuthorizationEngine",
    "RouteGuard",
    "PermissionTable",
    "TransitionResolver",
    "ConditionEvaluator",
    "ComplianceChecker",
    "AuditWriter",
]
