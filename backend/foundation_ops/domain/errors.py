"""
Error hierarchy of the console.

Each error carries a stable machine-readable code and the HTTP status the
API answers with. The workflow engine and approval chain convert them to
TransitionError values at their boundary; everything else lets them
propagate to the API error handlers.
"""
from typing import Any, Dict, List, Optional


class DomainError(Exception):
    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """{"error": {"code", "message", "details"}}, the body of every error response"""
        return {"error": {"code": self.error_code, "message": self.message, "details": self.details}}


# 401 / 403
class AuthenticationError(DomainError):
    """Token missing, undecodable or expired"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class AuthorizationError(DomainError):
    error_code = "AUTHORIZATION_ERROR"
    http_status = 403


class PermissionDeniedError(AuthorizationError):
    """The role lacks the screen behind the action, or the actor is not the step's assignee"""
    error_code = "PERMISSION_DENIED"


# 400 / 422
class ValidationError(DomainError):
    error_code = "VALIDATION_ERROR"
    http_status = 400


class ValidationFailure(ValidationError):
    """Step validation failed; `reasons` holds the failing sub-checks in check order"""
    error_code = "VALIDATION_FAILURE"
    http_status = 422

    def __init__(self, message: str, reasons: List[Any], details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.reasons = list(reasons)


# 404
class NotFoundError(DomainError):
    error_code = "NOT_FOUND"
    http_status = 404


class InstanceNotFoundError(NotFoundError):
    error_code = "INSTANCE_NOT_FOUND"


class UnknownWorkflowKindError(NotFoundError):
    error_code = "UNKNOWN_WORKFLOW_KIND"


# 409
class ConflictError(DomainError):
    error_code = "CONFLICT"
    http_status = 409


class StaleInstanceError(ConflictError):
    """The stored instance has moved past the version the caller acted on"""
    error_code = "STALE_INSTANCE"


class IllegalTransitionError(ConflictError):
    """Not allowed from the instance's current status or step"""
    error_code = "ILLEGAL_TRANSITION"


class InvalidDecisionError(IllegalTransitionError):
    """Out of turn, already decided, or an action the approval step does not allow"""
    error_code = "INVALID_DECISION"


class SignatureDeclinedError(ConflictError):
    error_code = "SIGNATURE_DECLINED"


# 500, raised while loading definitions and the permission table
class EngineError(DomainError):
    error_code = "ENGINE_ERROR"
    http_status = 500


class WorkflowDefinitionError(EngineError):
    error_code = "DEFINITION_ERROR"


class PermissionTableError(EngineError):
    error_code = "PERMISSION_TABLE_ERROR"


# 502
class ExternalServiceError(DomainError):
    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class SideEffectFailure(ExternalServiceError):
    """A fired side effect failed or timed out"""
    error_code = "SIDE_EFFECT_FAILURE"


class DocumentGenerationError(SideEffectFailure):
    error_code = "DOCUMENT_GENERATION_ERROR"


class SignatureProviderError(SideEffectFailure):
    """Transport failure or malformed answer from the signature provider"""
    error_code = "SIGNATURE_PROVIDER_ERROR"
