"""FastAPI dependencies: caller identity, engine providers and screen gating"""
from typing import Callable, Optional
from fastapi import Depends, Header, HTTPException, status

from ..domain.enums import Screen
from ..domain.models import ActorContext, TransitionResult, WorkflowInstance
from ..domain.errors import AuthenticationError, PermissionDeniedError
from ..engine.approval_chain import ApprovalChain
from ..engine.authorization import AuthorizationEngine
from ..engine.engine import WorkflowEngine
from ..engine.route_guard import RouteGuard
from ..engine.validators import ComplianceChecker
from ..utils.jwt import get_current_user
from ..utils.logger import set_correlation_id, get_correlation_id, get_logger
from ..utils.idgen import generate_correlation_id

logger = get_logger(__name__)


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """Correlation id of the request; the middleware has normally set it already"""
    correlation_id = x_correlation_id or get_correlation_id() or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


def _unauthorized(error: AuthenticationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=error.to_dict(),
        headers={"WWW-Authenticate": "Bearer"}
    )


async def get_current_user_dep(authorization: Optional[str] = Header(None)) -> ActorContext:
    """Caller resolved from the bearer token; 401 when it is missing or invalid"""
    try:
        return get_current_user(authorization or "")
    except AuthenticationError as e:
        logger.info(f"Rejected credentials: {e.message}")
        raise _unauthorized(e)


# Engine providers, overridden in tests

def get_authorization_dep() -> AuthorizationEngine:
    return AuthorizationEngine()


def get_route_guard_dep(
    authorization: AuthorizationEngine = Depends(get_authorization_dep)
) -> RouteGuard:
    return RouteGuard(authorization)


def get_engine_dep() -> WorkflowEngine:
    return WorkflowEngine()


def get_approval_chain_dep() -> ApprovalChain:
    return ApprovalChain()


def get_compliance_checker_dep() -> ComplianceChecker:
    return ComplianceChecker()


def require_screen(screen: Screen) -> Callable:
    """
    Dependency factory gating a route behind a screen

    Applies the route guard to the API: the caller's role must be granted
    the screen, otherwise 403.
    """
    async def dependency(
        actor: ActorContext = Depends(get_current_user_dep),
        guard: RouteGuard = Depends(get_route_guard_dep)
    ) -> ActorContext:
        decision = guard.check(actor.role, screen)
        if not decision.admitted:
            error = PermissionDeniedError(
                f"Role {actor.role or 'none'} may not access {screen.value}",
                details={"screen": screen.value, "redirect_to": decision.redirect_to.value if decision.redirect_to else None}
            )
            raise HTTPException(status_code=error.http_status, detail=error.to_dict())
        return actor

    return dependency


# Result handling

class TransitionFailed(Exception):
    """Raised by routes for a failed TransitionResult; rendered by the error handlers"""

    def __init__(self, result: TransitionResult):
        super().__init__(result.error.message if result.error else "Transition failed")
        self.result = result


def unwrap(result: TransitionResult) -> WorkflowInstance:
    """Instance of a successful result; raises TransitionFailed otherwise"""
    if not result.ok:
        raise TransitionFailed(result)
    return result.instance
