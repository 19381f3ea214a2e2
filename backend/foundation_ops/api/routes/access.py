"""Access API Routes - What the signed-in role may see"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from ..deps import get_current_user_dep, get_correlation_id_dep, get_authorization_dep, get_route_guard_dep
from ...domain.models import ActorContext, MenuItem, RouteDecision
from ...engine.authorization import AuthorizationEngine
from ...engine.route_guard import RouteGuard

router = APIRouter()


@router.get("/me")
async def get_my_access(
    actor: ActorContext = Depends(get_current_user_dep),
    authorization: AuthorizationEngine = Depends(get_authorization_dep),
    guard: RouteGuard = Depends(get_route_guard_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, Any]:
    """
    Session summary for the frontend shell

    An unrecognized role is not an error: it comes back with no screens and
    the fallback route as landing page.
    """
    return {
        "user_id": actor.user_id,
        "display_name": actor.display_name,
        "role": actor.role,
        "landing": guard.landing(actor.role).value,
        "screens": sorted(s.value for s in authorization.permitted_screens(actor.role)),
        "restrictions": authorization.governance_restrictions(actor.role).model_dump(),
    }


@router.get("/routes/{screen}", response_model=RouteDecision)
async def check_route(
    screen: str,
    actor: ActorContext = Depends(get_current_user_dep),
    guard: RouteGuard = Depends(get_route_guard_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Admit or redirect a navigation to `screen`; unknown screens are redirected"""
    return guard.check(actor.role, screen)


@router.get("/menu", response_model=List[MenuItem])
async def get_menu(
    actor: ActorContext = Depends(get_current_user_dep),
    authorization: AuthorizationEngine = Depends(get_authorization_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Navigation entries the role may reach, in menu order"""
    return authorization.filter_menu(actor.role)
