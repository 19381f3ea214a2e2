"""Route Guard - Admit or redirect navigation to a screen"""
from typing import Any, Optional

from ..domain.enums import PUBLIC_SCREENS, Screen
from ..domain.models import RouteDecision
from ..utils.logger import get_logger
from .authorization import AuthorizationEngine, FALLBACK_ROUTE

logger = get_logger(__name__)


class RouteGuard:
    """
    Decides whether a session may open a screen

    - Public screens are always admitted
    - No session (no role) is sent to login
    - A role that may not reach the screen is sent to access-denied
    """

    def __init__(self, authorization: Optional[AuthorizationEngine] = None):
        self._authorization = authorization or AuthorizationEngine()

    def check(self, role: Optional[Any], screen: Any) -> RouteDecision:
        screen_value = screen.value if isinstance(screen, Screen) else str(screen)
        known_screen = Screen.parse(screen)

        if known_screen in PUBLIC_SCREENS:
            return RouteDecision(screen=screen_value, admitted=True)

        if not role:
            return RouteDecision(screen=screen_value, admitted=False, redirect_to=Screen.LOGIN)

        if self._authorization.is_permitted(role, known_screen):
            return RouteDecision(screen=screen_value, admitted=True)

        logger.info(
            f"Route denied: {screen_value} for role {role}",
            extra={"role": str(role), "screen": screen_value}
        )
        return RouteDecision(screen=screen_value, admitted=False, redirect_to=FALLBACK_ROUTE)

    def landing(self, role: Optional[Any]) -> Screen:
        if not role:
            return Screen.LOGIN
        return self._authorization.default_route(role)
