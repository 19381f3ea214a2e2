"""Authorization Engine - Screen permissions, landing routes and menu filtering"""
from typing import Any, FrozenSet, List, Optional, Sequence

from ..domain.enums import Role, Screen
from ..domain.models import GovernanceRestrictions, MenuItem
from ..utils.logger import get_logger
from .permission_table import PermissionTable, get_permission_table

logger = get_logger(__name__)


# Landing page for any session that has no usable role
FALLBACK_ROUTE = Screen.ACCESS_DENIED

DEFAULT_ROUTES = {
    Role.ADMIN: Screen.DASHBOARD,
    Role.FOUNDATION_OWNER: Screen.MANAGER_DASHBOARD,
    Role.MEMBER: Screen.DASHBOARD,
}

# Console sidebar, in display order
NAVIGATION_MENU: Sequence[MenuItem] = (
    MenuItem(name="Dashboard", href="/dashboard", screen=Screen.DASHBOARD),
    MenuItem(name="Manager Dashboard", href="/manager-dashboard", screen=Screen.MANAGER_DASHBOARD),
    MenuItem(name="Foundations", href="/foundations", screen=Screen.FOUNDATIONS),
    MenuItem(name="Governance", href="/governance", screen=Screen.GOVERNANCE),
    MenuItem(name="Documents", href="/documents", screen=Screen.DOCUMENTS),
    MenuItem(name="Financial", href="/financial", screen=Screen.FINANCIAL),
    MenuItem(name="Meetings", href="/meetings", screen=Screen.MEETINGS),
    MenuItem(name="Expenses", href="/expenses", screen=Screen.EXPENSES),
    MenuItem(name="Investments", href="/investments", screen=Screen.INVESTMENTS),
    MenuItem(name="Projects", href="/projects", screen=Screen.PROJECTS),
    MenuItem(name="Grants", href="/grants", screen=Screen.GRANTS),
    MenuItem(name="Reports", href="/reports", screen=Screen.REPORTS),
    MenuItem(name="Profile", href="/profile", screen=Screen.PROFILE),
    MenuItem(name="Settings", href="/settings", screen=Screen.SETTINGS),
)


class AuthorizationEngine:
    """
    Answers "may this role reach this screen" from the PermissionTable

    Roles and screens arrive as raw strings from the identity provider and
    the router. Anything unrecognized is denied; lookups never raise.
    """

    def __init__(self, table: Optional[PermissionTable] = None):
        self._table = table or get_permission_table()

    @property
    def table(self) -> PermissionTable:
        return self._table

    def permitted_screens(self, role: Any) -> FrozenSet[Screen]:
        known_role = Role.parse(role)
        if known_role is None:
            return frozenset()
        return self._table.screens_for(known_role)

    def is_permitted(self, role: Any, screen: Any) -> bool:
        known_screen = Screen.parse(screen)
        if known_screen is None:
            return False
        return known_screen in self.permitted_screens(role)

    def default_route(self, role: Any) -> Screen:
        """Landing screen for a role; FALLBACK_ROUTE when it has none it may reach"""
        known_role = Role.parse(role)
        route = DEFAULT_ROUTES.get(known_role) if known_role else None
        if route is None or not self.is_permitted(known_role, route):
            return FALLBACK_ROUTE
        return route

    def filter_menu(self, role: Any, menu: Sequence[MenuItem] = NAVIGATION_MENU) -> List[MenuItem]:
        """Menu items the role may reach, in menu order"""
        screens = self.permitted_screens(role)
        return [item for item in menu if item.screen in screens]

    def governance_restrictions(self, role: Any) -> GovernanceRestrictions:
        known_role = Role.parse(role)
        if known_role is None:
            return GovernanceRestrictions()
        return self._table.restrictions_for(known_role)
