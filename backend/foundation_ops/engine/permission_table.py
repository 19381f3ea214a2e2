"""Permission Table - Role to screen grants, built once at startup"""
import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from ..domain.enums import Role, Screen
from ..domain.errors import PermissionTableError
from ..domain.models import GovernanceRestrictions
from ..utils.logger import get_logger

logger = get_logger(__name__)


DEFAULT_PERMISSIONS: Dict[Role, FrozenSet[Screen]] = {
    Role.ADMIN: frozenset({
        Screen.DASHBOARD,
        Screen.FINANCIAL,
        Screen.PROFILE,
        Screen.SETTINGS,
        Screen.FOUNDATIONS,
        Screen.GOVERNANCE,
        Screen.DOCUMENTS,
        Screen.MEETINGS,
        Screen.REPORTS,
    }),
    Role.FOUNDATION_OWNER: frozenset({
        Screen.MANAGER_DASHBOARD,
        Screen.FOUNDATIONS,
        Screen.PROFILE,
    }),
    Role.MEMBER: frozenset({
        Screen.DASHBOARD,
        Screen.PROFILE,
        Screen.GRANTS,
        Screen.PROJECTS,
        Screen.MEETINGS,
    }),
}

DEFAULT_RESTRICTIONS: Dict[Role, GovernanceRestrictions] = {
    Role.FOUNDATION_OWNER: GovernanceRestrictions(
        hide_role_management=True,
        hide_document_workflows=True,
        hide_role_based_access_control=True,
    ),
}


class PermissionTable:
    """
    Immutable mapping Role -> frozenset of Screen

    Every Role has an entry, possibly empty. Lookups for anything that is
    not a known Role return the empty set.
    """

    def __init__(
        self,
        entries: Mapping[Role, Iterable[Screen]],
        restrictions: Optional[Mapping[Role, GovernanceRestrictions]] = None
    ):
        grants = {role: frozenset() for role in Role}
        for role, screens in entries.items():
            if not isinstance(role, Role):
                raise PermissionTableError(f"Not a role: {role!r}")
            screens = frozenset(screens)
            for screen in screens:
                if not isinstance(screen, Screen):
                    raise PermissionTableError(
                        f"Not a screen: {screen!r}",
                        details={"role": role.value}
                    )
            grants[role] = screens

        self._grants = MappingProxyType(grants)
        self._restrictions = MappingProxyType(dict(restrictions or {}))

    @classmethod
    def default(cls) -> "PermissionTable":
        return cls(DEFAULT_PERMISSIONS, DEFAULT_RESTRICTIONS)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "PermissionTable":
        """
        Build from a plain {role: [screens]} mapping

        Restrictions are taken from the defaults; they are not configurable.

        Raises:
            PermissionTableError: Unknown role or screen, or a non-list entry
        """
        entries: Dict[Role, FrozenSet[Screen]] = {}
        for raw_role, raw_screens in raw.items():
            role = Role.parse(raw_role)
            if role is None:
                raise PermissionTableError(
                    f"Unknown role in permission table: {raw_role}",
                    details={"role": raw_role}
                )
            if not isinstance(raw_screens, (list, tuple, set, frozenset)):
                raise PermissionTableError(
                    f"Screens for role {raw_role} must be a list",
                    details={"role": raw_role}
                )

            screens = set()
            for raw_screen in raw_screens:
                screen = Screen.parse(raw_screen)
                if screen is None:
                    raise PermissionTableError(
                        f"Unknown screen in permission table: {raw_screen}",
                        details={"role": raw_role, "screen": raw_screen}
                    )
                screens.add(screen)
            entries[role] = frozenset(screens)

        return cls(entries, DEFAULT_RESTRICTIONS)

    @classmethod
    def from_file(cls, path: str) -> "PermissionTable":
        """Load a JSON {role: [screens]} file"""
        file_path = Path(path)
        try:
            raw = json.loads(file_path.read_text(encoding="utf-8"))
        except OSError as e:
            raise PermissionTableError(f"Cannot read permission table {path}: {e}")
        except json.JSONDecodeError as e:
            raise PermissionTableError(f"Permission table {path} is not valid JSON: {e}")

        if not isinstance(raw, dict):
            raise PermissionTableError(f"Permission table {path} must be a JSON object")

        return cls.from_mapping(raw)

    def screens_for(self, role: Role) -> FrozenSet[Screen]:
        return self._grants.get(role, frozenset())

    def restrictions_for(self, role: Role) -> GovernanceRestrictions:
        return self._restrictions.get(role) or GovernanceRestrictions()

    def roles(self) -> FrozenSet[Role]:
        return frozenset(self._grants.keys())

    def to_dict(self) -> Dict[str, list]:
        return {
            role.value: sorted(screen.value for screen in screens)
            for role, screens in self._grants.items()
        }


# Global table, set once by the app lifespan
_permission_table: Optional[PermissionTable] = None


def load_permission_table(path: Optional[str] = None) -> PermissionTable:
    """Build the process-wide table from a file, or the defaults"""
    global _permission_table
    if path:
        _permission_table = PermissionTable.from_file(path)
        logger.info(f"Loaded permission table from {path}")
    else:
        _permission_table = PermissionTable.default()
        logger.info("Using default permission table")
    return _permission_table


def get_permission_table() -> PermissionTable:
    """Get the process-wide table, falling back to the defaults"""
    global _permission_table
    if _permission_table is None:
        _permission_table = PermissionTable.default()
    return _permission_table
