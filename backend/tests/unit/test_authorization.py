"""Tests for the authorization engine and route guard"""
import pytest

from foundation_ops.domain.enums import Role, Screen
from foundation_ops.engine.authorization import (
    AuthorizationEngine, FALLBACK_ROUTE, NAVIGATION_MENU
)
from foundation_ops.engine.permission_table import PermissionTable
from foundation_ops.engine.route_guard import RouteGuard


ROLES = [r.value for r in Role] + ["auditor", "", None]


@pytest.fixture
def authorization() -> AuthorizationEngine:
    return AuthorizationEngine(PermissionTable.default())


@pytest.mark.parametrize("role", ROLES)
@pytest.mark.parametrize("screen", [s.value for s in Screen] + ["treasury"])
def test_is_permitted_agrees_with_permitted_screens(authorization, role, screen):
    expected = Screen.parse(screen) in authorization.permitted_screens(role)

    assert authorization.is_permitted(role, screen) is expected


def test_member_may_not_open_settings(authorization):
    assert authorization.is_permitted("member", "settings") is False
    assert authorization.is_permitted("member", "grants") is True


def test_unknown_role_or_screen_is_denied_without_raising(authorization):
    assert authorization.permitted_screens("auditor") == frozenset()
    assert authorization.is_permitted("admin", "treasury") is False
    assert authorization.is_permitted(None, "dashboard") is False


@pytest.mark.parametrize("role", ROLES)
def test_default_route_is_permitted_or_fallback(authorization, role):
    route = authorization.default_route(role)

    assert route == FALLBACK_ROUTE or authorization.is_permitted(role, route)


def test_default_routes_per_role(authorization):
    assert authorization.default_route("admin") == Screen.DASHBOARD
    assert authorization.default_route("foundation_owner") == Screen.MANAGER_DASHBOARD
    assert authorization.default_route("member") == Screen.DASHBOARD
    assert authorization.default_route("auditor") == FALLBACK_ROUTE


def test_default_route_falls_back_when_landing_is_not_granted():
    table = PermissionTable({Role.MEMBER: [Screen.PROFILE]})

    assert AuthorizationEngine(table).default_route("member") == FALLBACK_ROUTE


def test_filter_menu_keeps_menu_order(authorization):
    items = authorization.filter_menu("member")

    assert [i.screen for i in items] == [
        Screen.DASHBOARD, Screen.MEETINGS, Screen.PROJECTS, Screen.GRANTS, Screen.PROFILE
    ]


@pytest.mark.parametrize("role", ROLES)
def test_menu_and_route_guard_agree(authorization, role):
    guard = RouteGuard(authorization)

    for item in NAVIGATION_MENU:
        shown = item in authorization.filter_menu(role)
        admitted = guard.check(role, item.screen).admitted
        assert shown is admitted


def test_governance_restrictions(authorization):
    assert authorization.governance_restrictions("foundation_owner").hide_document_workflows
    assert not authorization.governance_restrictions("auditor").hide_document_workflows


# =============================================================================
# Route guard
# =============================================================================

@pytest.fixture
def guard(authorization) -> RouteGuard:
    return RouteGuard(authorization)


@pytest.mark.parametrize("screen", ["landing", "login", "register", "access-denied"])
def test_public_screens_admit_without_session(guard, screen):
    assert guard.check(None, screen).admitted


def test_no_session_redirects_to_login(guard):
    decision = guard.check(None, "dashboard")

    assert not decision.admitted
    assert decision.redirect_to == Screen.LOGIN


def test_denied_screen_redirects_to_fallback(guard):
    decision = guard.check("member", "settings")

    assert not decision.admitted
    assert decision.redirect_to == FALLBACK_ROUTE


def test_unknown_screen_is_denied(guard):
    decision = guard.check("admin", "treasury")

    assert decision.screen == "treasury"
    assert decision.redirect_to == FALLBACK_ROUTE


def test_landing(guard):
    assert guard.landing(None) == Screen.LOGIN
    assert guard.landing("foundation_owner") == Screen.MANAGER_DASHBOARD
