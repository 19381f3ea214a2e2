"""Tests for the permission table"""
import json

import pytest

from foundation_ops.domain.enums import Role, Screen
from foundation_ops.domain.errors import PermissionTableError
from foundation_ops.engine.permission_table import (
    PermissionTable, get_permission_table, load_permission_table
)


def test_default_table_grants_member_its_five_screens():
    table = PermissionTable.default()

    assert table.screens_for(Role.MEMBER) == frozenset({
        Screen.DASHBOARD, Screen.PROFILE, Screen.GRANTS, Screen.PROJECTS, Screen.MEETINGS
    })


def test_every_role_has_an_entry():
    table = PermissionTable({Role.ADMIN: [Screen.DASHBOARD]})

    assert table.roles() == frozenset(Role)
    assert table.screens_for(Role.MEMBER) == frozenset()


def test_grants_cannot_be_mutated():
    table = PermissionTable.default()

    with pytest.raises(TypeError):
        table._grants[Role.MEMBER] = frozenset({Screen.SETTINGS})
    with pytest.raises(AttributeError):
        table.screens_for(Role.MEMBER).add(Screen.SETTINGS)


def test_from_mapping_parses_raw_strings():
    table = PermissionTable.from_mapping({"member": ["dashboard", "settings"]})

    assert table.screens_for(Role.MEMBER) == frozenset({Screen.DASHBOARD, Screen.SETTINGS})
    assert table.screens_for(Role.ADMIN) == frozenset()


@pytest.mark.parametrize("raw", [
    {"auditor": ["dashboard"]},
    {"member": ["treasury"]},
    {"member": "dashboard"},
])
def test_from_mapping_rejects_bad_entries(raw):
    with pytest.raises(PermissionTableError):
        PermissionTable.from_mapping(raw)


def test_from_file(tmp_path):
    path = tmp_path / "permissions.json"
    path.write_text(json.dumps({"admin": ["settings"], "member": ["profile"]}), encoding="utf-8")

    table = PermissionTable.from_file(str(path))

    assert table.to_dict()["admin"] == ["settings"]
    assert table.to_dict()["foundation_owner"] == []


def test_from_file_rejects_invalid_json(tmp_path):
    path = tmp_path / "permissions.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PermissionTableError):
        PermissionTable.from_file(str(path))


def test_from_file_rejects_missing_file(tmp_path):
    with pytest.raises(PermissionTableError):
        PermissionTable.from_file(str(tmp_path / "missing.json"))


def test_load_replaces_process_wide_table(tmp_path):
    path = tmp_path / "permissions.json"
    path.write_text(json.dumps({"member": ["settings"]}), encoding="utf-8")

    loaded = load_permission_table(str(path))

    assert get_permission_table() is loaded
    assert get_permission_table().screens_for(Role.MEMBER) == frozenset({Screen.SETTINGS})


def test_owner_restrictions_hide_governance_features():
    restrictions = PermissionTable.default().restrictions_for(Role.FOUNDATION_OWNER)

    assert restrictions.hide_role_management
    assert restrictions.hide_document_workflows
    assert restrictions.hide_role_based_access_control
    assert not PermissionTable.default().restrictions_for(Role.ADMIN).hide_role_management
