"""Script to validate workflow definitions and the permission table
Run: python -m scripts.validate_definitions [permission_table.json]
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from foundation_ops.domain.errors import PermissionTableError, UnknownWorkflowKindError
from foundation_ops.engine.authorization import AuthorizationEngine, NAVIGATION_MENU
from foundation_ops.engine.definitions import get_registry
from foundation_ops.engine.permission_table import PermissionTable


def show_definitions() -> None:
    registry = get_registry()

    print("=" * 60)
    print("WORKFLOW DEFINITIONS")
    print("=" * 60)

    for kind in registry.kinds():
        try:
            definition = registry.definition(kind)
        except UnknownWorkflowKindError:
            template = registry.template(kind)
            print(f"\n{template.name} ({kind.value}) - approval chain")
            print(f"   Screen: {template.required_screen.value}")
            print(f"   Default mode: {template.default_mode.value}")
            print(f"   Actions: {', '.join(sorted(a.value for a in template.allowed_actions))}")
            continue

        print(f"\n{definition.name} ({kind.value}) - {len(definition)} steps")
        print(f"   Screen: {definition.required_screen.value}")
        for step in definition.steps:
            flags = []
            if step.side_effect:
                flags.append(f"side effect: {step.side_effect.value}")
            if step.terminal:
                flags.append("terminal")
            suffix = f" [{', '.join(flags)}]" if flags else ""
            print(f"   {step.index}. {step.name}{suffix}")


def show_permissions(table: PermissionTable) -> None:
    authorization = AuthorizationEngine(table)

    print("\n" + "=" * 60)
    print("PERMISSIONS")
    print("=" * 60)

    for role in sorted(table.roles(), key=lambda r: r.value):
        screens = sorted(s.value for s in table.screens_for(role))
        menu = [item.name for item in authorization.filter_menu(role, NAVIGATION_MENU)]
        print(f"\n{role.value}")
        print(f"   Landing: {authorization.default_route(role).value}")
        print(f"   Screens: {', '.join(screens) or '(none)'}")
        print(f"   Menu: {', '.join(menu) or '(none)'}")


def main():
    path = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        table = PermissionTable.from_file(path) if path else PermissionTable.default()
    except PermissionTableError as e:
        print(f"Permission table is invalid: {e.message}")
        sys.exit(1)

    show_definitions()
    show_permissions(table)
    print("\nDefinitions and permission table are valid")


if __name__ == "__main__":
    main()
