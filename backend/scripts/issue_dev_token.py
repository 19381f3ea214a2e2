"""Script to issue a bearer token for local testing
Run: python -m scripts.issue_dev_token <user_id> <role> [display name]
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from foundation_ops.config.settings import settings
from foundation_ops.domain.enums import Role
from foundation_ops.utils.jwt import JWTValidator


def main():
    if settings.is_production:
        print("Refusing to issue tokens in production")
        sys.exit(1)
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    user_id, role = sys.argv[1], sys.argv[2]
    if Role.parse(role) is None:
        print(f"Warning: {role} is not a known role; the token will grant no screens")

    display_name = sys.argv[3] if len(sys.argv) > 3 else None
    print(JWTValidator().issue_token(user_id, role, display_name=display_name))


if __name__ == "__main__":
    main()
