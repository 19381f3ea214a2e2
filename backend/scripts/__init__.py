"""
Backend Scripts Module

Operator scripts for checking configuration and local development.

Available scripts:
    - validate_definitions.py: Checks workflow definitions and the permission table
    - issue_dev_token.py: Issues a bearer token for local testing

Usage:
    python -m scripts.validate_definitions [permission_table.json]
    python -m scripts.issue_dev_token <user_id> <role>
"""
