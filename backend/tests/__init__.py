"""
Test Suite

This module contains all tests for the Foundation Operations Console backend.

Structure:
    tests/
    ├── __init__.py         # This file
    ├── conftest.py         # Pytest fixtures (mongomock, actors, mocked clients)
    ├── factories.py        # Test data builders
    ├── unit/               # Engine, validator, repository and service tests
    └── integration/        # API endpoint tests through the FastAPI TestClient

To run tests:
    pytest backend/tests
    pytest backend/tests/unit
    pytest backend/tests/integration
"""
