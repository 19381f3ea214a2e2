"""
Pytest Configuration and Fixtures

Shared fixtures for all tests. MongoDB is replaced by mongomock, the
external document and signature services by mocks.
"""

from typing import Any, Dict, List
from unittest.mock import MagicMock

import mongomock
import pytest

from foundation_ops.domain.enums import SignatureMethod
from foundation_ops.domain.models import ActorContext
from foundation_ops.engine import permission_table
from foundation_ops.engine.approval_chain import ApprovalChain
from foundation_ops.engine.engine import WorkflowEngine
from foundation_ops.repositories import mongo_client
from foundation_ops.services.signature_service import ProviderSignature
from foundation_ops.utils.jwt import JWTValidator

from tests.factories import PURPOSE, board_member


# =============================================================================
# Infrastructure
# =============================================================================

@pytest.fixture(autouse=True)
def mongo_db(monkeypatch):
    """Fresh in-memory database per test"""
    client = mongomock.MongoClient(tz_aware=True)
    db = client["foundation_ops_test"]
    monkeypatch.setattr(mongo_client, "_client", client)
    monkeypatch.setattr(mongo_client, "_database", db)
    yield db


@pytest.fixture(autouse=True)
def default_permission_table(monkeypatch):
    """Every test starts from the built-in permission table"""
    monkeypatch.setattr(permission_table, "_permission_table", None)


# =============================================================================
# Actors
# =============================================================================

@pytest.fixture
def admin_actor() -> ActorContext:
    return ActorContext(user_id="u-admin", email="admin@stiftelse.se", display_name="Astrid Admin", role="admin")


@pytest.fixture
def owner_actor() -> ActorContext:
    return ActorContext(
        user_id="u-owner", email="owner@stiftelse.se", display_name="Olof Owner", role="foundation_owner"
    )


@pytest.fixture
def member_actor() -> ActorContext:
    return ActorContext(user_id="u-member", email="member@stiftelse.se", display_name="Maja Member", role="member")


@pytest.fixture
def unknown_role_actor() -> ActorContext:
    return ActorContext(user_id="u-guest", display_name="Gustav Guest", role="auditor")


@pytest.fixture
def issue_token():
    """Bearer header for a user and role"""
    validator = JWTValidator()

    def _issue(user_id: str, role: str, **kwargs: Any) -> Dict[str, str]:
        return {"Authorization": f"Bearer {validator.issue_token(user_id, role, **kwargs)}"}

    return _issue


# =============================================================================
# Engines
# =============================================================================

@pytest.fixture
def engine() -> WorkflowEngine:
    return WorkflowEngine()


@pytest.fixture
def signature_client() -> MagicMock:
    """Signature provider that signs everything"""
    client = MagicMock()
    client.verify_and_sign.side_effect = lambda signer_id, document_ids, idempotency_key: ProviderSignature(
        signature_id=f"SIG-{idempotency_key}",
        signer_name=signer_id,
        method=SignatureMethod.BANKID,
        signature_data="c2lnbmVk",
    )
    return client


@pytest.fixture
def chain(signature_client) -> ApprovalChain:
    return ApprovalChain(signature_client=signature_client)


@pytest.fixture
def document_client() -> MagicMock:
    client = MagicMock()
    client.generate.return_value = ["DOC-statutes", "DOC-board-minutes"]
    return client


# =============================================================================
# Registration data
# =============================================================================

@pytest.fixture
def basic_info() -> Dict[str, Any]:
    return {
        "foundation_name": "Stiftelsen Norrlands Skog",
        "purpose": PURPOSE,
        "initial_capital": 50000,
    }


@pytest.fixture
def three_members() -> List[Dict[str, Any]]:
    return [
        board_member("Karin", "Berg", "19700101-1234", role="chairman", is_signatory=True),
        board_member("Lars", "Holm", "19750505-5678", is_signatory=True),
        board_member("Eva", "Lund", "19800808-9012"),
    ]


@pytest.fixture
def contact_person() -> Dict[str, Any]:
    return {
        "contact_person": {
            "first_name": "Karin",
            "last_name": "Berg",
            "email": "karin@stiftelse.se",
            "phone": "+46701234567",
        }
    }


@pytest.fixture
def approval_steps() -> List[Dict[str, Any]]:
    return [
        {"assignee": "u-anna", "action": "approve"},
        {"assignee": "u-bo", "action": "approve"},
        {"assignee": "u-cecilia", "action": "sign"},
    ]
