"""Identifiers for instances, signatures, audit events and outbox entries"""
import uuid
from datetime import datetime, timezone
from typing import Optional

INSTANCE_PREFIX = "WFI"
SIGNATURE_PREFIX = "SIG"
AUDIT_PREFIX = "AUD"
OUTBOX_PREFIX = "SFX"


def generate_id(prefix: Optional[str] = None, length: int = 12) -> str:
    """Random hex id, e.g. generate_id("WFI") -> "WFI-3f9c0a1b2d4e" """
    token = uuid.uuid4().hex[:length]
    return f"{prefix}-{token}" if prefix else token


def generate_instance_id() -> str:
    return generate_id(INSTANCE_PREFIX)


def generate_signature_id() -> str:
    return generate_id(SIGNATURE_PREFIX)


def generate_audit_event_id() -> str:
    return generate_id(AUDIT_PREFIX)


def generate_outbox_id() -> str:
    return generate_id(OUTBOX_PREFIX)


def side_effect_key(instance_id: str, step_index: int) -> str:
    """Idempotency key of the side effect fired by one step of one instance"""
    return f"{instance_id}:{step_index}"


def generate_correlation_id() -> str:
    """COR-<utc second>-<8 hex>, sortable by the time the request arrived"""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"COR-{stamp}-{generate_id(length=8)}"
