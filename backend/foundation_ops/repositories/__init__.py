"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection
from .instance_repo import InstanceRepository
from .outbox_repo import OutboxRepository
from .audit_repo import AuditRepository

__all__ = [
    "get_database",
    "get_collection",
    "InstanceRepository",
    "OutboxRepository",
    "AuditRepository",
]
