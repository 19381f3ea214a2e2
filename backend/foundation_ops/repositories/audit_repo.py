"""Append-only storage of audit events"""
from typing import Any, Dict, Iterable, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING

from .mongo_client import get_collection, AUDIT_EVENTS
from ..domain.models import AuditEvent
from ..domain.enums import AuditEventType
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditRepository:
    """Events are inserted once and never updated or deleted"""

    def __init__(self):
        self._events: Collection = get_collection(AUDIT_EVENTS)

    def create_event(self, event: AuditEvent) -> AuditEvent:
        self._events.insert_one({"_id": event.audit_event_id, **event.model_dump(mode="json")})
        logger.info(
            f"Audit {event.event_type.value} by {event.actor.user_id}",
            extra={"instance_id": event.instance_id, "step_index": event.step_index, "actor_id": event.actor.user_id}
        )
        return event

    def get_events_for_instance(
        self,
        instance_id: str,
        event_types: Optional[List[AuditEventType]] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEvent]:
        """Audit trail of an instance, oldest first"""
        query: Dict[str, Any] = {"instance_id": instance_id}
        if event_types:
            query["event_type"] = {"$in": [event_type.value for event_type in event_types]}
        return self._load(self._events.find(query).sort("timestamp", ASCENDING).skip(skip).limit(limit))

    def count_events_for_instance(self, instance_id: str) -> int:
        return self._events.count_documents({"instance_id": instance_id})

    @staticmethod
    def _load(docs: Iterable[Dict[str, Any]]) -> List[AuditEvent]:
        return [AuditEvent.model_validate({k: v for k, v in doc.items() if k != "_id"}) for doc in docs]
