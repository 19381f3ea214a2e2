"""Outbox Repository - Queue of side effects awaiting the processor"""
from typing import List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument

from .mongo_client import get_collection, OUTBOX
from ..domain.models import OutboxEntry
from ..domain.enums import OutboxStatus, SideEffectKind
from ..utils.idgen import generate_outbox_id, side_effect_key
from ..utils.time import utc_now, seconds_from_now, minutes_ago
from ..utils.logger import get_logger

logger = get_logger(__name__)


class OutboxRepository:
    """
    Side-effect outbox keyed by (instance_id, step_index)

    Entries are upserted on their key, so queueing the same side effect
    twice never produces a second entry.
    """

    def __init__(self):
        self._outbox: Collection = get_collection(OUTBOX)

    def enqueue(self, instance_id: str, step_index: int, kind: SideEffectKind) -> bool:
        """
        Queue a side effect unless one already exists for the key

        Returns:
            True if a new entry was created
        """
        now = utc_now()
        entry = OutboxEntry(
            outbox_id=generate_outbox_id(),
            key=side_effect_key(instance_id, step_index),
            instance_id=instance_id,
            step_index=step_index,
            kind=kind,
            created_at=now,
            updated_at=now,
        )
        doc = entry.model_dump(mode="json")
        # Lock and timestamp fields are compared in queries, keep them as dates
        doc.update(created_at=now, updated_at=now, locked_until=None)

        result = self._outbox.update_one(
            {"key": entry.key},
            {"$setOnInsert": doc},
            upsert=True
        )
        created = result.upserted_id is not None
        logger.info(
            f"{'Queued' if created else 'Already queued'} side effect {entry.key}",
            extra={"instance_id": instance_id, "step_index": step_index}
        )
        return created

    def requeue(self, instance_id: str, step_index: int, kind: SideEffectKind) -> OutboxEntry:
        """Put a failed entry back to PENDING for an explicit retry"""
        now = utc_now()
        key = side_effect_key(instance_id, step_index)
        doc = self._outbox.find_one_and_update(
            {"key": key},
            {
                "$set": {
                    "status": OutboxStatus.PENDING.value,
                    "last_error": None,
                    "locked_until": None,
                    "locked_by": None,
                    "updated_at": now,
                },
                "$setOnInsert": {
                    "outbox_id": generate_outbox_id(),
                    "instance_id": instance_id,
                    "step_index": step_index,
                    "kind": kind.value,
                    "attempts": 0,
                    "created_at": now,
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        doc.pop("_id", None)
        logger.info(f"Requeued side effect {key}", extra={"instance_id": instance_id, "step_index": step_index})
        return OutboxEntry.model_validate(doc)

    def get(self, instance_id: str, step_index: int) -> Optional[OutboxEntry]:
        doc = self._outbox.find_one({"key": side_effect_key(instance_id, step_index)})
        if doc is None:
            return None
        doc.pop("_id", None)
        return OutboxEntry.model_validate(doc)

    def get_pending(self, limit: int = 50) -> List[OutboxEntry]:
        """Pending entries that are not locked by another processor"""
        now = utc_now()
        cursor = self._outbox.find({
            "status": OutboxStatus.PENDING.value,
            "$or": [
                {"locked_until": {"$lte": now}},
                {"locked_until": None}
            ]
        }).sort("created_at", ASCENDING).limit(limit)

        entries = []
        for doc in cursor:
            doc.pop("_id", None)
            entries.append(OutboxEntry.model_validate(doc))
        return entries

    def acquire_lock(self, key: str, lock_by: str, duration_seconds: int) -> bool:
        """Atomically lock a pending entry; False if someone else holds it"""
        now = utc_now()
        result = self._outbox.find_one_and_update(
            {
                "key": key,
                "status": OutboxStatus.PENDING.value,
                "$or": [
                    {"locked_until": {"$lte": now}},
                    {"locked_until": None}
                ]
            },
            {
                "$set": {
                    "locked_until": seconds_from_now(duration_seconds),
                    "locked_by": lock_by,
                },
                "$inc": {"attempts": 1},
            }
        )
        if result is None:
            logger.debug(f"Lock not acquired on side effect {key}")
            return False
        return True

    def release_lock(self, key: str, lock_by: str) -> bool:
        result = self._outbox.update_one(
            {"key": key, "locked_by": lock_by},
            {"$set": {"locked_until": None, "locked_by": None}}
        )
        return result.modified_count > 0

    def mark_done(self, key: str) -> None:
        self._outbox.update_one(
            {"key": key},
            {"$set": {
                "status": OutboxStatus.DONE.value,
                "last_error": None,
                "locked_until": None,
                "locked_by": None,
                "updated_at": utc_now(),
            }}
        )

    def mark_failed(self, key: str, error: str) -> None:
        self._outbox.update_one(
            {"key": key},
            {"$set": {
                "status": OutboxStatus.FAILED.value,
                "last_error": error[:1000],
                "locked_until": None,
                "locked_by": None,
                "updated_at": utc_now(),
            }}
        )

    def cleanup_stale_locks(self, max_lock_age_minutes: int = 10) -> int:
        """Release locks left behind by a processor that died mid-run"""
        result = self._outbox.update_many(
            {
                "locked_until": {"$lte": minutes_ago(max_lock_age_minutes)},
                "locked_by": {"$ne": None}
            },
            {"$set": {"locked_until": None, "locked_by": None}}
        )
        if result.modified_count > 0:
            logger.warning(f"Cleaned up {result.modified_count} stale side-effect locks")
        return result.modified_count
