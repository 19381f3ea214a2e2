"""MongoDB Client - Shared connection, collections and indexes"""
from typing import Any, Dict, List, Optional, Tuple
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..domain.enums import OutboxStatus
from ..utils.logger import get_logger

logger = get_logger(__name__)

INSTANCES = "workflow_instances"
OUTBOX = "side_effect_outbox"
AUDIT_EVENTS = "audit_events"

# (collection, keys, unique)
IndexSpec = Tuple[str, List[Tuple[str, int]], bool]

INDEXES: List[IndexSpec] = [
    (INSTANCES, [("instance_id", ASCENDING)], True),
    # Compare-and-swap saves filter on both
    (INSTANCES, [("instance_id", ASCENDING), ("version", ASCENDING)], False),
    (INSTANCES, [("definition_kind", ASCENDING), ("status", ASCENDING)], False),
    (INSTANCES, [("updated_at", DESCENDING)], False),
    # Pending approvals per assignee, chains per document
    (INSTANCES, [("approval_steps.assignee", ASCENDING), ("approval_steps.decision", ASCENDING)], False),
    (INSTANCES, [("data.document_ids", ASCENDING)], False),
    # instance_id:step_index, one entry per fired side effect
    (OUTBOX, [("key", ASCENDING)], True),
    (OUTBOX, [("status", ASCENDING), ("created_at", ASCENDING)], False),
    (OUTBOX, [("locked_until", ASCENDING)], False),
    (AUDIT_EVENTS, [("audit_event_id", ASCENDING)], True),
    (AUDIT_EVENTS, [("instance_id", ASCENDING), ("timestamp", ASCENDING)], False),
    (AUDIT_EVENTS, [("correlation_id", ASCENDING)], False),
]

_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Shared client, connected and pinged on first use"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB at {settings.mongo_uri}")
        client = PyMongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
            tz_aware=True,
        )
        try:
            client.admin.command("ping")
        except ConnectionFailure as e:
            logger.error(f"Cannot reach MongoDB: {e}")
            client.close()
            raise
        _client = client
    return _client


def get_database() -> Database:
    global _database
    if _database is None:
        _database = get_client()[settings.mongo_db]
        logger.info(f"Using database {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    return get_database()[name]


def close_connection() -> None:
    global _client, _database
    if _client is None:
        return
    _client.close()
    _client = None
    _database = None
    logger.info("MongoDB connection closed")


def create_indexes() -> int:
    """Ensure every index in INDEXES exists; returns how many were ensured"""
    db = get_database()
    for collection, keys, unique in INDEXES:
        db[collection].create_index(keys, unique=unique)
    logger.info(f"Ensured {len(INDEXES)} indexes on {db.name}")
    return len(INDEXES)


def health_check() -> Dict[str, Any]:
    """Ping result plus the size of the side-effect backlog"""
    report: Dict[str, Any] = {"database": settings.mongo_db}
    try:
        get_client().admin.command("ping")
        report["status"] = "healthy"
        report["pending_side_effects"] = get_collection(OUTBOX).count_documents({"status": OutboxStatus.PENDING.value})
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        report["status"] = "unhealthy"
        report["error"] = str(e)
    return report
