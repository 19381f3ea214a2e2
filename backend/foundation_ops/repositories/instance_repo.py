"""Instance Repository - Load and save workflow instances"""
from typing import Any, Dict, Iterable, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING

from .mongo_client import get_collection, INSTANCES
from ..domain.models import WorkflowInstance
from ..domain.enums import ApprovalDecision, InstanceStatus, WorkflowKind, TERMINAL_STATUSES
from ..domain.errors import InstanceNotFoundError, StaleInstanceError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class InstanceRepository:
    """
    Persistence store for workflow instances

    save() is a compare-and-swap on the stored version: it only writes when
    the stored document still carries the version the caller loaded, and
    bumps it by one.
    """

    def __init__(self):
        self._instances: Collection = get_collection(INSTANCES)

    def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        doc = instance.model_dump(mode="json")
        doc["_id"] = instance.instance_id

        self._instances.insert_one(doc)
        logger.info(
            f"Created workflow instance: {instance.instance_id}",
            extra={
                "instance_id": instance.instance_id,
                "workflow_kind": instance.definition_kind.value,
                "version": instance.version,
            }
        )
        return instance

    def get(self, instance_id: str) -> Optional[WorkflowInstance]:
        doc = self._instances.find_one({"instance_id": instance_id})
        if doc is None:
            return None
        doc.pop("_id", None)
        return WorkflowInstance.model_validate(doc)

    def load(self, instance_id: str) -> WorkflowInstance:
        """
        Raises:
            InstanceNotFoundError: No instance with this id
        """
        instance = self.get(instance_id)
        if instance is None:
            raise InstanceNotFoundError(
                f"Workflow instance {instance_id} not found",
                details={"instance_id": instance_id}
            )
        return instance

    def save(self, instance: WorkflowInstance) -> WorkflowInstance:
        """
        Persist a modified instance loaded at instance.version

        Returns:
            The stored instance at version + 1

        Raises:
            StaleInstanceError: Another writer saved first
            InstanceNotFoundError: The instance no longer exists
        """
        saved = instance.model_copy(update={"version": instance.version + 1})
        doc = saved.model_dump(mode="json")
        doc["_id"] = instance.instance_id

        result = self._instances.replace_one(
            {"instance_id": instance.instance_id, "version": instance.version},
            doc
        )

        if result.matched_count == 0:
            current = self._instances.find_one({"instance_id": instance.instance_id}, {"version": 1})
            if current is None:
                raise InstanceNotFoundError(
                    f"Workflow instance {instance.instance_id} not found",
                    details={"instance_id": instance.instance_id}
                )
            logger.warning(
                f"Stale save rejected for {instance.instance_id}",
                extra={"instance_id": instance.instance_id, "version": instance.version}
            )
            raise StaleInstanceError(
                f"Workflow instance {instance.instance_id} was modified. Reload and try again.",
                details={
                    "instance_id": instance.instance_id,
                    "expected_version": instance.version,
                    "current_version": current.get("version"),
                }
            )

        logger.debug(
            f"Saved workflow instance: {instance.instance_id}",
            extra={"instance_id": instance.instance_id, "version": saved.version, "status": saved.status.value}
        )
        return saved

    def list_instances(
        self,
        kind: Optional[WorkflowKind] = None,
        status: Optional[InstanceStatus] = None,
        kinds: Optional[Iterable[WorkflowKind]] = None,
        document_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[WorkflowInstance]:
        """
        Instances, most recently updated first

        `kinds` restricts the page to the kinds a caller may see, so skip and
        limit count only those. `document_id` matches chains whose
        data.document_ids holds it.
        """
        query: Dict[str, Any] = {}
        kind_values = _kind_values(kind, kinds)
        if kind_values is not None:
            query["definition_kind"] = {"$in": kind_values}
        if status:
            query["status"] = status.value
        if document_id:
            query["data.document_ids"] = document_id

        cursor = self._instances.find(query).sort("updated_at", DESCENDING).skip(skip).limit(limit)
        return self._load_all(cursor)

    def list_pending_for_assignee(
        self,
        user_id: str,
        kinds: Optional[Iterable[WorkflowKind]] = None,
        limit: int = 200
    ) -> List[WorkflowInstance]:
        """Open chains with at least one undecided step assigned to the user, oldest first"""
        query: Dict[str, Any] = {
            "status": {"$nin": [s.value for s in TERMINAL_STATUSES]},
            "approval_steps": {"$elemMatch": {"assignee": user_id, "decision": ApprovalDecision.PENDING.value}},
        }
        kind_values = _kind_values(None, kinds)
        if kind_values is not None:
            query["definition_kind"] = {"$in": kind_values}

        return self._load_all(self._instances.find(query).sort("created_at", ASCENDING).limit(limit))

    @staticmethod
    def _load_all(docs: Iterable[Dict[str, Any]]) -> List[WorkflowInstance]:
        return [WorkflowInstance.model_validate({k: v for k, v in doc.items() if k != "_id"}) for doc in docs]


def _kind_values(kind: Optional[WorkflowKind], kinds: Optional[Iterable[WorkflowKind]]) -> Optional[List[str]]:
    """definition_kind values to match; None means any"""
    values = None if kinds is None else [WorkflowKind(k).value for k in kinds]
    if kind is None:
        return values
    if values is None or kind.value in values:
        return [kind.value]
    return []
