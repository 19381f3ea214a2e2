"""Side-Effect Processor - Executes queued side effects from the outbox"""
import os
import socket
from typing import Dict, Optional

from ..config.settings import settings
from ..domain.enums import SideEffectKind, SideEffectStatus
from ..domain.errors import DocumentGenerationError
from ..domain.models import OutboxEntry
from ..engine.engine import WorkflowEngine
from ..repositories.outbox_repo import OutboxRepository
from ..utils.idgen import generate_id
from ..utils.logger import get_logger, get_instance_logger
from .document_service import DocumentServiceClient

logger = get_logger(__name__)


class SideEffectProcessor:
    """
    Drains the side-effect outbox

    Each entry is locked before it is worked on, so several processes can
    drain the same outbox. The outcome is written back through the engine
    (marker done or failed) and the entry is closed. Failures are not
    retried here: a failed side effect waits for an explicit retry.
    """

    def __init__(
        self,
        engine: Optional[WorkflowEngine] = None,
        outbox: Optional[OutboxRepository] = None,
        document_client: Optional[DocumentServiceClient] = None
    ):
        self.engine = engine or WorkflowEngine()
        self.outbox = outbox or OutboxRepository()
        self.document_client = document_client or DocumentServiceClient()
        self.server_id = f"{socket.gethostname()}-{os.getpid()}-{generate_id(length=8)}"

    def process_pending(self, limit: int = 50) -> Dict[str, int]:
        """One pass over pending entries; returns counts per outcome"""
        counts = {"done": 0, "failed": 0, "skipped": 0}

        for entry in self.outbox.get_pending(limit=limit):
            lock_id = f"{self.server_id}-{generate_id(length=8)}"
            if not self.outbox.acquire_lock(entry.key, lock_id, settings.side_effect_lock_duration_seconds):
                counts["skipped"] += 1
                continue

            try:
                outcome = self.process_entry(entry)
                counts[outcome] += 1
            except Exception as e:
                counts["failed"] += 1
                logger.error(
                    f"Error processing side effect {entry.key}: {e}",
                    extra={"instance_id": entry.instance_id, "step_index": entry.step_index},
                    exc_info=True
                )
            finally:
                self.outbox.release_lock(entry.key, lock_id)

        if counts["done"] or counts["failed"]:
            logger.info(
                f"Side-effect cycle complete: {counts['done']} done, {counts['failed']} failed, "
                f"{counts['skipped']} skipped"
            )
        return counts

    def process_entry(self, entry: OutboxEntry) -> str:
        log = get_instance_logger(__name__, entry.instance_id, step_index=entry.step_index)

        instance = self.engine.repo.get(entry.instance_id)
        if instance is None:
            self.outbox.mark_failed(entry.key, "Instance no longer exists")
            log.warning("Dropping side effect for a missing instance")
            return "failed"

        marker = instance.marker_for(entry.step_index)
        if marker is None or marker.status != SideEffectStatus.PENDING:
            # Settled elsewhere, e.g. by an external callback
            self.outbox.mark_done(entry.key)
            return "skipped"

        if entry.kind != SideEffectKind.DOCUMENT_GENERATION:
            self.outbox.mark_failed(entry.key, f"No processor for {entry.kind.value}")
            log.error(f"No processor for side effect kind {entry.kind.value}")
            return "failed"

        try:
            document_ids = self.document_client.generate(instance, entry.step_index)
        except DocumentGenerationError as e:
            log.warning(f"Document generation failed: {e.message}")
            result = self.engine.complete_side_effect(
                entry.instance_id, entry.step_index, succeeded=False, error=e.message
            )
            if not result.ok:
                return "skipped"
            self.outbox.mark_failed(entry.key, e.message)
            return "failed"

        result = self.engine.complete_side_effect(
            entry.instance_id, entry.step_index, succeeded=True,
            result={"generated_document_ids": document_ids}
        )
        if not result.ok:
            # Left pending; the next cycle tries again
            log.warning(f"Could not record generated documents: {result.error.code}")
            return "skipped"

        self.outbox.mark_done(entry.key)
        log.info(f"Generated {len(document_ids)} documents")
        return "done"
