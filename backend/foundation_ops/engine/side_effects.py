"""Side-Effect Dispatcher - Markers on entry, outbox after save"""
from typing import Optional, Tuple

from ..domain.models import WorkflowInstance, SideEffectMarker
from ..domain.enums import SideEffectKind, SideEffectStatus
from ..repositories.outbox_repo import OutboxRepository
from ..utils.time import utc_now
from ..utils.logger import get_logger
from .definitions import StepSpec

logger = get_logger(__name__)

# Result keys a settled side effect may write into instance data; the rest stays on the marker
MERGED_RESULT_KEYS = {
    SideEffectKind.DOCUMENT_GENERATION: frozenset({"generated_document_ids"}),
    SideEffectKind.SIGNATURE: frozenset(),
}


class SideEffectDispatcher:
    """
    Fires the side effect of a step when an instance enters it

    Firing is two-phase. mark_entered() records a pending marker on the
    unsaved instance; queue() writes the outbox entry once the save went
    through. A step fires at most once per instance: re-entering a step
    that already has a marker does nothing.
    """

    def __init__(self, outbox: Optional[OutboxRepository] = None):
        self.outbox = outbox or OutboxRepository()

    def mark_entered(
        self,
        instance: WorkflowInstance,
        step: Optional[StepSpec]
    ) -> Tuple[WorkflowInstance, Optional[SideEffectMarker]]:
        """Instance with a new pending marker, and the marker; (instance, None) if nothing fires"""
        if step is None or step.side_effect is None or instance.is_terminal:
            return instance, None
        if instance.marker_for(step.index) is not None:
            return instance, None

        marker = SideEffectMarker(step_index=step.index, kind=step.side_effect)
        return instance.model_copy(update={"side_effects": [*instance.side_effects, marker]}), marker

    def arm(self, instance: WorkflowInstance, step_index: int, kind: SideEffectKind) -> WorkflowInstance:
        """Pending marker for a synchronous call: new, or a failed one re-armed"""
        marker = instance.marker_for(step_index)
        if marker is None:
            marker = SideEffectMarker(step_index=step_index, kind=kind)
            return instance.model_copy(update={"side_effects": [*instance.side_effects, marker]})
        if marker.status == SideEffectStatus.FAILED:
            return self.rearm(instance, step_index)
        return instance

    def queue(self, instance_id: str, marker: SideEffectMarker) -> bool:
        return self.outbox.enqueue(instance_id, marker.step_index, marker.kind)

    def rearm(self, instance: WorkflowInstance, step_index: int) -> WorkflowInstance:
        """Failed marker back to pending for another attempt"""
        markers = []
        for marker in instance.side_effects:
            if marker.step_index == step_index:
                marker = marker.model_copy(update={
                    "status": SideEffectStatus.PENDING,
                    "attempts": marker.attempts + 1,
                    "error": None,
                    "fired_at": utc_now(),
                    "completed_at": None,
                })
            markers.append(marker)
        return instance.model_copy(update={"side_effects": markers})

    def requeue(self, instance_id: str, marker: SideEffectMarker) -> None:
        self.outbox.requeue(instance_id, marker.step_index, marker.kind)

    @staticmethod
    def settle(
        instance: WorkflowInstance,
        step_index: int,
        succeeded: bool,
        result: Optional[dict] = None,
        error: Optional[str] = None
    ) -> WorkflowInstance:
        """Marker done or failed; a success copies the kind's allow-listed result keys into data"""
        now = utc_now()
        markers = []
        merged = {}
        for marker in instance.side_effects:
            if marker.step_index == step_index:
                if succeeded and result:
                    allowed = MERGED_RESULT_KEYS.get(marker.kind, frozenset())
                    merged = {key: value for key, value in result.items() if key in allowed}
                marker = marker.model_copy(update={
                    "status": SideEffectStatus.DONE if succeeded else SideEffectStatus.FAILED,
                    "result": (result or {}) if succeeded else marker.result,
                    "error": None if succeeded else (error or "Side effect failed"),
                    "completed_at": now,
                })
            markers.append(marker)

        update = {"side_effects": markers, "updated_at": now}
        if merged:
            update["data"] = {**instance.data, **merged}
        return instance.model_copy(update=update)
