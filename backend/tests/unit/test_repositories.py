"""Tests for the MongoDB repositories"""
from datetime import timedelta

import pytest

from foundation_ops.domain.enums import (
    ApprovalAction, ApprovalDecision, ApprovalMode, AuditEventType, InstanceStatus, OutboxStatus, SideEffectKind, WorkflowKind
)
from foundation_ops.domain.errors import InstanceNotFoundError, StaleInstanceError
from foundation_ops.domain.models import ApprovalStepState, AuditEvent, UserSnapshot, WorkflowInstance
from foundation_ops.repositories.audit_repo import AuditRepository
from foundation_ops.repositories.instance_repo import InstanceRepository
from foundation_ops.repositories.outbox_repo import OutboxRepository
from foundation_ops.utils.time import utc_now


@pytest.fixture
def instances():
    return InstanceRepository()


@pytest.fixture
def outbox():
    return OutboxRepository()


def new_instance(instance_id="WFI-000000000001", **kwargs):
    return WorkflowInstance(instance_id=instance_id, definition_kind=WorkflowKind.REGISTRATION, **kwargs)


def chain_instance(instance_id, kind=WorkflowKind.DOCUMENT_APPROVAL, document_ids=("DOC-1",), steps=(), **kwargs):
    return WorkflowInstance(
        instance_id=instance_id,
        definition_kind=kind,
        data={"document_ids": list(document_ids)},
        approval_mode=ApprovalMode.SEQUENTIAL,
        approval_steps=[
            ApprovalStepState(index=n, name=f"Step {n}", assignee=assignee, action=ApprovalAction.APPROVE, decision=decision)
            for n, (assignee, decision) in enumerate(steps, start=1)
        ],
        **kwargs
    )


# =============================================================================
# Instances
# =============================================================================

class TestInstanceRepository:

    def test_create_and_load(self, instances):
        instances.create(new_instance(data={"foundation_name": "Stiftelsen Ekhagen"}))

        loaded = instances.load("WFI-000000000001")

        assert loaded.version == 1
        assert loaded.data == {"foundation_name": "Stiftelsen Ekhagen"}

    def test_load_missing(self, instances):
        with pytest.raises(InstanceNotFoundError):
            instances.load("WFI-missing")
        assert instances.get("WFI-missing") is None

    def test_save_bumps_version(self, instances):
        created = instances.create(new_instance())

        saved = instances.save(created.model_copy(update={"current_step_index": 2}))

        assert saved.version == 2
        assert instances.load(created.instance_id).current_step_index == 2

    def test_concurrent_save_loses(self, instances):
        created = instances.create(new_instance())
        first = instances.load(created.instance_id)
        second = instances.load(created.instance_id)

        instances.save(first.model_copy(update={"current_step_index": 2}))
        with pytest.raises(StaleInstanceError) as exc_info:
            instances.save(second.model_copy(update={"status": InstanceStatus.REJECTED}))

        assert exc_info.value.details["current_version"] == 2
        stored = instances.load(created.instance_id)
        assert stored.status == InstanceStatus.IN_PROGRESS
        assert stored.current_step_index == 2

    def test_save_deleted_instance(self, instances):
        with pytest.raises(InstanceNotFoundError):
            instances.save(new_instance())

    def test_list_filters_by_status(self, instances):
        instances.create(new_instance("WFI-a"))
        instances.create(new_instance("WFI-b", status=InstanceStatus.BLOCKED))

        blocked = instances.list_instances(status=InstanceStatus.BLOCKED)

        assert [i.instance_id for i in blocked] == ["WFI-b"]
        assert len(instances.list_instances(kind=WorkflowKind.REGISTRATION)) == 2
        assert instances.list_instances(kind=WorkflowKind.MEETING_SIGNOFF) == []

    def test_list_pages_only_allowed_kinds(self, instances):
        for n in range(3):
            instances.create(new_instance(f"WFI-reg-{n}"))
        instances.create(chain_instance("WFI-meet-1", WorkflowKind.MEETING_SIGNOFF))

        page = instances.list_instances(kinds=[WorkflowKind.MEETING_SIGNOFF], limit=1)

        assert [i.instance_id for i in page] == ["WFI-meet-1"]
        assert instances.list_instances(kind=WorkflowKind.REGISTRATION, kinds=[WorkflowKind.MEETING_SIGNOFF]) == []
        assert instances.list_instances(kinds=[]) == []

    def test_list_by_document(self, instances):
        instances.create(chain_instance("WFI-a", document_ids=["DOC-1", "DOC-2"]))
        instances.create(chain_instance("WFI-b", document_ids=["DOC-3"]))

        assert [i.instance_id for i in instances.list_instances(document_id="DOC-2")] == ["WFI-a"]

    def test_pending_for_assignee(self, instances):
        instances.create(chain_instance("WFI-open", steps=[("u-anna", ApprovalDecision.APPROVED), ("u-bo", ApprovalDecision.PENDING)]))
        instances.create(chain_instance("WFI-done", steps=[("u-bo", ApprovalDecision.APPROVED)]))
        instances.create(chain_instance(
            "WFI-closed", status=InstanceStatus.REJECTED,
            steps=[("u-anna", ApprovalDecision.REJECTED), ("u-bo", ApprovalDecision.PENDING)]
        ))

        assert [i.instance_id for i in instances.list_pending_for_assignee("u-bo")] == ["WFI-open"]
        assert instances.list_pending_for_assignee("u-anna") == []
        assert instances.list_pending_for_assignee("u-bo", kinds=[WorkflowKind.MEETING_SIGNOFF]) == []


# =============================================================================
# Outbox
# =============================================================================

class TestOutboxRepository:

    def test_enqueue_is_keyed(self, outbox, mongo_db):
        assert outbox.enqueue("WFI-a", 5, SideEffectKind.DOCUMENT_GENERATION) is True
        assert outbox.enqueue("WFI-a", 5, SideEffectKind.DOCUMENT_GENERATION) is False

        assert mongo_db["side_effect_outbox"].count_documents({}) == 1
        entry = outbox.get("WFI-a", 5)
        assert entry.key == "WFI-a:5"
        assert entry.status == OutboxStatus.PENDING
        assert entry.attempts == 0

    def test_lock_is_exclusive(self, outbox):
        outbox.enqueue("WFI-a", 5, SideEffectKind.DOCUMENT_GENERATION)

        assert outbox.acquire_lock("WFI-a:5", "worker-1", 60) is True
        assert outbox.acquire_lock("WFI-a:5", "worker-2", 60) is False
        assert outbox.get_pending() == []

        assert outbox.release_lock("WFI-a:5", "worker-2") is False
        assert outbox.release_lock("WFI-a:5", "worker-1") is True
        assert [e.key for e in outbox.get_pending()] == ["WFI-a:5"]
        assert outbox.get("WFI-a", 5).attempts == 1

    def test_done_entries_are_not_pending(self, outbox):
        outbox.enqueue("WFI-a", 5, SideEffectKind.DOCUMENT_GENERATION)
        outbox.enqueue("WFI-b", 5, SideEffectKind.DOCUMENT_GENERATION)

        outbox.mark_done("WFI-a:5")
        outbox.mark_failed("WFI-b:5", "Document service returned 500")

        assert outbox.get_pending() == []
        assert outbox.get("WFI-b", 5).last_error == "Document service returned 500"
        assert outbox.acquire_lock("WFI-a:5", "worker-1", 60) is False

    def test_requeue_resets_failed_entry(self, outbox):
        outbox.enqueue("WFI-a", 5, SideEffectKind.DOCUMENT_GENERATION)
        outbox.mark_failed("WFI-a:5", "timeout")

        entry = outbox.requeue("WFI-a", 5, SideEffectKind.DOCUMENT_GENERATION)

        assert entry.status == OutboxStatus.PENDING
        assert entry.last_error is None
        assert [e.key for e in outbox.get_pending()] == ["WFI-a:5"]

    def test_requeue_creates_missing_entry(self, outbox):
        entry = outbox.requeue("WFI-a", 5, SideEffectKind.DOCUMENT_GENERATION)

        assert entry.key == "WFI-a:5"
        assert entry.instance_id == "WFI-a"

    def test_cleanup_releases_expired_locks_only(self, outbox, mongo_db):
        outbox.enqueue("WFI-a", 5, SideEffectKind.DOCUMENT_GENERATION)
        outbox.enqueue("WFI-b", 5, SideEffectKind.DOCUMENT_GENERATION)
        outbox.acquire_lock("WFI-a:5", "dead-worker", 60)
        outbox.acquire_lock("WFI-b:5", "live-worker", 60)
        mongo_db["side_effect_outbox"].update_one(
            {"key": "WFI-a:5"}, {"$set": {"locked_until": utc_now() - timedelta(minutes=30)}}
        )

        assert outbox.cleanup_stale_locks(max_lock_age_minutes=10) == 1
        assert outbox.get("WFI-a", 5).locked_by is None
        assert outbox.get("WFI-b", 5).locked_by == "live-worker"


# =============================================================================
# Audit
# =============================================================================

def test_audit_events_filter_by_type():
    repo = AuditRepository()
    actor = UserSnapshot(user_id="u-admin", display_name="Astrid Admin", role_at_time="admin")
    for number, event_type in enumerate([AuditEventType.WORKFLOW_STARTED, AuditEventType.ACCESS_DENIED], start=1):
        repo.create_event(AuditEvent(
            audit_event_id=f"AUD-{number}",
            instance_id="WFI-a",
            event_type=event_type,
            actor=actor,
            timestamp=utc_now(),
        ))

    denied = repo.get_events_for_instance("WFI-a", event_types=[AuditEventType.ACCESS_DENIED])

    assert [e.audit_event_id for e in denied] == ["AUD-2"]
    assert repo.count_events_for_instance("WFI-a") == 2
    assert repo.count_events_for_instance("WFI-b") == 0
