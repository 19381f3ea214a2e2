"""Tests for the outbox-driven side-effect processor"""
import pytest

from foundation_ops.domain.enums import OutboxStatus, SideEffectKind, SideEffectStatus
from foundation_ops.domain.errors import DocumentGenerationError
from foundation_ops.repositories.outbox_repo import OutboxRepository
from foundation_ops.services.side_effect_processor import SideEffectProcessor


@pytest.fixture
def processor(engine, document_client):
    return SideEffectProcessor(engine=engine, document_client=document_client)


@pytest.fixture
def generating(engine, admin_actor, basic_info, three_members, contact_person):
    """Registration that just entered document generation"""
    result = engine.start("registration", dict(basic_info, board_members=three_members, **contact_person), admin_actor)
    instance = result.instance
    for _ in range(4):
        instance = engine.advance(instance.instance_id, {}, instance.version, admin_actor).instance
    assert instance.current_step_index == 5
    return instance


def test_generated_documents_settle_the_marker(processor, engine, generating, document_client):
    counts = processor.process_pending()

    assert counts == {"done": 1, "failed": 0, "skipped": 0}
    instance = engine.repo.load(generating.instance_id)
    assert instance.marker_for(5).status == SideEffectStatus.DONE
    assert instance.data["generated_document_ids"] == ["DOC-statutes", "DOC-board-minutes"]
    assert OutboxRepository().get(generating.instance_id, 5).status == OutboxStatus.DONE
    document_client.generate.assert_called_once()


def test_processed_entry_is_not_picked_up_again(processor, generating, document_client):
    processor.process_pending()
    counts = processor.process_pending()

    assert counts == {"done": 0, "failed": 0, "skipped": 0}
    assert document_client.generate.call_count == 1


def test_late_failure_does_not_generate_documents_twice(processor, engine, admin_actor, generating, document_client):
    processor.process_pending()
    done = engine.repo.load(generating.instance_id)

    assert not engine.complete_side_effect(generating.instance_id, 5, False, error="late timeout").ok
    assert engine.retry_side_effect(generating.instance_id, 5, done.version, admin_actor).ok
    processor.process_pending()

    assert document_client.generate.call_count == 1
    assert engine.repo.load(generating.instance_id).marker_for(5).status == SideEffectStatus.DONE


def test_generation_failure_marks_marker_failed(processor, engine, generating, document_client):
    document_client.generate.side_effect = DocumentGenerationError("Document service returned 503")

    counts = processor.process_pending()

    assert counts["failed"] == 1
    marker = engine.repo.load(generating.instance_id).marker_for(5)
    assert marker.status == SideEffectStatus.FAILED
    assert marker.error == "Document service returned 503"
    entry = OutboxRepository().get(generating.instance_id, 5)
    assert entry.status == OutboxStatus.FAILED
    assert entry.last_error == "Document service returned 503"


def test_unexpected_error_leaves_entry_unlocked(processor, generating, document_client):
    document_client.generate.side_effect = RuntimeError("boom")

    counts = processor.process_pending()

    assert counts["failed"] == 1
    entry = OutboxRepository().get(generating.instance_id, 5)
    assert entry.status == OutboxStatus.PENDING
    assert entry.locked_by is None


def test_marker_settled_elsewhere_is_skipped(processor, engine, generating, document_client):
    engine.complete_side_effect(generating.instance_id, 5, True, result={"generated_document_ids": ["DOC-x"]})

    counts = processor.process_pending()

    assert counts["skipped"] == 1
    document_client.generate.assert_not_called()
    assert OutboxRepository().get(generating.instance_id, 5).status == OutboxStatus.DONE


def test_locked_entry_is_skipped(processor, generating, document_client, monkeypatch):
    outbox = OutboxRepository()
    monkeypatch.setattr(processor.outbox, "acquire_lock", lambda key, lock_by, duration: False)

    counts = processor.process_pending()

    assert counts == {"done": 0, "failed": 0, "skipped": 1}
    document_client.generate.assert_not_called()
    assert outbox.get(generating.instance_id, 5).status == OutboxStatus.PENDING


def test_missing_instance_fails_entry(processor, document_client):
    OutboxRepository().enqueue("WFI-gone", 5, SideEffectKind.DOCUMENT_GENERATION)

    counts = processor.process_pending()

    assert counts["failed"] == 1
    assert OutboxRepository().get("WFI-gone", 5).last_error == "Instance no longer exists"
