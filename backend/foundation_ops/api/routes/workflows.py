"""Workflow API Routes - Multi-step workflow instances"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_current_user_dep, get_correlation_id_dep, get_engine_dep, unwrap
from ...domain.enums import InstanceStatus, WorkflowKind
from ...domain.models import ActorContext, AuditEvent, WorkflowInstance
from ...engine.engine import WorkflowEngine
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class StartWorkflowRequest(BaseModel):
    """Request to start a workflow instance"""
    kind: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)


class AdvanceRequest(BaseModel):
    """Input for the current step"""
    input: Dict[str, Any] = Field(default_factory=dict)
    expected_version: int = Field(..., ge=1)


class RejectRequest(BaseModel):
    """Operator rejection"""
    reason: str = Field(..., min_length=1, max_length=2000)
    expected_version: int = Field(..., ge=1)


class VersionedRequest(BaseModel):
    """Any change that only needs the caller's version"""
    expected_version: int = Field(..., ge=1)


class CompleteSideEffectRequest(BaseModel):
    """Outcome reported by an external side-effect handler"""
    succeeded: bool
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = Field(None, max_length=1000)


# ============================================================================
# Routes
# ============================================================================

@router.post("", response_model=WorkflowInstance, status_code=status.HTTP_201_CREATED)
async def start_workflow(
    request: StartWorkflowRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Start an instance at step 1"""
    return unwrap(engine.start(request.kind, request.data, actor))


@router.get("", response_model=List[WorkflowInstance])
async def list_workflows(
    kind: Optional[WorkflowKind] = Query(None),
    status: Optional[InstanceStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Instances of the kinds the caller's role may reach, most recently updated first"""
    return engine.list_instances(actor, kind=kind, status=status, skip=skip, limit=limit)


@router.get("/{instance_id}", response_model=WorkflowInstance)
async def get_workflow(
    instance_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    return unwrap(engine.get(instance_id, actor))


@router.get("/{instance_id}/audit", response_model=List[AuditEvent])
async def get_workflow_audit(
    instance_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Audit trail of an instance, oldest first"""
    unwrap(engine.get(instance_id, actor))
    return engine.audit.repo.get_events_for_instance(instance_id, skip=skip, limit=limit)


@router.post("/{instance_id}/resume", response_model=WorkflowInstance)
async def resume_workflow(
    instance_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Pick up a saved instance where it stopped"""
    return unwrap(engine.resume(instance_id, actor))


@router.post("/{instance_id}/advance", response_model=WorkflowInstance)
async def advance_workflow(
    instance_id: str,
    request: AdvanceRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Submit the current step

    A failed validation answers 422 with every reason and the blocked
    instance; the caller fixes the input and submits again.
    """
    return unwrap(engine.advance(instance_id, request.input, request.expected_version, actor))


@router.post("/{instance_id}/reject", response_model=WorkflowInstance)
async def reject_workflow(
    instance_id: str,
    request: RejectRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    return unwrap(engine.reject(instance_id, request.reason, request.expected_version, actor))


@router.post("/{instance_id}/retreat", response_model=WorkflowInstance)
async def retreat_workflow(
    instance_id: str,
    request: VersionedRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Back one step; data and history are kept"""
    return unwrap(engine.retreat(instance_id, request.expected_version, actor))


@router.post("/{instance_id}/side-effects/{step_index}/complete", response_model=WorkflowInstance)
async def complete_side_effect(
    instance_id: str,
    step_index: int,
    request: CompleteSideEffectRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Callback for a side effect handled outside the outbox processor"""
    result = engine.complete_side_effect(
        instance_id, step_index, request.succeeded,
        result=request.result, error=request.error, actor=actor
    )
    return unwrap(result)


@router.post("/{instance_id}/side-effects/{step_index}/retry", response_model=WorkflowInstance)
async def retry_side_effect(
    instance_id: str,
    step_index: int,
    request: VersionedRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Re-fire a failed side effect; pending or done ones are left alone"""
    return unwrap(engine.retry_side_effect(instance_id, step_index, request.expected_version, actor))
