"""Approval API Routes - Document approval and meeting sign-off chains"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_current_user_dep, get_correlation_id_dep, get_approval_chain_dep, unwrap
from ...domain.enums import ApprovalAction, ApprovalMode, InstanceStatus
from ...domain.models import ActorContext, PendingAction, WorkflowInstance
from ...engine.approval_chain import ApprovalChain

router = APIRouter()


class ApprovalStepRequest(BaseModel):
    """One step of a chain as the caller lays it out"""
    assignee: str = Field(..., min_length=1)
    action: ApprovalAction
    name: Optional[str] = Field(None, max_length=200)


class StartChainRequest(BaseModel):
    """Request to start an approval chain"""
    kind: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    steps: List[ApprovalStepRequest] = Field(..., min_length=1)
    mode: Optional[ApprovalMode] = None


class DecideRequest(BaseModel):
    """A decision on one approval step"""
    decision: str = Field(..., min_length=1)
    expected_version: int = Field(..., ge=1)
    actor_id: Optional[str] = None
    comment: Optional[str] = Field(None, max_length=2000)


@router.post("", response_model=WorkflowInstance, status_code=status.HTTP_201_CREATED)
async def start_chain(
    request: StartChainRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    chain: ApprovalChain = Depends(get_approval_chain_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Start a chain; the mode defaults to the kind's template"""
    steps = [s.model_dump(mode="json") for s in request.steps]
    return unwrap(chain.start_chain(request.kind, request.data, steps, actor, mode=request.mode))


@router.post("/{instance_id}/steps/{step_index}/decide", response_model=WorkflowInstance)
async def decide(
    instance_id: str,
    step_index: int,
    request: DecideRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    chain: ApprovalChain = Depends(get_approval_chain_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Approve, reject or sign a step as the signed-in user

    A sign decision is only recorded once the signature provider returned a
    signature; a decline answers 409 and changes nothing.
    """
    result = chain.decide(
        instance_id,
        step_index,
        request.actor_id or actor.user_id,
        request.decision,
        request.expected_version,
        actor,
        comment=request.comment,
    )
    return unwrap(result)


@router.get("", response_model=List[WorkflowInstance])
async def list_chains(
    document_id: Optional[str] = Query(None, min_length=1),
    status: Optional[InstanceStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_current_user_dep),
    chain: ApprovalChain = Depends(get_approval_chain_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Chains of the kinds the caller may reach, optionally only those covering one document"""
    return chain.list_chains(actor, document_id=document_id, status=status, skip=skip, limit=limit)


@router.get("/pending", response_model=List[PendingAction])
async def list_pending_actions(
    actor: ActorContext = Depends(get_current_user_dep),
    chain: ApprovalChain = Depends(get_approval_chain_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Steps waiting on the signed-in user's decision"""
    return chain.pending_actions(actor)
