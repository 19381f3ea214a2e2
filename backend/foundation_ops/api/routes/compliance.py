"""Compliance API Routes - Ad-hoc validation without a workflow instance"""
from typing import Any, Dict, List
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_correlation_id_dep, get_compliance_checker_dep, require_screen
from ...domain.enums import Screen
from ...domain.models import ActorContext, ComplianceCheck, StepEvaluation
from ...engine.validators import ComplianceChecker, validate_requirement

router = APIRouter()


class ComplianceDataRequest(BaseModel):
    """Data snapshot to validate"""
    data: Dict[str, Any] = Field(default_factory=dict)


@router.post("/requirements/{requirement_type}/validate", response_model=StepEvaluation)
async def validate_compliance_requirement(
    requirement_type: str,
    request: ComplianceDataRequest,
    actor: ActorContext = Depends(require_screen(Screen.FOUNDATIONS)),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Validate a filing (annual report, tax filing, board registration)

    A failing requirement is a normal answer (passed=false with reasons),
    and so is an unknown requirement type.
    """
    return validate_requirement(requirement_type, request.data)


@router.post("/checks", response_model=List[ComplianceCheck])
async def run_compliance_checks(
    request: ComplianceDataRequest,
    actor: ActorContext = Depends(require_screen(Screen.FOUNDATIONS)),
    checker: ComplianceChecker = Depends(get_compliance_checker_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Every registration compliance check against a data snapshot, pass or fail"""
    return checker.run_all(request.data)
