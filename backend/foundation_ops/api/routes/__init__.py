"""API Routes module"""
from fastapi import APIRouter

from .access import router as access_router
from .workflows import router as workflows_router
from .approvals import router as approvals_router
from .compliance import router as compliance_router

# Main API router
api_router = APIRouter()

# Include all route modules
api_router.include_router(access_router, prefix="/access", tags=["Access"])
api_router.include_router(workflows_router, prefix="/workflows", tags=["Workflows"])
api_router.include_router(approvals_router, prefix="/approvals", tags=["Approvals"])
api_router.include_router(compliance_router, prefix="/compliance", tags=["Compliance"])

__all__ = ["api_router"]
