"""
Workflow summary and option list endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import get_engine, get_tenant_context
from ..engine import WorkflowEngine
from ..summary import WorkflowSummary
from ..tenancy import TenantContext


router = APIRouter()


@router.get("/summary")
async def get_summary(
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Template and instance counts for the caller's tenant"""
    return {"success": True, "data": engine.summary.get_summary(ctx)}


@router.get("/options")
async def get_options():
    """Enumerations for selection controls"""
    return {"success": True, "data": WorkflowSummary.get_options()}
