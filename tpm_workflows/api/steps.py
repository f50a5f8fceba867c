"""
Workflow step endpoints: approve/reject the active step, approver inbox
and overdue feed
"""

from typing import Optional
from fastapi import APIRouter, Depends

from .dependencies import get_engine, get_tenant_context
from .schemas import CompleteStepRequest, RejectStepRequest
from ..engine import WorkflowEngine
from ..tenancy import TenantContext


router = APIRouter()


@router.get("/pending")
async def list_pending_steps(
    assignee_id: Optional[str] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Steps awaiting a decision, optionally for one assignee"""
    steps = engine.transitions.get_pending_steps(ctx, assignee_id=assignee_id)
    return {"success": True, "data": [s.to_dict() for s in steps], "total": len(steps)}


@router.get("/overdue")
async def list_overdue_steps(
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Active steps past their SLA due date"""
    steps = engine.transitions.get_overdue_steps(ctx)
    return {"success": True, "data": [s.to_dict() for s in steps], "total": len(steps)}


@router.put("/{step_id}/complete")
async def complete_step(
    step_id: str,
    request: Optional[CompleteStepRequest] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Complete the active step and advance the workflow"""
    request = request or CompleteStepRequest()
    result = engine.transitions.complete_step(
        ctx, step_id, action=request.action, comments=request.comments
    )
    return {
        "success": True,
        "message": "Step completed",
        "data": {
            "instance_id": result.instance.id,
            "instance_status": result.instance.status.value,
            "current_step": result.instance.current_step,
            "next_step_id": result.next_step.id if result.next_step else None,
        }
    }


@router.put("/{step_id}/reject")
async def reject_step(
    step_id: str,
    request: Optional[RejectStepRequest] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Reject the active step, which rejects the workflow"""
    request = request or RejectStepRequest()
    result = engine.transitions.reject_step(ctx, step_id, comments=request.comments)
    return {
        "success": True,
        "message": "Step rejected",
        "data": {
            "instance_id": result.instance.id,
            "instance_status": result.instance.status.value,
        }
    }
