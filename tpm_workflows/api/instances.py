"""
Workflow instance endpoints
"""

from typing import Optional, Tuple
from fastapi import APIRouter, Depends

from .dependencies import get_engine, get_page, get_tenant_context
from .schemas import CreateInstanceRequest
from ..engine import WorkflowEngine
from ..tenancy import TenantContext


router = APIRouter()


@router.get("")
async def list_instances(
    status: Optional[str] = None,
    entity_type: Optional[str] = None,
    template_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    page: Tuple[int, int] = Depends(get_page),
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """List workflow instances, newest first"""
    limit, offset = page
    instances, total = engine.instances.list_instances(
        ctx,
        status=status,
        entity_type=entity_type,
        template_id=template_id,
        entity_id=entity_id,
        limit=limit,
        offset=offset
    )
    return {"success": True, "data": [i.to_dict() for i in instances], "total": total}


@router.get("/{instance_id}")
async def get_instance(
    instance_id: str,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Get a workflow instance with its steps in order"""
    instance, steps = engine.instances.get_instance(ctx, instance_id)
    data = instance.to_dict()
    data["steps"] = [step.to_dict() for step in steps]
    return {"success": True, "data": data}


@router.get("/{instance_id}/audit")
async def get_instance_audit(
    instance_id: str,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Audit events for a workflow instance, oldest first"""
    events = engine.instances.get_audit_events(ctx, instance_id)
    return {"success": True, "data": events}


@router.post("", status_code=201)
async def create_instance(
    request: CreateInstanceRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Start a workflow instance from a template"""
    instance = engine.instances.create_instance(
        ctx,
        template_id=request.template_id,
        entity_type=request.entity_type,
        entity_id=request.entity_id,
        entity_name=request.entity_name,
        notes=request.notes,
        data=request.data
    )
    return {"success": True, "data": instance.to_dict()}
