"""
Workflow template endpoints
"""

from typing import Optional, Tuple
from fastapi import APIRouter, Depends

from .dependencies import get_engine, get_page, get_tenant_context
from .schemas import CreateTemplateRequest, UpdateTemplateRequest
from ..engine import WorkflowEngine
from ..tenancy import TenantContext


router = APIRouter()


@router.get("")
async def list_templates(
    workflow_type: Optional[str] = None,
    entity_type: Optional[str] = None,
    status: Optional[str] = None,
    page: Tuple[int, int] = Depends(get_page),
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """List workflow templates, newest first"""
    limit, offset = page
    templates, total = engine.templates.list_templates(
        ctx,
        workflow_type=workflow_type,
        entity_type=entity_type,
        status=status,
        limit=limit,
        offset=offset
    )
    return {"success": True, "data": [t.to_dict() for t in templates], "total": total}


@router.get("/{template_id}")
async def get_template(
    template_id: str,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Get a workflow template"""
    template = engine.templates.get_template(ctx, template_id)
    return {"success": True, "data": template.to_dict()}


@router.post("", status_code=201)
async def create_template(
    request: CreateTemplateRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Create a workflow template"""
    template = engine.templates.create_template(ctx, **request.supplied())
    return {"success": True, "data": template.to_dict()}


@router.put("/{template_id}")
async def update_template(
    template_id: str,
    request: UpdateTemplateRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Update a workflow template; omitted fields keep their values"""
    template = engine.templates.update_template(ctx, template_id, **request.supplied())
    return {"success": True, "data": template.to_dict()}


@router.delete("/{template_id}")
async def delete_template(
    template_id: str,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: WorkflowEngine = Depends(get_engine)
):
    """Delete a workflow template"""
    engine.templates.delete_template(ctx, template_id)
    return {"success": True, "message": "Template deleted"}
