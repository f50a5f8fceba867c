"""
Pydantic schemas for API requests
"""

from decimal import Decimal
from typing import Dict, List, Optional, Any
from pydantic import BaseModel, Field


class StepBlueprintModel(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = Field(None, description="Step type (approval, review, notification, condition, action)")
    step_type: Optional[str] = Field(None, description="Alias of type")
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = None
    sla_hours: Optional[int] = Field(None, gt=0)
    data: Optional[Dict[str, Any]] = None


class TemplateFields(BaseModel):
    """Template fields shared by create and update; unset fields are left alone"""
    name: Optional[str] = None
    description: Optional[str] = None
    workflow_type: Optional[str] = Field(None, description="approval, review, notification, escalation, custom")
    entity_type: Optional[str] = Field(None, description="promotion, budget, claim, deduction, settlement, trade_spend")
    trigger_event: Optional[str] = Field(
        None, description="on_create, on_submit, on_amount_threshold, on_status_change, manual"
    )
    status: Optional[str] = Field(None, description="active or inactive")
    steps: Optional[List[StepBlueprintModel]] = None
    conditions: Optional[Dict[str, Any]] = None
    escalation_rules: Optional[Dict[str, Any]] = None
    sla_hours: Optional[int] = Field(None, gt=0)
    auto_approve_below: Optional[Decimal] = None
    requires_all_approvers: Optional[bool] = None
    notes: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    def supplied(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class CreateTemplateRequest(TemplateFields):
    pass


class UpdateTemplateRequest(TemplateFields):
    pass


class CreateInstanceRequest(BaseModel):
    template_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    notes: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class CompleteStepRequest(BaseModel):
    action: Optional[str] = Field(None, description="Decision recorded on the step, default approved")
    comments: Optional[str] = None


class RejectStepRequest(BaseModel):
    comments: Optional[str] = None
