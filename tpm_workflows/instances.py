"""
Instance Orchestrator

Starts a workflow for one business entity: snapshots the template, persists
the instance and one step row per blueprint entry, and activates step 1. The
instance, its steps and the audit entry are written in a single transaction.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .audit import AuditTrail, AuditEventType
from .exceptions import WorkflowNotFoundError, WorkflowValidationError
from .logging_config import log_action
from .models import (
    WorkflowInstance, WorkflowStep, StepBlueprint, StepStatus, InstanceStatus,
    paginate, newest_first, utcnow, parse_text
)
from .storage import StorageInterface
from .templates import TemplateRegistry
from .tenancy import TenantContext, scoped


logger = logging.getLogger(__name__)

INSTANCE_TABLE = "workflow_instances"
STEP_TABLE = "workflow_steps"


def activate_step(step: WorkflowStep, now: datetime) -> None:
    """Move a step to in_progress and stamp its start and SLA due date"""
    step.status = StepStatus.IN_PROGRESS
    step.started_at = now
    step.updated_at = now
    if step.sla_hours:
        step.due_at = now + timedelta(hours=step.sla_hours)


class InstanceOrchestrator:
    """Materializes and reads workflow instances"""

    def __init__(self, storage: StorageInterface, audit: AuditTrail,
                 templates: TemplateRegistry):
        self.storage = storage
        self.audit = audit
        self.templates = templates

    def create_instance(self, ctx: TenantContext, template_id: Optional[str] = None,
                        entity_type: Optional[str] = None,
                        entity_id: Optional[str] = None,
                        entity_name: Optional[str] = None,
                        notes: Optional[str] = None,
                        data: Optional[Dict[str, Any]] = None) -> WorkflowInstance:
        """
        Start a workflow instance from a template.

        The template's current name and step blueprint are copied into the
        instance; later template edits do not affect it. A template with no
        steps still yields one step so the instance has something to act on.

        Raises:
            WorkflowValidationError: template_id missing
            WorkflowNotFoundError: template not in this tenant
        """
        template_id = parse_text(template_id, "template_id")
        if not template_id:
            raise WorkflowValidationError("template_id is required", field="template_id")
        entity_type = parse_text(entity_type, "entity_type")
        entity_id = parse_text(entity_id, "entity_id")
        entity_name = parse_text(entity_name, "entity_name")
        notes = parse_text(notes, "notes")
        if data is not None and not isinstance(data, dict):
            raise WorkflowValidationError("data must be an object", field="data")

        store = scoped(self.storage, ctx)
        with store.atomic():
            template = self.templates.get_template(ctx, template_id)
            blueprints = list(template.steps) or [StepBlueprint(name="Step 1")]

            now = utcnow()
            instance = WorkflowInstance(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                company_id=ctx.tenant_id,
                template_id=template.id,
                template_name=template.name,
                total_steps=len(blueprints),
                entity_type=entity_type or template.entity_type,
                entity_id=entity_id,
                entity_name=entity_name,
                status=InstanceStatus.IN_PROGRESS,
                current_step=1,
                initiated_by=ctx.user_id,
                initiated_at=now,
                notes=notes,
                data=data or {},
            )

            steps = []
            for number, blueprint in enumerate(blueprints, start=1):
                step = WorkflowStep(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    company_id=ctx.tenant_id,
                    instance_id=instance.id,
                    step_number=number,
                    step_name=blueprint.name,
                    step_type=blueprint.step_type,
                    assignee_id=blueprint.assignee_id,
                    assignee_name=blueprint.assignee_name,
                    sla_hours=blueprint.sla_hours or template.sla_hours,
                    data=dict(blueprint.data),
                )
                if number == 1:
                    activate_step(step, now)
                steps.append(step)

            store.save(INSTANCE_TABLE, instance.id, instance.to_dict())
            for step in steps:
                store.save(STEP_TABLE, step.id, step.to_dict())

            self.audit.log_event(
                AuditEventType.INSTANCE_CREATED,
                'workflow_instance',
                instance.id,
                {
                    'template_id': template.id,
                    'template_name': template.name,
                    'entity_type': instance.entity_type,
                    'entity_id': entity_id,
                    'total_steps': instance.total_steps,
                },
                ctx.user_id,
                ctx.tenant_id
            )

        log_action(logger, "info",
                   f"Workflow started from '{template.name}' with {instance.total_steps} step(s)",
                   user_id=ctx.user_id, action="instance_created",
                   resource=instance.id, tenant_id=ctx.tenant_id,
                   extra={'entity_type': instance.entity_type, 'entity_id': entity_id})
        return instance

    def get_instance(self, ctx: TenantContext,
                     instance_id: str) -> Tuple[WorkflowInstance, List[WorkflowStep]]:
        """Instance plus its steps in step_number order"""
        data = scoped(self.storage, ctx).load(INSTANCE_TABLE, instance_id)
        if not data:
            raise WorkflowNotFoundError("Instance", instance_id)
        return WorkflowInstance.from_dict(data), self.get_steps(ctx, instance_id)

    def get_steps(self, ctx: TenantContext, instance_id: str) -> List[WorkflowStep]:
        rows = scoped(self.storage, ctx).find(STEP_TABLE, {'instance_id': instance_id})
        steps = [WorkflowStep.from_dict(row) for row in rows]
        return sorted(steps, key=lambda s: s.step_number)

    def list_instances(self, ctx: TenantContext,
                       status: Optional[str] = None,
                       entity_type: Optional[str] = None,
                       template_id: Optional[str] = None,
                       entity_id: Optional[str] = None,
                       limit: int = 50, offset: int = 0) -> Tuple[List[WorkflowInstance], int]:
        """Page of instances, newest first, and the number matching the filters"""
        filters = {}
        if status:
            filters['status'] = status
        if entity_type:
            filters['entity_type'] = entity_type
        if template_id:
            filters['template_id'] = template_id
        if entity_id:
            filters['entity_id'] = entity_id

        rows = newest_first(scoped(self.storage, ctx).find(INSTANCE_TABLE, filters))
        page = paginate(rows, limit, offset)
        return [WorkflowInstance.from_dict(row) for row in page], len(rows)

    def get_entity_history(self, ctx: TenantContext, entity_type: str,
                           entity_id: str) -> List[WorkflowInstance]:
        """All workflows ever run for one business entity, newest first"""
        rows = scoped(self.storage, ctx).find(
            INSTANCE_TABLE, {'entity_type': entity_type, 'entity_id': entity_id}
        )
        return [WorkflowInstance.from_dict(row) for row in newest_first(rows)]

    def get_audit_events(self, ctx: TenantContext, instance_id: str) -> List[Dict[str, Any]]:
        """Audit events recorded for an instance, oldest first"""
        if not scoped(self.storage, ctx).exists(INSTANCE_TABLE, instance_id):
            raise WorkflowNotFoundError("Instance", instance_id)
        events = self.audit.get_events_for_entity('workflow_instance', instance_id,
                                                  company_id=ctx.tenant_id)
        return [
            {
                'id': event.id,
                'event_type': event.event_type.value,
                'user_id': event.user_id,
                'metadata': event.metadata,
                'created_at': event.created_at.isoformat(),
            }
            for event in events
        ]

    def count(self, ctx: TenantContext, **filters: Any) -> int:
        return scoped(self.storage, ctx).count(INSTANCE_TABLE, filters)
