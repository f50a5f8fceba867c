"""
Template Registry

Tenant-owned, reusable workflow definitions. Templates are edited in place;
running instances keep their own snapshot of the name and step blueprint, so
edits and deletions never rewrite history.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from .audit import AuditTrail, AuditEventType
from .exceptions import (
    WorkflowNotFoundError, WorkflowValidationError, SystemTemplateProtectedError
)
from .logging_config import log_action
from .models import (
    WorkflowTemplate, WorkflowType, TriggerEvent, TemplateStatus,
    parse_enum, parse_blueprints, parse_sla_hours, parse_amount, parse_text, parse_flag,
    paginate, newest_first, utcnow
)
from .storage import StorageInterface
from .tenancy import TenantContext, scoped


logger = logging.getLogger(__name__)

TEMPLATE_TABLE = "workflow_templates"


class TemplateRegistry:
    """Create, read, update and delete workflow templates for a tenant"""

    # Fields a caller may change through update_template
    UPDATABLE_FIELDS = (
        'name', 'description', 'workflow_type', 'entity_type', 'trigger_event',
        'status', 'steps', 'conditions', 'escalation_rules', 'sla_hours',
        'auto_approve_below', 'requires_all_approvers', 'notes', 'data',
    )

    def __init__(self, storage: StorageInterface, audit: AuditTrail):
        self.storage = storage
        self.audit = audit

    def list_templates(self, ctx: TenantContext,
                       workflow_type: Optional[str] = None,
                       entity_type: Optional[str] = None,
                       status: Optional[str] = None,
                       limit: int = 50, offset: int = 0) -> Tuple[List[WorkflowTemplate], int]:
        """Page of templates, newest first, and the number matching the filters"""
        filters = {}
        if workflow_type:
            filters['workflow_type'] = workflow_type
        if entity_type:
            filters['entity_type'] = entity_type
        if status:
            filters['status'] = status

        rows = newest_first(scoped(self.storage, ctx).find(TEMPLATE_TABLE, filters))
        page = paginate(rows, limit, offset)
        return [WorkflowTemplate.from_dict(row) for row in page], len(rows)

    def get_template(self, ctx: TenantContext, template_id: str) -> WorkflowTemplate:
        data = scoped(self.storage, ctx).load(TEMPLATE_TABLE, template_id)
        if not data:
            raise WorkflowNotFoundError("Template", template_id)
        return WorkflowTemplate.from_dict(data)

    def create_template(self, ctx: TenantContext, name: Optional[str] = None,
                        **fields: Any) -> WorkflowTemplate:
        """
        Create a template.

        Args:
            ctx: Tenant and acting user
            name: Display name, required
            **fields: Any other template field; unset ones take their defaults
                (approval / on_submit / active, version 1, no steps)

        Raises:
            WorkflowValidationError: name missing or a field fails validation
        """
        name = parse_text(name, "name")
        if not name:
            raise WorkflowValidationError("Name is required", field="name")

        unknown = set(fields) - set(self.UPDATABLE_FIELDS) - {'is_system'}
        if unknown:
            raise WorkflowValidationError(f"Unknown template field(s): {', '.join(sorted(unknown))}")

        now = utcnow()
        template = WorkflowTemplate(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            company_id=ctx.tenant_id,
            name=name,
            is_system=parse_flag(fields.pop('is_system', False), "is_system"),
            created_by=ctx.user_id,
        )
        self._apply(template, fields)

        store = scoped(self.storage, ctx)
        with store.atomic():
            store.save(TEMPLATE_TABLE, template.id, template.to_dict())
            self.audit.log_event(
                AuditEventType.TEMPLATE_CREATED,
                'workflow_template',
                template.id,
                {'name': template.name, 'workflow_type': template.workflow_type,
                 'steps': len(template.steps), 'is_system': template.is_system},
                ctx.user_id,
                ctx.tenant_id
            )

        log_action(logger, "info", f"Workflow template created: {template.name}",
                   user_id=ctx.user_id, action="template_created",
                   resource=template.id, tenant_id=ctx.tenant_id)
        return template

    def update_template(self, ctx: TenantContext, template_id: str,
                        **changes: Any) -> WorkflowTemplate:
        """
        Merge the supplied fields over an existing template.

        Absent fields keep their stored values, including the step blueprint
        and the rule objects. A blank name keeps the current name. Replacing
        the step blueprint bumps the template version.

        Raises:
            WorkflowNotFoundError: template not in this tenant
            WorkflowValidationError: is_system or an unknown field supplied
        """
        if 'is_system' in changes:
            raise WorkflowValidationError("is_system cannot be changed", field="is_system")
        unknown = set(changes) - set(self.UPDATABLE_FIELDS)
        if unknown:
            raise WorkflowValidationError(f"Unknown template field(s): {', '.join(sorted(unknown))}")

        store = scoped(self.storage, ctx)
        with store.atomic():
            template = self.get_template(ctx, template_id)

            name = parse_text(changes.pop('name', None), "name")
            if name:
                template.name = name
            self._apply(template, changes)
            if changes.get('steps') is not None:
                template.version += 1
            template.updated_at = utcnow()

            store.save(TEMPLATE_TABLE, template.id, template.to_dict())
            self.audit.log_event(
                AuditEventType.TEMPLATE_UPDATED,
                'workflow_template',
                template.id,
                {'fields': sorted(changes) + (['name'] if name else []),
                 'version': template.version},
                ctx.user_id,
                ctx.tenant_id
            )

        log_action(logger, "info", f"Workflow template updated: {template.name}",
                   user_id=ctx.user_id, action="template_updated",
                   resource=template.id, tenant_id=ctx.tenant_id)
        return template

    def delete_template(self, ctx: TenantContext, template_id: str) -> None:
        """
        Remove a template. Instances created from it are left untouched.

        Raises:
            WorkflowNotFoundError: template not in this tenant
            SystemTemplateProtectedError: template is a system template
        """
        store = scoped(self.storage, ctx)
        with store.atomic():
            template = self.get_template(ctx, template_id)
            if template.is_system:
                log_action(logger, "warning", "Refused to delete system template",
                           user_id=ctx.user_id, action="template_delete_refused",
                           resource=template_id, tenant_id=ctx.tenant_id)
                raise SystemTemplateProtectedError(template_id)

            store.delete(TEMPLATE_TABLE, template_id)
            self.audit.log_event(
                AuditEventType.TEMPLATE_DELETED,
                'workflow_template',
                template_id,
                {'name': template.name},
                ctx.user_id,
                ctx.tenant_id
            )

        log_action(logger, "info", f"Workflow template deleted: {template.name}",
                   user_id=ctx.user_id, action="template_deleted",
                   resource=template_id, tenant_id=ctx.tenant_id)

    # Private helper methods

    def _apply(self, template: WorkflowTemplate, fields: Dict[str, Any]) -> None:
        """Validate and set supplied fields; None leaves a field as it is"""
        for key, value in fields.items():
            if value is None:
                continue
            if key == 'workflow_type':
                value = parse_enum(WorkflowType, value, "workflow_type")
            elif key == 'trigger_event':
                value = parse_enum(TriggerEvent, value, "trigger_event")
            elif key == 'status':
                value = parse_enum(TemplateStatus, value, "status")
            elif key == 'steps':
                value = parse_blueprints(value)
            elif key == 'sla_hours':
                value = parse_sla_hours(value)
            elif key == 'auto_approve_below':
                value = parse_amount(value, "auto_approve_below")
            elif key == 'requires_all_approvers':
                value = parse_flag(value, key)
            elif key in ('description', 'entity_type', 'notes'):
                value = parse_text(value, key)
            elif key in ('conditions', 'escalation_rules', 'data'):
                if not isinstance(value, dict):
                    raise WorkflowValidationError(f"{key} must be an object", field=key)
            setattr(template, key, value)
