"""
Workflow summary and option lists for dashboards and selection controls.
"""

from typing import Any, Dict, List

from .instances import INSTANCE_TABLE
from .models import (
    WorkflowType, TriggerEvent, StepType, TemplateStatus, InstanceStatus,
    ENTITY_TYPES, option_list
)
from .storage import StorageInterface
from .templates import TEMPLATE_TABLE
from .tenancy import TenantContext, scoped


WORKFLOW_TYPE_LABELS = {
    "approval": "Approval Workflow",
    "review": "Review Workflow",
    "notification": "Notification Workflow",
    "escalation": "Escalation Workflow",
    "custom": "Custom Workflow",
}

TRIGGER_EVENT_LABELS = {
    "on_create": "On Create",
    "on_submit": "On Submit",
    "on_amount_threshold": "Amount Threshold",
    "on_status_change": "Status Change",
    "manual": "Manual",
}

STEP_TYPE_LABELS = {
    "approval": "Approval",
    "review": "Review",
    "notification": "Notification",
    "condition": "Condition Check",
    "action": "Automated Action",
}


class WorkflowSummary:
    """Read-only aggregation over a tenant's templates and instances"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def get_summary(self, ctx: TenantContext) -> Dict[str, Dict[str, int]]:
        store = scoped(self.storage, ctx)
        templates = store.find(TEMPLATE_TABLE)
        instances = store.find(INSTANCE_TABLE)

        def count_status(rows: List[Dict[str, Any]], status: str) -> int:
            return sum(1 for row in rows if row.get('status') == status)

        return {
            'templates': {
                'total': len(templates),
                'active': count_status(templates, TemplateStatus.ACTIVE.value),
            },
            'instances': {
                'total': len(instances),
                'in_progress': count_status(instances, InstanceStatus.IN_PROGRESS.value),
                'completed': count_status(instances, InstanceStatus.COMPLETED.value),
                'rejected': count_status(instances, InstanceStatus.REJECTED.value),
            },
        }

    @staticmethod
    def get_options() -> Dict[str, List[Dict[str, str]]]:
        """Static enumerations; the same for every tenant"""
        return {
            'workflowTypes': option_list(WorkflowType, WORKFLOW_TYPE_LABELS),
            'entityTypes': [{'value': value, 'label': label} for value, label in ENTITY_TYPES.items()],
            'triggerEvents': option_list(TriggerEvent, TRIGGER_EVENT_LABELS),
            'stepTypes': option_list(StepType, STEP_TYPE_LABELS),
        }
