"""
Workflow Data Model

Templates (reusable blueprints), instances (one run of a template against one
business entity) and steps (one stage of an instance). Step blueprints are
typed values validated on the way in; they are only turned into plain dicts
at the storage edge.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Type, TypeVar
from enum import Enum

from .storage import StorageRecord
from .exceptions import WorkflowValidationError


class WorkflowType(Enum):
    """Kinds of workflow a template can describe"""
    APPROVAL = "approval"
    REVIEW = "review"
    NOTIFICATION = "notification"
    ESCALATION = "escalation"
    CUSTOM = "custom"


class TriggerEvent(Enum):
    """Event on which callers start an instance of a template"""
    ON_CREATE = "on_create"
    ON_SUBMIT = "on_submit"
    ON_AMOUNT_THRESHOLD = "on_amount_threshold"
    ON_STATUS_CHANGE = "on_status_change"
    MANUAL = "manual"


class StepType(Enum):
    """Types of workflow steps"""
    APPROVAL = "approval"
    REVIEW = "review"
    NOTIFICATION = "notification"
    CONDITION = "condition"
    ACTION = "action"


class TemplateStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class InstanceStatus(Enum):
    """Status of entire workflow instances"""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class StepStatus(Enum):
    """Status of individual workflow steps"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class Outcome(Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


# Business objects other modules route through approvals
ENTITY_TYPES = {
    "promotion": "Promotion",
    "budget": "Budget",
    "claim": "Claim",
    "deduction": "Deduction",
    "settlement": "Settlement",
    "trade_spend": "Trade Spend",
}


E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """Coerce a raw value into enum_cls or raise WorkflowValidationError"""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise WorkflowValidationError(
            f"Invalid {field_name} '{value}', expected one of: {allowed}", field=field_name
        )


def parse_text(value: Any, field_name: str) -> Optional[str]:
    """Strip a string field; None passes through, any other type is rejected"""
    if value is None:
        return None
    if not isinstance(value, str):
        raise WorkflowValidationError(f"{field_name} must be a string", field=field_name)
    return value.strip()


def parse_flag(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise WorkflowValidationError(f"{field_name} must be true or false", field=field_name)
    return value


def parse_sla_hours(value: Any, field_name: str = "sla_hours") -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise WorkflowValidationError(f"{field_name} must be a whole number of hours", field=field_name)
    try:
        hours = int(value)
    except (TypeError, ValueError):
        raise WorkflowValidationError(f"{field_name} must be a whole number of hours", field=field_name)
    if hours <= 0:
        raise WorkflowValidationError(f"{field_name} must be positive", field=field_name)
    return hours


def parse_amount(value: Any, field_name: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise WorkflowValidationError(f"{field_name} must be a number", field=field_name)


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StepBlueprint:
    """One step of a template's ordered blueprint"""
    name: str
    step_type: StepType = StepType.APPROVAL
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = None
    sla_hours: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.step_type.value,
            'assignee_id': self.assignee_id,
            'assignee_name': self.assignee_name,
            'sla_hours': self.sla_hours,
            'data': self.data,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], position: int) -> 'StepBlueprint':
        """Validate a raw blueprint entry; position is its 1-based index"""
        if not isinstance(raw, dict):
            raise WorkflowValidationError(f"Step {position} must be an object", field="steps")
        data = raw.get('data') or {}
        if not isinstance(data, dict):
            raise WorkflowValidationError(f"Step {position} data must be an object", field="steps")
        raw_type = raw.get('type') or raw.get('step_type') or StepType.APPROVAL.value
        return cls(
            name=parse_text(raw.get('name'), f"Step {position} name") or f"Step {position}",
            step_type=parse_enum(StepType, raw_type, "step type"),
            assignee_id=parse_text(raw.get('assignee_id'), f"Step {position} assignee_id") or None,
            assignee_name=parse_text(raw.get('assignee_name'), f"Step {position} assignee_name") or None,
            sla_hours=parse_sla_hours(raw.get('sla_hours'), f"Step {position} sla_hours"),
            data=data,
        )


def parse_blueprints(raw_steps: Any) -> List[StepBlueprint]:
    if raw_steps is None:
        return []
    if not isinstance(raw_steps, list):
        raise WorkflowValidationError("steps must be a list", field="steps")
    return [
        step if isinstance(step, StepBlueprint) else StepBlueprint.from_dict(step, i)
        for i, step in enumerate(raw_steps, start=1)
    ]


@dataclass
class WorkflowTemplate(StorageRecord):
    """Reusable workflow blueprint owned by a tenant"""
    company_id: str
    name: str
    description: Optional[str] = None
    workflow_type: WorkflowType = WorkflowType.APPROVAL
    entity_type: Optional[str] = None
    trigger_event: TriggerEvent = TriggerEvent.ON_SUBMIT
    status: TemplateStatus = TemplateStatus.ACTIVE
    is_system: bool = False
    version: int = 1
    steps: List[StepBlueprint] = field(default_factory=list)
    conditions: Dict[str, Any] = field(default_factory=dict)
    escalation_rules: Dict[str, Any] = field(default_factory=dict)
    sla_hours: Optional[int] = None
    # Stored configuration only; the transition engine does not act on these
    auto_approve_below: Optional[Decimal] = None
    requires_all_approvers: bool = False
    created_by: Optional[str] = None
    notes: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['steps'] = [step.to_dict() for step in self.steps]
        if self.auto_approve_below is not None:
            result['auto_approve_below'] = str(self.auto_approve_below)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkflowTemplate':
        data = dict(data)
        data['workflow_type'] = WorkflowType(data['workflow_type'])
        data['trigger_event'] = TriggerEvent(data['trigger_event'])
        data['status'] = TemplateStatus(data['status'])
        data['steps'] = parse_blueprints(data.get('steps'))
        if data.get('auto_approve_below') is not None:
            data['auto_approve_below'] = Decimal(data['auto_approve_below'])
        return super().from_dict(data)


@dataclass
class WorkflowInstance(StorageRecord):
    """One execution of a template against one business entity"""
    company_id: str
    template_id: str
    template_name: str
    total_steps: int
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    status: InstanceStatus = InstanceStatus.IN_PROGRESS
    current_step: int = 1
    outcome: Optional[Outcome] = None
    initiated_by: Optional[str] = None
    initiated_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status != InstanceStatus.IN_PROGRESS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkflowInstance':
        data = dict(data)
        data['status'] = InstanceStatus(data['status'])
        if data.get('outcome'):
            data['outcome'] = Outcome(data['outcome'])
        data['initiated_at'] = _to_datetime(data.get('initiated_at'))
        data['completed_at'] = _to_datetime(data.get('completed_at'))
        return super().from_dict(data)


@dataclass
class WorkflowStep(StorageRecord):
    """One stage within one instance"""
    company_id: str
    instance_id: str
    step_number: int
    step_name: str
    step_type: StepType = StepType.APPROVAL
    status: StepStatus = StepStatus.PENDING
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = None
    sla_hours: Optional[int] = None
    due_at: Optional[datetime] = None
    action: Optional[str] = None
    comments: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkflowStep':
        data = dict(data)
        data['step_type'] = StepType(data['step_type'])
        data['status'] = StepStatus(data['status'])
        for key in ('due_at', 'started_at', 'completed_at'):
            data[key] = _to_datetime(data.get(key))
        return super().from_dict(data)


T = TypeVar("T")


def paginate(items: List[T], limit: int, offset: int) -> List[T]:
    if limit < 0 or offset < 0:
        raise WorkflowValidationError("limit and offset must not be negative")
    return items[offset:offset + limit]


def newest_first(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(records, key=lambda r: r.get('created_at', ''), reverse=True)


def option_list(enum_cls: Type[Enum], labels: Dict[str, str]) -> List[Dict[str, str]]:
    return [{'value': m.value, 'label': labels[m.value]} for m in enum_cls]


