"""
Workflow Engine Exceptions

Typed errors raised by the template registry, instance orchestrator and
transition engine. The HTTP layer maps each class to a status code; the
message is safe to show to callers.

    WorkflowError
    +-- WorkflowValidationError   (missing or invalid input)
    +-- WorkflowNotFoundError     (absent, or owned by another tenant)
    +-- SystemTemplateProtectedError
    +-- StepStateError            (transition on an inactive step)
    +-- ConcurrentModificationError
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for workflow engine errors"""

    code = "workflow_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class WorkflowValidationError(WorkflowError, ValueError):
    """Input failed validation before anything was persisted"""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class WorkflowNotFoundError(WorkflowError):
    """Record does not exist in the caller's tenant"""

    code = "not_found"

    def __init__(self, resource: str, record_id: Optional[str] = None):
        super().__init__(f"{resource} not found")
        self.resource = resource
        self.record_id = record_id


class SystemTemplateProtectedError(WorkflowError):
    """System templates cannot be deleted"""

    code = "protected"

    def __init__(self, template_id: str):
        super().__init__("Cannot delete system template")
        self.template_id = template_id


class StepStateError(WorkflowError):
    """Step (or its instance) is not in a state that allows the transition"""

    code = "invalid_state"

    def __init__(self, step_id: str, status: str, message: Optional[str] = None):
        super().__init__(message or f"Step is {status}, only in_progress steps can be acted on")
        self.step_id = step_id
        self.status = status


class ConcurrentModificationError(WorkflowError):
    """Instance was changed by another caller since it was read"""

    code = "conflict"

    def __init__(self, instance_id: str, expected_version: int, actual_version: int):
        super().__init__("Workflow instance was modified concurrently, reload and retry")
        self.instance_id = instance_id
        self.expected_version = expected_version
        self.actual_version = actual_version
