"""
Workflow Engine

Single entry point wiring the template registry, instance orchestrator,
transition engine and summary surface over one storage backend and audit
trail. Other modules (promotions, budgets, claims, ...) hold a WorkflowEngine
and call it with the TenantContext of the request they are serving.
"""

from typing import Optional

from .audit import AuditTrail
from .instances import InstanceOrchestrator
from .storage import StorageInterface
from .summary import WorkflowSummary
from .templates import TemplateRegistry
from .transitions import StepTransitionEngine


class WorkflowEngine:
    """Main workflow engine for managing templates and instances"""

    def __init__(self, storage: StorageInterface, audit_trail: Optional[AuditTrail] = None):
        self.storage = storage
        self.audit = audit_trail or AuditTrail(storage)
        self.templates = TemplateRegistry(storage, self.audit)
        self.instances = InstanceOrchestrator(storage, self.audit, self.templates)
        self.transitions = StepTransitionEngine(storage, self.audit)
        self.summary = WorkflowSummary(storage)
