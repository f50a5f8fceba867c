"""
Step Transition Engine

The state machine behind approvals. Steps move pending -> in_progress ->
completed | rejected, instances move in_progress -> completed | rejected.
Instances are strict linear chains: completing step N activates step N+1 or,
when N is the last step, approves the instance; rejecting any step rejects
the instance and leaves later steps as they were.

Each transition runs in one transaction and bumps the instance version, so a
caller racing on the same instance either sees the new state or fails with
ConcurrentModificationError.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from .audit import AuditTrail, AuditEventType
from .exceptions import (
    WorkflowNotFoundError, StepStateError, ConcurrentModificationError
)
from .instances import INSTANCE_TABLE, STEP_TABLE, activate_step
from .logging_config import log_action
from .models import (
    WorkflowInstance, WorkflowStep, StepStatus, InstanceStatus, Outcome, utcnow
)
from .storage import StorageInterface
from .tenancy import TenantContext, TenantScopedStorage, scoped


logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """State after a complete/reject call"""
    step: WorkflowStep
    instance: WorkflowInstance
    next_step: Optional[WorkflowStep] = None


class StepTransitionEngine:
    """Completes and rejects the active step of an instance"""

    def __init__(self, storage: StorageInterface, audit: AuditTrail):
        self.storage = storage
        self.audit = audit

    def complete_step(self, ctx: TenantContext, step_id: str,
                      action: Optional[str] = None,
                      comments: Optional[str] = None) -> TransitionResult:
        """
        Complete the active step and advance the instance.

        Args:
            ctx: Tenant and acting user
            step_id: Step to complete; must be the instance's in_progress step
            action: Decision recorded on the step (default "approved")
            comments: Free-text note from the approver

        Raises:
            WorkflowNotFoundError: step not in this tenant
            StepStateError: step or instance is not in progress
            ConcurrentModificationError: instance changed underneath us
        """
        store = scoped(self.storage, ctx)
        with store.atomic():
            step, instance = self._load_active(store, step_id)
            expected_version = instance.version
            now = utcnow()

            step.status = StepStatus.COMPLETED
            step.action = action or Outcome.APPROVED.value
            step.comments = comments
            step.completed_at = now
            step.completed_by = ctx.user_id
            step.updated_at = now
            store.save(STEP_TABLE, step.id, step.to_dict())

            next_step = self._find_step(store, instance.id, step.step_number + 1)
            if next_step:
                activate_step(next_step, now)
                store.save(STEP_TABLE, next_step.id, next_step.to_dict())
                instance.current_step = next_step.step_number
            else:
                instance.status = InstanceStatus.COMPLETED
                instance.outcome = Outcome.APPROVED
                instance.completed_by = ctx.user_id
                instance.completed_at = now

            self._save_instance(store, instance, expected_version, now)

            self.audit.log_event(
                AuditEventType.STEP_COMPLETED,
                'workflow_instance',
                instance.id,
                {'step_id': step.id, 'step_number': step.step_number,
                 'action': step.action, 'comments': comments},
                ctx.user_id,
                ctx.tenant_id
            )
            if next_step:
                self.audit.log_event(
                    AuditEventType.STEP_ACTIVATED,
                    'workflow_instance',
                    instance.id,
                    {'step_id': next_step.id, 'step_number': next_step.step_number,
                     'due_at': next_step.due_at},
                    ctx.user_id,
                    ctx.tenant_id
                )
            else:
                self.audit.log_event(
                    AuditEventType.INSTANCE_COMPLETED,
                    'workflow_instance',
                    instance.id,
                    {'outcome': instance.outcome},
                    ctx.user_id,
                    ctx.tenant_id
                )

        if next_step:
            message = f"Step {step.step_number} completed, step {next_step.step_number} now active"
        else:
            message = "Final step completed, workflow approved"
        log_action(logger, "info", message, user_id=ctx.user_id,
                   action="step_completed", resource=step.id, tenant_id=ctx.tenant_id,
                   extra={'instance_id': instance.id})
        return TransitionResult(step=step, instance=instance, next_step=next_step)

    def reject_step(self, ctx: TenantContext, step_id: str,
                    comments: Optional[str] = None) -> TransitionResult:
        """
        Reject the active step, which rejects the whole instance.

        Steps after the rejected one are not touched.

        Raises:
            WorkflowNotFoundError: step not in this tenant
            StepStateError: step or instance is not in progress
            ConcurrentModificationError: instance changed underneath us
        """
        store = scoped(self.storage, ctx)
        with store.atomic():
            step, instance = self._load_active(store, step_id)
            expected_version = instance.version
            now = utcnow()

            step.status = StepStatus.REJECTED
            step.action = Outcome.REJECTED.value
            step.comments = comments
            step.completed_at = now
            step.completed_by = ctx.user_id
            step.updated_at = now
            store.save(STEP_TABLE, step.id, step.to_dict())

            instance.status = InstanceStatus.REJECTED
            instance.outcome = Outcome.REJECTED
            instance.completed_by = ctx.user_id
            instance.completed_at = now
            self._save_instance(store, instance, expected_version, now)

            self.audit.log_event(
                AuditEventType.STEP_REJECTED,
                'workflow_instance',
                instance.id,
                {'step_id': step.id, 'step_number': step.step_number, 'comments': comments},
                ctx.user_id,
                ctx.tenant_id
            )
            self.audit.log_event(
                AuditEventType.INSTANCE_REJECTED,
                'workflow_instance',
                instance.id,
                {'outcome': instance.outcome, 'rejected_at_step': step.step_number},
                ctx.user_id,
                ctx.tenant_id
            )

        log_action(logger, "info", f"Step {step.step_number} rejected, workflow rejected",
                   user_id=ctx.user_id, action="step_rejected", resource=step.id,
                   tenant_id=ctx.tenant_id, extra={'instance_id': instance.id})
        return TransitionResult(step=step, instance=instance)

    def get_step(self, ctx: TenantContext, step_id: str) -> WorkflowStep:
        data = scoped(self.storage, ctx).load(STEP_TABLE, step_id)
        if not data:
            raise WorkflowNotFoundError("Step", step_id)
        return WorkflowStep.from_dict(data)

    def get_pending_steps(self, ctx: TenantContext,
                          assignee_id: Optional[str] = None) -> List[WorkflowStep]:
        """Active steps awaiting a decision, oldest first; optionally for one assignee"""
        filters = {'status': StepStatus.IN_PROGRESS.value}
        if assignee_id:
            filters['assignee_id'] = assignee_id
        rows = scoped(self.storage, ctx).find(STEP_TABLE, filters)
        steps = [WorkflowStep.from_dict(row) for row in rows]
        return sorted(steps, key=lambda s: s.started_at or s.created_at)

    def get_overdue_steps(self, ctx: TenantContext,
                          now: Optional[datetime] = None) -> List[WorkflowStep]:
        """Active steps past their SLA due date

        Escalation itself happens outside this engine; this is its feed. A
        naive ``now`` is taken to be UTC.
        """
        now = now or utcnow()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return [
            step for step in self.get_pending_steps(ctx)
            if step.due_at is not None and step.due_at < now
        ]

    # Private helper methods

    def _load_active(self, store: TenantScopedStorage,
                     step_id: str) -> Tuple[WorkflowStep, WorkflowInstance]:
        """Load a step and its instance, refusing anything not currently active"""
        data = store.load(STEP_TABLE, step_id)
        if not data:
            raise WorkflowNotFoundError("Step", step_id)
        step = WorkflowStep.from_dict(data)

        instance_data = store.load(INSTANCE_TABLE, step.instance_id)
        if not instance_data:
            raise WorkflowNotFoundError("Instance", step.instance_id)
        instance = WorkflowInstance.from_dict(instance_data)

        if instance.is_terminal:
            log_action(logger, "warning", "Transition refused on finished workflow",
                       action="transition_refused", resource=step_id,
                       tenant_id=store.tenant_id)
            raise StepStateError(
                step_id, step.status.value,
                f"Workflow instance is already {instance.status.value}"
            )
        if step.status != StepStatus.IN_PROGRESS or step.step_number != instance.current_step:
            log_action(logger, "warning", f"Transition refused on {step.status.value} step",
                       action="transition_refused", resource=step_id,
                       tenant_id=store.tenant_id)
            raise StepStateError(step_id, step.status.value)

        return step, instance

    def _find_step(self, store: TenantScopedStorage, instance_id: str,
                   step_number: int) -> Optional[WorkflowStep]:
        rows = store.find(STEP_TABLE, {'instance_id': instance_id, 'step_number': step_number})
        if not rows:
            return None
        return WorkflowStep.from_dict(rows[0])

    def _save_instance(self, store: TenantScopedStorage, instance: WorkflowInstance,
                       expected_version: int, now: datetime) -> None:
        """Write the instance if nobody else has since it was read"""
        current = store.load(INSTANCE_TABLE, instance.id)
        actual_version = current.get('version', 1) if current else 0
        if actual_version != expected_version:
            raise ConcurrentModificationError(instance.id, expected_version, actual_version)

        instance.version = expected_version + 1
        instance.updated_at = now
        store.save(INSTANCE_TABLE, instance.id, instance.to_dict())
