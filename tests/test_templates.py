"""
Test suite for the template registry

Covers defaults on create, partial updates and version bumps, system template
protection, tenant isolation and filtered listing.
"""

import pytest
from decimal import Decimal

from tpm_workflows.storage import InMemoryStorage
from tpm_workflows.audit import AuditTrail, AuditEventType
from tpm_workflows.engine import WorkflowEngine
from tpm_workflows.exceptions import (
    WorkflowNotFoundError, WorkflowValidationError, SystemTemplateProtectedError
)
from tpm_workflows.models import (
    WorkflowType, TriggerEvent, TemplateStatus, StepType, StepBlueprint
)
from tpm_workflows.tenancy import TenantContext


@pytest.fixture
def storage():
    """Create in-memory storage for testing"""
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def engine(storage, audit_trail):
    return WorkflowEngine(storage, audit_trail)


@pytest.fixture
def ctx():
    return TenantContext(tenant_id="acme", user_id="alice")


@pytest.fixture
def other_ctx():
    return TenantContext(tenant_id="globex", user_id="bob")


TWO_STEPS = [{"name": "Manager Approval"}, {"name": "Finance Approval"}]


class TestCreateTemplate:

    def test_defaults(self, engine, ctx):
        template = engine.templates.create_template(ctx, name="Promotion Approval")

        assert template.company_id == "acme"
        assert template.workflow_type == WorkflowType.APPROVAL
        assert template.trigger_event == TriggerEvent.ON_SUBMIT
        assert template.status == TemplateStatus.ACTIVE
        assert template.version == 1
        assert template.steps == []
        assert template.is_system is False
        assert template.created_by == "alice"

    def test_persisted_and_readable(self, engine, ctx):
        created = engine.templates.create_template(
            ctx, name="Claim Review", workflow_type="review", entity_type="claim",
            steps=TWO_STEPS, sla_hours=48, auto_approve_below="2500.00",
            conditions={"min_amount": 1000}
        )

        loaded = engine.templates.get_template(ctx, created.id)
        assert loaded.name == "Claim Review"
        assert loaded.workflow_type == WorkflowType.REVIEW
        assert loaded.entity_type == "claim"
        assert [s.name for s in loaded.steps] == ["Manager Approval", "Finance Approval"]
        assert loaded.steps[0].step_type == StepType.APPROVAL
        assert loaded.sla_hours == 48
        assert loaded.auto_approve_below == Decimal("2500.00")
        assert loaded.conditions == {"min_amount": 1000}

    def test_name_required(self, engine, ctx, storage):
        with pytest.raises(WorkflowValidationError, match="Name is required"):
            engine.templates.create_template(ctx)
        with pytest.raises(WorkflowValidationError, match="Name is required"):
            engine.templates.create_template(ctx, name="   ")
        assert storage.count("workflow_templates") == 0

    def test_invalid_enum_rejected(self, engine, ctx):
        with pytest.raises(WorkflowValidationError) as exc_info:
            engine.templates.create_template(ctx, name="Bad", workflow_type="parallel")
        assert exc_info.value.field == "workflow_type"

    def test_invalid_step_blueprint_rejected(self, engine, ctx):
        with pytest.raises(WorkflowValidationError):
            engine.templates.create_template(ctx, name="Bad", steps=[{"name": "X", "type": "vote"}])
        with pytest.raises(WorkflowValidationError):
            engine.templates.create_template(ctx, name="Bad", steps=[{"name": "X", "sla_hours": 0}])
        with pytest.raises(WorkflowValidationError):
            engine.templates.create_template(ctx, name="Bad", steps="not a list")

    def test_non_string_step_fields_rejected(self, engine, ctx, storage):
        with pytest.raises(WorkflowValidationError, match="Step 1 name must be a string"):
            engine.templates.create_template(ctx, name="T", steps=[{"name": 5}])
        with pytest.raises(WorkflowValidationError, match="Step 2 assignee_id must be a string"):
            engine.templates.create_template(
                ctx, name="T", steps=[{"name": "A"}, {"name": "B", "assignee_id": 42}]
            )
        with pytest.raises(WorkflowValidationError, match="assignee_name must be a string"):
            engine.templates.create_template(ctx, name="T", steps=[{"assignee_name": ["kam"]}])
        assert storage.count("workflow_templates") == 0

    def test_non_string_name_rejected(self, engine, ctx):
        with pytest.raises(WorkflowValidationError) as exc_info:
            engine.templates.create_template(ctx, name=7)
        assert exc_info.value.field == "name"

    def test_string_flags_rejected(self, engine, ctx, storage):
        with pytest.raises(WorkflowValidationError, match="is_system must be true or false"):
            engine.templates.create_template(ctx, name="T", is_system="false")
        with pytest.raises(WorkflowValidationError, match="requires_all_approvers"):
            engine.templates.create_template(ctx, name="T", requires_all_approvers="false")
        assert storage.count("workflow_templates") == 0

    def test_boolean_flags_accepted(self, engine, ctx):
        template = engine.templates.create_template(
            ctx, name="Flags", is_system=False, requires_all_approvers=True
        )
        assert template.is_system is False
        assert template.requires_all_approvers is True

    def test_unknown_field_rejected(self, engine, ctx):
        with pytest.raises(WorkflowValidationError, match="Unknown template field"):
            engine.templates.create_template(ctx, name="Bad", colour="blue")

    def test_unnamed_steps_get_positional_names(self, engine, ctx):
        template = engine.templates.create_template(
            ctx, name="Numbered", steps=[{"type": "review"}, {"step_type": "notification"}]
        )
        assert [s.name for s in template.steps] == ["Step 1", "Step 2"]
        assert [s.step_type for s in template.steps] == [StepType.REVIEW, StepType.NOTIFICATION]

    def test_accepts_typed_blueprints(self, engine, ctx):
        template = engine.templates.create_template(
            ctx, name="Typed", steps=[StepBlueprint(name="Director", assignee_id="dir-1")]
        )
        assert template.steps[0].assignee_id == "dir-1"

    def test_audit_event_logged(self, engine, ctx, audit_trail):
        template = engine.templates.create_template(ctx, name="Audited")
        events = audit_trail.get_events_for_entity("workflow_template", template.id)
        assert [e.event_type for e in events] == [AuditEventType.TEMPLATE_CREATED]
        assert events[0].user_id == "alice"
        assert events[0].company_id == "acme"


class TestUpdateTemplate:

    def test_partial_update_keeps_other_fields(self, engine, ctx):
        template = engine.templates.create_template(
            ctx, name="Budget Approval", steps=TWO_STEPS, escalation_rules={"after_hours": 24}
        )

        updated = engine.templates.update_template(ctx, template.id, description="Updated")

        assert updated.description == "Updated"
        assert updated.name == "Budget Approval"
        assert len(updated.steps) == 2
        assert updated.escalation_rules == {"after_hours": 24}
        assert updated.version == 1

    def test_blank_name_keeps_existing(self, engine, ctx):
        template = engine.templates.create_template(ctx, name="Keep Me")
        updated = engine.templates.update_template(ctx, template.id, name="")
        assert updated.name == "Keep Me"

    def test_replacing_steps_bumps_version(self, engine, ctx):
        template = engine.templates.create_template(ctx, name="Versioned", steps=TWO_STEPS)

        updated = engine.templates.update_template(ctx, template.id, steps=[{"name": "Only"}])

        assert updated.version == 2
        assert [s.name for s in engine.templates.get_template(ctx, template.id).steps] == ["Only"]

    def test_none_values_ignored(self, engine, ctx):
        template = engine.templates.create_template(ctx, name="Stable", sla_hours=12)
        updated = engine.templates.update_template(ctx, template.id, sla_hours=None, status="inactive")
        assert updated.sla_hours == 12
        assert updated.status == TemplateStatus.INACTIVE

    def test_is_system_cannot_change(self, engine, ctx):
        template = engine.templates.create_template(ctx, name="Plain")
        with pytest.raises(WorkflowValidationError):
            engine.templates.update_template(ctx, template.id, is_system=True)
        assert engine.templates.get_template(ctx, template.id).is_system is False

    def test_wrongly_typed_changes_rejected(self, engine, ctx):
        template = engine.templates.create_template(ctx, name="Strict")
        with pytest.raises(WorkflowValidationError):
            engine.templates.update_template(ctx, template.id, requires_all_approvers="false")
        with pytest.raises(WorkflowValidationError):
            engine.templates.update_template(ctx, template.id, description=12)
        with pytest.raises(WorkflowValidationError):
            engine.templates.update_template(ctx, template.id, steps=[{"name": 5}])

        loaded = engine.templates.get_template(ctx, template.id)
        assert loaded.requires_all_approvers is False
        assert loaded.steps == []

    def test_missing_template(self, engine, ctx):
        with pytest.raises(WorkflowNotFoundError, match="Template not found"):
            engine.templates.update_template(ctx, "missing", description="x")


class TestDeleteTemplate:

    def test_delete(self, engine, ctx, audit_trail):
        template = engine.templates.create_template(ctx, name="Disposable")
        engine.templates.delete_template(ctx, template.id)

        with pytest.raises(WorkflowNotFoundError):
            engine.templates.get_template(ctx, template.id)
        events = audit_trail.get_events_for_entity("workflow_template", template.id)
        assert events[-1].event_type == AuditEventType.TEMPLATE_DELETED

    def test_system_template_protected(self, engine, ctx):
        template = engine.templates.create_template(ctx, name="Built-in", is_system=True)

        with pytest.raises(SystemTemplateProtectedError, match="Cannot delete system template"):
            engine.templates.delete_template(ctx, template.id)

        assert engine.templates.get_template(ctx, template.id).is_system is True

    def test_instances_survive_template_deletion(self, engine, ctx):
        template = engine.templates.create_template(ctx, name="Short-lived", steps=TWO_STEPS)
        instance = engine.instances.create_instance(ctx, template_id=template.id, entity_id="P-1")

        engine.templates.delete_template(ctx, template.id)

        loaded, steps = engine.instances.get_instance(ctx, instance.id)
        assert loaded.template_name == "Short-lived"
        assert len(steps) == 2


class TestTemplateTenancy:
    """Another tenant's template behaves exactly like a missing one"""

    def test_cross_tenant_access_is_not_found(self, engine, ctx, other_ctx):
        template = engine.templates.create_template(ctx, name="Private")

        with pytest.raises(WorkflowNotFoundError):
            engine.templates.get_template(other_ctx, template.id)
        with pytest.raises(WorkflowNotFoundError):
            engine.templates.update_template(other_ctx, template.id, name="Hijacked")
        with pytest.raises(WorkflowNotFoundError):
            engine.templates.delete_template(other_ctx, template.id)

        assert engine.templates.get_template(ctx, template.id).name == "Private"

    def test_listing_is_per_tenant(self, engine, ctx, other_ctx):
        engine.templates.create_template(ctx, name="Mine")
        engine.templates.create_template(other_ctx, name="Theirs")

        templates, total = engine.templates.list_templates(ctx)
        assert [t.name for t in templates] == ["Mine"]
        assert total == 1


class TestListTemplates:

    def test_filtered_total_counts_matching_rows_only(self, engine, ctx):
        engine.templates.create_template(ctx, name="Promo A", entity_type="promotion")
        engine.templates.create_template(ctx, name="Promo B", entity_type="promotion")
        engine.templates.create_template(ctx, name="Promo C", entity_type="promotion")
        engine.templates.create_template(ctx, name="Budget", entity_type="budget")
        engine.templates.create_template(ctx, name="Claim", entity_type="claim")

        page, total = engine.templates.list_templates(ctx, entity_type="promotion", limit=2)

        assert len(page) == 2
        assert all(t.entity_type == "promotion" for t in page)
        assert total == 3

    def test_filters_combine(self, engine, ctx):
        engine.templates.create_template(ctx, name="A", workflow_type="review", status="inactive")
        engine.templates.create_template(ctx, name="B", workflow_type="review")
        engine.templates.create_template(ctx, name="C")

        page, total = engine.templates.list_templates(ctx, workflow_type="review", status="active")
        assert [t.name for t in page] == ["B"]
        assert total == 1

    def test_offset_past_end(self, engine, ctx):
        engine.templates.create_template(ctx, name="Only")
        page, total = engine.templates.list_templates(ctx, limit=10, offset=5)
        assert page == []
        assert total == 1

    def test_negative_paging_rejected(self, engine, ctx):
        with pytest.raises(WorkflowValidationError):
            engine.templates.list_templates(ctx, offset=-1)
