"""
Integration tests for the workflow engine API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
import jwt
from fastapi.testclient import TestClient

from tpm_workflows.api import create_app
from tpm_workflows.config import TPMConfig
from tpm_workflows.storage import InMemoryStorage
from tpm_workflows.tenancy import TenantContext


JWT_SECRET = "integration-test-secret-with-enough-bytes"
ACME = {"X-Tenant-ID": "acme", "X-User-ID": "alice"}
GLOBEX = {"X-Tenant-ID": "globex", "X-User-ID": "bob"}


@pytest.fixture
def app():
    config = TPMConfig(jwt_secret=JWT_SECRET, log_level="WARNING", max_page_size=100)
    return create_app(config=config, storage=InMemoryStorage())


@pytest.fixture
def client(app):
    """Test client backed by in-memory storage"""
    return TestClient(app)


def create_template(client, headers=ACME, **fields):
    body = {"name": "Promotion Approval",
            "steps": [{"name": "Manager Approval"}, {"name": "Finance Approval"}]}
    body.update(fields)
    r = client.post("/workflows/templates", json=body, headers=headers)
    assert r.status_code == 201
    return r.json()["data"]


def start_instance(client, template_id, headers=ACME, **fields):
    body = {"template_id": template_id, "entity_type": "promotion", "entity_id": "PROMO-1"}
    body.update(fields)
    r = client.post("/workflows/instances", json=body, headers=headers)
    assert r.status_code == 201
    return r.json()["data"]


def get_instance(client, instance_id, headers=ACME):
    r = client.get(f"/workflows/instances/{instance_id}", headers=headers)
    assert r.status_code == 200
    return r.json()["data"]


class TestHealthEndpoints:

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "endpoints" in r.json()

    def test_unknown_route_uses_envelope(self, client):
        r = client.get("/workflows/nowhere/at/all")
        assert r.status_code == 404
        assert r.json()["success"] is False


class TestTemplateEndpoints:

    def test_create_and_get(self, client):
        created = create_template(client, entity_type="promotion", sla_hours=24)
        assert created["workflow_type"] == "approval"
        assert created["trigger_event"] == "on_submit"
        assert created["status"] == "active"
        assert created["version"] == 1
        assert created["company_id"] == "acme"
        assert created["created_by"] == "alice"
        assert [s["name"] for s in created["steps"]] == ["Manager Approval", "Finance Approval"]

        r = client.get(f"/workflows/templates/{created['id']}", headers=ACME)
        assert r.status_code == 200
        assert r.json() == {"success": True, "data": created}

    def test_name_required(self, client):
        r = client.post("/workflows/templates", json={"description": "nameless"}, headers=ACME)
        assert r.status_code == 400
        assert r.json() == {"success": False, "message": "Name is required"}

    def test_invalid_enum(self, client):
        r = client.post("/workflows/templates", json={"name": "X", "status": "archived"}, headers=ACME)
        assert r.status_code == 400
        assert r.json()["success"] is False

    def test_schema_validation_is_400(self, client):
        r = client.post("/workflows/templates", json={"name": "X", "sla_hours": 0}, headers=ACME)
        assert r.status_code == 400
        assert r.json()["success"] is False

    def test_non_string_step_name_is_400(self, client):
        r = client.post("/workflows/templates", json={"name": "T", "steps": [{"name": 5}]},
                        headers=ACME)
        assert r.status_code == 400
        assert r.json()["success"] is False
        assert client.get("/workflows/templates", headers=ACME).json()["total"] == 0

    def test_update_merges(self, client):
        created = create_template(client, conditions={"min_amount": 500})

        r = client.put(f"/workflows/templates/{created['id']}",
                       json={"description": "Now with notes"}, headers=ACME)
        assert r.status_code == 200
        updated = r.json()["data"]
        assert updated["description"] == "Now with notes"
        assert updated["conditions"] == {"min_amount": 500}
        assert len(updated["steps"]) == 2
        assert updated["version"] == 1

        r = client.put(f"/workflows/templates/{created['id']}",
                       json={"steps": [{"name": "Director"}]}, headers=ACME)
        assert r.json()["data"]["version"] == 2

    def test_delete(self, client):
        created = create_template(client)
        r = client.delete(f"/workflows/templates/{created['id']}", headers=ACME)
        assert r.status_code == 200
        assert r.json() == {"success": True, "message": "Template deleted"}

        r = client.get(f"/workflows/templates/{created['id']}", headers=ACME)
        assert r.status_code == 404
        assert r.json() == {"success": False, "message": "Template not found"}

    def test_delete_system_template_refused(self, app, client):
        engine = app.state.workflow_system.engine
        template = engine.templates.create_template(
            TenantContext(tenant_id="acme"), name="Built-in", is_system=True
        )

        r = client.delete(f"/workflows/templates/{template.id}", headers=ACME)
        assert r.status_code == 400
        assert r.json() == {"success": False, "message": "Cannot delete system template"}
        assert client.get(f"/workflows/templates/{template.id}", headers=ACME).status_code == 200

    def test_list_filtered_total(self, client):
        for name in ("A", "B", "C"):
            create_template(client, name=name, entity_type="promotion")
        create_template(client, name="D", entity_type="budget")

        r = client.get("/workflows/templates", params={"entity_type": "promotion", "limit": 2},
                       headers=ACME)
        body = r.json()
        assert len(body["data"]) == 2
        assert body["total"] == 3

    def test_page_size_limits(self, client):
        create_template(client)
        assert client.get("/workflows/templates", params={"limit": 0}, headers=ACME).status_code == 400
        assert client.get("/workflows/templates", params={"limit": 10000}, headers=ACME).status_code == 200


class TestInstanceFlow:
    """End-to-end approval chains"""

    def test_two_step_approval(self, client):
        template = create_template(client)
        instance = start_instance(client, template["id"])
        assert instance["status"] == "in_progress"
        assert instance["total_steps"] == 2

        detail = get_instance(client, instance["id"])
        steps = detail["steps"]
        assert [s["status"] for s in steps] == ["in_progress", "pending"]

        r = client.put(f"/workflows/steps/{steps[0]['id']}/complete",
                       json={"comments": "Approved by manager"}, headers=ACME)
        assert r.status_code == 200
        assert r.json()["message"] == "Step completed"
        assert r.json()["data"]["current_step"] == 2

        detail = get_instance(client, instance["id"])
        assert detail["current_step"] == 2
        assert [s["status"] for s in detail["steps"]] == ["completed", "in_progress"]

        r = client.put(f"/workflows/steps/{steps[1]['id']}/complete", headers=ACME)
        assert r.status_code == 200
        assert r.json()["data"]["instance_status"] == "completed"

        detail = get_instance(client, instance["id"])
        assert detail["status"] == "completed"
        assert detail["outcome"] == "approved"
        assert detail["completed_at"] is not None

    def test_rejection(self, client):
        template = create_template(client)
        instance = start_instance(client, template["id"])
        steps = get_instance(client, instance["id"])["steps"]

        r = client.put(f"/workflows/steps/{steps[0]['id']}/reject",
                       json={"comments": "Too expensive"}, headers=ACME)
        assert r.status_code == 200
        assert r.json()["message"] == "Step rejected"

        detail = get_instance(client, instance["id"])
        assert detail["status"] == "rejected"
        assert detail["outcome"] == "rejected"
        assert detail["steps"][1]["status"] == "pending"

    def test_repeat_transition_is_conflict(self, client):
        template = create_template(client)
        instance = start_instance(client, template["id"])
        step_id = get_instance(client, instance["id"])["steps"][0]["id"]

        assert client.put(f"/workflows/steps/{step_id}/complete", headers=ACME).status_code == 200
        r = client.put(f"/workflows/steps/{step_id}/complete", headers=ACME)
        assert r.status_code == 409
        assert r.json()["success"] is False

    def test_unknown_template(self, client):
        r = client.post("/workflows/instances", json={"template_id": "does-not-exist"}, headers=ACME)
        assert r.status_code == 404
        assert r.json() == {"success": False, "message": "Template not found"}

        r = client.get("/workflows/instances", headers=ACME)
        assert r.json()["total"] == 0

    def test_template_id_required(self, client):
        r = client.post("/workflows/instances", json={"entity_id": "PROMO-1"}, headers=ACME)
        assert r.status_code == 400
        assert r.json()["message"] == "template_id is required"

    def test_missing_step(self, client):
        r = client.put("/workflows/steps/missing/complete", headers=ACME)
        assert r.status_code == 404
        assert r.json()["message"] == "Step not found"

    def test_list_and_audit(self, client):
        template = create_template(client)
        first = start_instance(client, template["id"], entity_id="PROMO-1")
        start_instance(client, template["id"], entity_id="PROMO-2")

        r = client.get("/workflows/instances", params={"entity_id": "PROMO-1"}, headers=ACME)
        assert [i["id"] for i in r.json()["data"]] == [first["id"]]
        assert r.json()["total"] == 1

        r = client.get(f"/workflows/instances/{first['id']}/audit", headers=ACME)
        assert r.status_code == 200
        assert [e["event_type"] for e in r.json()["data"]] == ["instance_created"]

    def test_pending_and_overdue_feeds(self, client):
        template = create_template(client, steps=[{"name": "KAM", "assignee_id": "kam-1"}])
        start_instance(client, template["id"])

        r = client.get("/workflows/steps/pending", params={"assignee_id": "kam-1"}, headers=ACME)
        assert r.status_code == 200
        assert r.json()["total"] == 1

        r = client.get("/workflows/steps/overdue", headers=ACME)
        assert r.status_code == 200
        assert r.json()["data"] == []


class TestSummaryEndpoints:

    def test_summary(self, client):
        template = create_template(client)
        start_instance(client, template["id"])

        r = client.get("/workflows/summary", headers=ACME)
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["templates"] == {"total": 1, "active": 1}
        assert data["instances"]["in_progress"] == 1

    def test_options(self, client):
        r = client.get("/workflows/options")
        assert r.status_code == 200
        data = r.json()["data"]
        assert {"workflowTypes", "entityTypes", "triggerEvents", "stepTypes"} == set(data)


class TestTenantIsolation:

    def test_other_tenant_cannot_see_or_act(self, client):
        template = create_template(client)
        instance = start_instance(client, template["id"])
        step_id = get_instance(client, instance["id"])["steps"][0]["id"]

        assert client.get(f"/workflows/templates/{template['id']}", headers=GLOBEX).status_code == 404
        assert client.get(f"/workflows/instances/{instance['id']}", headers=GLOBEX).status_code == 404
        assert client.put(f"/workflows/steps/{step_id}/complete", headers=GLOBEX).status_code == 404
        assert client.delete(f"/workflows/templates/{template['id']}", headers=GLOBEX).status_code == 404
        assert client.get("/workflows/templates", headers=GLOBEX).json()["total"] == 0

        assert get_instance(client, instance["id"])["current_step"] == 1

    def test_default_tenant_when_no_headers(self, client):
        create_template(client, headers={})
        r = client.get("/workflows/templates", headers={"X-Tenant-ID": "default"})
        assert r.json()["total"] == 1

    def test_bearer_token_tenant(self, client):
        token = jwt.encode({"sub": "carol", "tenant_id": "acme"}, JWT_SECRET, algorithm="HS256")
        headers = {"Authorization": f"Bearer {token}"}

        created = create_template(client, headers=headers)
        assert created["company_id"] == "acme"
        assert created["created_by"] == "carol"

    def test_invalid_token_is_401(self, client):
        token = jwt.encode({"sub": "carol", "tenant_id": "acme"},
                           "a-different-secret-of-sufficient-length", algorithm="HS256")
        r = client.get("/workflows/templates", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401
        assert r.json() == {"success": False, "message": "Invalid token"}
