"""Tests for the approvals HTTP API."""

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from backoffice.api import main
from backoffice.api.deps import get_db, get_workflow_engine
from backoffice.api.main import app
from backoffice.core.approval import ApproverResolver, StaticRoleResolver, WorkflowEngine
from backoffice.db.stores import SqlDefinitionStore, SqlInstanceStore
from tests.conftest import ROLE_MEMBERS

ADMIN = {"X-Actor-Email": "owner@example.com", "X-Actor-Type": "admin"}
PM = {"X-Actor-Email": "pm@example.com"}
ALICE = {"X-Actor-Email": "alice@example.com"}
BOB = {"X-Actor-Email": "bob@example.com"}

pytestmark = pytest.mark.integration


@pytest.fixture
def client(db_session, clock, observer):
    def override_db():
        yield db_session

    def override_engine(db=Depends(get_db)):
        return WorkflowEngine(
            SqlDefinitionStore(db),
            SqlInstanceStore(db),
            ApproverResolver(StaticRoleResolver(ROLE_MEMBERS)),
            clock=clock,
            observers=[observer],
            defer_events=True,
        )

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_workflow_engine] = override_engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_workflow(client, workflow_type="sequential", approvers=("alice@example.com", "bob@example.com"), **extra):
    body = {
        "name": extra.pop("name", f"{workflow_type} review"),
        "entity_type": extra.pop("entity_type", "proposal"),
        "workflow_type": workflow_type,
        "is_default": True,
        "steps": [{"approver_type": "user", "approver_value": email} for email in approvers],
        **extra,
    }
    response = client.post("/api/approvals/workflows", json=body, headers=ADMIN)
    assert response.status_code == 201, response.text
    return response.json()


def _start(client, entity_id=1, entity_type="proposal"):
    response = client.post(
        "/api/approvals/start", json={"entity_type": entity_type, "entity_id": entity_id}, headers=PM,
    )
    assert response.status_code == 201, response.text
    return response.json()


def _pending_id(client, headers):
    response = client.get("/api/approvals/pending", headers=headers)
    assert response.status_code == 200
    return response.json()[0]["id"]


class TestHealth:
    """Test health endpoints."""

    def test_health(self, client):
        """Test the basic health check."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        """Test that readiness checks the database."""
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["checks"]["database"]["status"] == "healthy"


class TestLifespan:
    """Test application startup and shutdown."""

    def test_seeds_on_startup_and_closes_notifier(self, monkeypatch):
        """Test that seeding runs before serving and the notifier closes at shutdown."""
        calls = []
        monkeypatch.setattr(main, "seed_workflows", lambda: calls.append("seed"))
        monkeypatch.setattr(main, "close_notifier", lambda: calls.append("close"))

        with TestClient(app) as test_client:
            assert calls == ["seed"]
            assert test_client.get("/health").status_code == 200

        assert calls == ["seed", "close"]


class TestWorkflowDefinitions:
    """Test definition management endpoints."""

    def test_requires_actor(self, client):
        """Test that calls without an actor are unauthorized."""
        assert client.get("/api/approvals/workflows").status_code == 401

    def test_create_requires_admin(self, client):
        """Test that non-admins cannot create definitions."""
        response = client.post(
            "/api/approvals/workflows",
            json={"name": "X", "entity_type": "proposal", "workflow_type": "sequential"},
            headers=PM,
        )
        assert response.status_code == 403

    def test_create_with_steps(self, client):
        """Test that steps are numbered in request order."""
        workflow = _create_workflow(client, description="Two eyes")

        assert workflow["description"] == "Two eyes"
        assert [(s["step_order"], s["approver_value"]) for s in workflow["steps"]] == [
            (1, "alice@example.com"),
            (2, "bob@example.com"),
        ]

        listed = client.get("/api/approvals/workflows?entity_type=proposal", headers=PM).json()
        assert [w["id"] for w in listed] == [workflow["id"]]

    def test_invalid_entity_type(self, client):
        """Test that request validation rejects unknown entity types."""
        response = client.post(
            "/api/approvals/workflows",
            json={"name": "X", "entity_type": "spaceship", "workflow_type": "sequential"},
            headers=ADMIN,
        )
        assert response.status_code == 422

    def test_get_unknown_workflow(self, client):
        """Test 404 for unknown definitions."""
        assert client.get("/api/approvals/workflows/999", headers=PM).status_code == 404

    def test_promote_default(self, client):
        """Test that PATCH can move the default flag."""
        first = _create_workflow(client, name="First")
        second = _create_workflow(client, name="Second")
        assert client.get(f"/api/approvals/workflows/{first['id']}", headers=PM).json()["is_default"] is False

        response = client.patch(f"/api/approvals/workflows/{first['id']}", json={"is_default": True}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["is_default"] is True
        assert client.get(f"/api/approvals/workflows/{second['id']}", headers=PM).json()["is_default"] is False

    def test_workflow_type_cannot_change(self, client):
        """Test that PATCH refuses to change the completion mode."""
        workflow = _create_workflow(client, "parallel")

        response = client.patch(
            f"/api/approvals/workflows/{workflow['id']}", json={"workflow_type": "sequential"}, headers=ADMIN,
        )

        assert response.status_code == 422
        assert client.get(f"/api/approvals/workflows/{workflow['id']}", headers=PM).json()["workflow_type"] == "parallel"

    def test_add_steps(self, client):
        """Test appending steps and rejecting duplicate orders."""
        workflow = _create_workflow(client)
        url = f"/api/approvals/workflows/{workflow['id']}/steps"

        appended = client.post(url, json={"approver_type": "role", "approver_value": "finance"}, headers=ADMIN)
        assert appended.status_code == 201
        assert appended.json()["step_order"] == 3

        duplicate = client.post(
            url, json={"step_order": 1, "approver_type": "user", "approver_value": "x@example.com"}, headers=ADMIN,
        )
        assert duplicate.status_code == 400


class TestWorkflowLifecycle:
    """Test starting, deciding and cancelling through the API."""

    def test_start_without_definition(self, client):
        """Test 404 when the entity type has no default workflow."""
        response = client.post("/api/approvals/start", json={"entity_type": "invoice", "entity_id": 1}, headers=PM)
        assert response.status_code == 404

    def test_sequential_approval(self, client, observer):
        """Test a two-step approval driven by its approvers."""
        _create_workflow(client)
        instance = _start(client)
        assert instance["status"] == "in_progress"
        assert instance["initiated_by"] == "pm@example.com"
        assert client.get("/api/approvals/pending", headers=BOB).json() == []

        alice_request = _pending_id(client, ALICE)
        response = client.post(f"/api/approvals/requests/{alice_request}/approve", json={"comment": "ok"}, headers=ALICE)
        assert response.status_code == 200
        assert response.json()["current_step"] == 2

        bob_request = _pending_id(client, BOB)
        response = client.post(f"/api/approvals/requests/{bob_request}/approve", json={}, headers=BOB)
        assert response.json()["status"] == "approved"

        detail = client.get(f"/api/approvals/instance/{instance['id']}", headers=PM).json()
        assert [h["action"] for h in detail["history"]] == ["approved", "approved", "initiated"]
        assert len(observer.events) == 3

    def test_events_delivered_after_commit(self, client, db_session, observer):
        """Test that observers only hear about a decision once it is committed."""
        open_transaction = []
        observer.notify = lambda event: open_transaction.append(db_session.in_transaction())
        _create_workflow(client, "any_one")
        _start(client)
        request_id = _pending_id(client, ALICE)

        client.post(f"/api/approvals/requests/{request_id}/approve", json={}, headers=ALICE)

        assert open_transaction == [False, False, False]

    def test_failed_decision_sends_nothing(self, client, observer):
        """Test that a conflicting decision delivers no events."""
        _create_workflow(client, "any_one", approvers=["alice@example.com"])
        _start(client)
        request_id = _pending_id(client, ALICE)
        client.post(f"/api/approvals/requests/{request_id}/approve", json={}, headers=ALICE)
        delivered = len(observer.events)

        response = client.post(f"/api/approvals/requests/{request_id}/approve", json={}, headers=ALICE)

        assert response.status_code == 409
        assert len(observer.events) == delivered

    def test_only_addressed_approver_may_decide(self, client):
        """Test 403 for someone else's request and admin override."""
        _create_workflow(client, "any_one")
        _start(client)
        request_id = _pending_id(client, ALICE)

        response = client.post(f"/api/approvals/requests/{request_id}/approve", json={}, headers=PM)
        assert response.status_code == 403

        response = client.post(f"/api/approvals/requests/{request_id}/approve", json={}, headers=ADMIN)
        assert response.status_code == 200

    def test_decided_request_conflict(self, client):
        """Test 409 when a request was already decided."""
        _create_workflow(client, "any_one")
        _start(client)
        request_id = _pending_id(client, ALICE)
        client.post(f"/api/approvals/requests/{request_id}/approve", json={}, headers=ALICE)

        response = client.post(f"/api/approvals/requests/{request_id}/approve", json={}, headers=ALICE)
        assert response.status_code == 409

    def test_unknown_request(self, client):
        """Test 404 for unknown requests."""
        assert client.post("/api/approvals/requests/999/approve", json={}, headers=ADMIN).status_code == 404

    def test_reject_requires_reason(self, client):
        """Test that a rejection without reason is invalid."""
        _create_workflow(client, "parallel")
        _start(client)
        request_id = _pending_id(client, ALICE)

        assert client.post(f"/api/approvals/requests/{request_id}/reject", json={}, headers=ALICE).status_code == 422

        response = client.post(
            f"/api/approvals/requests/{request_id}/reject", json={"reason": "Too expensive"}, headers=ALICE,
        )
        assert response.json()["status"] == "rejected"

    def test_entity_workflow(self, client):
        """Test the entity view and its empty case."""
        _create_workflow(client)
        instance = _start(client, entity_id=5)

        detail = client.get("/api/approvals/entity/proposal/5", headers=PM).json()
        assert detail["instance"]["id"] == instance["id"]
        assert len(detail["requests"]) == 1

        assert client.get("/api/approvals/entity/proposal/6", headers=PM).json() is None
        assert client.get("/api/approvals/entity/spaceship/6", headers=PM).status_code == 400

    def test_cancel(self, client):
        """Test who may cancel and that cancelling twice conflicts."""
        _create_workflow(client)
        instance = _start(client)
        url = f"/api/approvals/instance/{instance['id']}/cancel"

        assert client.post(url, json={}, headers=ALICE).status_code == 403

        response = client.post(url, json={"reason": "Deal lost"}, headers=PM)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        assert client.post(url, json={}, headers=PM).status_code == 409

    def test_active_workflows_admin_only(self, client):
        """Test the active workflow dashboard."""
        workflow = _create_workflow(client)
        _start(client)

        assert client.get("/api/approvals/active", headers=PM).status_code == 403
        active = client.get("/api/approvals/active", headers=ADMIN).json()
        assert [a["workflow_name"] for a in active] == [workflow["name"]]

    def test_pending_for_other_approver(self, client):
        """Test that only admins can read another approver's inbox."""
        _create_workflow(client, "any_one")
        _start(client)

        assert client.get("/api/approvals/pending?approver_email=alice@example.com", headers=PM).status_code == 403
        inbox = client.get("/api/approvals/pending?approver_email=alice@example.com", headers=ADMIN).json()
        assert inbox[0]["entity_type"] == "proposal"


class TestBatchDecisions:
    """Test batch endpoints."""

    def test_batch_approve(self, client):
        """Test that unauthorized and unknown items are reported as failed."""
        _create_workflow(client, "any_one", approvers=["alice@example.com"])
        _start(client, entity_id=1)
        _start(client, entity_id=2)
        alice_ids = [r["id"] for r in client.get("/api/approvals/pending", headers=ALICE).json()]

        response = client.post(
            "/api/approvals/batch/approve", json={"request_ids": alice_ids + [999]}, headers=ALICE,
        )

        body = response.json()
        assert body["approved"] == alice_ids
        assert [f["id"] for f in body["failed"]] == [999]

    def test_batch_approve_not_addressed(self, client):
        """Test that another approver's requests are not decided."""
        _create_workflow(client, "any_one", approvers=["alice@example.com"])
        _start(client)
        request_id = _pending_id(client, ALICE)

        body = client.post("/api/approvals/batch/approve", json={"request_ids": [request_id]}, headers=BOB).json()

        assert body["approved"] == []
        assert body["failed"][0]["id"] == request_id

    def test_batch_reject_requires_comment(self, client):
        """Test that batch rejections need a comment."""
        response = client.post("/api/approvals/batch/reject", json={"request_ids": [1]}, headers=ALICE)
        assert response.status_code == 400
