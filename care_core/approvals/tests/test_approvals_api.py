import pytest
from rest_framework.test import APIClient

from care_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


@pytest.fixture
def admin_client(admin_user):
    c = APIClient()
    c.force_authenticate(user=admin_user)
    return c


@pytest.fixture
def ketua_client(ketua_user):
    c = APIClient()
    c.force_authenticate(user=ketua_user)
    return c


def test_only_admins_configure_workflows(api_client, admin_client, organization_id):
    payload = {
        "name": "Expenses",
        "resource_type": "OPERATIONAL_EXPENSE",
        "steps": [
            {"step_order": 1, "role_name": "BENDAHARA"},
            {"step_order": 2, "role_name": "KETUA", "conditions": {"minAmount": 5_000_000}},
        ],
    }
    h = scoped(organization_id)

    resp = api_client.post("/api/v1/approvals/workflows/", payload, format="json", **h)
    assert resp.status_code == 403

    resp = admin_client.post("/api/v1/approvals/workflows/", payload, format="json", **h)
    assert resp.status_code == 201, resp.content
    steps = resp.json()["steps"]
    assert [s["role_name"] for s in steps] == ["BENDAHARA", "KETUA"]
    assert steps[1]["conditions"] == [{"field": "amount", "operator": "gte", "value": 5_000_000}]

    resp = api_client.get("/api/v1/approvals/workflows/", **h)
    assert resp.json()["count"] == 1


def test_two_step_decision_over_http(api_client, bendahara_client, ketua_client, organization_id, expense_workflow):
    h = scoped(organization_id)

    resp = api_client.post(
        "/api/v1/ledger/expenses/",
        {"category": "Renovation", "description": "Bathroom tiles", "amount": 6_000_000},
        format="json",
        **h,
    )
    assert resp.status_code == 201, resp.content
    expense_id = resp.json()["id"]
    assert resp.json()["approval_status"] == "PENDING"

    inbox = bendahara_client.get("/api/v1/approvals/inbox/", **h).json()
    assert inbox["count"] == 1
    approval = inbox["results"][0]
    assert approval["resource_id"] == expense_id
    assert ketua_client.get("/api/v1/approvals/inbox/", **h).json()["count"] == 0

    resp = bendahara_client.post(
        f"/api/v1/approvals/{approval['id']}/approve/",
        {"expected_step_order": 1},
        format="json",
        **h,
    )
    assert resp.status_code == 200, resp.content
    assert resp.json()["current_step_order"] == 2

    # a second click on the stale step loses
    resp = bendahara_client.post(
        f"/api/v1/approvals/{approval['id']}/approve/",
        {"expected_step_order": 1},
        format="json",
        **h,
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "invalid_state"

    resp = ketua_client.post(f"/api/v1/approvals/{approval['id']}/approve/", {}, format="json", **h)
    assert resp.status_code == 200, resp.content
    assert resp.json()["status"] == "APPROVED"

    detail = api_client.get(f"/api/v1/approvals/{approval['id']}/", **h).json()
    assert [a["action"] for a in detail["actions"]] == ["APPROVED", "APPROVED"]

    expense = api_client.get(f"/api/v1/ledger/expenses/{expense_id}/", **h).json()
    assert expense["approval_status"] == "APPROVED"
    assert expense["transaction"] is not None


def test_reject_without_comments_over_http(api_client, bendahara_client, organization_id, expense_workflow):
    h = scoped(organization_id)
    api_client.post(
        "/api/v1/ledger/expenses/",
        {"category": "Food", "description": "Rice", "amount": 800_000},
        format="json",
        **h,
    )
    approval = bendahara_client.get("/api/v1/approvals/inbox/", **h).json()["results"][0]

    resp = bendahara_client.post(f"/api/v1/approvals/{approval['id']}/reject/", {}, format="json", **h)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"

    resp = bendahara_client.post(
        f"/api/v1/approvals/{approval['id']}/reject/", {"comments": "Wrong vendor"}, format="json", **h
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "REJECTED"
