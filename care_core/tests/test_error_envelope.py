import uuid

import pytest
from rest_framework.test import APIClient

from care_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


def _assert_envelope(resp, status_code, code):
    assert resp.status_code == status_code, resp.content
    body = resp.json()
    assert set(body) == {"error"}
    assert body["error"]["code"] == code
    assert body["error"]["message"]
    assert body["error"]["request_id"]
    return body["error"]


def test_missing_scope_header(api_client):
    resp = api_client.get("/api/v1/contracts/")
    err = _assert_envelope(resp, 400, "validation_error")
    assert "X-Organization-Id" in err["message"]


def test_malformed_scope_header(api_client):
    resp = api_client.get("/api/v1/contracts/", HTTP_X_ORGANIZATION_ID="not-a-uuid")
    _assert_envelope(resp, 400, "validation_error")


def test_non_member_is_forbidden(api_client, other_organization_id):
    resp = api_client.get("/api/v1/contracts/", **scoped(other_organization_id))
    _assert_envelope(resp, 403, "forbidden")


def test_anonymous_is_rejected(organization_id):
    resp = APIClient().get("/api/v1/contracts/", **scoped(organization_id))
    assert resp.status_code in (401, 403)
    assert resp.json()["error"]["code"] in ("not_authenticated", "permission_denied")


def test_unknown_entity_is_not_found(api_client, organization_id):
    resp = api_client.get(f"/api/v1/contracts/{uuid.uuid4()}/", **scoped(organization_id))
    _assert_envelope(resp, 404, "not_found")


def test_serializer_errors_use_the_envelope(api_client, organization_id):
    resp = api_client.post("/api/v1/contracts/", {"monthly_rate": 0}, format="json", **scoped(organization_id))
    err = _assert_envelope(resp, 400, "validation_error")
    assert "monthly_rate" in err["details"]


def test_payment_incomplete_carries_outstanding(api_client, staff_ctx, contract, organization_id):
    from care_core.billing.services import BillingPeriodService

    BillingPeriodService.open_period(
        ctx=staff_ctx,
        contract_id=contract.id,
        year=2025,
        month=1,
        prepaid_amount=1_500_000,
        paid_by="Family",
    )

    resp = api_client.post(f"/api/v1/contracts/{contract.id}/complete/", {}, format="json", **scoped(organization_id))

    err = _assert_envelope(resp, 409, "payment_incomplete")
    assert err["details"]["outstanding"] == "500000"
    assert err["details"]["entity_id"] == str(contract.id)


def test_storage_failure_asks_client_to_retry(api_client, organization_id, monkeypatch):
    from care_core.common.exceptions import InfrastructureError
    from care_core.contracts.services import ContractService

    def _down(**kwargs):
        raise InfrastructureError(operation="ContractService.register")

    monkeypatch.setattr(ContractService, "register", staticmethod(_down))

    resp = api_client.post(
        "/api/v1/contracts/",
        {
            "patient_id": str(uuid.uuid4()),
            "room_id": str(uuid.uuid4()),
            "monthly_rate": 2_000_000,
            "start_date": "2025-01-01",
        },
        format="json",
        **scoped(organization_id),
    )

    _assert_envelope(resp, 503, "infrastructure_error")
    assert resp["Retry-After"] == "2"


def test_request_id_is_echoed(api_client):
    resp = api_client.get("/api/v1/contracts/", HTTP_X_REQUEST_ID="req-123")
    assert resp.json()["error"]["request_id"] == "req-123"
