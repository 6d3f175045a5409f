import pytest

from care_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


def test_period_lifecycle_over_http(api_client, bendahara_client, contract, organization_id):
    h = scoped(organization_id)

    resp = api_client.post(
        "/api/v1/billing/periods/",
        {
            "contract": str(contract.id),
            "year": 2025,
            "month": 1,
            "prepaid_amount": 2_000_000,
            "paid_by": "Family",
            "nursing_charge": 300_000,
        },
        format="json",
        **h,
    )
    assert resp.status_code == 201, resp.content
    period = resp.json()
    assert period["balance"] == -300_000
    pid = period["id"]

    resp = api_client.post(
        f"/api/v1/billing/periods/{pid}/charges/",
        {"charge_type": "MEDICATION", "description": "Vitamins", "quantity": 2, "unit_price": 50_000},
        format="json",
        **h,
    )
    assert resp.status_code == 201, resp.content
    assert resp.json()["amount"] == 100_000

    resp = api_client.post(
        f"/api/v1/billing/periods/{pid}/expenses/",
        {"category": "Toiletries", "description": "Soap", "amount": 25_000},
        format="json",
        **h,
    )
    assert resp.status_code == 201, resp.content

    resp = api_client.post(
        "/api/v1/billing/payments/",
        {"contract": str(contract.id), "amount": 1_000_000, "method": "BANK_TRANSFER", "paid_by": "Son"},
        format="json",
        **h,
    )
    assert resp.status_code == 201, resp.content
    payment = resp.json()
    assert payment["status"] == "PENDING"

    # STAFF cannot verify
    resp = api_client.post(f"/api/v1/billing/payments/{payment['id']}/verify/", {}, format="json", **h)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"

    resp = bendahara_client.post(f"/api/v1/billing/payments/{payment['id']}/verify/", {}, format="json", **h)
    assert resp.status_code == 200, resp.content
    assert resp.json()["status"] == "VERIFIED"

    resp = api_client.get(f"/api/v1/billing/periods/{pid}/", **h)
    assert resp.status_code == 200
    detail = resp.json()
    assert detail["balance"] == 3_000_000 - (2_400_000 + 25_000)
    assert len(detail["charges"]) == 2
    assert len(detail["expenses"]) == 1
    assert len(detail["payments"]) == 2

    resp = api_client.post(f"/api/v1/billing/periods/{pid}/settle/", {}, format="json", **h)
    assert resp.status_code == 200, resp.content
    body = resp.json()
    assert body["period"]["status"] == "SETTLED"
    assert body["revenue_transaction"] is not None

    resp = api_client.post(f"/api/v1/billing/periods/{pid}/settle/", {}, format="json", **h)
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "invalid_state"


def test_open_next_period_over_http(api_client, contract, organization_id):
    resp = api_client.post(
        "/api/v1/billing/periods/",
        {"contract": str(contract.id), "prepaid_amount": 2_000_000, "paid_by": "Family"},
        format="json",
        **scoped(organization_id),
    )
    assert resp.status_code == 201, resp.content
    assert (resp.json()["period_year"], resp.json()["period_month"]) == (2025, 1)


def test_year_without_month_is_rejected(api_client, contract, organization_id):
    resp = api_client.post(
        "/api/v1/billing/periods/",
        {"contract": str(contract.id), "year": 2025},
        format="json",
        **scoped(organization_id),
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_period_list_is_scoped(api_client, staff_ctx, contract, organization_id, other_organization_id, staff_user):
    from care_core.billing.services import BillingPeriodService
    from care_core.common.permissions import ROLE_STAFF
    from care_core.iam.services import grant_role

    BillingPeriodService.open_period(ctx=staff_ctx, contract_id=contract.id, year=2025, month=1)
    grant_role(organization_id=other_organization_id, user_id=staff_user.id, role_code=ROLE_STAFF)

    resp = api_client.get("/api/v1/billing/periods/", **scoped(organization_id))
    assert resp.json()["count"] == 1

    resp = api_client.get("/api/v1/billing/periods/", **scoped(other_organization_id))
    assert resp.json()["count"] == 0
