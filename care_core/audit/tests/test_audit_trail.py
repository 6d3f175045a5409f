import uuid
from datetime import date

import pytest

from care_core.audit.models import AuditEvent
from care_core.billing.services import BillingPeriodService
from care_core.contracts.services import ContractService
from care_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


@pytest.fixture
def settled_period(staff_ctx, contract):
    period = BillingPeriodService.open_period(
        ctx=staff_ctx,
        contract_id=contract.id,
        year=2025,
        month=1,
        prepaid_amount=2_500_000,
        paid_by="Family",
    )
    BillingPeriodService.settle_period(ctx=staff_ctx, period_id=period.id)
    return period


def test_financial_actions_leave_an_audit_trail(staff_ctx, settled_period):
    codes = set(AuditEvent.objects.filter(entity_id=settled_period.id).values_list("event_code", flat=True))
    assert codes == {"BILLING_PERIOD_OPENED", "BILLING_PERIOD_SETTLED"}

    settled = AuditEvent.objects.get(event_code="BILLING_PERIOD_SETTLED")
    assert settled.actor_user_id == staff_ctx.user_id
    assert settled.metadata["balance"] == 500_000
    assert settled.organization_id == staff_ctx.organization_id


def test_audit_events_endpoint_filters(api_client, organization_id, settled_period):
    resp = api_client.get(
        "/api/v1/audit/events/",
        {"entity_type": "BillingPeriod", "event_code": "BILLING_PERIOD_SETTLED"},
        **scoped(organization_id),
    )
    assert resp.status_code == 200, resp.content
    body = resp.json()
    assert len(body) == 1
    assert body[0]["entity_id"] == str(settled_period.id)
    assert body[0]["timestamp"]

    resp = api_client.get("/api/v1/audit/events/", {"limit": 1}, **scoped(organization_id))
    assert len(resp.json()) == 1


def test_audit_events_bad_filter(api_client, organization_id):
    resp = api_client.get("/api/v1/audit/events/", {"entity_id": "nope"}, **scoped(organization_id))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_contract_trail_covers_periods_and_payments_only(api_client, staff_ctx, organization_id, contract, settled_period):
    other = ContractService.register(
        ctx=staff_ctx,
        patient_id=uuid.uuid4(),
        room_id=uuid.uuid4(),
        monthly_rate=1_500_000,
        start_date=date(2025, 1, 1),
        payment_due_day=5,
    )

    resp = api_client.get("/api/v1/audit/events/", {"contract": str(contract.id)}, **scoped(organization_id))
    assert resp.status_code == 200, resp.content
    body = resp.json()

    codes = {row["event_code"] for row in body}
    assert {"CONTRACT_REGISTERED", "BILLING_PERIOD_OPENED", "BILLING_PERIOD_SETTLED"} <= codes

    allowed = {str(contract.id), str(settled_period.id)}
    allowed |= {str(pk) for pk in settled_period.payments.values_list("id", flat=True)}
    assert {row["entity_id"] for row in body} <= allowed
    assert str(other.id) not in {row["entity_id"] for row in body}


def test_audit_events_date_window(api_client, organization_id, settled_period):
    resp = api_client.get("/api/v1/audit/events/", {"to": "2000-01-01"}, **scoped(organization_id))
    assert resp.status_code == 200
    assert resp.json() == []

    resp = api_client.get(
        "/api/v1/audit/events/", {"from": "2030-01-02", "to": "2030-01-01"}, **scoped(organization_id)
    )
    assert resp.status_code == 400


def test_audit_events_reject_unknown_entity_type(api_client, organization_id):
    resp = api_client.get("/api/v1/audit/events/", {"entity_type": "Invoice"}, **scoped(organization_id))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"
