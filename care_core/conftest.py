# care_core/conftest.py
import uuid
from datetime import date

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from care_core.common.context import ActorContext
from care_core.common.permissions import ROLE_ADMIN, ROLE_BENDAHARA, ROLE_KETUA, ROLE_STAFF
from care_core.iam.services import grant_role


def scope_headers(organization_id):
    """
    Scope header used by common.scope. DRF test client requires HTTP_ prefix.
    """
    return {"HTTP_X_ORGANIZATION_ID": str(organization_id)}


def _make_user(username: str):
    User = get_user_model()
    return User.objects.create_user(username=username, password="testpass", is_active=True)


@pytest.fixture
def organization_id():
    return uuid.uuid4()


@pytest.fixture
def other_organization_id():
    return uuid.uuid4()


@pytest.fixture
def staff_user(db, organization_id):
    user = _make_user("staff")
    grant_role(organization_id=organization_id, user_id=user.id, role_code=ROLE_STAFF)
    return user


@pytest.fixture
def bendahara_user(db, organization_id):
    user = _make_user("bendahara")
    grant_role(organization_id=organization_id, user_id=user.id, role_code=ROLE_BENDAHARA)
    return user


@pytest.fixture
def ketua_user(db, organization_id):
    user = _make_user("ketua")
    grant_role(organization_id=organization_id, user_id=user.id, role_code=ROLE_KETUA)
    return user


@pytest.fixture
def admin_user(db, organization_id):
    user = _make_user("admin")
    grant_role(organization_id=organization_id, user_id=user.id, role_code=ROLE_ADMIN)
    return user


@pytest.fixture
def staff_ctx(organization_id, staff_user):
    return ActorContext(organization_id=organization_id, user_id=staff_user.id, roles=frozenset({ROLE_STAFF}))


@pytest.fixture
def bendahara_ctx(organization_id, bendahara_user):
    return ActorContext(organization_id=organization_id, user_id=bendahara_user.id, roles=frozenset({ROLE_BENDAHARA}))


@pytest.fixture
def ketua_ctx(organization_id, ketua_user):
    return ActorContext(organization_id=organization_id, user_id=ketua_user.id, roles=frozenset({ROLE_KETUA}))


@pytest.fixture
def admin_ctx(organization_id, admin_user):
    return ActorContext(organization_id=organization_id, user_id=admin_user.id, roles=frozenset({ROLE_ADMIN}))


@pytest.fixture
def contract(db, staff_ctx):
    """
    Monthly rate 2,000,000, no default nursing rate, due on the 10th.
    """
    from care_core.contracts.services import ContractService

    return ContractService.register(
        ctx=staff_ctx,
        patient_id=uuid.uuid4(),
        room_id=uuid.uuid4(),
        monthly_rate=2_000_000,
        start_date=date(2025, 1, 1),
        payment_due_day=10,
    )


@pytest.fixture
def expense_workflow(db, admin_ctx):
    """
    OPERATIONAL_EXPENSE: BENDAHARA, then KETUA for amounts >= 5,000,000.
    """
    from care_core.approvals.models import ResourceType
    from care_core.approvals.services import WorkflowService

    return WorkflowService.create_workflow(
        ctx=admin_ctx,
        name="Operational expense approval",
        resource_type=ResourceType.OPERATIONAL_EXPENSE,
        steps=[
            {"step_order": 1, "role_name": "BENDAHARA"},
            {"step_order": 2, "role_name": "KETUA", "conditions": {"minAmount": 5_000_000}},
        ],
    )


@pytest.fixture
def api_client(staff_user):
    c = APIClient()
    c.force_authenticate(user=staff_user)
    return c


@pytest.fixture
def bendahara_client(bendahara_user):
    c = APIClient()
    c.force_authenticate(user=bendahara_user)
    return c
