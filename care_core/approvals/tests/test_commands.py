from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from care_core.approvals.models import Approval, ApprovalStatus
from care_core.ledger.services import OperationalExpenseService

pytestmark = pytest.mark.django_db


def test_expire_approvals_command(staff_ctx, expense_workflow):
    OperationalExpenseService.create(ctx=staff_ctx, category="Food", description="Rice", amount=100_000)
    Approval.objects.update(timeout_at=timezone.now() - timedelta(minutes=1))

    out = StringIO()
    call_command("expire_approvals", stdout=out)

    assert "Expired 1 approval(s)." in out.getvalue()
    assert Approval.objects.get().status == ApprovalStatus.REJECTED
