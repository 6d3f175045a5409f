import logging
from datetime import date

import pytest

from care_core.common.codes import next_code
from care_core.common.events import publish_on_commit, subscribe, unsubscribe
from care_core.ledger.models import Transaction, TransactionType
from care_core.ledger.services import TransactionService


@pytest.mark.django_db
def test_failing_subscriber_is_logged_not_raised(django_capture_on_commit_callbacks, caplog):
    def _boom(payload):
        raise RuntimeError("subscriber down")

    subscribe("test.event")(_boom)
    try:
        with caplog.at_level(logging.ERROR, logger="care_core.common.events"):
            with django_capture_on_commit_callbacks(execute=True):
                publish_on_commit("test.event", {"id": "1"})
    finally:
        unsubscribe("test.event", _boom)

    assert "Subscriber failed for test.event" in caplog.text


@pytest.mark.django_db
def test_nothing_is_published_before_commit(django_capture_on_commit_callbacks):
    seen = []
    subscribe("test.event")(seen.append)
    try:
        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            publish_on_commit("test.event", {"id": "1"})
        assert seen == []
        assert len(callbacks) == 1
    finally:
        unsubscribe("test.event", seen.append)


@pytest.mark.django_db
def test_codes_are_sequential_per_day(staff_ctx):
    day = date(2025, 5, 6)
    assert next_code(Transaction, prefix="TRX", on=day) == "TRX-20250506-001"

    for _ in range(2):
        TransactionService.record(
            ctx=staff_ctx,
            transaction_type=TransactionType.REVENUE,
            amount=10,
            description="x",
            transaction_date=day,
        )

    assert next_code(Transaction, prefix="TRX", on=day) == "TRX-20250506-003"
    assert next_code(Transaction, prefix="TRX", on=date(2025, 5, 7)) == "TRX-20250507-001"
