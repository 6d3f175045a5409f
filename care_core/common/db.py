# care_core/common/db.py
from __future__ import annotations

import functools
import logging

from django.conf import settings
from django.db import OperationalError, connection, transaction
from django.db.models import F
from django.utils import timezone

from care_core.common.exceptions import InfrastructureError, InvalidStateError

logger = logging.getLogger(__name__)


def _max_retries() -> int:
    return int(getattr(settings, "CARE_TX_MAX_RETRIES", 3))


def retrying_atomic(fn):
    """
    transaction.atomic + bounded retry of transient persistence errors.

    - Business errors (DomainError subclasses) propagate untouched, never retried.
    - OperationalError (deadlock, lock timeout, serialization failure) is retried
      up to CARE_TX_MAX_RETRIES times, then surfaces as InfrastructureError.
    - When called inside an outer atomic block the outer transaction is already
      poisoned, so no retry happens: the error is converted immediately.
    """
    @functools.wraps(fn)
    def _wrapped(*args, **kwargs):
        nested = connection.in_atomic_block
        attempt = 0
        while True:
            try:
                with transaction.atomic():
                    return fn(*args, **kwargs)
            except OperationalError as exc:
                attempt += 1
                if nested or attempt > _max_retries():
                    logger.error("Giving up on %s after %s attempt(s): %s", fn.__qualname__, attempt, exc)
                    raise InfrastructureError(
                        "Temporary storage failure. Please retry.",
                        operation=fn.__qualname__,
                    ) from exc
                logger.warning("Retrying %s (attempt %s): %s", fn.__qualname__, attempt, exc)

    return _wrapped


def compare_and_set(instance, *, fields: list[str]) -> None:
    """
    Optimistic write keyed by (pk, version).

    Callers lock the row with select_for_update() first; the version check still
    catches writers that read the row before the lock was taken (and backends
    without row locks). A lost race raises InvalidStateError.
    """
    model = type(instance)
    values = {f: getattr(instance, f) for f in fields}
    if hasattr(instance, "updated_at"):
        instance.updated_at = timezone.now()
        values["updated_at"] = instance.updated_at

    updated = model.objects.filter(pk=instance.pk, version=instance.version).update(
        version=F("version") + 1,
        **values,
    )
    if not updated:
        raise InvalidStateError(
            f"{model.__name__} was modified concurrently.",
            entity_id=instance.pk,
        )
    instance.version += 1
