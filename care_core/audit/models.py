# care_core/audit/models.py
from django.db import models
from care_core.common.models import ScopedModel


class AuditEvent(ScopedModel):
    """
    Immutable audit record of financial actions (settlement, verification, completion).
    """
    event_code = models.CharField(max_length=128, db_index=True)  # e.g. "billing.period_settled"
    entity_type = models.CharField(max_length=128, db_index=True)  # e.g. "BillingPeriod"
    entity_id = models.UUIDField(db_index=True)

    actor_user_id = models.BigIntegerField(null=True, blank=True)

    occurred_at = models.DateTimeField(auto_now_add=True, db_index=True)
    metadata = models.JSONField(default=dict)

    class Meta:
        db_table = "audit_audit_event"
        indexes = [
            models.Index(fields=["organization_id", "occurred_at"]),
            models.Index(fields=["entity_type", "entity_id"]),
            models.Index(fields=["organization_id", "event_code"]),
        ]
