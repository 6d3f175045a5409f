# care_core/iam/models.py
import uuid
from django.db import models


class Membership(models.Model):
    """
    Assigns a user to an organization with a role code (e.g. BENDAHARA, KETUA).
    Identity itself is Django's auth user; this is the role lookup the finance
    engines consult (never authentication).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    organization_id = models.UUIDField(db_index=True)
    user_id = models.BigIntegerField(db_index=True)
    role_code = models.CharField(max_length=64)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "iam_membership"
        constraints = [
            models.UniqueConstraint(
                fields=["organization_id", "user_id", "role_code"],
                name="uq_membership_org_user_role",
            ),
        ]
        indexes = [
            models.Index(fields=["organization_id", "user_id", "is_active"]),
        ]

    def __str__(self) -> str:
        return f"{self.user_id}@{self.organization_id}:{self.role_code}"
