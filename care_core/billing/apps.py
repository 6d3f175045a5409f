# care_core/billing/apps.py
from __future__ import annotations

from django.apps import AppConfig


class BillingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "care_core.billing"

    def ready(self) -> None:
        from care_core.billing.gates import register

        register()
