# care_core/ledger/apps.py
from __future__ import annotations

from django.apps import AppConfig


class LedgerConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "care_core.ledger"

    def ready(self) -> None:
        from care_core.ledger.gates import register

        register()
