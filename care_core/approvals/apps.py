# care_core/approvals/apps.py
from __future__ import annotations

from django.apps import AppConfig


class ApprovalsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "care_core.approvals"
