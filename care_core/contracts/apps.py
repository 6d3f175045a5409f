# care_core/contracts/apps.py
from django.apps import AppConfig


class ContractsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "care_core.contracts"
