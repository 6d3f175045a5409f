# care_core/contracts/admin.py
from django.contrib import admin

from care_core.contracts.models import Contract


@admin.register(Contract)
class ContractAdmin(admin.ModelAdmin):
    list_display = ("code", "organization_id", "patient_id", "room_id", "monthly_rate", "status", "start_date", "end_date")
    list_filter = ("organization_id", "status")
    search_fields = ("code", "patient_id", "room_id")
    ordering = ("-created_at",)
