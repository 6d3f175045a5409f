# care_core/iam/admin.py
from django.contrib import admin

from care_core.iam.models import Membership


@admin.register(Membership)
class MembershipAdmin(admin.ModelAdmin):
    list_display = ("id", "organization_id", "user_id", "role_code", "is_active", "created_at")
    list_filter = ("organization_id", "role_code", "is_active")
    search_fields = ("user_id", "role_code")
