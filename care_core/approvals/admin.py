from django.contrib import admin

from care_core.approvals.models import Approval, ApprovalAction, ApprovalStep, ApprovalWorkflow


class ApprovalStepInline(admin.TabularInline):
    model = ApprovalStep
    extra = 0
    fields = ("step_order", "role_name", "conditions", "timeout_hours")


@admin.register(ApprovalWorkflow)
class ApprovalWorkflowAdmin(admin.ModelAdmin):
    list_display = ("name", "organization_id", "resource_type", "is_active", "created_at")
    list_filter = ("organization_id", "resource_type", "is_active")
    search_fields = ("name",)
    inlines = [ApprovalStepInline]


class ApprovalActionInline(admin.TabularInline):
    model = ApprovalAction
    extra = 0
    can_delete = False
    fields = ("step_order", "action", "actor_user_id", "is_system", "comments", "actioned_at")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Approval)
class ApprovalAdmin(admin.ModelAdmin):
    list_display = ("id", "organization_id", "resource_type", "resource_id", "status", "current_step_order", "requested_at")
    list_filter = ("organization_id", "status", "resource_type")
    search_fields = ("resource_id",)
    readonly_fields = ("version",)
    inlines = [ApprovalActionInline]
