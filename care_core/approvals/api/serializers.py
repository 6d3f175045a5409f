from __future__ import annotations

from rest_framework import serializers

from care_core.approvals.models import Approval, ApprovalAction, ApprovalStep, ApprovalWorkflow, ResourceType


class ApprovalStepSerializer(serializers.ModelSerializer):
    class Meta:
        model = ApprovalStep
        fields = ["id", "step_order", "role_name", "conditions", "timeout_hours"]
        read_only_fields = fields


class ApprovalWorkflowSerializer(serializers.ModelSerializer):
    steps = ApprovalStepSerializer(many=True, read_only=True)

    class Meta:
        model = ApprovalWorkflow
        fields = [
            "id",
            "organization_id",
            "name",
            "resource_type",
            "description",
            "is_active",
            "steps",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ApprovalStepInputSerializer(serializers.Serializer):
    step_order = serializers.IntegerField(min_value=1)
    role_name = serializers.CharField(max_length=64)
    conditions = serializers.JSONField(required=False, default=list)
    timeout_hours = serializers.IntegerField(min_value=1, required=False, allow_null=True, default=None)


class ApprovalWorkflowCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=128)
    resource_type = serializers.ChoiceField(choices=ResourceType.choices)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    is_active = serializers.BooleanField(required=False, default=True)
    steps = ApprovalStepInputSerializer(many=True)


class ApprovalActionSerializer(serializers.ModelSerializer):
    class Meta:
        model = ApprovalAction
        fields = ["id", "step_order", "action", "actor_user_id", "is_system", "comments", "actioned_at"]
        read_only_fields = fields


class ApprovalSerializer(serializers.ModelSerializer):
    workflow_name = serializers.CharField(source="workflow.name", read_only=True)

    class Meta:
        model = Approval
        fields = [
            "id",
            "organization_id",
            "resource_type",
            "resource_id",
            "workflow",
            "workflow_name",
            "current_step_order",
            "status",
            "requested_by_user_id",
            "requested_at",
            "completed_at",
            "timeout_at",
            "attributes",
            "version",
        ]
        read_only_fields = fields


class ApprovalDetailSerializer(ApprovalSerializer):
    actions = ApprovalActionSerializer(many=True, read_only=True)

    class Meta(ApprovalSerializer.Meta):
        fields = ApprovalSerializer.Meta.fields + ["actions"]
        read_only_fields = fields


class ApprovalDecisionSerializer(serializers.Serializer):
    """
    expected_step_order guards against acting on a step someone else already decided.
    """
    comments = serializers.CharField(required=False, allow_blank=True, default="")
    expected_step_order = serializers.IntegerField(required=False, allow_null=True, default=None)
