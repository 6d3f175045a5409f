from __future__ import annotations

from rest_framework import serializers

from care_core.contracts.models import Contract


class ContractSerializer(serializers.ModelSerializer):
    class Meta:
        model = Contract
        fields = [
            "id",
            "organization_id",
            "code",
            "patient_id",
            "room_id",
            "monthly_rate",
            "nursing_rate",
            "payment_due_day",
            "start_date",
            "end_date",
            "status",
            "registered_by_user_id",
            "completed_at",
            "terminated_at",
            "terminated_by_user_id",
            "termination_reason",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ContractCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    room_id = serializers.UUIDField()
    monthly_rate = serializers.IntegerField(min_value=1)
    nursing_rate = serializers.IntegerField(min_value=0, required=False, default=0)
    payment_due_day = serializers.IntegerField(min_value=1, max_value=28, required=False, default=1)
    start_date = serializers.DateField()
    end_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ContractTerminateSerializer(serializers.Serializer):
    reason = serializers.CharField()


class ContractCompleteSerializer(serializers.Serializer):
    checkout_date = serializers.DateField(required=False, allow_null=True, default=None)
