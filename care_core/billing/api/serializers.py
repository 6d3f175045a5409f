from __future__ import annotations

from rest_framework import serializers

from care_core.billing.models import BillingPeriod, Charge, ChargeType, PatientExpense, Payment, PaymentMethod


class ChargeSerializer(serializers.ModelSerializer):
    class Meta:
        model = Charge
        fields = [
            "id",
            "code",
            "billing_period",
            "contract",
            "charge_type",
            "description",
            "amount",
            "quantity",
            "unit_price",
            "charge_date",
            "is_mandatory",
            "source_period",
            "recorded_by_user_id",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class PatientExpenseSerializer(serializers.ModelSerializer):
    class Meta:
        model = PatientExpense
        fields = [
            "id",
            "code",
            "billing_period",
            "contract",
            "category",
            "description",
            "amount",
            "payment_method",
            "bank_account_id",
            "expense_date",
            "receipt_url",
            "recorded_by_user_id",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "organization_id",
            "code",
            "contract",
            "billing_period",
            "amount",
            "method",
            "bank_account_id",
            "transfer_reference",
            "transfer_proof_url",
            "paid_by",
            "payment_date",
            "status",
            "received_by_user_id",
            "verified_by_user_id",
            "verified_at",
            "rejection_reason",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BillingPeriodSerializer(serializers.ModelSerializer):
    class Meta:
        model = BillingPeriod
        fields = [
            "id",
            "organization_id",
            "code",
            "contract",
            "period_year",
            "period_month",
            "period_start_date",
            "period_end_date",
            "base_monthly_rate",
            "nursing_charge",
            "additional_charges",
            "total_charged",
            "total_expenses",
            "total_paid",
            "balance",
            "due_date",
            "status",
            "settled_at",
            "settled_by_user_id",
            "carried_debt",
            "debt_carried_to",
            "version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BillingPeriodDetailSerializer(BillingPeriodSerializer):
    charges = ChargeSerializer(many=True, read_only=True)
    expenses = PatientExpenseSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)

    class Meta(BillingPeriodSerializer.Meta):
        fields = BillingPeriodSerializer.Meta.fields + ["charges", "expenses", "payments"]
        read_only_fields = fields


class PeriodOpenSerializer(serializers.Serializer):
    """
    year/month omitted -> the month after the contract's latest period.
    """
    contract = serializers.UUIDField()
    year = serializers.IntegerField(required=False, min_value=2000)
    month = serializers.IntegerField(required=False, min_value=1, max_value=12)
    prepaid_amount = serializers.IntegerField(min_value=0, required=False, default=0)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, default=PaymentMethod.CASH)
    paid_by = serializers.CharField(required=False, allow_blank=True, default="")
    nursing_charge = serializers.IntegerField(min_value=0, required=False, allow_null=True, default=None)
    carried_debt_periods = serializers.ListField(child=serializers.UUIDField(), required=False, allow_null=True, default=None)
    transfer_reference = serializers.CharField(required=False, allow_blank=True, default="")
    bank_account_id = serializers.UUIDField(required=False, allow_null=True, default=None)

    def validate(self, attrs):
        if ("year" in attrs) != ("month" in attrs):
            raise serializers.ValidationError("Provide both year and month, or neither.")
        return attrs


class ChargeCreateSerializer(serializers.Serializer):
    charge_type = serializers.ChoiceField(choices=ChargeType.choices)
    description = serializers.CharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1, required=False, default=1)
    unit_price = serializers.IntegerField()
    charge_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PatientExpenseCreateSerializer(serializers.Serializer):
    category = serializers.CharField(max_length=64)
    description = serializers.CharField(max_length=255)
    amount = serializers.IntegerField()
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, default=PaymentMethod.CASH)
    bank_account_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    expense_date = serializers.DateField(required=False, allow_null=True, default=None)
    receipt_url = serializers.URLField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentCreateSerializer(serializers.Serializer):
    contract = serializers.UUIDField()
    billing_period = serializers.UUIDField(required=False, allow_null=True, default=None)
    amount = serializers.IntegerField()
    method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, default=PaymentMethod.CASH)
    paid_by = serializers.CharField(max_length=255)
    transfer_reference = serializers.CharField(required=False, allow_blank=True, default="")
    transfer_proof_url = serializers.URLField(required=False, allow_blank=True, default="")
    bank_account_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentRejectSerializer(serializers.Serializer):
    reason = serializers.CharField()
