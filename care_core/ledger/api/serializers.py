from __future__ import annotations

from rest_framework import serializers

from care_core.ledger.models import (
    AccountType,
    ExpensePaymentMethod,
    OperationalExpense,
    Transaction,
    TransactionRequest,
)
from care_core.ledger.services import REQUESTABLE_TYPES


class TransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Transaction
        fields = [
            "id",
            "organization_id",
            "code",
            "transaction_type",
            "category",
            "amount",
            "account_type",
            "bank_account_id",
            "reference_type",
            "reference_id",
            "transaction_date",
            "description",
            "proof_document_url",
            "is_realized",
            "realized_at",
            "created_by_user_id",
            "created_at",
        ]
        read_only_fields = fields


class OperationalExpenseSerializer(serializers.ModelSerializer):
    class Meta:
        model = OperationalExpense
        fields = [
            "id",
            "organization_id",
            "code",
            "category",
            "description",
            "amount",
            "payment_method",
            "bank_account_id",
            "expense_date",
            "receipt_url",
            "requires_approval",
            "approval_status",
            "transaction",
            "recorded_by_user_id",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OperationalExpenseCreateSerializer(serializers.Serializer):
    category = serializers.CharField(max_length=64)
    description = serializers.CharField(max_length=255)
    amount = serializers.IntegerField()
    payment_method = serializers.ChoiceField(
        choices=ExpensePaymentMethod.choices,
        required=False,
        default=ExpensePaymentMethod.CASH,
    )
    bank_account_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    expense_date = serializers.DateField(required=False, allow_null=True, default=None)
    receipt_url = serializers.URLField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    requires_approval = serializers.BooleanField(required=False, default=True)


class TransactionRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = TransactionRequest
        fields = [
            "id",
            "organization_id",
            "code",
            "transaction_type",
            "category",
            "amount",
            "account_type",
            "bank_account_id",
            "description",
            "request_date",
            "status",
            "transaction",
            "requested_by_user_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class TransactionRequestCreateSerializer(serializers.Serializer):
    transaction_type = serializers.ChoiceField(choices=[(t.value, t.label) for t in REQUESTABLE_TYPES])
    amount = serializers.IntegerField()
    description = serializers.CharField(max_length=255)
    category = serializers.CharField(required=False, allow_blank=True, default="")
    account_type = serializers.ChoiceField(choices=AccountType.choices, required=False, default=AccountType.CASH)
    bank_account_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    request_date = serializers.DateField(required=False, allow_null=True, default=None)
