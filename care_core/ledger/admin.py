from django.contrib import admin

from care_core.ledger.models import OperationalExpense, Transaction, TransactionRequest


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ("code", "organization_id", "transaction_type", "amount", "account_type", "is_realized", "transaction_date")
    list_filter = ("organization_id", "transaction_type", "is_realized")
    search_fields = ("code", "description", "reference_id")
    ordering = ("-transaction_date", "-created_at")


@admin.register(OperationalExpense)
class OperationalExpenseAdmin(admin.ModelAdmin):
    list_display = ("code", "organization_id", "category", "amount", "approval_status", "expense_date")
    list_filter = ("organization_id", "approval_status", "category")
    search_fields = ("code", "description")


@admin.register(TransactionRequest)
class TransactionRequestAdmin(admin.ModelAdmin):
    list_display = ("code", "organization_id", "transaction_type", "amount", "status", "request_date")
    list_filter = ("organization_id", "status", "transaction_type")
    search_fields = ("code", "description")
