from django.contrib import admin

from care_core.billing.models import BillingPeriod, Charge, PatientExpense, Payment


class ChargeInline(admin.TabularInline):
    model = Charge
    fk_name = "billing_period"
    extra = 0
    can_delete = False
    fields = ("code", "charge_type", "description", "quantity", "unit_price", "amount", "charge_date")
    readonly_fields = fields


@admin.register(BillingPeriod)
class BillingPeriodAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "organization_id",
        "contract",
        "period_year",
        "period_month",
        "total_charged",
        "total_paid",
        "balance",
        "status",
    )
    list_filter = ("organization_id", "status", "period_year")
    search_fields = ("code", "contract__code")
    readonly_fields = ("total_charged", "total_expenses", "total_paid", "balance", "version")
    inlines = [ChargeInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("code", "organization_id", "contract", "billing_period", "amount", "method", "status", "payment_date")
    list_filter = ("organization_id", "status", "method")
    search_fields = ("code", "paid_by", "transfer_reference")


@admin.register(PatientExpense)
class PatientExpenseAdmin(admin.ModelAdmin):
    list_display = ("code", "organization_id", "billing_period", "category", "amount", "expense_date")
    list_filter = ("organization_id", "category")
    search_fields = ("code", "description")
