# care_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from care_core.approvals.api.views import ApprovalViewSet, ApprovalWorkflowViewSet
from care_core.audit.api.views import AuditEventViewSet
from care_core.billing.api.views import BillingPeriodViewSet, PaymentViewSet
from care_core.contracts.api.views import ContractViewSet
from care_core.ledger.api.views import (
    FinancialSummaryView,
    OperationalExpenseViewSet,
    TransactionRequestViewSet,
    TransactionViewSet,
)

router = DefaultRouter()

router.register(r"contracts", ContractViewSet, basename="contracts")
router.register(r"billing/periods", BillingPeriodViewSet, basename="billing-periods")
router.register(r"billing/payments", PaymentViewSet, basename="billing-payments")
router.register(r"ledger/transactions", TransactionViewSet, basename="ledger-transactions")
router.register(r"ledger/expenses", OperationalExpenseViewSet, basename="ledger-expenses")
router.register(r"ledger/requests", TransactionRequestViewSet, basename="ledger-requests")
router.register(r"approvals/workflows", ApprovalWorkflowViewSet, basename="approval-workflows")
router.register(r"approvals", ApprovalViewSet, basename="approvals")
router.register(r"audit/events", AuditEventViewSet, basename="audit-events")

urlpatterns = [
    path("ledger/summary/", FinancialSummaryView.as_view(), name="ledger-summary"),

    # Router URLs last (so explicit paths win if ever overlapping)
    *router.urls,
]
