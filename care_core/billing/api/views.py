from __future__ import annotations

from uuid import UUID

from django.shortcuts import get_object_or_404
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from care_core.billing.api.serializers import (
    BillingPeriodDetailSerializer,
    BillingPeriodSerializer,
    ChargeCreateSerializer,
    ChargeSerializer,
    PatientExpenseCreateSerializer,
    PatientExpenseSerializer,
    PaymentCreateSerializer,
    PaymentRejectSerializer,
    PaymentSerializer,
    PeriodOpenSerializer,
)
from care_core.billing.models import BillingPeriod, Payment
from care_core.billing.selectors import (
    charges_for_period,
    expenses_for_period,
    payments_filtered,
    periods_filtered,
)
from care_core.billing.services import BillingPeriodService, PaymentService
from care_core.common.api.pagination import paginate
from care_core.common.api.params import uuid_or_none
from care_core.common.scope import actor_context


class BillingPeriodViewSet(viewsets.GenericViewSet):
    """
    Monthly billing periods:
    - list/retrieve
    - open (explicit month, or next month)
    - charges / expenses: GET list, POST post
    - settle
    - reconcile
    """
    serializer_class = BillingPeriodSerializer
    queryset = BillingPeriod.objects.none()

    def _get_period(self, ctx, pk) -> BillingPeriod:
        return get_object_or_404(periods_filtered(organization_id=ctx.organization_id), id=UUID(str(pk)))

    @extend_schema(
        tags=["Billing"],
        responses={200: BillingPeriodSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="contract", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = actor_context(request)

        qs = periods_filtered(
            organization_id=ctx.organization_id,
            contract_id=uuid_or_none(request.query_params.get("contract"), "contract"),
            status=request.query_params.get("status"),
        )
        return paginate(request, qs, BillingPeriodSerializer)

    @extend_schema(tags=["Billing"], responses={200: BillingPeriodDetailSerializer})
    def retrieve(self, request, pk=None):
        ctx = actor_context(request)
        period = self._get_period(ctx, pk)
        return Response(BillingPeriodDetailSerializer(period).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Billing"], request=PeriodOpenSerializer, responses={201: BillingPeriodSerializer})
    def create(self, request):
        ctx = actor_context(request)

        ser = PeriodOpenSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        common = dict(
            ctx=ctx,
            contract_id=data["contract"],
            prepaid_amount=data["prepaid_amount"],
            payment_method=data["payment_method"],
            paid_by=data["paid_by"],
            nursing_charge=data["nursing_charge"],
            transfer_reference=data["transfer_reference"],
            bank_account_id=data["bank_account_id"],
        )
        if "year" in data:
            period = BillingPeriodService.open_period(
                year=data["year"],
                month=data["month"],
                carried_debt_period_ids=data["carried_debt_periods"],
                **common,
            )
        else:
            period = BillingPeriodService.open_next_period(**common)

        return Response(BillingPeriodSerializer(period).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        tags=["Billing"],
        request=ChargeCreateSerializer,
        responses={200: ChargeSerializer(many=True), 201: ChargeSerializer},
    )
    @action(detail=True, methods=["get", "post"], url_path="charges")
    def charges(self, request, pk=None):
        ctx = actor_context(request)

        if request.method.lower() == "get":
            period = self._get_period(ctx, pk)
            return Response(ChargeSerializer(charges_for_period(period=period), many=True).data, status=status.HTTP_200_OK)

        ser = ChargeCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        charge = BillingPeriodService.post_charge(ctx=ctx, period_id=UUID(str(pk)), **ser.validated_data)
        return Response(ChargeSerializer(charge).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        tags=["Billing"],
        request=PatientExpenseCreateSerializer,
        responses={200: PatientExpenseSerializer(many=True), 201: PatientExpenseSerializer},
    )
    @action(detail=True, methods=["get", "post"], url_path="expenses")
    def expenses(self, request, pk=None):
        ctx = actor_context(request)

        if request.method.lower() == "get":
            period = self._get_period(ctx, pk)
            return Response(
                PatientExpenseSerializer(expenses_for_period(period=period), many=True).data,
                status=status.HTTP_200_OK,
            )

        ser = PatientExpenseCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        expense = BillingPeriodService.post_expense(ctx=ctx, period_id=UUID(str(pk)), **ser.validated_data)
        return Response(PatientExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Billing"], request=None, responses={200: OpenApiTypes.OBJECT})
    @action(detail=True, methods=["post"], url_path="settle")
    def settle(self, request, pk=None):
        ctx = actor_context(request)

        result = BillingPeriodService.settle_period(ctx=ctx, period_id=UUID(str(pk)))
        revenue = result.revenue_transaction
        return Response(
            {
                "period": BillingPeriodSerializer(result.period).data,
                "revenue_transaction": str(revenue.id) if revenue else None,
            },
            status=status.HTTP_200_OK,
        )

    @extend_schema(tags=["Billing"], request=None, responses={200: OpenApiTypes.OBJECT})
    @action(detail=True, methods=["post"], url_path="reconcile")
    def reconcile(self, request, pk=None):
        ctx = actor_context(request)
        report = BillingPeriodService.reconcile_period(organization_id=ctx.organization_id, period_id=UUID(str(pk)))
        return Response(report, status=status.HTTP_200_OK)


class PaymentViewSet(viewsets.GenericViewSet):
    """
    Patient payments:
    - list/retrieve
    - record (CASH verified immediately, BANK_TRANSFER pending)
    - verify / reject pending transfers
    """
    serializer_class = PaymentSerializer
    queryset = Payment.objects.none()

    @extend_schema(
        tags=["Billing"],
        responses={200: PaymentSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="contract", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="period", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="method", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = actor_context(request)

        qs = payments_filtered(
            organization_id=ctx.organization_id,
            contract_id=uuid_or_none(request.query_params.get("contract"), "contract"),
            period_id=uuid_or_none(request.query_params.get("period"), "period"),
            status=request.query_params.get("status"),
            method=request.query_params.get("method"),
        )
        return paginate(request, qs, PaymentSerializer)

    @extend_schema(tags=["Billing"], responses={200: PaymentSerializer})
    def retrieve(self, request, pk=None):
        ctx = actor_context(request)
        payment = get_object_or_404(payments_filtered(organization_id=ctx.organization_id), id=UUID(str(pk)))
        return Response(PaymentSerializer(payment).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Billing"], request=PaymentCreateSerializer, responses={201: PaymentSerializer})
    def create(self, request):
        ctx = actor_context(request)

        ser = PaymentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        payment = PaymentService.record_payment(
            ctx=ctx,
            contract_id=data["contract"],
            period_id=data["billing_period"],
            amount=data["amount"],
            method=data["method"],
            paid_by=data["paid_by"],
            transfer_reference=data["transfer_reference"],
            transfer_proof_url=data["transfer_proof_url"],
            bank_account_id=data["bank_account_id"],
            notes=data["notes"],
        )
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Billing"], request=None, responses={200: PaymentSerializer})
    @action(detail=True, methods=["post"], url_path="verify")
    def verify(self, request, pk=None):
        ctx = actor_context(request)
        payment = PaymentService.verify_payment(ctx=ctx, payment_id=UUID(str(pk)))
        return Response(PaymentSerializer(payment).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Billing"], request=PaymentRejectSerializer, responses={200: PaymentSerializer})
    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request, pk=None):
        ctx = actor_context(request)

        ser = PaymentRejectSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        payment = PaymentService.reject_payment(ctx=ctx, payment_id=UUID(str(pk)), reason=ser.validated_data["reason"])
        return Response(PaymentSerializer(payment).data, status=status.HTTP_200_OK)
