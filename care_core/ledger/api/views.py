from __future__ import annotations

from uuid import UUID

from django.shortcuts import get_object_or_404
from django.utils import timezone
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from care_core.common.api.pagination import paginate
from care_core.common.api.params import date_or_none, int_or_default
from care_core.common.scope import actor_context
from care_core.ledger.api.serializers import (
    OperationalExpenseCreateSerializer,
    OperationalExpenseSerializer,
    TransactionRequestCreateSerializer,
    TransactionRequestSerializer,
    TransactionSerializer,
)
from care_core.ledger.models import OperationalExpense, Transaction, TransactionRequest
from care_core.ledger.selectors import (
    financial_summary,
    operational_expenses_filtered,
    transaction_requests_filtered,
    transactions_filtered,
)
from care_core.ledger.services import OperationalExpenseService, TransactionRequestService


class TransactionViewSet(viewsets.GenericViewSet):
    """
    Organization ledger (read-only; rows are produced by settlements and approvals).
    """
    serializer_class = TransactionSerializer
    queryset = Transaction.objects.none()

    @extend_schema(
        tags=["Ledger"],
        responses={200: TransactionSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="type", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="realized", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = actor_context(request)

        realized_q = request.query_params.get("realized")
        is_realized = None
        if realized_q is not None:
            is_realized = realized_q.lower() in ("1", "true", "yes")

        qs = transactions_filtered(
            organization_id=ctx.organization_id,
            transaction_type=request.query_params.get("type"),
            is_realized=is_realized,
            date_from=date_or_none(request.query_params.get("from"), "from"),
            date_to=date_or_none(request.query_params.get("to"), "to"),
        )
        return paginate(request, qs, TransactionSerializer)

    @extend_schema(tags=["Ledger"], responses={200: TransactionSerializer})
    def retrieve(self, request, pk=None):
        ctx = actor_context(request)
        trx = get_object_or_404(transactions_filtered(organization_id=ctx.organization_id), id=UUID(str(pk)))
        return Response(TransactionSerializer(trx).data, status=status.HTTP_200_OK)


class OperationalExpenseViewSet(viewsets.GenericViewSet):
    serializer_class = OperationalExpenseSerializer
    queryset = OperationalExpense.objects.none()

    @extend_schema(
        tags=["Ledger"],
        responses={200: OperationalExpenseSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = actor_context(request)
        qs = operational_expenses_filtered(
            organization_id=ctx.organization_id,
            approval_status=request.query_params.get("status"),
        )
        return paginate(request, qs, OperationalExpenseSerializer)

    @extend_schema(tags=["Ledger"], responses={200: OperationalExpenseSerializer})
    def retrieve(self, request, pk=None):
        ctx = actor_context(request)
        expense = get_object_or_404(operational_expenses_filtered(organization_id=ctx.organization_id), id=UUID(str(pk)))
        return Response(OperationalExpenseSerializer(expense).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Ledger"], request=OperationalExpenseCreateSerializer, responses={201: OperationalExpenseSerializer})
    def create(self, request):
        ctx = actor_context(request)

        ser = OperationalExpenseCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        expense = OperationalExpenseService.create(ctx=ctx, **ser.validated_data)
        return Response(OperationalExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)


class TransactionRequestViewSet(viewsets.GenericViewSet):
    serializer_class = TransactionRequestSerializer
    queryset = TransactionRequest.objects.none()

    @extend_schema(
        tags=["Ledger"],
        responses={200: TransactionRequestSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = actor_context(request)
        qs = transaction_requests_filtered(organization_id=ctx.organization_id, status=request.query_params.get("status"))
        return paginate(request, qs, TransactionRequestSerializer)

    @extend_schema(tags=["Ledger"], responses={200: TransactionRequestSerializer})
    def retrieve(self, request, pk=None):
        ctx = actor_context(request)
        req = get_object_or_404(transaction_requests_filtered(organization_id=ctx.organization_id), id=UUID(str(pk)))
        return Response(TransactionRequestSerializer(req).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Ledger"], request=TransactionRequestCreateSerializer, responses={201: TransactionRequestSerializer})
    def create(self, request):
        ctx = actor_context(request)

        ser = TransactionRequestCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        req = TransactionRequestService.submit(ctx=ctx, **ser.validated_data)
        return Response(TransactionRequestSerializer(req).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Ledger"], request=None, responses={200: TransactionRequestSerializer})
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        ctx = actor_context(request)
        req = TransactionRequestService.cancel(ctx=ctx, request_id=UUID(str(pk)))
        return Response(TransactionRequestSerializer(req).data, status=status.HTTP_200_OK)


class FinancialSummaryView(APIView):
    """
    /ledger/summary/?year=YYYY&month=M (defaults to the current month)
    """

    @extend_schema(
        tags=["Ledger"],
        responses={200: OpenApiTypes.OBJECT},
        parameters=[
            OpenApiParameter(name="year", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="month", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def get(self, request):
        ctx = actor_context(request)
        today = timezone.localdate()

        year = int_or_default(request.query_params.get("year"), "year", today.year)
        month = int_or_default(request.query_params.get("month"), "month", today.month)
        if not 1 <= month <= 12:
            raise DRFValidationError({"month": "Month must be between 1 and 12."})

        return Response(
            financial_summary(organization_id=ctx.organization_id, year=year, month=month),
            status=status.HTTP_200_OK,
        )
