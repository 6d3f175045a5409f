from __future__ import annotations

from uuid import UUID

from django.shortcuts import get_object_or_404
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from care_core.billing.selectors import contract_statement
from care_core.common.api.pagination import paginate
from care_core.common.api.params import uuid_or_none
from care_core.common.scope import actor_context
from care_core.contracts.api.serializers import (
    ContractCompleteSerializer,
    ContractCreateSerializer,
    ContractSerializer,
    ContractTerminateSerializer,
)
from care_core.contracts.models import Contract
from care_core.contracts.selectors import contracts_filtered
from care_core.contracts.services import ContractService


class ContractViewSet(viewsets.GenericViewSet):
    """
    Patient stay contracts:
    - list/retrieve/register
    - terminate
    - complete (checkout)
    - statement (outstanding across periods)
    """
    serializer_class = ContractSerializer
    queryset = Contract.objects.none()

    @extend_schema(
        tags=["Contracts"],
        responses={200: ContractSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="room", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = actor_context(request)

        qs = contracts_filtered(
            organization_id=ctx.organization_id,
            status=request.query_params.get("status"),
            patient_id=uuid_or_none(request.query_params.get("patient"), "patient"),
            room_id=uuid_or_none(request.query_params.get("room"), "room"),
        )
        return paginate(request, qs, ContractSerializer)

    @extend_schema(tags=["Contracts"], responses={200: ContractSerializer})
    def retrieve(self, request, pk=None):
        ctx = actor_context(request)
        contract = get_object_or_404(contracts_filtered(organization_id=ctx.organization_id), id=UUID(str(pk)))
        return Response(ContractSerializer(contract).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Contracts"], request=ContractCreateSerializer, responses={201: ContractSerializer})
    def create(self, request):
        ctx = actor_context(request)

        ser = ContractCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        contract = ContractService.register(ctx=ctx, **ser.validated_data)
        return Response(ContractSerializer(contract).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Contracts"], request=ContractTerminateSerializer, responses={200: ContractSerializer})
    @action(detail=True, methods=["post"], url_path="terminate")
    def terminate(self, request, pk=None):
        ctx = actor_context(request)

        ser = ContractTerminateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        contract = ContractService.terminate(ctx=ctx, contract_id=UUID(str(pk)), reason=ser.validated_data["reason"])
        return Response(ContractSerializer(contract).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Contracts"], request=ContractCompleteSerializer, responses={200: ContractSerializer})
    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request, pk=None):
        ctx = actor_context(request)

        ser = ContractCompleteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        contract = ContractService.complete(
            ctx=ctx,
            contract_id=UUID(str(pk)),
            checkout_date=ser.validated_data.get("checkout_date"),
        )
        return Response(ContractSerializer(contract).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Contracts"], responses={200: OpenApiTypes.OBJECT})
    @action(detail=True, methods=["get"], url_path="statement")
    def statement(self, request, pk=None):
        ctx = actor_context(request)
        contract = get_object_or_404(contracts_filtered(organization_id=ctx.organization_id), id=UUID(str(pk)))
        data = contract_statement(organization_id=ctx.organization_id, contract_id=contract.id)
        return Response(data, status=status.HTTP_200_OK)
