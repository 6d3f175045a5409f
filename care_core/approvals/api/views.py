from __future__ import annotations

from uuid import UUID

from django.shortcuts import get_object_or_404
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from care_core.approvals.api.serializers import (
    ApprovalDecisionSerializer,
    ApprovalDetailSerializer,
    ApprovalSerializer,
    ApprovalWorkflowCreateSerializer,
    ApprovalWorkflowSerializer,
)
from care_core.approvals.models import ActionType, Approval, ApprovalWorkflow
from care_core.approvals.selectors import approvals_filtered, pending_for_roles, workflows_filtered
from care_core.approvals.services import ApprovalService, WorkflowService
from care_core.common.api.pagination import paginate
from care_core.common.api.params import uuid_or_none
from care_core.common.permissions import ROLE_ADMIN, require_any_role
from care_core.common.scope import actor_context


class ApprovalWorkflowViewSet(viewsets.GenericViewSet):
    serializer_class = ApprovalWorkflowSerializer
    queryset = ApprovalWorkflow.objects.none()

    @extend_schema(
        tags=["Approvals"],
        responses={200: ApprovalWorkflowSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="resource_type", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = actor_context(request)
        qs = workflows_filtered(
            organization_id=ctx.organization_id,
            resource_type=request.query_params.get("resource_type"),
        )
        return paginate(request, qs, ApprovalWorkflowSerializer)

    @extend_schema(tags=["Approvals"], responses={200: ApprovalWorkflowSerializer})
    def retrieve(self, request, pk=None):
        ctx = actor_context(request)
        wf = get_object_or_404(workflows_filtered(organization_id=ctx.organization_id), id=UUID(str(pk)))
        return Response(ApprovalWorkflowSerializer(wf).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Approvals"], request=ApprovalWorkflowCreateSerializer, responses={201: ApprovalWorkflowSerializer})
    def create(self, request):
        ctx = actor_context(request)
        require_any_role(ctx, [ROLE_ADMIN], action="configure approval workflows")

        ser = ApprovalWorkflowCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        wf = WorkflowService.create_workflow(ctx=ctx, **ser.validated_data)
        return Response(ApprovalWorkflowSerializer(wf).data, status=status.HTTP_201_CREATED)


class ApprovalViewSet(viewsets.GenericViewSet):
    """
    Approval instances:
    - list/retrieve (with action history)
    - inbox: pending approvals waiting on one of my roles
    - approve / reject / request_changes / cancel
    """
    serializer_class = ApprovalSerializer
    queryset = Approval.objects.none()

    @extend_schema(
        tags=["Approvals"],
        responses={200: ApprovalSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="resource_type", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="resource_id", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = actor_context(request)
        qs = approvals_filtered(
            organization_id=ctx.organization_id,
            status=request.query_params.get("status"),
            resource_type=request.query_params.get("resource_type"),
            resource_id=uuid_or_none(request.query_params.get("resource_id"), "resource_id"),
        )
        return paginate(request, qs, ApprovalSerializer)

    @extend_schema(tags=["Approvals"], responses={200: ApprovalDetailSerializer})
    def retrieve(self, request, pk=None):
        ctx = actor_context(request)
        approval = get_object_or_404(approvals_filtered(organization_id=ctx.organization_id), id=UUID(str(pk)))
        return Response(ApprovalDetailSerializer(approval).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Approvals"], responses={200: ApprovalSerializer(many=True)})
    @action(detail=False, methods=["get"], url_path="inbox")
    def inbox(self, request):
        ctx = actor_context(request)
        qs = pending_for_roles(organization_id=ctx.organization_id, roles=ctx.roles)
        return paginate(request, qs, ApprovalSerializer)

    def _decide(self, request, pk, action_type: str) -> Response:
        ctx = actor_context(request)

        ser = ApprovalDecisionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        approval = ApprovalService.act(
            ctx=ctx,
            approval_id=UUID(str(pk)),
            action=action_type,
            comments=ser.validated_data["comments"],
            expected_step_order=ser.validated_data["expected_step_order"],
        )
        return Response(ApprovalSerializer(approval).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Approvals"], request=ApprovalDecisionSerializer, responses={200: ApprovalSerializer})
    @action(detail=True, methods=["post"], url_path="approve")
    def approve(self, request, pk=None):
        return self._decide(request, pk, ActionType.APPROVED)

    @extend_schema(tags=["Approvals"], request=ApprovalDecisionSerializer, responses={200: ApprovalSerializer})
    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request, pk=None):
        return self._decide(request, pk, ActionType.REJECTED)

    @extend_schema(tags=["Approvals"], request=ApprovalDecisionSerializer, responses={200: ApprovalSerializer})
    @action(detail=True, methods=["post"], url_path="request_changes")
    def request_changes(self, request, pk=None):
        return self._decide(request, pk, ActionType.REQUESTED_CHANGES)

    @extend_schema(tags=["Approvals"], request=None, responses={200: ApprovalSerializer})
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        ctx = actor_context(request)
        approval = ApprovalService.cancel(ctx=ctx, approval_id=UUID(str(pk)))
        return Response(ApprovalSerializer(approval).data, status=status.HTTP_200_OK)
