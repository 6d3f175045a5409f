# care_core/audit/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.response import Response

from care_core.audit.api.serializers import AuditEventSerializer
from care_core.audit.models import AuditEvent
from care_core.audit.selectors import list_audit_events
from care_core.common.api.params import date_or_none, int_or_default, uuid_or_none
from care_core.common.scope import actor_context


class AuditEventViewSet(viewsets.GenericViewSet):
    """
    List audit events for the scoped organization.
    """
    serializer_class = AuditEventSerializer
    queryset = AuditEvent.objects.none()

    @extend_schema(
        tags=["Audit"],
        responses={200: AuditEventSerializer(many=True)},
        parameters=[
            OpenApiParameter(
                name="entity_type",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Filter by entity type (e.g. BillingPeriod, Payment, Approval).",
            ),
            OpenApiParameter(name="entity_id", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="event_code",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Filter by event code (e.g. BILLING_PERIOD_SETTLED).",
            ),
            OpenApiParameter(name="actor_user_id", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="contract",
                type=OpenApiTypes.UUID,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Events for a contract, its billing periods and its payments.",
            ),
            OpenApiParameter(name="from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="limit",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Max records to return (default 200, max 500).",
            ),
        ],
    )
    def list(self, request):
        ctx = actor_context(request)

        qs = list_audit_events(
            organization_id=ctx.organization_id,
            entity_type=request.query_params.get("entity_type") or None,
            entity_id=uuid_or_none(request.query_params.get("entity_id"), "entity_id"),
            event_code=request.query_params.get("event_code") or None,
            actor_user_id=int_or_default(request.query_params.get("actor_user_id"), "actor_user_id", None),
            contract_id=uuid_or_none(request.query_params.get("contract"), "contract"),
            occurred_from=date_or_none(request.query_params.get("from"), "from"),
            occurred_to=date_or_none(request.query_params.get("to"), "to"),
        )

        # audit trails grow without bound
        limit = max(1, min(int_or_default(request.query_params.get("limit"), "limit", 200), 500))
        return Response(AuditEventSerializer(qs[:limit], many=True).data, status=status.HTTP_200_OK)
