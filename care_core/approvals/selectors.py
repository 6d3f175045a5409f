# care_core/approvals/selectors.py
from __future__ import annotations

from typing import Iterable
from uuid import UUID

from django.db.models import F, QuerySet

from care_core.approvals.models import Approval, ApprovalAction, ApprovalStatus, ApprovalWorkflow


def workflows_filtered(*, organization_id: UUID, resource_type: str | None = None) -> QuerySet[ApprovalWorkflow]:
    qs = ApprovalWorkflow.objects.filter(organization_id=organization_id).prefetch_related("steps")
    if resource_type:
        qs = qs.filter(resource_type=resource_type)
    return qs.order_by("name")


def approvals_filtered(
    *,
    organization_id: UUID,
    status: str | None = None,
    resource_type: str | None = None,
    resource_id: UUID | None = None,
) -> QuerySet[Approval]:
    qs = Approval.objects.filter(organization_id=organization_id).select_related("workflow")

    if status:
        qs = qs.filter(status=status)
    if resource_type:
        qs = qs.filter(resource_type=resource_type)
    if resource_id:
        qs = qs.filter(resource_id=resource_id)

    return qs.order_by("-requested_at")


def pending_for_roles(*, organization_id: UUID, roles: Iterable[str]) -> QuerySet[Approval]:
    """
    Approvals currently waiting on one of the given roles (an approver's inbox).
    """
    return (
        Approval.objects.filter(
            organization_id=organization_id,
            status=ApprovalStatus.PENDING,
            workflow__steps__step_order=F("current_step_order"),
            workflow__steps__role_name__in=list(roles),
        )
        .select_related("workflow")
        .distinct()
        .order_by("requested_at")
    )


def approval_history(*, approval: Approval) -> QuerySet[ApprovalAction]:
    return ApprovalAction.objects.filter(approval=approval).order_by("actioned_at", "step_order")
