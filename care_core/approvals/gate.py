# care_core/approvals/gate.py
from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from care_core.approvals.models import Approval, ApprovalStatus, ApprovalWorkflow
from care_core.approvals.services import ApprovalService
from care_core.common.context import ActorContext
from care_core.common.exceptions import ValidationError


class ApprovalGate:
    """
    Entry point for domain code that must wait on an approval.

    The caller leaves its record in a held state and calls request_gate();
    the registered on_approved / on_rejected callbacks (approvals.registry)
    move it on once the approval concludes.
    """

    @staticmethod
    def workflow_for(*, organization_id: UUID, resource_type: str) -> Optional[ApprovalWorkflow]:
        return (
            ApprovalWorkflow.objects.filter(
                organization_id=organization_id,
                resource_type=resource_type,
                is_active=True,
            )
            .order_by("-created_at")
            .first()
        )

    @staticmethod
    def has_workflow(*, organization_id: UUID, resource_type: str) -> bool:
        return ApprovalGate.workflow_for(organization_id=organization_id, resource_type=resource_type) is not None

    @staticmethod
    def request_gate(
        *,
        ctx: ActorContext,
        resource_type: str,
        resource_id: UUID,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Approval:
        workflow = ApprovalGate.workflow_for(organization_id=ctx.organization_id, resource_type=resource_type)
        if workflow is None:
            raise ValidationError(
                "No active approval workflow configured for this resource type.",
                resource_type=resource_type,
            )

        return ApprovalService.open(
            ctx=ctx,
            resource_type=resource_type,
            resource_id=resource_id,
            workflow_id=workflow.id,
            attributes=attributes,
        )

    @staticmethod
    def pending_approval(*, organization_id: UUID, resource_type: str, resource_id: UUID) -> Optional[Approval]:
        return Approval.objects.filter(
            organization_id=organization_id,
            resource_type=resource_type,
            resource_id=resource_id,
            status=ApprovalStatus.PENDING,
        ).first()
