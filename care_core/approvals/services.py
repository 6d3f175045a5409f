# care_core/approvals/services.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from care_core.approvals.conditions import normalize_conditions, parse_conditions, step_applies
from care_core.approvals.models import (
    ActionType,
    Approval,
    ApprovalAction,
    ApprovalStatus,
    ApprovalStep,
    ApprovalWorkflow,
    ResourceType,
)
from care_core.approvals.registry import GateSignal, dispatch
from care_core.audit.services import AuditService
from care_core.common.context import ActorContext
from care_core.common.db import compare_and_set, retrying_atomic
from care_core.common.events import publish_on_commit
from care_core.common.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

APPROVAL_STATE_CHANGED = "approval.state_changed"

TIMEOUT_COMMENT = "Timed out waiting for {role} at step {order}."


class WorkflowService:
    @staticmethod
    @transaction.atomic
    def create_workflow(
        *,
        ctx: ActorContext,
        name: str,
        resource_type: str,
        steps: Iterable[Dict[str, Any]],
        description: str = "",
        is_active: bool = True,
    ) -> ApprovalWorkflow:
        """
        steps: [{"step_order": 1, "role_name": "BENDAHARA", "conditions": [...], "timeout_hours": 24}, ...]
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Workflow name is required.")
        if resource_type not in ResourceType.values:
            raise ValidationError(f"Unknown resource type: {resource_type}.", resource_type=resource_type)

        steps = list(steps or [])
        if not steps:
            raise ValidationError("A workflow needs at least one step.")

        seen_orders: set[int] = set()
        cleaned: List[Dict[str, Any]] = []
        for raw in steps:
            try:
                order = int(raw.get("step_order"))
            except (TypeError, ValueError):
                raise ValidationError("step_order must be an integer.")
            if order < 1:
                raise ValidationError("step_order must be >= 1.", step_order=order)
            if order in seen_orders:
                raise ValidationError("Duplicate step_order in workflow.", step_order=order)
            seen_orders.add(order)

            role_name = (raw.get("role_name") or "").strip()
            if not role_name:
                raise ValidationError("role_name is required for every step.", step_order=order)

            timeout_hours = raw.get("timeout_hours")
            if timeout_hours is not None and int(timeout_hours) <= 0:
                raise ValidationError("timeout_hours must be > 0.", step_order=order)

            cleaned.append(
                {
                    "step_order": order,
                    "role_name": role_name,
                    "conditions": normalize_conditions(raw.get("conditions")),
                    "timeout_hours": int(timeout_hours) if timeout_hours is not None else None,
                }
            )

        if ApprovalWorkflow.objects.filter(organization_id=ctx.organization_id, name=name).exists():
            raise ConflictError("Workflow name already in use.", name=name)

        workflow = ApprovalWorkflow.objects.create(
            organization_id=ctx.organization_id,
            name=name,
            resource_type=resource_type,
            description=description or "",
            is_active=is_active,
        )
        ApprovalStep.objects.bulk_create(
            [ApprovalStep(workflow=workflow, **step) for step in sorted(cleaned, key=lambda s: s["step_order"])]
        )

        AuditService.log(
            ctx=ctx,
            event_code="APPROVAL_WORKFLOW_CREATED",
            entity_type="ApprovalWorkflow",
            entity_id=workflow.id,
            metadata={"name": name, "resource_type": resource_type, "steps": len(cleaned)},
        )
        return workflow

    @staticmethod
    @transaction.atomic
    def set_active(*, ctx: ActorContext, workflow_id: UUID, is_active: bool) -> ApprovalWorkflow:
        workflow = _get_workflow(ctx.organization_id, workflow_id)
        workflow.is_active = is_active
        workflow.save(update_fields=["is_active", "updated_at"])
        return workflow


def _get_workflow(organization_id: UUID, workflow_id: UUID) -> ApprovalWorkflow:
    try:
        return ApprovalWorkflow.objects.get(id=workflow_id, organization_id=organization_id)
    except ApprovalWorkflow.DoesNotExist:
        raise NotFoundError("Approval workflow not found.", entity_id=workflow_id)


def _lock_approval(organization_id: UUID, approval_id: UUID) -> Approval:
    try:
        return (
            Approval.objects.select_for_update()
            .select_related("workflow")
            .get(id=approval_id, organization_id=organization_id)
        )
    except Approval.DoesNotExist:
        raise NotFoundError("Approval not found.", entity_id=approval_id)


def _ordered_steps(workflow: ApprovalWorkflow) -> List[ApprovalStep]:
    return list(workflow.steps.order_by("step_order"))


def _applicable_steps(steps: List[ApprovalStep], attributes: Dict[str, Any]) -> List[ApprovalStep]:
    return [s for s in steps if step_applies(parse_conditions(s.conditions), attributes)]


def _next_step(applicable: List[ApprovalStep], *, after: int) -> Optional[ApprovalStep]:
    for step in applicable:
        if step.step_order > after:
            return step
    return None


def _timeout_for(step: ApprovalStep, now: datetime) -> Optional[datetime]:
    if not step.timeout_hours:
        return None
    return now + timedelta(hours=step.timeout_hours)


def _publish_state(approval: Approval, *, next_role: str | None = None) -> None:
    publish_on_commit(
        APPROVAL_STATE_CHANGED,
        {
            "approval_id": str(approval.id),
            "organization_id": str(approval.organization_id),
            "resource_type": approval.resource_type,
            "resource_id": str(approval.resource_id),
            "status": approval.status,
            "current_step_order": approval.current_step_order,
            "next_role": next_role,
        },
    )


def _conclude(approval: Approval, *, outcome: str, actor_user_id: int | None, now: datetime) -> None:
    approval.status = outcome
    approval.completed_at = now
    approval.timeout_at = None
    compare_and_set(approval, fields=["status", "completed_at", "timeout_at", "current_step_order"])

    # Gated resource is finalized/voided in the same transaction
    dispatch(
        GateSignal(
            organization_id=approval.organization_id,
            resource_type=approval.resource_type,
            resource_id=approval.resource_id,
            approval_id=approval.id,
            outcome=outcome,
            actor_user_id=actor_user_id,
        )
    )
    _publish_state(approval)


class ApprovalService:
    @staticmethod
    @retrying_atomic
    def open(
        *,
        ctx: ActorContext,
        resource_type: str,
        resource_id: UUID,
        workflow_id: UUID,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Approval:
        attributes = dict(attributes or {})
        workflow = _get_workflow(ctx.organization_id, workflow_id)

        if workflow.resource_type != resource_type:
            raise ValidationError(
                "Workflow does not apply to this resource type.",
                workflow_id=workflow.id,
                resource_type=resource_type,
            )
        if not workflow.is_active:
            raise InvalidStateError("Workflow is inactive.", entity_id=workflow.id)

        if Approval.objects.filter(
            organization_id=ctx.organization_id,
            resource_type=resource_type,
            resource_id=resource_id,
            status=ApprovalStatus.PENDING,
        ).exists():
            raise ConflictError("An approval is already pending for this resource.", resource_id=resource_id)

        # Conditions for every step are evaluated now so a bad attribute bag fails early
        applicable = _applicable_steps(_ordered_steps(workflow), attributes)
        first = _next_step(applicable, after=0)
        now = timezone.now()

        try:
            with transaction.atomic():
                approval = Approval.objects.create(
                    organization_id=ctx.organization_id,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    workflow=workflow,
                    current_step_order=first.step_order if first else 0,
                    status=ApprovalStatus.PENDING,
                    requested_by_user_id=ctx.user_id,
                    requested_at=now,
                    timeout_at=_timeout_for(first, now) if first else None,
                    attributes=attributes,
                )
        except IntegrityError:
            raise ConflictError("An approval is already pending for this resource.", resource_id=resource_id)

        AuditService.log(
            ctx=ctx,
            event_code="APPROVAL_OPENED",
            entity_type="Approval",
            entity_id=approval.id,
            metadata={
                "resource_type": resource_type,
                "resource_id": str(resource_id),
                "workflow_id": str(workflow.id),
                "applicable_steps": [s.step_order for s in applicable],
            },
        )

        if first is None:
            logger.info("Approval %s has no applicable steps; approved on open", approval.id)
            _conclude(approval, outcome=ApprovalStatus.APPROVED, actor_user_id=ctx.user_id, now=now)
        else:
            logger.info("Approval %s opened at step %s (%s)", approval.id, first.step_order, first.role_name)
            _publish_state(approval, next_role=first.role_name)

        return approval

    @staticmethod
    @retrying_atomic
    def act(
        *,
        ctx: ActorContext,
        approval_id: UUID,
        action: str,
        comments: str = "",
        expected_step_order: int | None = None,
    ) -> Approval:
        if action not in ActionType.values:
            raise ValidationError(f"Unknown action: {action}.", action=action)

        approval = _lock_approval(ctx.organization_id, approval_id)

        if approval.is_terminal:
            raise InvalidStateError("Approval is already concluded.", entity_id=approval.id, state=approval.status)
        if expected_step_order is not None and expected_step_order != approval.current_step_order:
            raise InvalidStateError(
                "Approval has moved to another step.",
                entity_id=approval.id,
                state=approval.current_step_order,
            )

        applicable = _applicable_steps(_ordered_steps(approval.workflow), approval.attributes or {})
        current = next((s for s in applicable if s.step_order == approval.current_step_order), None)
        if current is None:
            raise InvalidStateError("Current step no longer exists.", entity_id=approval.id)

        # Exact role match, no hierarchy
        if not ctx.has_role(current.role_name):
            raise ForbiddenError(
                f"Role {current.role_name} is required to act on this step.",
                entity_id=approval.id,
                step_order=current.step_order,
            )

        comments = (comments or "").strip()
        if action in (ActionType.REJECTED, ActionType.REQUESTED_CHANGES) and not comments:
            raise ValidationError("Comments are required.", action=action)

        now = timezone.now()
        ApprovalAction.objects.create(
            approval=approval,
            step_order=current.step_order,
            action=action,
            actor_user_id=ctx.user_id,
            comments=comments,
            actioned_at=now,
        )

        if action == ActionType.REJECTED:
            _conclude(approval, outcome=ApprovalStatus.REJECTED, actor_user_id=ctx.user_id, now=now)
        elif action == ActionType.APPROVED:
            nxt = _next_step(applicable, after=current.step_order)
            if nxt is None:
                _conclude(approval, outcome=ApprovalStatus.APPROVED, actor_user_id=ctx.user_id, now=now)
            else:
                approval.current_step_order = nxt.step_order
                approval.timeout_at = _timeout_for(nxt, now)
                compare_and_set(approval, fields=["current_step_order", "timeout_at"])
                _publish_state(approval, next_role=nxt.role_name)
        else:
            # REQUESTED_CHANGES keeps the step; the version bump serializes racing actors
            compare_and_set(approval, fields=[])
            _publish_state(approval, next_role=current.role_name)

        AuditService.log(
            ctx=ctx,
            event_code=f"APPROVAL_{action}",
            entity_type="Approval",
            entity_id=approval.id,
            metadata={"step_order": current.step_order, "status": approval.status},
        )
        logger.info("Approval %s: %s at step %s -> %s", approval.id, action, current.step_order, approval.status)
        return approval

    @staticmethod
    @retrying_atomic
    def cancel(*, ctx: ActorContext, approval_id: UUID) -> Approval:
        approval = _lock_approval(ctx.organization_id, approval_id)

        if approval.is_terminal:
            raise InvalidStateError("Approval is already concluded.", entity_id=approval.id, state=approval.status)

        is_requester = ctx.user_id is not None and ctx.user_id == approval.requested_by_user_id
        if not is_requester and not ctx.has_any_role(settings.APPROVAL_ADMIN_ROLES):
            raise ForbiddenError("Only the requester or an administrator can cancel.", entity_id=approval.id)

        if approval.actions.exists():
            raise InvalidStateError(
                "Approval already has decisions; reject it instead.",
                entity_id=approval.id,
                state=approval.status,
            )

        _conclude(approval, outcome=ApprovalStatus.CANCELLED, actor_user_id=ctx.user_id, now=timezone.now())

        AuditService.log(
            ctx=ctx,
            event_code="APPROVAL_CANCELLED",
            entity_type="Approval",
            entity_id=approval.id,
            metadata={"resource_type": approval.resource_type, "resource_id": str(approval.resource_id)},
        )
        return approval

    @staticmethod
    def expire_timed_out(*, now: datetime | None = None) -> List[UUID]:
        """
        Reject every PENDING approval past its timeout_at. Each approval is its own
        transaction; one that a human decided in the meantime is skipped.
        """
        now = now or timezone.now()
        candidates = list(
            Approval.objects.filter(status=ApprovalStatus.PENDING, timeout_at__lte=now)
            .order_by("timeout_at")
            .values_list("organization_id", "id")
        )

        expired: List[UUID] = []
        for organization_id, approval_id in candidates:
            try:
                if ApprovalService._expire_one(organization_id=organization_id, approval_id=approval_id, now=now):
                    expired.append(approval_id)
            except InvalidStateError as exc:
                logger.info("Skipping timeout of approval %s: %s", approval_id, exc)

        if expired:
            logger.info("Expired %s approval(s)", len(expired))
        return expired

    @staticmethod
    @retrying_atomic
    def _expire_one(*, organization_id: UUID, approval_id: UUID, now: datetime) -> bool:
        approval = _lock_approval(organization_id, approval_id)
        if approval.status != ApprovalStatus.PENDING or approval.timeout_at is None or approval.timeout_at > now:
            return False

        step = approval.workflow.steps.filter(step_order=approval.current_step_order).first()
        role = step.role_name if step else "approver"

        ApprovalAction.objects.create(
            approval=approval,
            step_order=approval.current_step_order,
            action=ActionType.REJECTED,
            actor_user_id=None,
            is_system=True,
            comments=TIMEOUT_COMMENT.format(role=role, order=approval.current_step_order),
            actioned_at=now,
        )
        _conclude(approval, outcome=ApprovalStatus.REJECTED, actor_user_id=None, now=now)

        AuditService.log(
            ctx=ActorContext.system(organization_id),
            event_code="APPROVAL_TIMED_OUT",
            entity_type="Approval",
            entity_id=approval.id,
            metadata={"step_order": approval.current_step_order},
        )
        return True
