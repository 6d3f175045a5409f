# care_core/billing/gates.py
from __future__ import annotations

from care_core.approvals.models import ApprovalStatus, ResourceType
from care_core.approvals.registry import GateSignal, register_gate
from care_core.billing.services import PaymentService
from care_core.common.context import ActorContext


def _ctx(signal: GateSignal) -> ActorContext:
    return ActorContext(organization_id=signal.organization_id, user_id=signal.actor_user_id)


def transfer_approved(signal: GateSignal) -> None:
    PaymentService.apply_verification(ctx=_ctx(signal), payment_id=signal.resource_id)


def transfer_rejected(signal: GateSignal) -> None:
    if signal.outcome == ApprovalStatus.CANCELLED:
        reason = "Verification request cancelled."
    elif signal.actor_user_id is None:
        reason = "Verification timed out."
    else:
        reason = "Rejected in approval."
    PaymentService.apply_rejection(ctx=_ctx(signal), payment_id=signal.resource_id, reason=reason)


def register() -> None:
    register_gate(ResourceType.PAYMENT_VERIFICATION, on_approved=transfer_approved, on_rejected=transfer_rejected)
