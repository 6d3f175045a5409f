# care_core/ledger/gates.py
from __future__ import annotations

from care_core.approvals.models import ApprovalStatus, ResourceType
from care_core.approvals.registry import GateSignal, register_gate
from care_core.common.context import ActorContext
from care_core.ledger.models import RequestStatus
from care_core.ledger.services import OperationalExpenseService, TransactionRequestService


def _ctx(signal: GateSignal) -> ActorContext:
    return ActorContext(organization_id=signal.organization_id, user_id=signal.actor_user_id)


def expense_approved(signal: GateSignal) -> None:
    OperationalExpenseService.finalize(ctx=_ctx(signal), expense_id=signal.resource_id)


def expense_rejected(signal: GateSignal) -> None:
    OperationalExpenseService.void(ctx=_ctx(signal), expense_id=signal.resource_id)


def request_approved(signal: GateSignal) -> None:
    TransactionRequestService.fulfil(ctx=_ctx(signal), request_id=signal.resource_id)


def request_rejected(signal: GateSignal) -> None:
    status = RequestStatus.CANCELLED if signal.outcome == ApprovalStatus.CANCELLED else RequestStatus.REJECTED
    TransactionRequestService.close(ctx=_ctx(signal), request_id=signal.resource_id, status=status)


def register() -> None:
    register_gate(ResourceType.OPERATIONAL_EXPENSE, on_approved=expense_approved, on_rejected=expense_rejected)
    register_gate(ResourceType.TRANSACTION_REQUEST, on_approved=request_approved, on_rejected=request_rejected)
