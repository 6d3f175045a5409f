# care_core/approvals/registry.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from uuid import UUID

from care_core.approvals.models import ApprovalStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateSignal:
    """
    What a gated resource learns when its approval concludes.
    actor_user_id is the final decider (None for timeouts).
    """
    organization_id: UUID
    resource_type: str
    resource_id: UUID
    approval_id: UUID
    outcome: str
    actor_user_id: int | None


GateHandler = Callable[[GateSignal], None]


@dataclass(frozen=True)
class GateHandlers:
    on_approved: GateHandler
    on_rejected: GateHandler


_gates: Dict[str, GateHandlers] = {}


def register_gate(resource_type: str, *, on_approved: GateHandler, on_rejected: GateHandler) -> None:
    """
    Bind a resource type to its finalize/void callbacks. Re-registering replaces
    the previous pair (AppConfig.ready may run more than once in tests).
    """
    _gates[resource_type] = GateHandlers(on_approved=on_approved, on_rejected=on_rejected)


def unregister_gate(resource_type: str) -> None:
    _gates.pop(resource_type, None)


def handlers_for(resource_type: str) -> Optional[GateHandlers]:
    return _gates.get(resource_type)


def dispatch(signal: GateSignal) -> None:
    """
    Called by the engine inside the approval's transaction.
    CANCELLED is routed to on_rejected so the resource is voided.
    """
    handlers = handlers_for(signal.resource_type)
    if handlers is None:
        logger.warning("No gate registered for %s; approval %s not propagated", signal.resource_type, signal.approval_id)
        return

    if signal.outcome == ApprovalStatus.APPROVED:
        handlers.on_approved(signal)
    elif signal.outcome in (ApprovalStatus.REJECTED, ApprovalStatus.CANCELLED):
        handlers.on_rejected(signal)
