# care_core/contracts/services.py
from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from django.utils import timezone

from care_core.audit.services import AuditService
from care_core.billing.selectors import uncarried_debt
from care_core.billing.services import BillingPeriodService, lock_contract, lock_open_period
from care_core.common.codes import next_code
from care_core.common.context import ActorContext
from care_core.common.db import retrying_atomic
from care_core.common.events import publish_on_commit
from care_core.common.exceptions import (
    ConflictError,
    InvalidStateError,
    PaymentIncompleteError,
    ValidationError,
)
from care_core.contracts.models import Contract, ContractStatus

logger = logging.getLogger(__name__)

CONTRACT_COMPLETED = "contract.completed"


class ContractService:
    @staticmethod
    @retrying_atomic
    def register(
        *,
        ctx: ActorContext,
        patient_id: UUID,
        room_id: UUID,
        monthly_rate: int,
        start_date: date,
        payment_due_day: int = 1,
        nursing_rate: int = 0,
        end_date: date | None = None,
        notes: str = "",
    ) -> Contract:
        if monthly_rate is None or int(monthly_rate) <= 0:
            raise ValidationError("Monthly rate must be > 0.", monthly_rate=monthly_rate)
        if nursing_rate is None or int(nursing_rate) < 0:
            raise ValidationError("Nursing rate must be >= 0.", nursing_rate=nursing_rate)
        if not 1 <= int(payment_due_day) <= 28:
            raise ValidationError("Payment due day must be between 1 and 28.", payment_due_day=payment_due_day)
        if end_date is not None and end_date < start_date:
            raise ValidationError("End date cannot be before start date.")

        if Contract.objects.filter(
            organization_id=ctx.organization_id,
            patient_id=patient_id,
            status=ContractStatus.ACTIVE,
        ).exists():
            raise ConflictError("Patient already has an active contract.", patient_id=patient_id)

        contract = Contract.objects.create(
            organization_id=ctx.organization_id,
            code=next_code(Contract, prefix="CTR"),
            patient_id=patient_id,
            room_id=room_id,
            monthly_rate=int(monthly_rate),
            nursing_rate=int(nursing_rate),
            payment_due_day=int(payment_due_day),
            start_date=start_date,
            end_date=end_date,
            status=ContractStatus.ACTIVE,
            registered_by_user_id=ctx.user_id,
            notes=notes or "",
        )

        AuditService.log(
            ctx=ctx,
            event_code="CONTRACT_REGISTERED",
            entity_type="Contract",
            entity_id=contract.id,
            metadata={"patient_id": str(patient_id), "room_id": str(room_id), "monthly_rate": contract.monthly_rate},
        )
        return contract

    @staticmethod
    @retrying_atomic
    def terminate(*, ctx: ActorContext, contract_id: UUID, reason: str) -> Contract:
        contract = lock_contract(ctx.organization_id, contract_id)
        if contract.status != ContractStatus.ACTIVE:
            raise InvalidStateError("Only active contracts can be terminated.", entity_id=contract.id, state=contract.status)
        if not (reason or "").strip():
            raise ValidationError("A termination reason is required.")
        if lock_open_period(ctx.organization_id, contract.id) is not None:
            raise InvalidStateError("Settle the open billing period first.", entity_id=contract.id)

        contract.status = ContractStatus.TERMINATED
        contract.terminated_at = timezone.now()
        contract.terminated_by_user_id = ctx.user_id
        contract.termination_reason = reason.strip()
        contract.end_date = contract.end_date or timezone.localdate()
        contract.save(
            update_fields=[
                "status",
                "terminated_at",
                "terminated_by_user_id",
                "termination_reason",
                "end_date",
                "updated_at",
            ]
        )

        AuditService.log(
            ctx=ctx,
            event_code="CONTRACT_TERMINATED",
            entity_type="Contract",
            entity_id=contract.id,
            metadata={"reason": contract.termination_reason},
        )
        return contract

    @staticmethod
    @retrying_atomic
    def complete(*, ctx: ActorContext, contract_id: UUID, checkout_date: date | None = None) -> Contract:
        """
        Check the patient out. Blocked with PaymentIncompleteError while the open
        period or any settled period still carries unpaid debt; otherwise the open
        period is settled and the room is released.
        """
        contract = lock_contract(ctx.organization_id, contract_id)
        if contract.status != ContractStatus.ACTIVE:
            raise InvalidStateError("Contract is not active.", entity_id=contract.id, state=contract.status)

        checkout_date = checkout_date or timezone.localdate()
        if checkout_date < contract.start_date:
            raise ValidationError("Checkout date cannot be before the contract start date.")

        period = lock_open_period(ctx.organization_id, contract.id)
        outstanding = uncarried_debt(organization_id=ctx.organization_id, contract_id=contract.id)
        if period is not None:
            BillingPeriodService._recalc_totals(period)
            outstanding += period.outstanding

        if outstanding > 0:
            raise PaymentIncompleteError(
                "Outstanding balance must be paid before checkout.",
                entity_id=contract.id,
                outstanding=outstanding,
            )

        if period is not None:
            BillingPeriodService.settle_period(ctx=ctx, period_id=period.id)

        contract.status = ContractStatus.COMPLETED
        contract.completed_at = timezone.now()
        contract.end_date = checkout_date
        contract.save(update_fields=["status", "completed_at", "end_date", "updated_at"])

        AuditService.log(
            ctx=ctx,
            event_code="CONTRACT_COMPLETED",
            entity_type="Contract",
            entity_id=contract.id,
            metadata={"checkout_date": checkout_date.isoformat()},
        )
        publish_on_commit(
            CONTRACT_COMPLETED,
            {
                "organization_id": str(contract.organization_id),
                "contract_id": str(contract.id),
                "patient_id": str(contract.patient_id),
                "room_id": str(contract.room_id),
            },
        )
        logger.info("Contract %s completed", contract.code)
        return contract
