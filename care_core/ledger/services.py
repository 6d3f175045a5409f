# care_core/ledger/services.py
from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from care_core.approvals.gate import ApprovalGate
from care_core.approvals.models import ResourceType
from care_core.approvals.services import ApprovalService
from care_core.audit.services import AuditService
from care_core.common.codes import next_code
from care_core.common.context import ActorContext
from care_core.common.db import retrying_atomic
from care_core.common.exceptions import InvalidStateError, NotFoundError, ValidationError
from care_core.ledger.models import (
    AccountType,
    ApprovalState,
    ExpensePaymentMethod,
    OperationalExpense,
    ReferenceType,
    RequestStatus,
    Transaction,
    TransactionRequest,
    TransactionType,
)

logger = logging.getLogger(__name__)

REQUESTABLE_TYPES = (TransactionType.EXPENSE, TransactionType.REVENUE, TransactionType.CAPITAL_INJECTION)


def account_for_method(method: str) -> str:
    return AccountType.BANK if method == ExpensePaymentMethod.BANK_TRANSFER else AccountType.CASH


class TransactionService:
    @staticmethod
    @transaction.atomic
    def record(
        *,
        ctx: ActorContext,
        transaction_type: str,
        amount: int,
        description: str,
        category: str = "",
        account_type: str = AccountType.CASH,
        bank_account_id: UUID | None = None,
        reference_type: str = "",
        reference_id: UUID | None = None,
        transaction_date: date | None = None,
        is_realized: bool = True,
    ) -> Transaction:
        if transaction_type not in TransactionType.values:
            raise ValidationError(f"Unknown transaction type: {transaction_type}.")
        if amount is None or int(amount) <= 0:
            raise ValidationError("Transaction amount must be > 0.", amount=amount)

        on = transaction_date or timezone.localdate()
        trx = Transaction.objects.create(
            organization_id=ctx.organization_id,
            code=next_code(Transaction, prefix="TRX", on=on),
            transaction_type=transaction_type,
            category=category or "",
            amount=int(amount),
            account_type=account_type,
            bank_account_id=bank_account_id,
            reference_type=reference_type or "",
            reference_id=reference_id,
            transaction_date=on,
            description=description,
            is_realized=is_realized,
            realized_at=timezone.now() if is_realized else None,
            created_by_user_id=ctx.user_id,
        )
        logger.info("Recorded %s %s of %s (realized=%s)", trx.transaction_type, trx.code, trx.amount, is_realized)
        return trx

    @staticmethod
    def _unrealized_for(*, organization_id: UUID, reference_type: str, reference_id: UUID):
        return (
            Transaction.objects.select_for_update()
            .filter(
                organization_id=organization_id,
                reference_type=reference_type,
                reference_id=reference_id,
                is_realized=False,
            )
            .order_by("created_at")
        )

    @staticmethod
    @transaction.atomic
    def record_accrual(
        *,
        ctx: ActorContext,
        reference_type: str,
        reference_id: UUID,
        amount: int,
        description: str,
        category: str = "",
    ) -> Transaction:
        """
        Unrealized REVENUE for a reference. An existing accrual is re-measured
        instead of duplicated.
        """
        existing = TransactionService._unrealized_for(
            organization_id=ctx.organization_id,
            reference_type=reference_type,
            reference_id=reference_id,
        ).first()
        if existing:
            existing.amount = int(amount)
            existing.save(update_fields=["amount", "updated_at"])
            return existing

        return TransactionService.record(
            ctx=ctx,
            transaction_type=TransactionType.REVENUE,
            amount=amount,
            description=description,
            category=category,
            reference_type=reference_type,
            reference_id=reference_id,
            is_realized=False,
        )

    @staticmethod
    @transaction.atomic
    def discard_accrual(*, ctx: ActorContext, reference_type: str, reference_id: UUID) -> int:
        deleted, _ = TransactionService._unrealized_for(
            organization_id=ctx.organization_id,
            reference_type=reference_type,
            reference_id=reference_id,
        ).delete()
        return deleted

    @staticmethod
    @transaction.atomic
    def realize(*, ctx: ActorContext, transaction_id: UUID) -> Transaction:
        try:
            trx = Transaction.objects.select_for_update().get(id=transaction_id, organization_id=ctx.organization_id)
        except Transaction.DoesNotExist:
            raise NotFoundError("Transaction not found.", entity_id=transaction_id)

        if trx.is_realized:
            raise InvalidStateError("Transaction is already realized.", entity_id=trx.id)

        trx.is_realized = True
        trx.realized_at = timezone.now()
        trx.save(update_fields=["is_realized", "realized_at", "updated_at"])
        return trx

    @staticmethod
    @transaction.atomic
    def recognize_revenue(
        *,
        ctx: ActorContext,
        reference_type: str,
        reference_id: UUID,
        amount: int,
        description: str,
        category: str = "",
    ) -> Transaction:
        """
        Exactly one realized REVENUE row for the reference: a pending accrual is
        re-measured and realized, otherwise a realized row is created.
        """
        accrual = TransactionService._unrealized_for(
            organization_id=ctx.organization_id,
            reference_type=reference_type,
            reference_id=reference_id,
        ).first()
        if accrual is None:
            return TransactionService.record(
                ctx=ctx,
                transaction_type=TransactionType.REVENUE,
                amount=amount,
                description=description,
                category=category,
                reference_type=reference_type,
                reference_id=reference_id,
            )

        accrual.amount = int(amount)
        accrual.description = description
        accrual.save(update_fields=["amount", "description", "updated_at"])
        return TransactionService.realize(ctx=ctx, transaction_id=accrual.id)


class OperationalExpenseService:
    @staticmethod
    @retrying_atomic
    def create(
        *,
        ctx: ActorContext,
        category: str,
        description: str,
        amount: int,
        payment_method: str = ExpensePaymentMethod.CASH,
        bank_account_id: UUID | None = None,
        expense_date: date | None = None,
        receipt_url: str = "",
        notes: str = "",
        requires_approval: bool = True,
    ) -> OperationalExpense:
        if amount is None or int(amount) <= 0:
            raise ValidationError("Expense amount must be > 0.", amount=amount)
        if not (category or "").strip():
            raise ValidationError("Category is required.")
        if payment_method not in ExpensePaymentMethod.values:
            raise ValidationError(f"Unknown payment method: {payment_method}.")

        on = expense_date or timezone.localdate()
        expense = OperationalExpense.objects.create(
            organization_id=ctx.organization_id,
            code=next_code(OperationalExpense, prefix="OEX", on=on),
            category=category.strip(),
            description=description,
            amount=int(amount),
            payment_method=payment_method,
            bank_account_id=bank_account_id,
            expense_date=on,
            receipt_url=receipt_url or "",
            requires_approval=requires_approval,
            approval_status=ApprovalState.PENDING,
            recorded_by_user_id=ctx.user_id,
            notes=notes or "",
        )

        AuditService.log(
            ctx=ctx,
            event_code="OPERATIONAL_EXPENSE_RECORDED",
            entity_type="OperationalExpense",
            entity_id=expense.id,
            metadata={"amount": expense.amount, "category": expense.category},
        )

        if requires_approval:
            ApprovalGate.request_gate(
                ctx=ctx,
                resource_type=ResourceType.OPERATIONAL_EXPENSE,
                resource_id=expense.id,
                attributes={
                    "amount": expense.amount,
                    "category": expense.category,
                    "payment_method": expense.payment_method,
                },
            )
            expense.refresh_from_db()
        else:
            OperationalExpenseService.finalize(ctx=ctx, expense_id=expense.id)
            expense.refresh_from_db()

        return expense

    @staticmethod
    def _lock(organization_id: UUID, expense_id: UUID) -> OperationalExpense:
        try:
            return OperationalExpense.objects.select_for_update().get(id=expense_id, organization_id=organization_id)
        except OperationalExpense.DoesNotExist:
            raise NotFoundError("Operational expense not found.", entity_id=expense_id)

    @staticmethod
    @transaction.atomic
    def finalize(*, ctx: ActorContext, expense_id: UUID) -> OperationalExpense:
        """PENDING -> APPROVED with its EXPENSE transaction. No-op when already APPROVED."""
        expense = OperationalExpenseService._lock(ctx.organization_id, expense_id)
        if expense.approval_status == ApprovalState.APPROVED:
            return expense
        if expense.approval_status != ApprovalState.PENDING:
            raise InvalidStateError(
                "Only pending expenses can be approved.",
                entity_id=expense.id,
                state=expense.approval_status,
            )

        trx = TransactionService.record(
            ctx=ctx,
            transaction_type=TransactionType.EXPENSE,
            amount=expense.amount,
            description=expense.description,
            category=expense.category,
            account_type=account_for_method(expense.payment_method),
            bank_account_id=expense.bank_account_id,
            reference_type=ReferenceType.OPERATIONAL_EXPENSE,
            reference_id=expense.id,
            transaction_date=expense.expense_date,
        )
        expense.transaction = trx
        expense.approval_status = ApprovalState.APPROVED
        expense.save(update_fields=["transaction", "approval_status", "updated_at"])
        logger.info("Operational expense %s approved -> %s", expense.code, trx.code)
        return expense

    @staticmethod
    @transaction.atomic
    def void(*, ctx: ActorContext, expense_id: UUID) -> OperationalExpense:
        """PENDING -> REJECTED. No-op when already REJECTED."""
        expense = OperationalExpenseService._lock(ctx.organization_id, expense_id)
        if expense.approval_status == ApprovalState.REJECTED:
            return expense
        if expense.approval_status != ApprovalState.PENDING:
            raise InvalidStateError(
                "Only pending expenses can be rejected.",
                entity_id=expense.id,
                state=expense.approval_status,
            )

        expense.approval_status = ApprovalState.REJECTED
        expense.save(update_fields=["approval_status", "updated_at"])
        logger.info("Operational expense %s rejected", expense.code)
        return expense


class TransactionRequestService:
    @staticmethod
    @retrying_atomic
    def submit(
        *,
        ctx: ActorContext,
        transaction_type: str,
        amount: int,
        description: str,
        category: str = "",
        account_type: str = AccountType.CASH,
        bank_account_id: UUID | None = None,
        request_date: date | None = None,
    ) -> TransactionRequest:
        if transaction_type not in REQUESTABLE_TYPES:
            raise ValidationError(
                "Requests may only book EXPENSE, REVENUE or CAPITAL_INJECTION.",
                transaction_type=transaction_type,
            )
        if amount is None or int(amount) <= 0:
            raise ValidationError("Request amount must be > 0.", amount=amount)
        if account_type not in AccountType.values:
            raise ValidationError(f"Unknown account type: {account_type}.")

        on = request_date or timezone.localdate()
        req = TransactionRequest.objects.create(
            organization_id=ctx.organization_id,
            code=next_code(TransactionRequest, prefix="REQ", on=on),
            transaction_type=transaction_type,
            category=category or "",
            amount=int(amount),
            account_type=account_type,
            bank_account_id=bank_account_id,
            description=description,
            request_date=on,
            status=RequestStatus.PENDING,
            requested_by_user_id=ctx.user_id,
        )

        AuditService.log(
            ctx=ctx,
            event_code="TRANSACTION_REQUEST_SUBMITTED",
            entity_type="TransactionRequest",
            entity_id=req.id,
            metadata={"transaction_type": transaction_type, "amount": req.amount},
        )

        ApprovalGate.request_gate(
            ctx=ctx,
            resource_type=ResourceType.TRANSACTION_REQUEST,
            resource_id=req.id,
            attributes={
                "amount": req.amount,
                "transaction_type": req.transaction_type,
                "category": req.category,
            },
        )
        req.refresh_from_db()
        return req

    @staticmethod
    @retrying_atomic
    def cancel(*, ctx: ActorContext, request_id: UUID) -> TransactionRequest:
        req = TransactionRequestService._lock(ctx.organization_id, request_id)
        if req.status != RequestStatus.PENDING:
            raise InvalidStateError("Only pending requests can be cancelled.", entity_id=req.id, state=req.status)

        approval = ApprovalGate.pending_approval(
            organization_id=ctx.organization_id,
            resource_type=ResourceType.TRANSACTION_REQUEST,
            resource_id=req.id,
        )
        if approval is None:
            return TransactionRequestService.close(ctx=ctx, request_id=req.id, status=RequestStatus.CANCELLED)

        # The gate callback moves the request to CANCELLED
        ApprovalService.cancel(ctx=ctx, approval_id=approval.id)
        req.refresh_from_db()
        return req

    @staticmethod
    def _lock(organization_id: UUID, request_id: UUID) -> TransactionRequest:
        try:
            return TransactionRequest.objects.select_for_update().get(id=request_id, organization_id=organization_id)
        except TransactionRequest.DoesNotExist:
            raise NotFoundError("Transaction request not found.", entity_id=request_id)

    @staticmethod
    @transaction.atomic
    def fulfil(*, ctx: ActorContext, request_id: UUID) -> TransactionRequest:
        req = TransactionRequestService._lock(ctx.organization_id, request_id)
        if req.status == RequestStatus.APPROVED:
            return req
        if req.status != RequestStatus.PENDING:
            raise InvalidStateError("Only pending requests can be approved.", entity_id=req.id, state=req.status)

        trx = TransactionService.record(
            ctx=ctx,
            transaction_type=req.transaction_type,
            amount=req.amount,
            description=req.description,
            category=req.category,
            account_type=req.account_type,
            bank_account_id=req.bank_account_id,
            reference_type=(
                ReferenceType.CAPITAL
                if req.transaction_type == TransactionType.CAPITAL_INJECTION
                else ReferenceType.TRANSACTION_REQUEST
            ),
            reference_id=req.id,
            transaction_date=req.request_date,
        )
        req.transaction = trx
        req.status = RequestStatus.APPROVED
        req.save(update_fields=["transaction", "status", "updated_at"])
        return req

    @staticmethod
    @transaction.atomic
    def close(*, ctx: ActorContext, request_id: UUID, status: str) -> TransactionRequest:
        """PENDING -> REJECTED / CANCELLED. No-op when already in a closed state."""
        req = TransactionRequestService._lock(ctx.organization_id, request_id)
        if req.status in (RequestStatus.REJECTED, RequestStatus.CANCELLED):
            return req
        if req.status != RequestStatus.PENDING:
            raise InvalidStateError("Request is already approved.", entity_id=req.id, state=req.status)

        req.status = status
        req.save(update_fields=["status", "updated_at"])
        return req
