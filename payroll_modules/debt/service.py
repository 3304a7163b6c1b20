"""
DebtService -- employee loans, other debts and repayments.

Responsibility
--------------
Create debt plans with their installment schedules, approve them into the
outstanding balance, soft-delete pending ones, record repayments, and list
the installments due in a payroll month.

Architecture position
---------------------
**Modules layer** -- stateful service.  Uses the pure scheduler for every
check before writing and ``LedgerService`` for the ``loan_outstanding``
balance.  Never commits.

Invariants enforced
-------------------
* A plan (parent plus installments) is written inside one SAVEPOINT: either
  the whole schedule lands or nothing does.
* pending -> approved is the only transition.  Only loan and other debts
  are approvable.
* Only pending debts can be deleted, and deletion is soft.
* Repayments never touch a schedule; they reduce ``loan_outstanding``,
  which is clamped at zero with the excess recorded on the repayment.

Failure modes
-------------
* ``DebtTxnNotFoundError`` -- unknown or deleted transaction.
* ``DebtTxnNotPendingError`` / ``DebtTxnNotApprovableError``.
* ``MissingDebtDetailError`` -- other-debt description or bank transfer
  details missing.
* Scheduler errors (``InvalidDebtAmountError``, ``InvalidInstallmentError``,
  ``DuplicateInstallmentMonthError``, ``InstallmentSumMismatchError``).

Audit relevance
---------------
Creation, approval, deletion and repayment each write a ``DebtTxn``
audit event.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock
from payroll_kernel.exceptions import (
    DebtTxnNotApprovableError,
    DebtTxnNotFoundError,
    DebtTxnNotPendingError,
    InvalidDebtTypeError,
    MissingDebtDetailError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_event import AuditAction
from payroll_kernel.services.auditor_service import AuditorService
from payroll_kernel.services.base import BaseService
from payroll_modules.debt.models import (
    APPROVABLE_TYPES,
    DebtTxn,
    DebtTxnStatus,
    DebtTxnType,
    DueInstallment,
    Installment,
    PaymentMethod,
    RepaymentResult,
)
from payroll_modules.debt.orm import DebtInstallmentModel, DebtTxnModel
from payroll_modules.debt.scheduler import (
    generate_installments,
    month_start,
    validate_installments,
    validate_principal,
)
from payroll_modules.ledger.models import AccumType
from payroll_modules.ledger.service import LedgerService

logger = get_logger("modules.debt.service")


class DebtService(BaseService[DebtTxnModel]):
    """
    Debt lifecycle over ``DebtTxnModel`` rows.

    Non-goals:
        - Does NOT deduct installments; the payslip aggregator turns due
          installments into loan-repayment lines.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
        ledger: LedgerService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._ledger = ledger or LedgerService(session, self.clock, auditor=self._auditor)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load(self, debt_txn_id: UUID, lock: bool = False) -> DebtTxnModel:
        stmt = select(DebtTxnModel).where(
            DebtTxnModel.id == debt_txn_id,
            DebtTxnModel.deleted_at.is_(None),
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        model = self.session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise DebtTxnNotFoundError(str(debt_txn_id))
        return model

    def get(self, debt_txn_id: UUID) -> DebtTxn:
        """
        Raises:
            DebtTxnNotFoundError: unknown or soft-deleted.
        """
        return self._load(debt_txn_id).to_dto()

    def list_for_employee(
        self,
        employee_id: UUID,
        include_deleted: bool = False,
    ) -> tuple[DebtTxn, ...]:
        stmt = select(DebtTxnModel).where(DebtTxnModel.employee_id == employee_id)
        if not include_deleted:
            stmt = stmt.where(DebtTxnModel.deleted_at.is_(None))
        models = self.session.execute(
            stmt.order_by(DebtTxnModel.txn_date, DebtTxnModel.created_at)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)

    def installments_due(self, employee_id: UUID, payroll_month: date) -> tuple[DueInstallment, ...]:
        """Installments of approved, live debts scheduled for ``payroll_month``."""
        rows = self.session.execute(
            select(DebtInstallmentModel, DebtTxnModel)
            .join(DebtTxnModel, DebtInstallmentModel.debt_txn_id == DebtTxnModel.id)
            .where(
                DebtTxnModel.employee_id == employee_id,
                DebtTxnModel.status == DebtTxnStatus.APPROVED.value,
                DebtTxnModel.deleted_at.is_(None),
                DebtInstallmentModel.payroll_month == month_start(payroll_month),
            )
            .order_by(DebtTxnModel.txn_date, DebtInstallmentModel.installment_no)
        ).all()

        return tuple(
            DueInstallment(
                installment_id=installment.id,
                debt_txn_id=txn.id,
                employee_id=txn.employee_id,
                txn_type=DebtTxnType(txn.txn_type),
                amount=installment.amount,
                payroll_month=installment.payroll_month,
                description=_installment_description(txn, installment),
            )
            for installment, txn in rows
        )

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def create_plan(
        self,
        employee_id: UUID,
        amount: Decimal,
        txn_date: date,
        actor_id: UUID,
        *,
        txn_type: DebtTxnType = DebtTxnType.LOAN,
        installments: Sequence[Installment] | None = None,
        start_month: date | None = None,
        month_count: int | None = None,
        reason: str | None = None,
        other_desc: str | None = None,
    ) -> DebtTxn:
        """
        Create a pending debt with its schedule.

        The schedule is either given explicitly (``installments``) or
        generated from ``start_month`` and ``month_count``.  With neither,
        the debt has no schedule.

        Preconditions:
            - ``txn_type`` is loan or other.
        Postconditions:
            - Parent and installments are flushed together, or not at all.

        Raises:
            InvalidDebtTypeError, MissingDebtDetailError and every scheduler
            validation error, all before any write.
        """
        txn_type = DebtTxnType(txn_type)
        if txn_type not in APPROVABLE_TYPES:
            raise InvalidDebtTypeError(txn_type.value, "create_plan")
        validate_principal(amount)
        if txn_type == DebtTxnType.OTHER and not (other_desc or "").strip():
            raise MissingDebtDetailError("other_desc", "required for debts of type other")

        if installments is not None:
            schedule = tuple(installments)
        elif month_count is not None:
            schedule = generate_installments(amount, start_month or txn_date, month_count)
        else:
            schedule = ()
        validate_installments(amount, schedule)

        savepoint = self.session.begin_nested()
        try:
            model = DebtTxnModel(
                employee_id=employee_id,
                txn_type=txn_type.value,
                amount=amount,
                txn_date=txn_date,
                status=DebtTxnStatus.PENDING.value,
                reason=reason,
                other_desc=other_desc,
                created_by_id=actor_id,
            )
            model.installments = [
                DebtInstallmentModel(
                    installment_no=index,
                    amount=installment.amount,
                    payroll_month=installment.payroll_month,
                    created_by_id=actor_id,
                )
                for index, installment in enumerate(schedule)
            ]
            self.session.add(model)
            self.session.flush()
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            logger.error(
                "debt_plan_create_failed",
                extra={"employee_id": str(employee_id), "amount": amount},
                exc_info=True,
            )
            raise

        self._auditor.record_debt_event(
            debt_txn_id=model.id,
            action=AuditAction.DEBT_CREATED,
            actor_id=actor_id,
            payload={
                "employee_id": employee_id,
                "txn_type": txn_type.value,
                "amount": amount,
                "installment_count": len(schedule),
            },
        )
        logger.info(
            "debt_plan_created",
            extra={
                "debt_txn_id": str(model.id),
                "employee_id": str(employee_id),
                "txn_type": txn_type.value,
                "amount": amount,
                "installment_count": len(schedule),
            },
        )
        return model.to_dto()

    def approve(self, debt_txn_id: UUID, actor_id: UUID) -> DebtTxn:
        """
        Approve a pending loan or other debt and add it to the outstanding
        balance.

        Raises:
            DebtTxnNotFoundError, DebtTxnNotApprovableError,
            DebtTxnNotPendingError
        """
        model = self._load(debt_txn_id, lock=True)
        if DebtTxnType(model.txn_type) not in APPROVABLE_TYPES:
            raise DebtTxnNotApprovableError(str(debt_txn_id), model.txn_type)
        if model.status != DebtTxnStatus.PENDING.value:
            raise DebtTxnNotPendingError(str(debt_txn_id), model.status, "approve")

        model.status = DebtTxnStatus.APPROVED.value
        model.approved_by_id = actor_id
        model.approved_at = self.clock.now()
        model.updated_by_id = actor_id
        self.session.flush()

        application = self._ledger.apply(
            model.employee_id,
            AccumType.LOAN_OUTSTANDING,
            model.amount,
            actor_id=actor_id,
        )
        self._auditor.record_debt_event(
            debt_txn_id=model.id,
            action=AuditAction.DEBT_APPROVED,
            actor_id=actor_id,
            payload={
                "employee_id": model.employee_id,
                "amount": model.amount,
                "outstanding": application.new_total,
            },
        )
        logger.info(
            "debt_approved",
            extra={
                "debt_txn_id": str(model.id),
                "employee_id": str(model.employee_id),
                "amount": model.amount,
                "outstanding": application.new_total,
            },
        )
        return model.to_dto()

    def delete(self, debt_txn_id: UUID, actor_id: UUID) -> DebtTxn:
        """
        Soft-delete a pending debt.

        Raises:
            DebtTxnNotFoundError, DebtTxnNotPendingError
        """
        model = self._load(debt_txn_id, lock=True)
        if model.status != DebtTxnStatus.PENDING.value:
            raise DebtTxnNotPendingError(str(debt_txn_id), model.status, "delete")

        model.deleted_at = self.clock.now()
        model.deleted_by_id = actor_id
        model.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record_debt_event(
            debt_txn_id=model.id,
            action=AuditAction.DEBT_DELETED,
            actor_id=actor_id,
        )
        logger.info("debt_deleted", extra={"debt_txn_id": str(model.id)})
        return model.to_dto()

    # ------------------------------------------------------------------
    # Repayments
    # ------------------------------------------------------------------

    def record_repayment(
        self,
        employee_id: UUID,
        amount: Decimal,
        txn_date: date,
        payment_method: PaymentMethod,
        actor_id: UUID,
        *,
        bank_account_no: str | None = None,
        transfer_at: datetime | None = None,
        reason: str | None = None,
        parent_id: UUID | None = None,
    ) -> RepaymentResult:
        """
        Record a repayment made outside payroll and reduce the outstanding
        balance.

        Postconditions:
            - The repayment row stores the amount actually applied and any
              excess beyond the outstanding balance.
            - Installment schedules are untouched.

        Raises:
            InvalidDebtAmountError: amount <= 0 or sub-cent.
            MissingDebtDetailError: bank transfer without account or time.
            DebtTxnNotFoundError: ``parent_id`` unknown.
        """
        payment_method = PaymentMethod(payment_method)
        validate_principal(amount)
        if payment_method == PaymentMethod.BANK_TRANSFER:
            if not (bank_account_no or "").strip():
                raise MissingDebtDetailError("bank_account_no", "required for bank transfers")
            if transfer_at is None:
                raise MissingDebtDetailError("transfer_at", "required for bank transfers")
        if parent_id is not None:
            self._load(parent_id)

        application = self._ledger.apply(
            employee_id,
            AccumType.LOAN_OUTSTANDING,
            -amount,
            actor_id=actor_id,
        )
        applied = -application.applied_delta
        excess = application.excess

        now = self.clock.now()
        model = DebtTxnModel(
            employee_id=employee_id,
            txn_type=DebtTxnType.REPAYMENT.value,
            amount=amount,
            txn_date=txn_date,
            status=DebtTxnStatus.APPROVED.value,
            reason=reason,
            payment_method=payment_method.value,
            bank_account_no=bank_account_no,
            transfer_at=transfer_at,
            applied_amount=applied,
            excess_amount=excess,
            parent_id=parent_id,
            approved_by_id=actor_id,
            approved_at=now,
            created_by_id=actor_id,
        )
        self.session.add(model)
        self.session.flush()

        self._auditor.record_debt_event(
            debt_txn_id=model.id,
            action=AuditAction.DEBT_REPAYMENT_RECORDED,
            actor_id=actor_id,
            payload={
                "employee_id": employee_id,
                "amount": amount,
                "applied_amount": applied,
                "excess_amount": excess,
                "payment_method": payment_method.value,
            },
        )
        if application.was_clamped:
            logger.warning(
                "repayment_exceeds_outstanding",
                extra={
                    "debt_txn_id": str(model.id),
                    "employee_id": str(employee_id),
                    "amount": amount,
                    "excess": excess,
                },
            )
        logger.info(
            "repayment_recorded",
            extra={
                "debt_txn_id": str(model.id),
                "employee_id": str(employee_id),
                "applied_amount": applied,
                "outstanding": application.new_total,
            },
        )
        return RepaymentResult(
            repayment=model.to_dto(),
            previous_outstanding=application.previous_total,
            new_outstanding=application.new_total,
            applied_amount=applied,
            excess_amount=excess,
        )


def _installment_description(txn: DebtTxnModel, installment: DebtInstallmentModel) -> str:
    label = txn.other_desc if txn.txn_type == DebtTxnType.OTHER.value and txn.other_desc else "Loan"
    total = len(txn.installments)
    return f"{label} installment {installment.installment_no + 1}/{total}"
