"""
PayslipService -- payslip persistence and lifecycle.

Responsibility
--------------
Store payslips with their recomputed totals, save edits atomically under
an optimistic version check, approve payslips into the accumulation ledger,
and mark them paid.

Architecture position
---------------------
**Modules layer** -- stateful service.  All arithmetic is delegated to
``payroll_modules.payslip.calculator``; ledger effects to
``LedgerService``.  Never commits.

Invariants enforced
-------------------
* Totals written are always the output of ``recalculate`` for the lines
  written, in the same flush.
* Only pending payslips accept edits.  Transitions follow
  ``PAYSLIP_TRANSITIONS``: pending -> approved -> paid.
* A save carrying a stale ``expected_version`` is rejected; every write
  increments ``version``.
* Approval applies its ledger deltas exactly once, in the approving
  transaction.

Failure modes
-------------
* ``PayslipNotFoundError``, ``DuplicatePayslipError``,
  ``PayslipNotEditableError``, ``InvalidPayslipTransitionError``.
* ``OptimisticLockError`` -- concurrent edit.
* Calculator errors (``InvalidLineAmountError``) before any write.

Audit relevance
---------------
Approval records net pay and every ledger delta in a ``payslip_approved``
audit event and on the row's ``ledger_snapshot``.  Payment writes
``payslip_paid``.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payroll_config.schema import PayrollConfigVersion
from payroll_kernel.domain.clock import Clock
from payroll_kernel.exceptions import (
    DuplicatePayslipError,
    InvalidPayslipTransitionError,
    OptimisticLockError,
    PayslipNotEditableError,
    PayslipNotFoundError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.services.auditor_service import AuditorService
from payroll_kernel.services.base import BaseService
from payroll_kernel.utils.hashing import to_json_safe
from payroll_modules.employee.models import EmployeeContributionProfile
from payroll_modules.ledger.service import LedgerService
from payroll_modules.payslip.calculator import approval_deltas, recalculate
from payroll_modules.payslip.models import (
    PAYSLIP_TRANSITIONS,
    Payslip,
    PayslipApproval,
    PayslipLines,
    PayslipStatus,
)
from payroll_modules.payslip.orm import PayslipModel

logger = get_logger("modules.payslip.service")


class PayslipService(BaseService[PayslipModel]):
    """
    Payslip store over ``PayslipModel`` rows.

    Non-goals:
        - Does NOT resolve configuration or profiles; callers pass the
          ones that govern the payslip.
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

    def _load(self, payslip_id: UUID, lock: bool = False) -> PayslipModel:
        stmt = select(PayslipModel).where(PayslipModel.id == payslip_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        model = self.session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise PayslipNotFoundError(str(payslip_id))
        return model

    def get(self, payslip_id: UUID) -> Payslip:
        return self._load(payslip_id).to_dto()

    def list_for_run(self, run_id: UUID, status: PayslipStatus | None = None) -> tuple[Payslip, ...]:
        stmt = select(PayslipModel).where(PayslipModel.run_id == run_id)
        if status is not None:
            stmt = stmt.where(PayslipModel.status == PayslipStatus(status).value)
        models = self.session.execute(
            stmt.order_by(PayslipModel.created_at, PayslipModel.employee_id)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        run_id: UUID,
        employee_id: UUID,
        payroll_month: date,
        lines: PayslipLines,
        profile: EmployeeContributionProfile,
        config: PayrollConfigVersion,
        actor_id: UUID,
    ) -> Payslip:
        """
        Store a new pending payslip.

        Raises:
            InvalidLineAmountError: before any write.
            DuplicatePayslipError: the employee already has a payslip in
                this run.
        """
        totals = recalculate(lines, profile, config)

        model = PayslipModel(
            run_id=run_id,
            employee_id=employee_id,
            payroll_month=payroll_month.replace(day=1),
            status=PayslipStatus.PENDING.value,
            version=1,
            config_version_no=config.version_no,
            created_by_id=actor_id,
        )
        model.write_lines(lines, totals)

        savepoint = self.session.begin_nested()
        try:
            self.session.add(model)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "payslip_duplicate_rejected",
                extra={"run_id": str(run_id), "employee_id": str(employee_id)},
            )
            raise DuplicatePayslipError(str(run_id), str(employee_id)) from None

        logger.info(
            "payslip_created",
            extra={
                "payslip_id": str(model.id),
                "run_id": str(run_id),
                "employee_id": str(employee_id),
                "net_pay": totals.net_pay,
            },
        )
        return model.to_dto()

    def save(
        self,
        payslip_id: UUID,
        lines: PayslipLines,
        profile: EmployeeContributionProfile,
        config: PayrollConfigVersion,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> Payslip:
        """
        Replace every line item and its totals in one flush.

        Preconditions:
            - ``expected_version`` is the version the editor loaded, or
              None to skip the check.
        Postconditions:
            - ``version`` is incremented by one.

        Raises:
            PayslipNotEditableError: payslip is not pending.
            OptimisticLockError: ``expected_version`` is stale.
            InvalidLineAmountError, NegativeMeterUsageError: nothing is written.
        """
        model = self._load(payslip_id, lock=True)
        if model.status != PayslipStatus.PENDING.value:
            raise PayslipNotEditableError(str(payslip_id), model.status)
        if expected_version is not None and model.version != expected_version:
            logger.warning(
                "payslip_version_conflict",
                extra={
                    "payslip_id": str(payslip_id),
                    "expected_version": expected_version,
                    "actual_version": model.version,
                },
            )
            raise OptimisticLockError("Payslip", str(payslip_id), expected_version, model.version)

        totals = recalculate(lines, profile, config)
        model.write_lines(lines, totals)
        model.version += 1
        model.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "payslip_saved",
            extra={
                "payslip_id": str(payslip_id),
                "version": model.version,
                "tax_mode": lines.tax.kind,
                "net_pay": totals.net_pay,
            },
        )
        return model.to_dto()

    def _check_transition(self, model: PayslipModel, to_status: PayslipStatus) -> None:
        current = PayslipStatus(model.status)
        if to_status not in PAYSLIP_TRANSITIONS[current]:
            raise InvalidPayslipTransitionError(str(model.id), current.value, to_status.value)

    def approve(self, payslip_id: UUID, actor_id: UUID) -> PayslipApproval:
        """
        Approve a pending payslip and apply its accumulation deltas.

        Postconditions:
            - Income, tax and social security totals for the payroll year,
              lifetime provident fund totals, and the outstanding loan
              balance reflect this payslip.
            - The payslip's lines are frozen.

        Raises:
            InvalidPayslipTransitionError: payslip is not pending.
        """
        model = self._load(payslip_id, lock=True)
        self._check_transition(model, PayslipStatus.APPROVED)

        lines = model.to_lines()
        totals = model.to_totals()
        deltas = approval_deltas(lines, totals, model.payroll_month.year)
        applications = self._ledger.apply_all(model.employee_id, deltas, actor_id=actor_id)

        for application in applications:
            if application.was_clamped:
                logger.warning(
                    "payslip_loan_repayment_exceeds_outstanding",
                    extra={
                        "payslip_id": str(payslip_id),
                        "employee_id": str(model.employee_id),
                        "excess": application.excess,
                    },
                )

        approval_payload = {
            a.key.label: {
                "previous_total": a.previous_total,
                "applied_delta": a.applied_delta,
                "new_total": a.new_total,
                "excess": a.excess,
            }
            for a in applications
        }

        model.status = PayslipStatus.APPROVED.value
        model.approved_at = self.clock.now()
        model.approved_by_id = actor_id
        model.ledger_snapshot = to_json_safe(approval_payload)
        model.version += 1
        model.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record_payslip_approved(
            payslip_id=model.id,
            employee_id=model.employee_id,
            net_pay=model.net_pay,
            ledger_deltas={a.key.label: a.applied_delta for a in applications},
            actor_id=actor_id,
        )
        logger.info(
            "payslip_approved",
            extra={
                "payslip_id": str(payslip_id),
                "employee_id": str(model.employee_id),
                "net_pay": model.net_pay,
                "delta_count": len(applications),
            },
        )
        return PayslipApproval(payslip=model.to_dto(), applications=applications)

    def mark_paid(self, payslip_id: UUID, actor_id: UUID) -> Payslip:
        """
        Raises:
            InvalidPayslipTransitionError: payslip is not approved.
        """
        model = self._load(payslip_id, lock=True)
        self._check_transition(model, PayslipStatus.PAID)

        model.status = PayslipStatus.PAID.value
        model.paid_at = self.clock.now()
        model.paid_by_id = actor_id
        model.version += 1
        model.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record_payslip_paid(payslip_id=model.id, actor_id=actor_id)
        logger.info("payslip_paid", extra={"payslip_id": str(payslip_id)})
        return model.to_dto()

