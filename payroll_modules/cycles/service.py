"""
CycleService -- branch-scoped bonus and salary-raise cycles.

Responsibility
--------------
Open cycles and move them from pending to approved or rejected.

Architecture position
---------------------
**Modules layer** -- stateful service.  Never commits.

Invariants enforced
-------------------
* Uniqueness is decided by the database, not by a read-then-write check:
  inserts and approvals run inside a SAVEPOINT and an ``IntegrityError``
  from a partial unique index becomes ``CycleConflictError``.
* Decided cycles (approved or rejected) are terminal.

Failure modes
-------------
* ``CycleConflictError`` -- a pending cycle already exists for the branch
  and kind, or an approved one already exists for that month.
* ``CycleNotFoundError``, ``InvalidCycleTransitionError``,
  ``InvalidCyclePeriodError``.

Audit relevance
---------------
Creation and each decision write a ``PayrollCycle`` audit event.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock
from payroll_kernel.exceptions import (
    CycleConflictError,
    CycleNotFoundError,
    InvalidCyclePeriodError,
    InvalidCycleTransitionError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_event import AuditAction
from payroll_kernel.services.auditor_service import AuditorService
from payroll_kernel.services.base import BaseService
from payroll_modules.cycles.models import CYCLE_TRANSITIONS, CycleKind, CycleStatus, PayrollCycle
from payroll_modules.cycles.orm import PayrollCycleModel

logger = get_logger("modules.cycles.service")

_DECISION_ACTIONS = {
    CycleStatus.APPROVED: AuditAction.CYCLE_APPROVED,
    CycleStatus.REJECTED: AuditAction.CYCLE_REJECTED,
}


class CycleService(BaseService[PayrollCycleModel]):
    """Cycle lifecycle over ``PayrollCycleModel`` rows."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)

    def _load(self, cycle_id: UUID, lock: bool = False) -> PayrollCycleModel:
        stmt = select(PayrollCycleModel).where(PayrollCycleModel.id == cycle_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        model = self.session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise CycleNotFoundError(str(cycle_id))
        return model

    def get(self, cycle_id: UUID) -> PayrollCycle:
        return self._load(cycle_id).to_dto()

    def list_for_branch(self, branch_id: UUID, kind: CycleKind | None = None) -> tuple[PayrollCycle, ...]:
        stmt = select(PayrollCycleModel).where(PayrollCycleModel.branch_id == branch_id)
        if kind is not None:
            stmt = stmt.where(PayrollCycleModel.kind == CycleKind(kind).value)
        models = self.session.execute(
            stmt.order_by(PayrollCycleModel.payroll_month, PayrollCycleModel.created_at)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)

    def create(
        self,
        branch_id: UUID,
        kind: CycleKind,
        payroll_month: date,
        period_start: date,
        period_end: date,
        actor_id: UUID,
        note: str | None = None,
    ) -> PayrollCycle:
        """
        Open a pending cycle.

        Raises:
            InvalidCyclePeriodError: ``period_end`` before ``period_start``.
            CycleConflictError: the branch already has a pending cycle of
                this kind.
        """
        kind = CycleKind(kind)
        if period_end < period_start:
            raise InvalidCyclePeriodError(period_start, period_end)

        model = PayrollCycleModel(
            branch_id=branch_id,
            kind=kind.value,
            payroll_month=payroll_month.replace(day=1),
            period_start=period_start,
            period_end=period_end,
            status=CycleStatus.PENDING.value,
            note=note,
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(model)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "cycle_conflict",
                extra={"branch_id": str(branch_id), "kind": kind.value, "operation": "create"},
            )
            raise CycleConflictError(
                str(branch_id), kind.value, "a pending cycle already exists",
            ) from None

        self._auditor.record_cycle_event(
            cycle_id=model.id,
            action=AuditAction.CYCLE_CREATED,
            actor_id=actor_id,
            payload={
                "branch_id": branch_id,
                "kind": kind.value,
                "payroll_month": model.payroll_month,
            },
        )
        logger.info(
            "cycle_created",
            extra={"cycle_id": str(model.id), "branch_id": str(branch_id), "kind": kind.value},
        )
        return model.to_dto()

    def transition(self, cycle_id: UUID, to_status: CycleStatus, actor_id: UUID) -> PayrollCycle:
        """
        Decide a pending cycle.

        Raises:
            InvalidCycleTransitionError: the cycle is already decided.
            CycleConflictError: approving would give the branch a second
                approved cycle of this kind for the month.
        """
        to_status = CycleStatus(to_status)
        model = self._load(cycle_id, lock=True)
        current = CycleStatus(model.status)
        if to_status not in CYCLE_TRANSITIONS[current]:
            raise InvalidCycleTransitionError(str(cycle_id), current.value, to_status.value)

        branch_id, kind, payroll_month = model.branch_id, model.kind, model.payroll_month
        savepoint = self.session.begin_nested()
        try:
            model.status = to_status.value
            model.decided_by_id = actor_id
            model.decided_at = self.clock.now()
            model.updated_by_id = actor_id
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "cycle_conflict",
                extra={"branch_id": str(branch_id), "kind": kind, "operation": to_status.value},
            )
            raise CycleConflictError(
                str(branch_id), kind, f"an approved cycle already exists for {payroll_month:%Y-%m}",
            ) from None

        self._auditor.record_cycle_event(
            cycle_id=model.id,
            action=_DECISION_ACTIONS[to_status],
            actor_id=actor_id,
            payload={"from_status": current.value, "to_status": to_status.value},
        )
        logger.info(
            "cycle_decided",
            extra={"cycle_id": str(cycle_id), "status": to_status.value},
        )
        return model.to_dto()

    def approve(self, cycle_id: UUID, actor_id: UUID) -> PayrollCycle:
        return self.transition(cycle_id, CycleStatus.APPROVED, actor_id)

    def reject(self, cycle_id: UUID, actor_id: UUID) -> PayrollCycle:
        return self.transition(cycle_id, CycleStatus.REJECTED, actor_id)
