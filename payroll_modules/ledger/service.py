"""
LedgerService -- per-employee running totals.

Responsibility
--------------
Apply additive deltas to accumulation records (payslip approval, debt
approval and repayment) and force-set totals through an audited
administrative adjustment.

Architecture position
---------------------
**Modules layer** -- stateful service.  Called by ``PayslipService`` and
``DebtService`` inside their transactions.  Never commits.

Invariants enforced
-------------------
* Every read that precedes a write locks the row
  (``SELECT ... FOR UPDATE``), so concurrent approvals for the same
  employee serialize on the record instead of losing an update.
* First use of a key inserts the row inside a SAVEPOINT; a concurrent
  insert surfaces as ``IntegrityError`` and the locked read is retried.
* ``loan_outstanding`` never goes below zero.  Any excess is returned on
  the ``LedgerApplication`` and logged as a warning.
* Adjustments are restricted to authorized roles and never negative.

Failure modes
-------------
* ``InvalidAccumulationKeyError`` -- year missing for a year-scoped type.
* ``UnauthorizedAdjustmentError`` -- actor role not permitted to adjust.
* ``NegativeAdjustmentError`` -- absolute value below zero.

Audit relevance
---------------
Additive applications are evidenced by the audit event of the operation
that caused them (payslip approval, debt approval, repayment).
Adjustments write their own ``accumulation_adjusted`` event plus a history
row.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payroll_kernel.db.types import ZERO
from payroll_kernel.domain.clock import Clock
from payroll_kernel.exceptions import NegativeAdjustmentError, UnauthorizedAdjustmentError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.services.auditor_service import AuditorService
from payroll_kernel.services.base import BaseService
from payroll_modules.ledger.models import (
    CLAMPED_TYPES,
    AccumType,
    AccumulationAdjustment,
    AccumulationKey,
    AccumulationRecord,
    LedgerApplication,
    LedgerDelta,
)
from payroll_modules.ledger.orm import AccumulationAdjustmentModel, AccumulationRecordModel

logger = get_logger("modules.ledger.service")

DEFAULT_ADJUSTMENT_ROLES = frozenset({"admin"})


class LedgerService(BaseService[AccumulationRecordModel]):
    """
    Additive ledger over ``AccumulationRecordModel`` rows.

    Non-goals:
        - Does NOT decide what the deltas are; callers derive them.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
        adjustment_roles: Iterable[str] = DEFAULT_ADJUSTMENT_ROLES,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._adjustment_roles = frozenset(adjustment_roles)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _key_query(self, key: AccumulationKey):
        stmt = select(AccumulationRecordModel).where(
            AccumulationRecordModel.employee_id == key.employee_id,
            AccumulationRecordModel.accum_type == key.accum_type.value,
        )
        if key.year is None:
            return stmt.where(AccumulationRecordModel.year.is_(None))
        return stmt.where(AccumulationRecordModel.year == key.year)

    def _find(self, key: AccumulationKey, lock: bool = False) -> AccumulationRecordModel | None:
        stmt = self._key_query(key)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def _locked_record(self, key: AccumulationKey, actor_id: UUID) -> AccumulationRecordModel:
        """Locked record for ``key``, created at zero on first use."""
        record = self._find(key, lock=True)
        if record is not None:
            return record

        savepoint = self.session.begin_nested()
        try:
            record = AccumulationRecordModel(
                employee_id=key.employee_id,
                accum_type=key.accum_type.value,
                year=key.year,
                total=ZERO,
                created_by_id=actor_id,
            )
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
            return record
        except IntegrityError:
            logger.debug(
                "accumulation_insert_race_retry",
                extra={"employee_id": str(key.employee_id), "accum_type": key.accum_type.value},
            )
            savepoint.rollback()
            record = self._find(key, lock=True)
            if record is None:
                raise
            return record

    def current_total(
        self,
        employee_id: UUID,
        accum_type: AccumType | str,
        year: int | None = None,
    ) -> Decimal:
        """Current total for the key, zero if nothing was ever applied."""
        record = self._find(AccumulationKey.of(employee_id, accum_type, year))
        return record.total if record is not None else ZERO

    def get_record(
        self,
        employee_id: UUID,
        accum_type: AccumType | str,
        year: int | None = None,
    ) -> AccumulationRecord | None:
        record = self._find(AccumulationKey.of(employee_id, accum_type, year))
        return record.to_dto() if record is not None else None

    def adjustment_history(self, record_id: UUID) -> tuple[AccumulationAdjustment, ...]:
        rows = self.session.execute(
            select(AccumulationAdjustmentModel)
            .where(AccumulationAdjustmentModel.record_id == record_id)
            .order_by(AccumulationAdjustmentModel.adjusted_at, AccumulationAdjustmentModel.created_at)
        ).scalars().all()
        return tuple(r.to_dto() for r in rows)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply(
        self,
        employee_id: UUID,
        accum_type: AccumType | str,
        delta: Decimal,
        *,
        year: int | None = None,
        actor_id: UUID,
    ) -> LedgerApplication:
        """
        Add ``delta`` to the employee's total.

        Preconditions:
            - Caller is inside an active transaction.
        Postconditions:
            - ``new_total == previous_total + applied_delta``.
            - For clamped types ``new_total >= 0`` and
              ``excess == applied_delta - requested_delta``.

        Raises:
            InvalidAccumulationKeyError: year missing for a year-scoped type.
        """
        key = AccumulationKey.of(employee_id, accum_type, year)
        record = self._locked_record(key, actor_id)

        previous = record.total
        new_total = previous + delta
        applied = delta
        excess = ZERO

        if key.accum_type in CLAMPED_TYPES and new_total < ZERO:
            new_total = ZERO
            applied = -previous
            excess = applied - delta
            logger.warning(
                "accumulation_clamped_at_zero",
                extra={
                    "employee_id": str(employee_id),
                    "accum_type": key.accum_type.value,
                    "previous_total": previous,
                    "requested_delta": delta,
                    "excess": excess,
                },
            )

        record.total = new_total
        record.updated_by_id = actor_id
        self.session.flush()

        logger.debug(
            "accumulation_applied",
            extra={
                "employee_id": str(employee_id),
                "accum_type": key.accum_type.value,
                "year": key.year,
                "delta": applied,
                "new_total": new_total,
            },
        )
        return LedgerApplication(
            key=key,
            previous_total=previous,
            requested_delta=delta,
            applied_delta=applied,
            new_total=new_total,
            excess=excess,
        )

    def apply_all(
        self,
        employee_id: UUID,
        deltas: Iterable[LedgerDelta],
        *,
        actor_id: UUID,
    ) -> tuple[LedgerApplication, ...]:
        """Apply several deltas for one employee in a stable order."""
        ordered = sorted(deltas, key=lambda d: (d.accum_type.value, d.year or 0))
        return tuple(
            self.apply(employee_id, d.accum_type, d.delta, year=d.year, actor_id=actor_id)
            for d in ordered
        )

    def adjust(
        self,
        employee_id: UUID,
        accum_type: AccumType | str,
        absolute_value: Decimal,
        *,
        year: int | None = None,
        actor_id: UUID,
        actor_role: str | None,
        reason: str | None = None,
    ) -> AccumulationRecord:
        """
        Force-set a total, bypassing the additive chain.

        Raises:
            UnauthorizedAdjustmentError: ``actor_role`` is not permitted.
            NegativeAdjustmentError: ``absolute_value`` < 0.
            InvalidAccumulationKeyError: year missing for a year-scoped type.
        """
        if actor_role not in self._adjustment_roles:
            logger.warning(
                "accumulation_adjustment_denied",
                extra={"actor_id": str(actor_id), "role": actor_role},
            )
            raise UnauthorizedAdjustmentError(str(actor_id), actor_role)

        key = AccumulationKey.of(employee_id, accum_type, year)
        if absolute_value < ZERO:
            raise NegativeAdjustmentError(key.accum_type.value, absolute_value)

        record = self._locked_record(key, actor_id)
        previous = record.total
        now = self.clock.now()

        record.total = absolute_value
        record.adjusted_by_id = actor_id
        record.adjusted_at = now
        record.updated_by_id = actor_id
        self.session.add(
            AccumulationAdjustmentModel(
                record_id=record.id,
                previous_total=previous,
                new_total=absolute_value,
                actor_id=actor_id,
                actor_role=actor_role,
                adjusted_at=now,
                reason=reason,
                created_by_id=actor_id,
            )
        )
        self.session.flush()

        self._auditor.record_accumulation_adjusted(
            record_id=record.id,
            employee_id=employee_id,
            accum_type=key.accum_type.value,
            year=key.year,
            previous_total=previous,
            new_total=absolute_value,
            actor_id=actor_id,
            actor_role=actor_role,
            reason=reason,
        )
        logger.info(
            "accumulation_adjusted",
            extra={
                "employee_id": str(employee_id),
                "accum_type": key.accum_type.value,
                "year": key.year,
                "previous_total": previous,
                "new_total": absolute_value,
            },
        )
        return record.to_dto()
