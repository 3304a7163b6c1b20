"""
Accumulation Ledger ORM Models (``payroll_modules.ledger.orm``).

Responsibility:
    Persist per-employee running totals and the history of administrative
    adjustments made to them.

Architecture position:
    **Modules layer** -- persistence companion to
    ``payroll_modules.ledger.models``.  Inherits from ``TrackedBase``.

Invariants enforced:
    - One row per (employee_id, accum_type, year).  Because NULL never
      equals NULL in a unique constraint, uniqueness is enforced by two
      partial unique indexes: one for year-scoped rows, one for lifetime
      rows.
    - ``accum_type`` is one of the ``AccumType`` values.
    - Adjustment rows are append-only history.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase

_ACCUM_TYPES_SQL = (
    "accum_type IN ('tax', 'sso', 'sso_employer', 'income', "
    "'provident_fund', 'provident_fund_employer', 'loan_outstanding')"
)


class AccumulationRecordModel(TrackedBase):
    """
    ORM model for ``AccumulationRecord``.

    Guarantees:
        - ``total`` is Decimal (Numeric(38,9)).
        - ``adjusted_by_id`` / ``adjusted_at`` are set only by an
          administrative adjustment.
    """

    __tablename__ = "payroll_accumulations"

    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    accum_type: Mapped[str] = mapped_column(String(50), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total: Mapped[Decimal] = mapped_column(nullable=False)
    adjusted_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    adjusted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_payroll_accum_employee_type_year",
            "employee_id", "accum_type", "year",
            unique=True,
            postgresql_where=text("year IS NOT NULL"),
            sqlite_where=text("year IS NOT NULL"),
        ),
        Index(
            "uq_payroll_accum_employee_type_lifetime",
            "employee_id", "accum_type",
            unique=True,
            postgresql_where=text("year IS NULL"),
            sqlite_where=text("year IS NULL"),
        ),
        CheckConstraint(_ACCUM_TYPES_SQL, name="ck_payroll_accum_type"),
        Index("idx_payroll_accum_employee", "employee_id"),
    )

    def to_dto(self):
        from payroll_modules.ledger.models import AccumType, AccumulationKey, AccumulationRecord

        return AccumulationRecord(
            id=self.id,
            key=AccumulationKey(
                employee_id=self.employee_id,
                accum_type=AccumType(self.accum_type),
                year=self.year,
            ),
            total=self.total,
            adjusted_by_id=self.adjusted_by_id,
            adjusted_at=self.adjusted_at,
        )

    def __repr__(self) -> str:
        scope = self.year if self.year is not None else "lifetime"
        return f"<AccumulationRecordModel {self.employee_id} {self.accum_type}/{scope}: {self.total}>"


class AccumulationAdjustmentModel(TrackedBase):
    """History row written for every administrative force-set."""

    __tablename__ = "payroll_accumulation_adjustments"

    record_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_accumulations.id"), nullable=False,
    )
    previous_total: Mapped[Decimal] = mapped_column(nullable=False)
    new_total: Mapped[Decimal] = mapped_column(nullable=False)
    actor_id: Mapped[UUID] = mapped_column(nullable=False)
    actor_role: Mapped[str] = mapped_column(String(50), nullable=False)
    adjusted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_payroll_accum_adjustment_record", "record_id"),
    )

    def to_dto(self):
        from payroll_modules.ledger.models import AccumulationAdjustment

        return AccumulationAdjustment(
            id=self.id,
            record_id=self.record_id,
            previous_total=self.previous_total,
            new_total=self.new_total,
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            adjusted_at=self.adjusted_at,
            reason=self.reason,
        )
