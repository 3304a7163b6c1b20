"""
Payroll Cycle ORM Model (``payroll_modules.cycles.orm``).

Responsibility:
    Persist branch-scoped cycles.  Uniqueness rules live in the database as
    partial unique indexes so concurrent writers cannot both succeed:

    - at most one pending cycle per (branch_id, kind);
    - at most one approved cycle per (branch_id, kind, payroll_month).

Architecture position:
    **Modules layer** -- persistence companion to
    ``payroll_modules.cycles.models``.  Inherits from ``TrackedBase``.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase

PENDING_INDEX = "uq_payroll_cycle_pending_branch_kind"
APPROVED_INDEX = "uq_payroll_cycle_approved_branch_kind_month"


class PayrollCycleModel(TrackedBase):
    """ORM model for ``PayrollCycle``."""

    __tablename__ = "payroll_cycles"

    branch_id: Mapped[UUID] = mapped_column(nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    payroll_month: Mapped[date] = mapped_column(Date, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            PENDING_INDEX,
            "branch_id", "kind",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index(
            APPROVED_INDEX,
            "branch_id", "kind", "payroll_month",
            unique=True,
            postgresql_where=text("status = 'approved'"),
            sqlite_where=text("status = 'approved'"),
        ),
        CheckConstraint(
            "kind IN ('bonus', 'salary_raise')",
            name="ck_payroll_cycle_kind",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_payroll_cycle_status",
        ),
        Index("idx_payroll_cycle_branch", "branch_id", "payroll_month"),
    )

    def to_dto(self):
        from payroll_modules.cycles.models import CycleKind, CycleStatus, PayrollCycle

        return PayrollCycle(
            id=self.id,
            branch_id=self.branch_id,
            kind=CycleKind(self.kind),
            payroll_month=self.payroll_month,
            period_start=self.period_start,
            period_end=self.period_end,
            status=CycleStatus(self.status),
            note=self.note,
            decided_by_id=self.decided_by_id,
            decided_at=self.decided_at,
        )

    def __repr__(self) -> str:
        return f"<PayrollCycleModel {self.branch_id} {self.kind} {self.payroll_month} ({self.status})>"
