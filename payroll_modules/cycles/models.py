"""
Payroll Cycle Models (``payroll_modules.cycles.models``).

Branch-scoped bonus and salary-raise cycles.  Pure frozen DTOs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID


class CycleKind(str, Enum):
    BONUS = "bonus"
    SALARY_RAISE = "salary_raise"


class CycleStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


CYCLE_TRANSITIONS: dict[CycleStatus, frozenset[CycleStatus]] = {
    CycleStatus.PENDING: frozenset({CycleStatus.APPROVED, CycleStatus.REJECTED}),
    CycleStatus.APPROVED: frozenset(),
    CycleStatus.REJECTED: frozenset(),
}


@dataclass(frozen=True)
class PayrollCycle:
    """A bonus or salary-raise round for one branch."""

    id: UUID
    branch_id: UUID
    kind: CycleKind
    payroll_month: date
    period_start: date
    period_end: date
    status: CycleStatus
    note: str | None = None
    decided_by_id: UUID | None = None
    decided_at: datetime | None = None
