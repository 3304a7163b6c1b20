"""
payroll_batch.domain.types -- Pure frozen dataclasses for run settlement.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - All DTOs are frozen dataclasses (immutable).
    - A run's status is derived from its item counts: COMPLETED when no
      item failed, FAILED when nothing succeeded or was skipped,
      PARTIALLY_COMPLETED otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from payroll_modules.employee.models import EmployeeContributionProfile
from payroll_modules.payslip.models import Payslip, PayslipApproval, PeriodInputs


class BatchJobStatus(str, Enum):
    """Run-level outcome."""

    COMPLETED = "completed"  # No item failed
    FAILED = "failed"  # Every item failed
    PARTIALLY_COMPLETED = "partially_completed"  # Some items failed


class BatchItemStatus(str, Enum):
    """Per-employee outcome."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # Already settled in this run


class BatchOperation(str, Enum):
    SETTLE = "settle"
    APPROVE = "approve"


@dataclass(frozen=True)
class SettlementRequest:
    """
    One employee to settle.  ``profile`` is None when the employee record
    carries no contribution profile; the item then fails.
    """

    employee_id: UUID
    inputs: PeriodInputs
    profile: EmployeeContributionProfile | None = None


@dataclass(frozen=True)
class BatchItemResult:
    """Result of one employee.  Each runs in its own SAVEPOINT."""

    item_index: int
    item_key: str  # employee_id
    status: BatchItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class BatchRunResult:
    """Continue-and-collect report for one run operation."""

    run_id: UUID
    operation: BatchOperation
    payroll_month: date | None
    status: BatchJobStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    payslips: tuple[Payslip, ...] = ()
    approvals: tuple[PayslipApproval, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    @property
    def failures(self) -> tuple[BatchItemResult, ...]:
        return tuple(r for r in self.item_results if r.status == BatchItemStatus.FAILED)


def derive_job_status(succeeded: int, failed: int, skipped: int) -> BatchJobStatus:
    if failed == 0:
        return BatchJobStatus.COMPLETED
    if succeeded == 0 and skipped == 0:
        return BatchJobStatus.FAILED
    return BatchJobStatus.PARTIALLY_COMPLETED
