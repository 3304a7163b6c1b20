"""
payroll_batch.domain -- Pure types for run settlement.

ZERO I/O.  All types are frozen dataclasses.
"""

from payroll_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJobStatus,
    BatchOperation,
    BatchRunResult,
    SettlementRequest,
    derive_job_status,
)

__all__ = [
    "BatchItemResult",
    "BatchItemStatus",
    "BatchJobStatus",
    "BatchOperation",
    "BatchRunResult",
    "SettlementRequest",
    "derive_job_status",
]
