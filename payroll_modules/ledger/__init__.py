"""Accumulation ledger: per-employee running totals."""

from payroll_modules.ledger.models import (
    CLAMPED_TYPES,
    YEAR_SCOPED_TYPES,
    AccumType,
    AccumulationAdjustment,
    AccumulationKey,
    AccumulationRecord,
    LedgerApplication,
    LedgerDelta,
)
from payroll_modules.ledger.service import DEFAULT_ADJUSTMENT_ROLES, LedgerService

__all__ = [
    "CLAMPED_TYPES",
    "DEFAULT_ADJUSTMENT_ROLES",
    "YEAR_SCOPED_TYPES",
    "AccumType",
    "AccumulationAdjustment",
    "AccumulationKey",
    "AccumulationRecord",
    "LedgerApplication",
    "LedgerDelta",
    "LedgerService",
]
