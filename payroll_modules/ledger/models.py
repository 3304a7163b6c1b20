"""
Accumulation Ledger Models (``payroll_modules.ledger.models``).

Responsibility
--------------
Value objects for per-employee running totals: the accumulation type
vocabulary, the normalized record key, and the result of applying a delta.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Consumed by
``LedgerService`` and by the payslip calculator when it derives approval
deltas.

Invariants enforced
-------------------
* Year-scoped types always carry a year; lifetime types never do.
* ``loan_outstanding`` is the only type clamped at zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_kernel.db.types import ZERO
from payroll_kernel.exceptions import InvalidAccumulationKeyError


class AccumType(str, Enum):
    """Kinds of running total kept per employee."""

    TAX = "tax"
    SSO = "sso"
    SSO_EMPLOYER = "sso_employer"
    INCOME = "income"
    PROVIDENT_FUND = "provident_fund"
    PROVIDENT_FUND_EMPLOYER = "provident_fund_employer"
    LOAN_OUTSTANDING = "loan_outstanding"

    @property
    def is_year_scoped(self) -> bool:
        return self in YEAR_SCOPED_TYPES


YEAR_SCOPED_TYPES = frozenset({
    AccumType.TAX,
    AccumType.SSO,
    AccumType.SSO_EMPLOYER,
    AccumType.INCOME,
})

CLAMPED_TYPES = frozenset({AccumType.LOAN_OUTSTANDING})


@dataclass(frozen=True)
class AccumulationKey:
    """Identity of one running total."""

    employee_id: UUID
    accum_type: AccumType
    year: int | None = None

    @classmethod
    def of(cls, employee_id: UUID, accum_type: AccumType | str, year: int | None = None) -> AccumulationKey:
        """
        Build a normalized key.

        Lifetime types drop any year given.  Year-scoped types require one.

        Raises:
            InvalidAccumulationKeyError: unknown type, missing or invalid year.
        """
        try:
            accum_type = AccumType(accum_type)
        except ValueError:
            raise InvalidAccumulationKeyError(str(accum_type), year, "unknown accumulation type") from None

        if not accum_type.is_year_scoped:
            return cls(employee_id=employee_id, accum_type=accum_type, year=None)
        if year is None:
            raise InvalidAccumulationKeyError(accum_type.value, year, "year is required")
        if year < 1:
            raise InvalidAccumulationKeyError(accum_type.value, year, "year must be positive")
        return cls(employee_id=employee_id, accum_type=accum_type, year=year)

    @property
    def label(self) -> str:
        """``tax:2025`` for year-scoped totals, ``provident_fund`` for lifetime ones."""
        if self.year is None:
            return self.accum_type.value
        return f"{self.accum_type.value}:{self.year}"


@dataclass(frozen=True)
class LedgerDelta:
    """A requested change to one of an employee's totals."""

    accum_type: AccumType
    delta: Decimal
    year: int | None = None


@dataclass(frozen=True)
class LedgerApplication:
    """
    Outcome of applying one delta.

    ``applied_delta`` differs from ``requested_delta`` only when a clamped
    total would have gone below zero; the difference is ``excess``.
    """

    key: AccumulationKey
    previous_total: Decimal
    requested_delta: Decimal
    applied_delta: Decimal
    new_total: Decimal
    excess: Decimal = ZERO

    @property
    def was_clamped(self) -> bool:
        return self.excess != ZERO


@dataclass(frozen=True)
class AccumulationRecord:
    """Current state of one running total."""

    id: UUID
    key: AccumulationKey
    total: Decimal
    adjusted_by_id: UUID | None = None
    adjusted_at: datetime | None = None


@dataclass(frozen=True)
class AccumulationAdjustment:
    """One administrative force-set, kept as history."""

    id: UUID
    record_id: UUID
    previous_total: Decimal
    new_total: Decimal
    actor_id: UUID
    actor_role: str
    adjusted_at: datetime
    reason: str | None = None
