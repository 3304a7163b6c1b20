"""
Debt Domain Models (``payroll_modules.debt.models``).

Responsibility
--------------
Frozen value objects for employee loans, other debts, repayments and the
installment schedules that feed payslip loan-repayment lines.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal``.
* ``DEBT_TRANSITIONS`` allows pending -> approved only; there is no way back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_kernel.db.types import ZERO


class DebtTxnType(str, Enum):
    LOAN = "loan"
    OTHER = "other"
    REPAYMENT = "repayment"


class DebtTxnStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"


DEBT_TRANSITIONS: dict[DebtTxnStatus, frozenset[DebtTxnStatus]] = {
    DebtTxnStatus.PENDING: frozenset({DebtTxnStatus.APPROVED}),
    DebtTxnStatus.APPROVED: frozenset(),
}

APPROVABLE_TYPES = frozenset({DebtTxnType.LOAN, DebtTxnType.OTHER})


@dataclass(frozen=True)
class Installment:
    """One scheduled deduction.  ``payroll_month`` is always a first-of-month date."""

    amount: Decimal
    payroll_month: date
    index: int = 0
    id: UUID | None = None


@dataclass(frozen=True)
class DebtTxn:
    """A loan, other debt or repayment belonging to one employee."""

    id: UUID
    employee_id: UUID
    txn_type: DebtTxnType
    amount: Decimal
    txn_date: date
    status: DebtTxnStatus
    reason: str | None = None
    other_desc: str | None = None
    installments: tuple[Installment, ...] = ()
    payment_method: PaymentMethod | None = None
    bank_account_no: str | None = None
    transfer_at: datetime | None = None
    applied_amount: Decimal | None = None
    excess_amount: Decimal | None = None
    parent_id: UUID | None = None
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def scheduled_total(self) -> Decimal:
        return sum((i.amount for i in self.installments), ZERO)


@dataclass(frozen=True)
class DueInstallment:
    """An installment of an approved debt that falls in a payroll month."""

    installment_id: UUID
    debt_txn_id: UUID
    employee_id: UUID
    txn_type: DebtTxnType
    amount: Decimal
    payroll_month: date
    description: str


@dataclass(frozen=True)
class RepaymentResult:
    """A recorded repayment and its effect on the outstanding balance."""

    repayment: DebtTxn
    previous_outstanding: Decimal
    new_outstanding: Decimal
    applied_amount: Decimal
    excess_amount: Decimal
