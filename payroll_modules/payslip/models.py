"""
Payslip Domain Models (``payroll_modules.payslip.models``).

Responsibility
--------------
Frozen value objects for one employee's settlement in one payroll run:
the editable line items, the derived totals, the raw period inputs the
lines are prepared from, and the payslip lifecycle.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Every edit
produces a new ``PayslipLines``; totals are always re-derived by
``payroll_modules.payslip.calculator.recalculate``.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal``.
* A meter reading of ``None`` means "not read yet" and is never treated
  as zero usage.
* ``net_pay`` exists only on ``PayslipTotals``; it is never a line item.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID

from payroll_kernel.db.types import ZERO, round_money
from payroll_kernel.exceptions import NegativeMeterUsageError

_ZERO = Decimal("0.00")


class PayslipStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"


PAYSLIP_TRANSITIONS: dict[PayslipStatus, frozenset[PayslipStatus]] = {
    PayslipStatus.PENDING: frozenset({PayslipStatus.APPROVED}),
    PayslipStatus.APPROVED: frozenset({PayslipStatus.PAID}),
    PayslipStatus.PAID: frozenset(),
}


class Utility(str, Enum):
    WATER = "water"
    ELECTRICITY = "electricity"


# ---------------------------------------------------------------------------
# Line item building blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NamedAmount:
    """A free-form other-income or other-deduction entry."""

    description: str
    amount: Decimal


@dataclass(frozen=True)
class LoanRepaymentLine:
    """A loan-repayment deduction, usually one due debt installment."""

    amount: Decimal
    description: str = "Loan repayment"
    installment_id: UUID | None = None
    debt_txn_id: UUID | None = None


def meter_charge(
    utility: Utility | str,
    unit_rate: Decimal,
    previous_reading: Decimal | None,
    current_reading: Decimal | None,
) -> Decimal:
    """
    Charge for metered usage: ``(current - previous) x unit_rate``.

    A missing reading on either side yields no charge.

    Raises:
        NegativeMeterUsageError: ``current_reading < previous_reading``.
    """
    if previous_reading is None or current_reading is None:
        return _ZERO
    if current_reading < previous_reading:
        raise NegativeMeterUsageError(Utility(utility).value, previous_reading, current_reading)
    return round_money((current_reading - previous_reading) * unit_rate)


@dataclass(frozen=True)
class UtilityLine:
    """
    A metered utility deduction.

    ``amount`` starts as the metered charge and may be overridden by hand
    afterwards; an override is not re-checked against the readings.
    """

    unit_rate: Decimal = ZERO
    previous_reading: Decimal | None = None
    current_reading: Decimal | None = None
    amount: Decimal = _ZERO

    @classmethod
    def metered(
        cls,
        utility: Utility | str,
        unit_rate: Decimal,
        previous_reading: Decimal | None,
        current_reading: Decimal | None,
    ) -> UtilityLine:
        return cls(
            unit_rate=unit_rate,
            previous_reading=previous_reading,
            current_reading=current_reading,
            amount=meter_charge(utility, unit_rate, previous_reading, current_reading),
        )

    @property
    def usage(self) -> Decimal | None:
        if self.previous_reading is None or self.current_reading is None:
            return None
        return self.current_reading - self.previous_reading

    def with_readings(
        self,
        utility: Utility | str,
        previous_reading: Decimal | None,
        current_reading: Decimal | None,
    ) -> UtilityLine:
        """New readings re-derive the amount, discarding any override."""
        return UtilityLine.metered(utility, self.unit_rate, previous_reading, current_reading)

    def with_amount(self, amount: Decimal) -> UtilityLine:
        return replace(self, amount=amount)


@dataclass(frozen=True)
class TaxAuto:
    """Tax follows the withholding calculation."""

    kind: ClassVar[str] = "auto"


@dataclass(frozen=True)
class TaxManual:
    """Tax pinned to a hand-entered amount until reset to auto."""

    amount: Decimal
    kind: ClassVar[str] = "manual"


TaxMode = TaxAuto | TaxManual


# ---------------------------------------------------------------------------
# Payslip lines
# ---------------------------------------------------------------------------

INCOME_FIELDS = (
    "salary",
    "ot_amount",
    "housing_allowance",
    "bonus",
    "attendance_bonus_no_late",
    "attendance_bonus_no_leave",
    "leave_compensation",
    "doctor_fee",
)

DEDUCTION_FIELDS = (
    "late_deduction",
    "leave_days_deduction",
    "leave_double_deduction",
    "leave_hours_deduction",
    "sso",
    "provident_fund",
    "internet",
    "advance_repayment",
)

INFORMATIONAL_FIELDS = ("sso_employer", "provident_fund_employer")

QUANTITY_FIELDS = ("ot_hours", "late_minutes", "leave_days", "leave_double_days", "leave_hours")


@dataclass(frozen=True)
class PayslipLines:
    """
    Every editable line item of one payslip.

    Quantities (hours, minutes, days) are carried for display and are not
    part of any total.  Employer contributions are informational.
    """

    # Income
    salary: Decimal = _ZERO
    ot_hours: Decimal = ZERO
    ot_amount: Decimal = _ZERO
    housing_allowance: Decimal = _ZERO
    bonus: Decimal = _ZERO
    attendance_bonus_no_late: Decimal = _ZERO
    attendance_bonus_no_leave: Decimal = _ZERO
    leave_compensation: Decimal = _ZERO
    doctor_fee: Decimal = _ZERO
    others_income: tuple[NamedAmount, ...] = ()

    # Attendance deductions
    late_minutes: int = 0
    late_deduction: Decimal = _ZERO
    leave_days: Decimal = ZERO
    leave_days_deduction: Decimal = _ZERO
    leave_double_days: Decimal = ZERO
    leave_double_deduction: Decimal = _ZERO
    leave_hours: Decimal = ZERO
    leave_hours_deduction: Decimal = _ZERO

    # Statutory deductions
    tax: TaxMode = field(default_factory=TaxAuto)
    sso: Decimal = _ZERO
    provident_fund: Decimal = _ZERO

    # Utilities and other deductions
    water: UtilityLine = field(default_factory=UtilityLine)
    electricity: UtilityLine = field(default_factory=UtilityLine)
    internet: Decimal = _ZERO
    others_deduction: tuple[NamedAmount, ...] = ()
    advance_repayment: Decimal = _ZERO
    loan_repayments: tuple[LoanRepaymentLine, ...] = ()

    # Informational
    sso_employer: Decimal = _ZERO
    provident_fund_employer: Decimal = _ZERO

    @property
    def loan_repayment_total(self) -> Decimal:
        return sum((line.amount for line in self.loan_repayments), ZERO)

    def with_changes(self, **changes) -> PayslipLines:
        return replace(self, **changes)

    def with_tax_manual(self, amount: Decimal) -> PayslipLines:
        return replace(self, tax=TaxManual(amount))

    def with_tax_auto(self) -> PayslipLines:
        return replace(self, tax=TaxAuto())

    def utility(self, utility: Utility | str) -> UtilityLine:
        return getattr(self, Utility(utility).value)

    def with_meter_readings(
        self,
        utility: Utility | str,
        previous_reading: Decimal | None,
        current_reading: Decimal | None,
    ) -> PayslipLines:
        name = Utility(utility).value
        line = self.utility(name).with_readings(name, previous_reading, current_reading)
        return replace(self, **{name: line})

    def with_utility_amount(self, utility: Utility | str, amount: Decimal) -> PayslipLines:
        name = Utility(utility).value
        return replace(self, **{name: self.utility(name).with_amount(amount)})


@dataclass(frozen=True)
class PayslipTotals:
    """
    Derived figures.  ``net_pay == income_total - deduction_total`` always.

    ``auto_tax`` is the computed withholding even when the tax line is
    pinned manually; ``tax_amount`` is what the deduction total used.
    """

    income_total: Decimal
    deduction_total: Decimal
    net_pay: Decimal
    auto_tax: Decimal
    tax_amount: Decimal


@dataclass(frozen=True)
class PeriodInputs:
    """
    Raw period figures a payslip is prepared from.

    ``ot_amount`` and ``late_deduction`` are computed from the
    configuration when left as ``None``.  Leave deductions arrive
    pre-computed.
    """

    salary: Decimal
    ot_hours: Decimal = ZERO
    ot_amount: Decimal | None = None
    bonus: Decimal = _ZERO
    leave_compensation: Decimal = _ZERO
    doctor_fee: Decimal = _ZERO
    late_minutes: int = 0
    late_deduction: Decimal | None = None
    leave_days: Decimal = ZERO
    leave_days_deduction: Decimal = _ZERO
    leave_double_days: Decimal = ZERO
    leave_double_deduction: Decimal = _ZERO
    leave_hours: Decimal = ZERO
    leave_hours_deduction: Decimal = _ZERO
    water_previous: Decimal | None = None
    water_current: Decimal | None = None
    electricity_previous: Decimal | None = None
    electricity_current: Decimal | None = None
    others_income: tuple[NamedAmount, ...] = ()
    others_deduction: tuple[NamedAmount, ...] = ()
    advance_repayment: Decimal = _ZERO

    @property
    def has_leave(self) -> bool:
        return (self.leave_days > ZERO or self.leave_double_days > ZERO or self.leave_hours > ZERO)


@dataclass(frozen=True)
class Payslip:
    """One employee's settlement within one payroll run."""

    id: UUID
    run_id: UUID
    employee_id: UUID
    payroll_month: date
    status: PayslipStatus
    lines: PayslipLines
    totals: PayslipTotals
    version: int = 1
    config_version_no: int | None = None
    approved_at: datetime | None = None
    approved_by_id: UUID | None = None
    paid_at: datetime | None = None
    paid_by_id: UUID | None = None

    @property
    def net_pay(self) -> Decimal:
        return self.totals.net_pay

    @property
    def is_editable(self) -> bool:
        return self.status == PayslipStatus.PENDING


@dataclass(frozen=True)
class PayslipApproval:
    """An approved payslip and the ledger applications it produced."""

    payslip: Payslip
    applications: tuple = ()

    @property
    def ledger_deltas(self) -> dict[str, Decimal]:
        return {a.key.label: a.applied_delta for a in self.applications}
