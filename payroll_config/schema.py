"""
PayrollConfigVersion schema.

Defines the versioned, date-effective rate and tax schedule that every
payslip is computed against.  YAML seed files are parsed into these types by
the loader; the ORM store persists them append-only; the resolver picks the
one effective on a given date.

All amounts and rates are Decimal.  Defaults are the statutory values the
system ships with.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from payroll_config.lifecycle import ConfigStatus

# ---------------------------------------------------------------------------
# Tax schedule
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxBracket:
    """One progressive bracket.  ``max_income=None`` means unbounded."""

    min_income: Decimal
    max_income: Decimal | None
    rate: Decimal

    @property
    def is_unbounded(self) -> bool:
        return self.max_income is None


DEFAULT_TAX_BRACKETS: tuple[TaxBracket, ...] = (
    TaxBracket(Decimal("0"), Decimal("150000"), Decimal("0")),
    TaxBracket(Decimal("150000"), Decimal("300000"), Decimal("0.05")),
    TaxBracket(Decimal("300000"), Decimal("500000"), Decimal("0.10")),
    TaxBracket(Decimal("500000"), Decimal("750000"), Decimal("0.15")),
    TaxBracket(Decimal("750000"), Decimal("1000000"), Decimal("0.20")),
    TaxBracket(Decimal("1000000"), Decimal("2000000"), Decimal("0.25")),
    TaxBracket(Decimal("2000000"), Decimal("5000000"), Decimal("0.30")),
    TaxBracket(Decimal("5000000"), None, Decimal("0.35")),
)


@dataclass(frozen=True)
class TaxConfig:
    """The subset of a configuration version the tax calculator reads."""

    sso_rate_employee: Decimal = Decimal("0.05")
    sso_wage_cap: Decimal = Decimal("15000")
    apply_standard_expense: bool = True
    standard_expense_rate: Decimal = Decimal("0.50")
    standard_expense_cap: Decimal = Decimal("100000")
    apply_personal_allowance: bool = True
    personal_allowance_amount: Decimal = Decimal("60000")
    brackets: tuple[TaxBracket, ...] = DEFAULT_TAX_BRACKETS
    withholding_tax_rate_service: Decimal = Decimal("0.03")


# ---------------------------------------------------------------------------
# Configuration version
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayrollConfigVersion:
    """
    A date-effective payroll configuration.

    ``version_no`` and ``config_id`` are assigned when the version is
    published to the store; YAML-loaded versions carry the number declared
    in the file.
    """

    start_date: date
    hourly_rate: Decimal = Decimal("0")
    ot_hourly_rate: Decimal = Decimal("0")
    attendance_bonus_no_late: Decimal = Decimal("0")
    attendance_bonus_no_leave: Decimal = Decimal("0")
    housing_allowance: Decimal = Decimal("0")
    water_rate_per_unit: Decimal = Decimal("0")
    electricity_rate_per_unit: Decimal = Decimal("0")
    internet_fee_monthly: Decimal = Decimal("0")
    sso_rate_employee: Decimal = Decimal("0.05")
    sso_rate_employer: Decimal = Decimal("0.05")
    sso_wage_cap: Decimal = Decimal("15000")
    pf_rate_min: Decimal = Decimal("0")
    pf_rate_max: Decimal = Decimal("0.15")
    tax_apply_standard_expense: bool = True
    tax_standard_expense_rate: Decimal = Decimal("0.50")
    tax_standard_expense_cap: Decimal = Decimal("100000")
    tax_apply_personal_allowance: bool = True
    tax_personal_allowance_amount: Decimal = Decimal("60000")
    tax_brackets: tuple[TaxBracket, ...] = DEFAULT_TAX_BRACKETS
    withholding_tax_rate_service: Decimal = Decimal("0.03")
    work_hours_per_day: Decimal = Decimal("8")
    late_rate_per_minute: Decimal = Decimal("5")
    late_grace_minutes: int = 15
    note: str | None = None
    version_no: int | None = None
    status: ConfigStatus = ConfigStatus.DRAFT
    config_id: UUID | None = field(default=None, compare=False)

    @property
    def tax_config(self) -> TaxConfig:
        return TaxConfig(
            sso_rate_employee=self.sso_rate_employee,
            sso_wage_cap=self.sso_wage_cap,
            apply_standard_expense=self.tax_apply_standard_expense,
            standard_expense_rate=self.tax_standard_expense_rate,
            standard_expense_cap=self.tax_standard_expense_cap,
            apply_personal_allowance=self.tax_apply_personal_allowance,
            personal_allowance_amount=self.tax_personal_allowance_amount,
            brackets=self.tax_brackets,
            withholding_tax_rate_service=self.withholding_tax_rate_service,
        )

    def with_status(self, status: ConfigStatus) -> PayrollConfigVersion:
        return replace(self, status=status)
