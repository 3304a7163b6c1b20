"""
Payslip Calculator (``payroll_modules.payslip.calculator``).

Responsibility
--------------
Derive payslip totals from line items, prepare initial lines from raw
period inputs, and turn an approved payslip into accumulation deltas.

Architecture position
---------------------
**Modules layer** -- pure functions.  No I/O.  ``PayslipService`` calls
``recalculate`` after every edit and before every save; there is no
observer graph.

Invariants enforced
-------------------
* ``net_pay == income_total - deduction_total`` for every result.
* An auto tax line always equals ``compute_withholding_tax`` on the
  current income total; a manual line keeps its amount until reset.
* Line amounts, named entries and quantities are never negative.
* Recalculation is deterministic: the same lines, profile and
  configuration give the same totals.

Failure modes
-------------
* ``InvalidLineAmountError`` -- a negative line amount or quantity.
* ``NegativeMeterUsageError`` -- a utility line whose current meter
  reading is below the previous one, whether built by ``prepare_lines``
  or edited afterwards.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from payroll_config.schema import PayrollConfigVersion
from payroll_kernel.db.types import ZERO, round_money
from payroll_kernel.exceptions import InvalidLineAmountError, NegativeMeterUsageError
from payroll_modules.debt.models import DueInstallment
from payroll_modules.employee.models import EmployeeContributionProfile
from payroll_modules.ledger.models import AccumType, LedgerDelta
from payroll_modules.payslip.models import (
    DEDUCTION_FIELDS,
    INCOME_FIELDS,
    INFORMATIONAL_FIELDS,
    QUANTITY_FIELDS,
    LoanRepaymentLine,
    PayslipLines,
    PayslipTotals,
    PeriodInputs,
    TaxAuto,
    TaxManual,
    Utility,
    UtilityLine,
)
from payroll_modules.tax.helpers import (
    DEFAULT_PERIODS_PER_YEAR,
    calculate_provident_fund,
    calculate_sso_contribution,
    compute_withholding_tax,
)


def validate_lines(lines: PayslipLines) -> None:
    """
    Raises:
        InvalidLineAmountError: naming the first negative field found.
        NegativeMeterUsageError: a utility meter went backwards.
    """
    for name in INCOME_FIELDS + DEDUCTION_FIELDS + INFORMATIONAL_FIELDS + QUANTITY_FIELDS:
        value = getattr(lines, name)
        if value < 0:
            raise InvalidLineAmountError(name, value, "must not be negative")

    for utility in Utility:
        line: UtilityLine = getattr(lines, utility.value)
        if line.amount < ZERO:
            raise InvalidLineAmountError(utility.value, line.amount, "must not be negative")
        previous, current = line.previous_reading, line.current_reading
        if previous is not None and current is not None and current < previous:
            raise NegativeMeterUsageError(utility.value, previous, current)

    if isinstance(lines.tax, TaxManual) and lines.tax.amount < ZERO:
        raise InvalidLineAmountError("tax", lines.tax.amount, "must not be negative")

    for group in ("others_income", "others_deduction", "loan_repayments"):
        for index, entry in enumerate(getattr(lines, group)):
            if entry.amount < ZERO:
                raise InvalidLineAmountError(f"{group}[{index}]", entry.amount, "must not be negative")


def compute_income_total(lines: PayslipLines) -> Decimal:
    total = sum((getattr(lines, name) for name in INCOME_FIELDS), ZERO)
    total += sum((entry.amount for entry in lines.others_income), ZERO)
    return round_money(total)


def compute_deduction_total(lines: PayslipLines, tax_amount: Decimal) -> Decimal:
    total = sum((getattr(lines, name) for name in DEDUCTION_FIELDS), ZERO)
    total += lines.water.amount + lines.electricity.amount
    total += sum((entry.amount for entry in lines.others_deduction), ZERO)
    total += lines.loan_repayment_total
    total += tax_amount
    return round_money(total)


def recalculate(
    lines: PayslipLines,
    profile: EmployeeContributionProfile,
    config: PayrollConfigVersion,
    periods_per_year: int = DEFAULT_PERIODS_PER_YEAR,
) -> PayslipTotals:
    """
    Derive every total from the current lines.

    Postconditions:
        - ``net_pay == income_total - deduction_total``.
        - ``auto_tax`` is the withholding on ``income_total``.
        - ``tax_amount`` is ``auto_tax`` in auto mode, the pinned amount
          in manual mode.

    Raises:
        InvalidLineAmountError: a line is negative.
    """
    validate_lines(lines)

    income_total = compute_income_total(lines)
    auto_tax = compute_withholding_tax(income_total, profile, config.tax_config, periods_per_year)
    tax_amount = round_money(lines.tax.amount) if isinstance(lines.tax, TaxManual) else auto_tax
    deduction_total = compute_deduction_total(lines, tax_amount)

    return PayslipTotals(
        income_total=income_total,
        deduction_total=deduction_total,
        net_pay=income_total - deduction_total,
        auto_tax=auto_tax,
        tax_amount=tax_amount,
    )


def late_deduction(late_minutes: int, config: PayrollConfigVersion) -> Decimal:
    """Penalty for minutes late beyond the grace allowance."""
    chargeable = max(late_minutes - config.late_grace_minutes, 0)
    return round_money(Decimal(chargeable) * config.late_rate_per_minute)


def prepare_lines(
    inputs: PeriodInputs,
    profile: EmployeeContributionProfile,
    config: PayrollConfigVersion,
    due_installments: Iterable[DueInstallment] = (),
) -> PayslipLines:
    """
    Build a payslip's initial lines from raw period inputs.

    Allowances and utility charges appear only where the profile allows
    them.  Social security and provident fund come from the tax helpers.
    Each due installment becomes one loan-repayment line.

    Raises:
        NegativeMeterUsageError: a meter went backwards.
        InvalidLineAmountError: a provident fund rate is out of bounds.
    """
    ot_amount = inputs.ot_amount
    if ot_amount is None:
        ot_amount = round_money(inputs.ot_hours * config.ot_hourly_rate)

    late = inputs.late_deduction
    if late is None:
        late = late_deduction(inputs.late_minutes, config)

    bonus_no_late = ZERO
    bonus_no_leave = ZERO
    if profile.attendance_bonus_eligible:
        if inputs.late_minutes == 0:
            bonus_no_late = config.attendance_bonus_no_late
        if not inputs.has_leave:
            bonus_no_leave = config.attendance_bonus_no_leave

    water = UtilityLine()
    if profile.allow_water:
        water = UtilityLine.metered(
            Utility.WATER, config.water_rate_per_unit, inputs.water_previous, inputs.water_current,
        )
    electricity = UtilityLine()
    if profile.allow_electricity:
        electricity = UtilityLine.metered(
            Utility.ELECTRICITY,
            config.electricity_rate_per_unit,
            inputs.electricity_previous,
            inputs.electricity_current,
        )

    sso = calculate_sso_contribution(profile, inputs.salary, config)
    provident_fund = calculate_provident_fund(profile, inputs.salary, config)

    loan_repayments = tuple(
        LoanRepaymentLine(
            amount=due.amount,
            description=due.description,
            installment_id=due.installment_id,
            debt_txn_id=due.debt_txn_id,
        )
        for due in due_installments
    )

    return PayslipLines(
        salary=round_money(inputs.salary),
        ot_hours=inputs.ot_hours,
        ot_amount=round_money(ot_amount),
        housing_allowance=round_money(config.housing_allowance if profile.allow_housing else ZERO),
        bonus=round_money(inputs.bonus),
        attendance_bonus_no_late=round_money(bonus_no_late),
        attendance_bonus_no_leave=round_money(bonus_no_leave),
        leave_compensation=round_money(inputs.leave_compensation),
        doctor_fee=round_money(inputs.doctor_fee if profile.allow_doctor_fee else ZERO),
        others_income=inputs.others_income,
        late_minutes=inputs.late_minutes,
        late_deduction=round_money(late),
        leave_days=inputs.leave_days,
        leave_days_deduction=round_money(inputs.leave_days_deduction),
        leave_double_days=inputs.leave_double_days,
        leave_double_deduction=round_money(inputs.leave_double_deduction),
        leave_hours=inputs.leave_hours,
        leave_hours_deduction=round_money(inputs.leave_hours_deduction),
        tax=TaxAuto(),
        sso=sso.employee_amount,
        provident_fund=provident_fund.employee_amount,
        water=water,
        electricity=electricity,
        internet=round_money(config.internet_fee_monthly if profile.allow_internet else ZERO),
        others_deduction=inputs.others_deduction,
        advance_repayment=round_money(inputs.advance_repayment),
        loan_repayments=loan_repayments,
        sso_employer=sso.employer_amount,
        provident_fund_employer=provident_fund.employer_amount,
    )


def approval_deltas(
    lines: PayslipLines,
    totals: PayslipTotals,
    year: int,
) -> tuple[LedgerDelta, ...]:
    """
    Accumulation deltas an approved payslip contributes.  Zero deltas are
    omitted.  Loan repayments reduce the outstanding balance.
    """
    candidates = (
        LedgerDelta(AccumType.INCOME, totals.income_total, year),
        LedgerDelta(AccumType.TAX, totals.tax_amount, year),
        LedgerDelta(AccumType.SSO, lines.sso, year),
        LedgerDelta(AccumType.SSO_EMPLOYER, lines.sso_employer, year),
        LedgerDelta(AccumType.PROVIDENT_FUND, lines.provident_fund),
        LedgerDelta(AccumType.PROVIDENT_FUND_EMPLOYER, lines.provident_fund_employer),
        LedgerDelta(AccumType.LOAN_OUTSTANDING, -lines.loan_repayment_total),
    )
    return tuple(d for d in candidates if d.delta != ZERO)
