"""
Tax Helpers (``payroll_modules.tax.helpers``).

Responsibility
--------------
Pure calculation functions for withholding tax (progressive Section 40(1)
and flat Section 40(2)), social security and provident fund contributions.

Architecture position
---------------------
**Modules layer** -- pure helper functions.  No I/O, no session, no
clock, no database access.  Called by the payslip calculator and from
tests.

Invariants enforced
-------------------
* All numeric inputs and outputs use ``Decimal`` -- NEVER ``float``.
* Results are quantized to 2 decimal places with ROUND_HALF_UP.
* Withholding is never negative; the taxable base is clamped at zero
  after every deduction.
* Brackets are assumed validated (``payroll_config.validator``); the
  calculator does not re-check them.

Failure modes
-------------
* Zero or negative income, or an employee not subject to withholding
  -> ``Decimal("0.00")``.
* Provident fund rate outside the configured bounds -> ``InvalidLineAmountError``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from payroll_config.schema import PayrollConfigVersion, TaxBracket, TaxConfig
from payroll_kernel.db.types import ZERO, round_money
from payroll_kernel.exceptions import InvalidLineAmountError
from payroll_modules.employee.models import EmployeeContributionProfile, IncomeClass
from payroll_modules.tax.models import (
    NO_PROVIDENT_FUND,
    NO_SSO,
    ProvidentFundContribution,
    SSOContribution,
    WithholdingBreakdown,
)

DEFAULT_PERIODS_PER_YEAR = 12


def _sso_employee_exact(
    periodic_income: Decimal,
    contribution: ContributionInputs,
    tax_config: TaxConfig,
) -> Decimal:
    if not contribution.sso_contribute:
        return ZERO
    wage = contribution.sso_declared_wage if contribution.sso_declared_wage is not None else periodic_income
    return max(min(wage, tax_config.sso_wage_cap), ZERO) * tax_config.sso_rate_employee


class ContributionInputs(Protocol):
    """The profile fields withholding depends on."""

    withhold_tax: bool
    income_class: IncomeClass
    sso_contribute: bool
    sso_declared_wage: Decimal | None


def calculate_progressive_tax(
    taxable_income: Decimal,
    brackets: tuple[TaxBracket, ...],
) -> Decimal:
    """
    Sum each bracket's rate over the portion of income that falls in it.

    Preconditions:
        - ``brackets`` passed ``validate_tax_brackets``.
    Postconditions:
        - Returns tax >= 0 quantized to 0.01.
        - Income at or below the first bracket's min yields ``Decimal("0.00")``.
    """
    if taxable_income <= ZERO:
        return round_money(ZERO)

    tax = ZERO
    for bracket in sorted(brackets, key=lambda b: b.min_income):
        if taxable_income <= bracket.min_income:
            break
        upper = taxable_income if bracket.max_income is None else min(taxable_income, bracket.max_income)
        tax += (upper - bracket.min_income) * bracket.rate

    return round_money(tax)


def calculate_sso_deduction(
    periodic_income: Decimal,
    contribution: ContributionInputs,
    tax_config: TaxConfig,
) -> Decimal:
    """
    Employee social security for one period: ``min(wage, cap) x rate``.

    The wage is the declared wage when one is set, otherwise the period's
    income.  Returns zero for non-contributors.
    """
    return round_money(_sso_employee_exact(periodic_income, contribution, tax_config))


def compute_withholding_breakdown(
    periodic_income: Decimal,
    contribution: ContributionInputs,
    tax_config: TaxConfig,
    periods_per_year: int = DEFAULT_PERIODS_PER_YEAR,
) -> WithholdingBreakdown:
    """
    Derive a period's withholding with every intermediate figure.

    Employment income is annualized, reduced by the standard expense
    deduction, the annualized employee social security and the personal
    allowance (each only when enabled, each clamped at zero), taxed through
    the brackets, and divided back to the period.

    Preconditions:
        - ``periods_per_year`` >= 1.
    """
    income_class = contribution.income_class

    if not contribution.withhold_tax or periodic_income <= ZERO:
        return WithholdingBreakdown(
            income_class=income_class,
            periodic_income=periodic_income,
            periods_per_year=periods_per_year,
        )

    if income_class == IncomeClass.SERVICE:
        return WithholdingBreakdown(
            income_class=income_class,
            periodic_income=periodic_income,
            periods_per_year=periods_per_year,
            period_tax=round_money(periodic_income * tax_config.withholding_tax_rate_service),
        )

    periods = Decimal(periods_per_year)
    annual_income = periodic_income * periods
    taxable = annual_income

    standard_expense = ZERO
    if tax_config.apply_standard_expense:
        standard_expense = min(
            annual_income * tax_config.standard_expense_rate,
            tax_config.standard_expense_cap,
        )
        taxable = max(taxable - standard_expense, ZERO)

    sso_deduction = _sso_employee_exact(periodic_income, contribution, tax_config) * periods
    taxable = max(taxable - sso_deduction, ZERO)

    personal_allowance = ZERO
    if tax_config.apply_personal_allowance:
        personal_allowance = tax_config.personal_allowance_amount
        taxable = max(taxable - personal_allowance, ZERO)

    annual_tax = calculate_progressive_tax(taxable, tax_config.brackets)

    return WithholdingBreakdown(
        income_class=income_class,
        periodic_income=periodic_income,
        periods_per_year=periods_per_year,
        annual_income=round_money(annual_income),
        standard_expense=round_money(standard_expense),
        sso_deduction=round_money(sso_deduction),
        personal_allowance=round_money(personal_allowance),
        taxable_income=round_money(taxable),
        annual_tax=annual_tax,
        period_tax=round_money(annual_tax / periods),
    )


def compute_withholding_tax(
    periodic_income: Decimal,
    contribution: ContributionInputs,
    tax_config: TaxConfig,
    periods_per_year: int = DEFAULT_PERIODS_PER_YEAR,
) -> Decimal:
    """
    Withholding tax for one period.

    Postconditions:
        - Returns a non-negative ``Decimal`` quantized to 0.01.
        - Service income is taxed at the flat service rate with no brackets.
    """
    return compute_withholding_breakdown(
        periodic_income, contribution, tax_config, periods_per_year
    ).period_tax


def calculate_sso_contribution(
    profile: EmployeeContributionProfile,
    periodic_income: Decimal,
    config: PayrollConfigVersion,
) -> SSOContribution:
    """Employee and employer social security for one period."""
    if not profile.sso_contribute:
        return NO_SSO
    wage = profile.sso_declared_wage if profile.sso_declared_wage is not None else periodic_income
    base = round_money(max(min(wage, config.sso_wage_cap), ZERO))
    return SSOContribution(
        base=base,
        employee_amount=round_money(base * config.sso_rate_employee),
        employer_amount=round_money(base * config.sso_rate_employer),
    )


def calculate_provident_fund(
    profile: EmployeeContributionProfile,
    salary: Decimal,
    config: PayrollConfigVersion,
) -> ProvidentFundContribution:
    """
    Employee and employer provident fund for one period.

    Raises:
        InvalidLineAmountError: a profile rate lies outside
            ``[pf_rate_min, pf_rate_max]``.
    """
    if not profile.provident_fund_contribute:
        return NO_PROVIDENT_FUND

    for field_name in ("pf_rate_employee", "pf_rate_employer"):
        rate = getattr(profile, field_name)
        if not (config.pf_rate_min <= rate <= config.pf_rate_max):
            raise InvalidLineAmountError(
                field_name,
                rate,
                f"outside configured bounds [{config.pf_rate_min}, {config.pf_rate_max}]",
            )

    base = max(salary, ZERO)
    return ProvidentFundContribution(
        employee_amount=round_money(base * profile.pf_rate_employee),
        employer_amount=round_money(base * profile.pf_rate_employer),
    )
