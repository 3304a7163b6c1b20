"""
Tax Domain Models (``payroll_modules.tax.models``).

Frozen value objects returned by the pure tax helpers.  Every amount is
``Decimal`` quantized to 0.01.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from payroll_modules.employee.models import IncomeClass

_ZERO = Decimal("0.00")


@dataclass(frozen=True)
class WithholdingBreakdown:
    """
    How a period's withholding was derived.

    For service income only ``period_tax`` is meaningful; for employment
    income every intermediate annual figure is recorded.
    """

    income_class: IncomeClass
    periodic_income: Decimal
    periods_per_year: int
    annual_income: Decimal = _ZERO
    standard_expense: Decimal = _ZERO
    sso_deduction: Decimal = _ZERO
    personal_allowance: Decimal = _ZERO
    taxable_income: Decimal = _ZERO
    annual_tax: Decimal = _ZERO
    period_tax: Decimal = _ZERO


@dataclass(frozen=True)
class SSOContribution:
    """Social security contribution for one period."""

    base: Decimal
    employee_amount: Decimal
    employer_amount: Decimal


@dataclass(frozen=True)
class ProvidentFundContribution:
    """Provident fund contribution for one period."""

    employee_amount: Decimal
    employer_amount: Decimal


NO_SSO = SSOContribution(base=_ZERO, employee_amount=_ZERO, employer_amount=_ZERO)
NO_PROVIDENT_FUND = ProvidentFundContribution(employee_amount=_ZERO, employer_amount=_ZERO)
