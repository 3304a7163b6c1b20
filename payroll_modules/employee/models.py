"""
Employee Contribution Profile (``payroll_modules.employee.models``).

Responsibility
--------------
The per-employee flags and rates the settlement core reads when building
and taxing a payslip.  The profile is owned by the employee record outside
this core and is consumed read-only.

Architecture position
---------------------
**Modules layer** -- pure frozen DTOs.  No ORM companion: profiles are
supplied by the caller for each settlement.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID


class IncomeClass(str, Enum):
    """Withholding classification of an employee's income."""

    EMPLOYMENT = "employment"  # Section 40(1): progressive brackets
    SERVICE = "service"  # Section 40(2): flat withholding


@dataclass(frozen=True)
class EmployeeContributionProfile:
    """
    Contribution and allowance settings for one employee.

    ``sso_declared_wage`` overrides the wage used for the social security
    base; ``None`` means the period's salary is used.
    """

    employee_id: UUID
    withhold_tax: bool = True
    income_class: IncomeClass = IncomeClass.EMPLOYMENT
    sso_contribute: bool = True
    sso_declared_wage: Decimal | None = None
    provident_fund_contribute: bool = False
    pf_rate_employee: Decimal = Decimal("0")
    pf_rate_employer: Decimal = Decimal("0")
    allow_housing: bool = False
    allow_water: bool = False
    allow_electricity: bool = False
    allow_internet: bool = False
    allow_doctor_fee: bool = False
    attendance_bonus_eligible: bool = False


def infer_income_class(sso_contribute: bool) -> IncomeClass:
    """
    Classification used by legacy employee records that carry no explicit
    income class: staff outside the social security scheme are paid as
    service providers.
    """
    return IncomeClass.EMPLOYMENT if sso_contribute else IncomeClass.SERVICE
