"""Employee contribution profile consumed by settlement."""

from payroll_modules.employee.models import (
    EmployeeContributionProfile,
    IncomeClass,
    infer_income_class,
)

__all__ = ["EmployeeContributionProfile", "IncomeClass", "infer_income_class"]
