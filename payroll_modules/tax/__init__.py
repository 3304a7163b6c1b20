"""
Tax Module (``payroll_modules.tax``).

Pure withholding, social security and provident fund calculations.
"""

from payroll_modules.tax.helpers import (
    DEFAULT_PERIODS_PER_YEAR,
    calculate_progressive_tax,
    calculate_provident_fund,
    calculate_sso_contribution,
    calculate_sso_deduction,
    compute_withholding_breakdown,
    compute_withholding_tax,
)
from payroll_modules.tax.models import (
    ProvidentFundContribution,
    SSOContribution,
    WithholdingBreakdown,
)

__all__ = [
    "DEFAULT_PERIODS_PER_YEAR",
    "ProvidentFundContribution",
    "SSOContribution",
    "WithholdingBreakdown",
    "calculate_progressive_tax",
    "calculate_provident_fund",
    "calculate_sso_contribution",
    "calculate_sso_deduction",
    "compute_withholding_breakdown",
    "compute_withholding_tax",
]
