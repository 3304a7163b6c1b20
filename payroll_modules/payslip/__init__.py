"""
Payslip Module (``payroll_modules.payslip``).

Line items, deterministic totals and the pending -> approved -> paid
lifecycle of one employee's settlement in a payroll run.
"""

from payroll_modules.payslip.calculator import (
    approval_deltas,
    compute_deduction_total,
    compute_income_total,
    late_deduction,
    prepare_lines,
    recalculate,
    validate_lines,
)
from payroll_modules.payslip.models import (
    PAYSLIP_TRANSITIONS,
    LoanRepaymentLine,
    NamedAmount,
    Payslip,
    PayslipApproval,
    PayslipLines,
    PayslipStatus,
    PayslipTotals,
    PeriodInputs,
    TaxAuto,
    TaxManual,
    TaxMode,
    Utility,
    UtilityLine,
    meter_charge,
)
from payroll_modules.payslip.service import PayslipService

__all__ = [
    "PAYSLIP_TRANSITIONS",
    "LoanRepaymentLine",
    "NamedAmount",
    "Payslip",
    "PayslipApproval",
    "PayslipLines",
    "PayslipService",
    "PayslipStatus",
    "PayslipTotals",
    "PeriodInputs",
    "TaxAuto",
    "TaxManual",
    "TaxMode",
    "Utility",
    "UtilityLine",
    "approval_deltas",
    "compute_deduction_total",
    "compute_income_total",
    "late_deduction",
    "meter_charge",
    "prepare_lines",
    "recalculate",
    "validate_lines",
]
