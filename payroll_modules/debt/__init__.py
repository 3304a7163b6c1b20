"""Employee debts: installment schedules, approvals and repayments."""

from payroll_modules.debt.models import (
    APPROVABLE_TYPES,
    DEBT_TRANSITIONS,
    DebtTxn,
    DebtTxnStatus,
    DebtTxnType,
    DueInstallment,
    Installment,
    PaymentMethod,
    RepaymentResult,
)
from payroll_modules.debt.scheduler import (
    add_months,
    generate_installments,
    month_start,
    validate_installments,
    validate_principal,
)
from payroll_modules.debt.service import DebtService

__all__ = [
    "APPROVABLE_TYPES",
    "DEBT_TRANSITIONS",
    "DebtService",
    "DebtTxn",
    "DebtTxnStatus",
    "DebtTxnType",
    "DueInstallment",
    "Installment",
    "PaymentMethod",
    "RepaymentResult",
    "add_months",
    "generate_installments",
    "month_start",
    "validate_installments",
    "validate_principal",
]
