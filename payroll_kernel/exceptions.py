"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payroll errors have to be actionable by callers that never read message
strings: an installment-sum mismatch must tell the UI WHICH total was
expected, a meter error must say WHICH utility and WHICH readings.

Every error therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        validate_installments(principal, installments)
    except InstallmentSumMismatchError as e:
        api_response(code=e.code, expected=e.principal, actual=e.total)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PayrollKernelError:

    PayrollKernelError (base)
    |
    +-- ConfigError
    |   +-- ConfigNotFoundError
    |   +-- ConfigValidationError
    |   |   +-- InvalidTaxBracketsError
    |   +-- InvalidConfigTransitionError
    |
    +-- PayslipError
    |   +-- PayslipNotFoundError
    |   +-- DuplicatePayslipError
    |   +-- PayslipNotEditableError
    |   +-- InvalidPayslipTransitionError
    |   +-- NegativeMeterUsageError
    |   +-- InvalidLineAmountError
    |
    +-- ProfileError
    |   +-- ProfileNotFoundError
    |
    +-- LedgerError
    |   +-- InvalidAccumulationKeyError
    |   +-- UnauthorizedAdjustmentError
    |   +-- NegativeAdjustmentError
    |
    +-- DebtError
    |   +-- DebtTxnNotFoundError
    |   +-- InvalidDebtAmountError
    |   +-- InvalidInstallmentError
    |   +-- InstallmentSumMismatchError
    |   +-- DuplicateInstallmentMonthError
    |   +-- DebtTxnNotPendingError
    |   +-- DebtTxnNotApprovableError
    |   +-- MissingDebtDetailError
    |   +-- InvalidDebtTypeError
    |
    +-- CycleError
    |   +-- CycleNotFoundError
    |   +-- CycleConflictError
    |   +-- InvalidCycleTransitionError
    |   +-- InvalidCyclePeriodError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation errors are raised BEFORE any mutation. A caller that catches
   one can be sure nothing was written.

2. Batch settlement catches PayrollKernelError per employee and records
   ``e.code`` in the run report; the run continues.

3. ConcurrencyError is the retryable category: reload and re-apply.

4. ImmutabilityError and AuditError indicate tampering or a programming
   error and should never be retried.
"""

from datetime import date
from decimal import Decimal


class PayrollKernelError(Exception):
    """
    Base exception for all payroll kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYROLL_KERNEL_ERROR"


# Configuration exceptions


class ConfigError(PayrollKernelError):
    """Base exception for payroll configuration errors."""

    code: str = "CONFIG_ERROR"


class ConfigNotFoundError(ConfigError):
    """No published configuration is effective on the requested date."""

    code: str = "CONFIG_NOT_FOUND"

    def __init__(self, as_of: date):
        self.as_of = as_of
        super().__init__(f"No payroll configuration effective on {as_of.isoformat()}")


class ConfigValidationError(ConfigError):
    """A configuration version failed validation and was not saved."""

    code: str = "CONFIG_VALIDATION_FAILED"

    def __init__(self, errors: list[str] | tuple[str, ...]):
        self.errors = tuple(errors)
        super().__init__(
            f"Configuration invalid ({len(self.errors)} error(s)): "
            + "; ".join(self.errors)
        )


class InvalidTaxBracketsError(ConfigValidationError):
    """Tax brackets have gaps, overlaps, bad bounds or rates outside [0, 1]."""

    code: str = "INVALID_TAX_BRACKETS"


class InvalidConfigTransitionError(ConfigError):
    """Configuration status change not permitted by the lifecycle."""

    code: str = "INVALID_CONFIG_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid configuration transition: {from_status} -> {to_status}"
        )


# Payslip exceptions


class PayslipError(PayrollKernelError):
    """Base exception for payslip errors."""

    code: str = "PAYSLIP_ERROR"


class PayslipNotFoundError(PayslipError):
    """Payslip with given ID was not found."""

    code: str = "PAYSLIP_NOT_FOUND"

    def __init__(self, payslip_id: str):
        self.payslip_id = payslip_id
        super().__init__(f"Payslip not found: {payslip_id}")


class DuplicatePayslipError(PayslipError):
    """A payslip already exists for this employee in this run."""

    code: str = "DUPLICATE_PAYSLIP"

    def __init__(self, run_id: str, employee_id: str):
        self.run_id = run_id
        self.employee_id = employee_id
        super().__init__(
            f"Payslip for employee {employee_id} already exists in run {run_id}"
        )


class PayslipNotEditableError(PayslipError):
    """Line items can only change while the payslip is pending."""

    code: str = "PAYSLIP_NOT_EDITABLE"

    def __init__(self, payslip_id: str, status: str):
        self.payslip_id = payslip_id
        self.status = status
        super().__init__(
            f"Payslip {payslip_id} is {status}; only pending payslips can be edited"
        )


class InvalidPayslipTransitionError(PayslipError):
    """Payslip status change not permitted by the lifecycle."""

    code: str = "INVALID_PAYSLIP_TRANSITION"

    def __init__(self, payslip_id: str, from_status: str, to_status: str):
        self.payslip_id = payslip_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Payslip {payslip_id}: invalid transition {from_status} -> {to_status}"
        )


class NegativeMeterUsageError(PayslipError):
    """Current meter reading is lower than the previous reading."""

    code: str = "NEGATIVE_METER_USAGE"

    def __init__(self, utility: str, previous_reading: Decimal, current_reading: Decimal):
        self.utility = utility
        self.previous_reading = previous_reading
        self.current_reading = current_reading
        super().__init__(
            f"{utility} meter went backwards: previous {previous_reading}, "
            f"current {current_reading}"
        )


class InvalidLineAmountError(PayslipError):
    """A line item or period input has a value outside its allowed range."""

    code: str = "INVALID_LINE_AMOUNT"

    def __init__(self, field: str, value: Decimal, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} = {value}: {reason}")


# Employee profile exceptions


class ProfileError(PayrollKernelError):
    """Base exception for employee contribution profile errors."""

    code: str = "PROFILE_ERROR"


class ProfileNotFoundError(ProfileError):
    """No contribution profile was supplied for the employee."""

    code: str = "PROFILE_NOT_FOUND"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"No contribution profile for employee {employee_id}")


# Accumulation ledger exceptions


class LedgerError(PayrollKernelError):
    """Base exception for accumulation ledger errors."""

    code: str = "LEDGER_ERROR"


class InvalidAccumulationKeyError(LedgerError):
    """Accumulation key is incomplete, e.g. a year-scoped type without a year."""

    code: str = "INVALID_ACCUMULATION_KEY"

    def __init__(self, accum_type: str, year: int | None, reason: str):
        self.accum_type = accum_type
        self.year = year
        self.reason = reason
        super().__init__(f"Invalid accumulation key ({accum_type}, {year}): {reason}")


class UnauthorizedAdjustmentError(LedgerError):
    """Actor's role is not permitted to force-set ledger values."""

    code: str = "UNAUTHORIZED_ADJUSTMENT"

    def __init__(self, actor_id: str, role: str | None):
        self.actor_id = actor_id
        self.role = role
        super().__init__(
            f"Actor {actor_id} with role {role!r} may not adjust accumulations"
        )


class NegativeAdjustmentError(LedgerError):
    """Administrative adjustments must set a non-negative value."""

    code: str = "NEGATIVE_ADJUSTMENT"

    def __init__(self, accum_type: str, value: Decimal):
        self.accum_type = accum_type
        self.value = value
        super().__init__(f"Cannot adjust {accum_type} to negative value {value}")


# Debt exceptions


class DebtError(PayrollKernelError):
    """Base exception for debt and installment errors."""

    code: str = "DEBT_ERROR"


class DebtTxnNotFoundError(DebtError):
    """Debt transaction with given ID was not found."""

    code: str = "DEBT_TXN_NOT_FOUND"

    def __init__(self, debt_txn_id: str):
        self.debt_txn_id = debt_txn_id
        super().__init__(f"Debt transaction not found: {debt_txn_id}")


class InvalidDebtAmountError(DebtError):
    """Principal or repayment amount is not a positive cent amount."""

    code: str = "INVALID_DEBT_AMOUNT"

    def __init__(self, amount: Decimal, reason: str):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid debt amount {amount}: {reason}")


class InvalidInstallmentError(DebtError):
    """A single installment is malformed."""

    code: str = "INVALID_INSTALLMENT"

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Installment #{index}: {reason}")


class InstallmentSumMismatchError(DebtError):
    """Installments do not add up to the principal."""

    code: str = "INSTALLMENT_SUM_MISMATCH"

    def __init__(self, principal: Decimal, total: Decimal):
        self.principal = principal
        self.total = total
        super().__init__(
            f"Installments sum to {total} but principal is {principal}"
        )


class DuplicateInstallmentMonthError(DebtError):
    """Two installments fall in the same payroll month."""

    code: str = "DUPLICATE_INSTALLMENT_MONTH"

    def __init__(self, year: int, month: int, indexes: tuple[int, ...]):
        self.year = year
        self.month = month
        self.indexes = indexes
        super().__init__(
            f"Installments {list(indexes)} share payroll month {year:04d}-{month:02d}"
        )


class DebtTxnNotPendingError(DebtError):
    """Operation requires a pending debt transaction."""

    code: str = "DEBT_TXN_NOT_PENDING"

    def __init__(self, debt_txn_id: str, status: str, operation: str):
        self.debt_txn_id = debt_txn_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} debt transaction {debt_txn_id}: status is {status}"
        )


class DebtTxnNotApprovableError(DebtError):
    """Only loan and other debts go through approval."""

    code: str = "DEBT_TXN_NOT_APPROVABLE"

    def __init__(self, debt_txn_id: str, txn_type: str):
        self.debt_txn_id = debt_txn_id
        self.txn_type = txn_type
        super().__init__(
            f"Debt transaction {debt_txn_id} of type {txn_type} cannot be approved"
        )


class MissingDebtDetailError(DebtError):
    """A field required by the transaction type or payment method is missing."""

    code: str = "MISSING_DEBT_DETAIL"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Missing {field}: {reason}")


class InvalidDebtTypeError(DebtError):
    """Transaction type not accepted by the requested operation."""

    code: str = "INVALID_DEBT_TYPE"

    def __init__(self, txn_type: str, operation: str):
        self.txn_type = txn_type
        self.operation = operation
        super().__init__(f"Debt transaction type {txn_type} not accepted by {operation}")


# Cycle exceptions


class CycleError(PayrollKernelError):
    """Base exception for payroll cycle errors."""

    code: str = "CYCLE_ERROR"


class CycleNotFoundError(CycleError):
    """Cycle with given ID was not found."""

    code: str = "CYCLE_NOT_FOUND"

    def __init__(self, cycle_id: str):
        self.cycle_id = cycle_id
        super().__init__(f"Payroll cycle not found: {cycle_id}")


class CycleConflictError(CycleError):
    """Branch already has a conflicting pending or approved cycle."""

    code: str = "CYCLE_CONFLICT"

    def __init__(self, branch_id: str, kind: str, reason: str):
        self.branch_id = branch_id
        self.kind = kind
        self.reason = reason
        super().__init__(f"Cycle conflict for branch {branch_id} ({kind}): {reason}")


class InvalidCycleTransitionError(CycleError):
    """Cycle status change not permitted by the lifecycle."""

    code: str = "INVALID_CYCLE_TRANSITION"

    def __init__(self, cycle_id: str, from_status: str, to_status: str):
        self.cycle_id = cycle_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cycle {cycle_id}: invalid transition {from_status} -> {to_status}"
        )


class InvalidCyclePeriodError(CycleError):
    """Cycle period ends before it starts."""

    code: str = "INVALID_CYCLE_PERIOD"

    def __init__(self, period_start: date, period_end: date):
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(f"Cycle period {period_start} .. {period_end} ends before it starts")


# Audit exceptions


class AuditError(PayrollKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Concurrency exceptions


class ConcurrencyError(PayrollKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int, actual_version: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )


# Immutability exceptions


class ImmutabilityError(PayrollKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Audit events, published configuration versions, settled payslips and
    the schedules of approved debts are immutable.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
