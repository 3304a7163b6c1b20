"""
payroll_batch -- Run-level settlement over many employees.

Settles and approves a payroll run one employee at a time, each in its own
SAVEPOINT, and reports per-employee results instead of stopping at the
first failure.

Architecture:
    payroll_batch/ is a top-level package.  Nothing in payroll_kernel/,
    payroll_config/ or payroll_modules/ imports from payroll_batch.
"""
