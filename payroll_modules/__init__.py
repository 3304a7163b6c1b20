"""
Payroll Modules.

Settlement logic layered over the Payroll Kernel.  Each module contains
frozen DTOs (the nouns), pure calculation helpers, ORM persistence
companions and a service facade that flushes inside the caller's
transaction.

Modules:
- employee: contribution profile consumed read-only
- tax: progressive and flat withholding, SSO and provident fund
- payslip: line items, recalculation, persistence and approval
- ledger: per-employee accumulation totals
- debt: loan installment scheduling and repayments
- cycles: branch-scoped bonus and salary-raise cycles
"""
