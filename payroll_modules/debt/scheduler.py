"""
Debt Installment Scheduler (``payroll_modules.debt.scheduler``).

Responsibility
--------------
Split a principal into monthly installments and check caller-supplied
schedules.

Architecture position
---------------------
**Modules layer** -- pure functions.  No I/O.  Called by ``DebtService``
before anything is written.

Invariants enforced
-------------------
* Generated installments sum to the principal exactly: every month but the
  last gets ``floor(principal / n, 2)`` and the last absorbs the remainder.
* Every installment amount is > 0 and cent-precise.
* No two installments of one debt share a calendar month.
* Payroll months are first-of-month dates.

Failure modes
-------------
* ``InvalidDebtAmountError`` -- principal <= 0, sub-cent, or too small to
  give every month at least 0.01.
* ``InvalidInstallmentError`` -- a bad amount or month (names the index).
* ``DuplicateInstallmentMonthError`` -- two installments in one month.
* ``InstallmentSumMismatchError`` -- schedule total differs by more than 0.01.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from payroll_kernel.db.types import CENT, ZERO, is_cent_precise, truncate_money
from payroll_kernel.exceptions import (
    DuplicateInstallmentMonthError,
    InstallmentSumMismatchError,
    InvalidDebtAmountError,
    InvalidInstallmentError,
)
from payroll_modules.debt.models import Installment

SUM_TOLERANCE = CENT


def month_start(value: date) -> date:
    return value.replace(day=1)


def add_months(value: date, months: int) -> date:
    """First day of the month ``months`` after ``value``'s month."""
    years, month_index = divmod(value.month - 1 + months, 12)
    return date(value.year + years, month_index + 1, 1)


def validate_principal(principal: Decimal) -> None:
    """
    Raises:
        InvalidDebtAmountError: principal <= 0 or with more than 2 decimals.
    """
    if principal <= ZERO:
        raise InvalidDebtAmountError(principal, "must be greater than zero")
    if not is_cent_precise(principal):
        raise InvalidDebtAmountError(principal, "must have at most two decimal places")


def generate_installments(
    principal: Decimal,
    start_month: date,
    month_count: int,
) -> tuple[Installment, ...]:
    """
    Equal monthly installments starting at ``start_month``.

    Preconditions:
        - ``month_count`` >= 0.
    Postconditions:
        - ``len(result) == month_count``.
        - ``sum(result) == principal`` exactly (when ``month_count`` > 0).
        - Months are consecutive first-of-month dates.

    Example:
        10000.00 over 3 months -> 3333.33, 3333.33, 3333.34
    """
    validate_principal(principal)
    if month_count < 0:
        raise InvalidDebtAmountError(principal, f"month count {month_count} is negative")
    if month_count == 0:
        return ()

    base = truncate_money(principal / month_count)
    if base < CENT:
        raise InvalidDebtAmountError(
            principal, f"too small to spread over {month_count} months",
        )

    first = month_start(start_month)
    last_amount = principal - base * (month_count - 1)
    return tuple(
        Installment(
            amount=base if i < month_count - 1 else last_amount,
            payroll_month=add_months(first, i),
            index=i,
        )
        for i in range(month_count)
    )


def validate_installments(
    principal: Decimal,
    installments: Sequence[Installment],
) -> None:
    """
    Check a schedule against its principal.  An empty schedule is valid.

    Raises:
        InvalidInstallmentError, DuplicateInstallmentMonthError,
        InstallmentSumMismatchError
    """
    if not installments:
        return

    months: dict[tuple[int, int], list[int]] = defaultdict(list)
    for index, installment in enumerate(installments):
        if installment.amount <= ZERO:
            raise InvalidInstallmentError(index, f"amount {installment.amount} must be greater than zero")
        if not is_cent_precise(installment.amount):
            raise InvalidInstallmentError(index, f"amount {installment.amount} has more than two decimals")
        if installment.payroll_month.day != 1:
            raise InvalidInstallmentError(
                index, f"payroll month {installment.payroll_month} is not the first day of a month",
            )
        months[(installment.payroll_month.year, installment.payroll_month.month)].append(index)

    for (year, month), indexes in sorted(months.items()):
        if len(indexes) > 1:
            raise DuplicateInstallmentMonthError(year, month, tuple(indexes))

    total = sum((i.amount for i in installments), ZERO)
    if abs(total - principal) > SUM_TOLERANCE:
        raise InstallmentSumMismatchError(principal, total)
