"""
Tests for installment schedule generation and validation.
"""

from datetime import date
from decimal import Decimal

import pytest

from payroll_kernel.exceptions import (
    DuplicateInstallmentMonthError,
    InstallmentSumMismatchError,
    InvalidDebtAmountError,
    InvalidInstallmentError,
)
from payroll_modules.debt.models import Installment
from payroll_modules.debt.scheduler import (
    add_months,
    generate_installments,
    month_start,
    validate_installments,
    validate_principal,
)


class TestMonthArithmetic:

    def test_month_start(self):
        assert month_start(date(2025, 3, 17)) == date(2025, 3, 1)

    def test_add_months_within_year(self):
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 1)

    def test_add_months_across_year(self):
        assert add_months(date(2025, 11, 1), 3) == date(2026, 2, 1)

    def test_add_zero_months(self):
        assert add_months(date(2025, 6, 15), 0) == date(2025, 6, 1)


class TestGenerateInstallments:

    def test_remainder_on_last_installment(self):
        schedule = generate_installments(Decimal("10000.00"), date(2025, 1, 1), 3)

        assert [i.amount for i in schedule] == [
            Decimal("3333.33"), Decimal("3333.33"), Decimal("3333.34"),
        ]
        assert [i.payroll_month for i in schedule] == [
            date(2025, 1, 1), date(2025, 2, 1), date(2025, 3, 1),
        ]
        assert [i.index for i in schedule] == [0, 1, 2]

    def test_even_split(self):
        schedule = generate_installments(Decimal("1200.00"), date(2025, 12, 10), 4)

        assert {i.amount for i in schedule} == {Decimal("300.00")}
        assert schedule[0].payroll_month == date(2025, 12, 1)
        assert schedule[-1].payroll_month == date(2026, 3, 1)

    def test_sum_equals_principal(self):
        principal = Decimal("9999.99")
        schedule = generate_installments(principal, date(2025, 1, 1), 7)
        assert sum(i.amount for i in schedule) == principal

    def test_single_installment(self):
        schedule = generate_installments(Decimal("500.00"), date(2025, 5, 1), 1)
        assert schedule == (Installment(Decimal("500.00"), date(2025, 5, 1), 0),)

    def test_zero_months_yields_no_schedule(self):
        assert generate_installments(Decimal("500.00"), date(2025, 5, 1), 0) == ()

    def test_negative_month_count_rejected(self):
        with pytest.raises(InvalidDebtAmountError):
            generate_installments(Decimal("500.00"), date(2025, 5, 1), -1)

    def test_principal_too_small_to_spread(self):
        with pytest.raises(InvalidDebtAmountError):
            generate_installments(Decimal("0.05"), date(2025, 5, 1), 6)


class TestValidatePrincipal:

    @pytest.mark.parametrize("amount", ["0", "-100", "0.00"])
    def test_non_positive_rejected(self, amount):
        with pytest.raises(InvalidDebtAmountError):
            validate_principal(Decimal(amount))

    def test_sub_cent_rejected(self):
        with pytest.raises(InvalidDebtAmountError):
            validate_principal(Decimal("100.005"))

    def test_valid(self):
        validate_principal(Decimal("100.05"))


class TestValidateInstallments:

    def test_empty_schedule_is_valid(self):
        validate_installments(Decimal("1000"), [])

    def test_valid_schedule(self):
        validate_installments(
            Decimal("1000.00"),
            [
                Installment(Decimal("600.00"), date(2025, 1, 1)),
                Installment(Decimal("400.00"), date(2025, 3, 1)),
            ],
        )

    def test_duplicate_month_rejected(self):
        with pytest.raises(DuplicateInstallmentMonthError) as exc_info:
            validate_installments(
                Decimal("1000.00"),
                [
                    Installment(Decimal("500.00"), date(2025, 1, 1)),
                    Installment(Decimal("500.00"), date(2025, 1, 1)),
                ],
            )
        assert (exc_info.value.year, exc_info.value.month) == (2025, 1)
        assert exc_info.value.indexes == (0, 1)

    def test_sum_mismatch_rejected(self):
        with pytest.raises(InstallmentSumMismatchError) as exc_info:
            validate_installments(
                Decimal("1000.00"),
                [
                    Installment(Decimal("500.00"), date(2025, 1, 1)),
                    Installment(Decimal("400.00"), date(2025, 2, 1)),
                ],
            )
        assert exc_info.value.total == Decimal("900.00")

    def test_one_cent_tolerance(self):
        validate_installments(
            Decimal("1000.00"),
            [
                Installment(Decimal("500.00"), date(2025, 1, 1)),
                Installment(Decimal("499.99"), date(2025, 2, 1)),
            ],
        )

    def test_zero_installment_rejected(self):
        with pytest.raises(InvalidInstallmentError) as exc_info:
            validate_installments(
                Decimal("1000.00"),
                [
                    Installment(Decimal("1000.00"), date(2025, 1, 1)),
                    Installment(Decimal("0"), date(2025, 2, 1)),
                ],
            )
        assert exc_info.value.index == 1

    def test_sub_cent_installment_rejected(self):
        with pytest.raises(InvalidInstallmentError):
            validate_installments(
                Decimal("1000.00"),
                [Installment(Decimal("1000.001"), date(2025, 1, 1))],
            )

    def test_mid_month_date_rejected(self):
        with pytest.raises(InvalidInstallmentError):
            validate_installments(
                Decimal("1000.00"),
                [Installment(Decimal("1000.00"), date(2025, 1, 15))],
            )
