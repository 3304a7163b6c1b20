"""
Tests for the debt service.

Validates:
- Plan creation with generated and explicit schedules
- Approval feeding the outstanding-loan balance
- Pending-only soft deletion
- Repayments outside payroll, clamped at the outstanding balance
- Installments due in a payroll month
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_kernel.exceptions import (
    DebtTxnNotApprovableError,
    DebtTxnNotFoundError,
    DebtTxnNotPendingError,
    DuplicateInstallmentMonthError,
    InstallmentSumMismatchError,
    InvalidDebtAmountError,
    InvalidDebtTypeError,
    MissingDebtDetailError,
)
from payroll_modules.debt.models import (
    DebtTxnStatus,
    DebtTxnType,
    Installment,
    PaymentMethod,
)
from payroll_modules.ledger.models import AccumType


@pytest.fixture
def approved_loan(debt_service, employee_id, test_actor_id):
    """10,000 lent over January to March 2025 and approved."""
    loan = debt_service.create_plan(
        employee_id,
        Decimal("10000.00"),
        date(2025, 1, 1),
        test_actor_id,
        month_count=3,
        reason="Housing deposit",
    )
    return debt_service.approve(loan.id, test_actor_id)


class TestCreatePlan:

    def test_generated_schedule(self, debt_service, employee_id, test_actor_id):
        loan = debt_service.create_plan(
            employee_id, Decimal("10000.00"), date(2025, 1, 5), test_actor_id, month_count=3,
        )

        assert loan.status == DebtTxnStatus.PENDING
        assert loan.txn_type == DebtTxnType.LOAN
        assert [i.amount for i in loan.installments] == [
            Decimal("3333.33"), Decimal("3333.33"), Decimal("3333.34"),
        ]
        assert loan.installments[0].payroll_month == date(2025, 1, 1)
        assert loan.scheduled_total == Decimal("10000.00")

    def test_start_month_overrides_txn_date(self, debt_service, employee_id, test_actor_id):
        loan = debt_service.create_plan(
            employee_id, Decimal("600.00"), date(2025, 1, 5), test_actor_id,
            start_month=date(2025, 4, 1), month_count=2,
        )
        assert [i.payroll_month for i in loan.installments] == [date(2025, 4, 1), date(2025, 5, 1)]

    def test_explicit_schedule(self, debt_service, employee_id, test_actor_id):
        loan = debt_service.create_plan(
            employee_id, Decimal("1000.00"), date(2025, 1, 1), test_actor_id,
            installments=[
                Installment(Decimal("700.00"), date(2025, 2, 1)),
                Installment(Decimal("300.00"), date(2025, 6, 1)),
            ],
        )
        assert [i.index for i in loan.installments] == [0, 1]
        assert loan.installments[1].amount == Decimal("300.00")

    def test_no_schedule(self, debt_service, employee_id, test_actor_id):
        loan = debt_service.create_plan(employee_id, Decimal("250.00"), date(2025, 1, 1), test_actor_id)
        assert loan.installments == ()

    def test_duplicate_month_rejected_before_write(self, debt_service, employee_id, test_actor_id):
        with pytest.raises(DuplicateInstallmentMonthError):
            debt_service.create_plan(
                employee_id, Decimal("1000.00"), date(2025, 1, 1), test_actor_id,
                installments=[
                    Installment(Decimal("500.00"), date(2025, 1, 1)),
                    Installment(Decimal("500.00"), date(2025, 1, 1)),
                ],
            )
        assert debt_service.list_for_employee(employee_id) == ()

    def test_sum_mismatch_rejected(self, debt_service, employee_id, test_actor_id):
        with pytest.raises(InstallmentSumMismatchError):
            debt_service.create_plan(
                employee_id, Decimal("1000.00"), date(2025, 1, 1), test_actor_id,
                installments=[Installment(Decimal("990.00"), date(2025, 1, 1))],
            )

    def test_non_positive_amount_rejected(self, debt_service, employee_id, test_actor_id):
        with pytest.raises(InvalidDebtAmountError):
            debt_service.create_plan(employee_id, Decimal("0"), date(2025, 1, 1), test_actor_id)

    def test_other_debt_requires_description(self, debt_service, employee_id, test_actor_id):
        with pytest.raises(MissingDebtDetailError):
            debt_service.create_plan(
                employee_id, Decimal("300.00"), date(2025, 1, 1), test_actor_id,
                txn_type=DebtTxnType.OTHER, other_desc="  ",
            )

    def test_other_debt(self, debt_service, employee_id, test_actor_id):
        debt = debt_service.create_plan(
            employee_id, Decimal("300.00"), date(2025, 1, 1), test_actor_id,
            txn_type=DebtTxnType.OTHER, other_desc="Uniform", month_count=1,
        )
        assert debt.txn_type == DebtTxnType.OTHER
        assert debt.other_desc == "Uniform"

    def test_repayment_type_rejected(self, debt_service, employee_id, test_actor_id):
        with pytest.raises(InvalidDebtTypeError):
            debt_service.create_plan(
                employee_id, Decimal("300.00"), date(2025, 1, 1), test_actor_id,
                txn_type=DebtTxnType.REPAYMENT,
            )

    def test_creation_audited(self, debt_service, auditor_service, employee_id, test_actor_id):
        loan = debt_service.create_plan(
            employee_id, Decimal("900.00"), date(2025, 1, 1), test_actor_id, month_count=3,
        )
        trace = auditor_service.get_trace("DebtTxn", loan.id)
        assert trace.actions == ("debt_created",)
        assert trace.entries[0].payload["installment_count"] == 3


class TestApprove:

    def test_approval_adds_to_outstanding(self, approved_loan, ledger_service, employee_id, test_actor_id):
        assert approved_loan.status == DebtTxnStatus.APPROVED
        assert approved_loan.approved_by_id == test_actor_id
        assert approved_loan.approved_at is not None
        assert ledger_service.current_total(employee_id, AccumType.LOAN_OUTSTANDING) == Decimal("10000.00")

    def test_second_loan_accumulates(self, approved_loan, debt_service, ledger_service, employee_id, test_actor_id):
        loan = debt_service.create_plan(employee_id, Decimal("500.00"), date(2025, 2, 1), test_actor_id)
        debt_service.approve(loan.id, test_actor_id)
        assert ledger_service.current_total(employee_id, AccumType.LOAN_OUTSTANDING) == Decimal("10500.00")

    def test_double_approval_rejected(self, approved_loan, debt_service, test_actor_id):
        with pytest.raises(DebtTxnNotPendingError) as exc_info:
            debt_service.approve(approved_loan.id, test_actor_id)
        assert exc_info.value.operation == "approve"

    def test_repayment_not_approvable(self, debt_service, employee_id, test_actor_id):
        result = debt_service.record_repayment(
            employee_id, Decimal("10.00"), date(2025, 1, 1), PaymentMethod.CASH, test_actor_id,
        )
        with pytest.raises(DebtTxnNotApprovableError):
            debt_service.approve(result.repayment.id, test_actor_id)

    def test_unknown_debt(self, debt_service, test_actor_id):
        with pytest.raises(DebtTxnNotFoundError):
            debt_service.approve(uuid4(), test_actor_id)


class TestDelete:

    def test_pending_debt_soft_deleted(self, debt_service, employee_id, test_actor_id):
        loan = debt_service.create_plan(employee_id, Decimal("500.00"), date(2025, 1, 1), test_actor_id)

        deleted = debt_service.delete(loan.id, test_actor_id)

        assert deleted.is_deleted
        assert debt_service.list_for_employee(employee_id) == ()
        assert len(debt_service.list_for_employee(employee_id, include_deleted=True)) == 1
        with pytest.raises(DebtTxnNotFoundError):
            debt_service.get(loan.id)

    def test_approved_debt_not_deletable(self, approved_loan, debt_service, test_actor_id):
        with pytest.raises(DebtTxnNotPendingError) as exc_info:
            debt_service.delete(approved_loan.id, test_actor_id)
        assert exc_info.value.operation == "delete"

    def test_deleted_debt_cannot_be_approved(self, debt_service, employee_id, test_actor_id):
        loan = debt_service.create_plan(employee_id, Decimal("500.00"), date(2025, 1, 1), test_actor_id)
        debt_service.delete(loan.id, test_actor_id)
        with pytest.raises(DebtTxnNotFoundError):
            debt_service.approve(loan.id, test_actor_id)


class TestRecordRepayment:

    def test_cash_repayment_reduces_outstanding(self, approved_loan, debt_service, employee_id, test_actor_id):
        result = debt_service.record_repayment(
            employee_id, Decimal("4000.00"), date(2025, 2, 10), PaymentMethod.CASH, test_actor_id,
        )

        assert result.previous_outstanding == Decimal("10000.00")
        assert result.new_outstanding == Decimal("6000.00")
        assert result.applied_amount == Decimal("4000.00")
        assert result.excess_amount == Decimal("0")
        assert result.repayment.txn_type == DebtTxnType.REPAYMENT
        assert result.repayment.status == DebtTxnStatus.APPROVED

    def test_overpayment_clamped(self, approved_loan, debt_service, ledger_service, employee_id, test_actor_id, captured_logs):
        result = debt_service.record_repayment(
            employee_id, Decimal("12000.00"), date(2025, 2, 10), PaymentMethod.CASH, test_actor_id,
        )

        assert result.new_outstanding == Decimal("0")
        assert result.applied_amount == Decimal("10000.00")
        assert result.excess_amount == Decimal("2000.00")
        assert result.repayment.excess_amount == Decimal("2000.00")
        assert ledger_service.current_total(employee_id, AccumType.LOAN_OUTSTANDING) == Decimal("0")
        assert any(r["message"] == "repayment_exceeds_outstanding" for r in captured_logs())

    def test_schedule_untouched_by_repayment(self, approved_loan, debt_service, employee_id, test_actor_id):
        debt_service.record_repayment(
            employee_id, Decimal("3333.33"), date(2025, 1, 20), PaymentMethod.CASH, test_actor_id,
        )
        assert len(debt_service.installments_due(employee_id, date(2025, 1, 1))) == 1

    def test_bank_transfer_requires_account(self, debt_service, employee_id, test_actor_id):
        with pytest.raises(MissingDebtDetailError) as exc_info:
            debt_service.record_repayment(
                employee_id, Decimal("100.00"), date(2025, 1, 1), PaymentMethod.BANK_TRANSFER,
                test_actor_id, transfer_at=datetime(2025, 1, 1, 9, tzinfo=timezone.utc),
            )
        assert exc_info.value.field == "bank_account_no"

    def test_bank_transfer_requires_time(self, debt_service, employee_id, test_actor_id):
        with pytest.raises(MissingDebtDetailError) as exc_info:
            debt_service.record_repayment(
                employee_id, Decimal("100.00"), date(2025, 1, 1), PaymentMethod.BANK_TRANSFER,
                test_actor_id, bank_account_no="123-4-56789-0",
            )
        assert exc_info.value.field == "transfer_at"

    def test_bank_transfer(self, approved_loan, debt_service, employee_id, test_actor_id):
        result = debt_service.record_repayment(
            employee_id, Decimal("100.00"), date(2025, 1, 1), PaymentMethod.BANK_TRANSFER,
            test_actor_id,
            bank_account_no="123-4-56789-0",
            transfer_at=datetime(2025, 1, 1, 9, tzinfo=timezone.utc),
            parent_id=approved_loan.id,
        )
        assert result.repayment.payment_method == PaymentMethod.BANK_TRANSFER
        assert result.repayment.parent_id == approved_loan.id

    def test_unknown_parent_rejected(self, debt_service, employee_id, test_actor_id):
        with pytest.raises(DebtTxnNotFoundError):
            debt_service.record_repayment(
                employee_id, Decimal("100.00"), date(2025, 1, 1), PaymentMethod.CASH,
                test_actor_id, parent_id=uuid4(),
            )

    def test_repayment_audited(self, debt_service, auditor_service, employee_id, test_actor_id):
        result = debt_service.record_repayment(
            employee_id, Decimal("50.00"), date(2025, 1, 1), PaymentMethod.CASH, test_actor_id,
        )
        trace = auditor_service.get_trace("DebtTxn", result.repayment.id)
        assert trace.actions == ("debt_repayment_recorded",)


class TestInstallmentsDue:

    def test_due_in_month(self, approved_loan, debt_service, employee_id):
        due = debt_service.installments_due(employee_id, date(2025, 3, 15))

        assert len(due) == 1
        assert due[0].amount == Decimal("3333.34")
        assert due[0].debt_txn_id == approved_loan.id
        assert due[0].description == "Loan installment 3/3"

    def test_nothing_due_outside_schedule(self, approved_loan, debt_service, employee_id):
        assert debt_service.installments_due(employee_id, date(2025, 4, 1)) == ()

    def test_pending_debts_not_due(self, debt_service, employee_id, test_actor_id):
        debt_service.create_plan(
            employee_id, Decimal("600.00"), date(2025, 1, 1), test_actor_id, month_count=2,
        )
        assert debt_service.installments_due(employee_id, date(2025, 1, 1)) == ()

    def test_other_debt_description(self, debt_service, employee_id, test_actor_id):
        debt = debt_service.create_plan(
            employee_id, Decimal("300.00"), date(2025, 1, 1), test_actor_id,
            txn_type=DebtTxnType.OTHER, other_desc="Uniform", month_count=2,
        )
        debt_service.approve(debt.id, test_actor_id)

        due = debt_service.installments_due(employee_id, date(2025, 2, 1))
        assert due[0].description == "Uniform installment 2/2"
        assert due[0].txn_type == DebtTxnType.OTHER
