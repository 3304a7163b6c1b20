"""
End-to-end integration tests: a quarter of payroll for one employee.

Covers:
- Loan approval, monthly settlement and approval, payment
- Year-to-date totals accumulating across payroll runs
- A repayment outside payroll followed by scheduled deductions that
  exceed what is still owed
- An intact audit chain at the end of it all
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_batch.domain.types import BatchJobStatus, SettlementRequest
from payroll_modules.debt.models import PaymentMethod
from payroll_modules.ledger.models import AccumType
from payroll_modules.payslip.models import PayslipStatus, PeriodInputs

MONTHS = (date(2025, 1, 1), date(2025, 2, 1), date(2025, 3, 1))


@pytest.fixture
def loan(debt_service, employee_id, test_actor_id):
    plan = debt_service.create_plan(
        employee_id, Decimal("10000.00"), date(2024, 12, 20), test_actor_id,
        start_month=MONTHS[0], month_count=3, reason="Motorbike",
    )
    return debt_service.approve(plan.id, test_actor_id)


@pytest.fixture
def run_month(settler, payslip_service, employee_id, profile, test_actor_id):
    """Settle, approve and pay one employee for one month."""

    def _run(month: date):
        run_id = uuid4()
        request = SettlementRequest(employee_id, PeriodInputs(salary=Decimal("34500.00")), profile)
        settled = settler.settle_run(run_id, month, [request], test_actor_id)
        assert settled.status == BatchJobStatus.COMPLETED
        approved = settler.approve_run(run_id, test_actor_id)
        assert approved.status == BatchJobStatus.COMPLETED
        paid = payslip_service.mark_paid(settled.payslips[0].id, test_actor_id)
        return approved.approvals[0], paid

    return _run


def test_loan_repaid_through_payroll(
    published_config, loan, run_month, ledger_service, employee_id, auditor_service
):
    outstanding = []
    for month in MONTHS:
        approval, paid = run_month(month)
        assert paid.status == PayslipStatus.PAID
        outstanding.append(ledger_service.current_total(employee_id, AccumType.LOAN_OUTSTANDING))

    assert outstanding == [Decimal("6666.67"), Decimal("3333.34"), Decimal("0")]
    assert ledger_service.current_total(employee_id, AccumType.INCOME, 2025) == Decimal("103500.00")
    assert ledger_service.current_total(employee_id, AccumType.TAX, 2025) == Decimal("1187.49")
    assert ledger_service.current_total(employee_id, AccumType.SSO, 2025) == Decimal("2250.00")
    assert auditor_service.validate_chain()


def test_early_repayment_then_scheduled_deductions(
    published_config, loan, run_month, debt_service, ledger_service, employee_id, test_actor_id,
    captured_logs,
):
    run_month(MONTHS[0])
    repayment = debt_service.record_repayment(
        employee_id, Decimal("5000.00"), date(2025, 2, 10), PaymentMethod.CASH, test_actor_id,
        parent_id=loan.id,
    )
    assert repayment.new_outstanding == Decimal("1666.67")

    february, _ = run_month(MONTHS[1])

    assert february.payslip.lines.loan_repayment_total == Decimal("3333.33")
    loan_application = next(
        a for a in february.applications if a.key.accum_type == AccumType.LOAN_OUTSTANDING
    )
    assert loan_application.applied_delta == Decimal("-1666.67")
    assert loan_application.excess == Decimal("1666.66")
    assert ledger_service.current_total(employee_id, AccumType.LOAN_OUTSTANDING) == Decimal("0")
    assert any(
        r["message"] == "payslip_loan_repayment_exceeds_outstanding" for r in captured_logs()
    )


def test_year_boundary_starts_new_totals(
    published_config, run_month, ledger_service, employee_id
):
    run_month(date(2024, 12, 1))
    run_month(date(2025, 1, 1))

    assert ledger_service.current_total(employee_id, AccumType.INCOME, 2024) == Decimal("34500.00")
    assert ledger_service.current_total(employee_id, AccumType.INCOME, 2025) == Decimal("34500.00")
