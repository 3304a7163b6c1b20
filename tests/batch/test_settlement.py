"""
Tests for payroll run settlement.

Validates:
- One pending payslip per employee, prepared from period inputs
- Continue-and-collect: a failing employee rolls back only their own writes
- Employees already settled in the run are skipped
- Run approval feeds the accumulation ledger
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_batch.domain.types import (
    BatchItemStatus,
    BatchJobStatus,
    BatchOperation,
    SettlementRequest,
    derive_job_status,
)
from payroll_kernel.exceptions import (
    ConfigNotFoundError,
    NegativeMeterUsageError,
    ProfileNotFoundError,
)
from payroll_modules.employee.models import EmployeeContributionProfile, IncomeClass
from payroll_modules.ledger.models import AccumType
from payroll_modules.payslip.models import PayslipStatus, PeriodInputs

JANUARY = date(2025, 1, 1)


def _request(employee_id=None, salary="34500.00", **profile_overrides) -> SettlementRequest:
    employee_id = employee_id or uuid4()
    return SettlementRequest(
        employee_id=employee_id,
        inputs=PeriodInputs(salary=Decimal(salary)),
        profile=EmployeeContributionProfile(employee_id=employee_id, **profile_overrides),
    )


class TestDeriveJobStatus:

    @pytest.mark.parametrize(
        "succeeded, failed, skipped, expected",
        [
            (3, 0, 0, BatchJobStatus.COMPLETED),
            (0, 0, 2, BatchJobStatus.COMPLETED),
            (0, 0, 0, BatchJobStatus.COMPLETED),
            (0, 3, 0, BatchJobStatus.FAILED),
            (2, 1, 0, BatchJobStatus.PARTIALLY_COMPLETED),
            (0, 1, 1, BatchJobStatus.PARTIALLY_COMPLETED),
        ],
    )
    def test_status(self, succeeded, failed, skipped, expected):
        assert derive_job_status(succeeded, failed, skipped) == expected


class TestSettleRun:

    def test_all_succeed(self, settler, published_config, payslip_service, test_actor_id):
        run_id = uuid4()
        requests = [_request(), _request(salary="10000.00")]

        result = settler.settle_run(run_id, date(2025, 1, 20), requests, test_actor_id)

        assert result.operation == BatchOperation.SETTLE
        assert result.payroll_month == JANUARY
        assert result.status == BatchJobStatus.COMPLETED
        assert (result.succeeded, result.failed, result.skipped) == (2, 0, 0)
        assert [p.net_pay for p in result.payslips] == [Decimal("33354.17"), Decimal("9500.00")]
        assert all(p.status == PayslipStatus.PENDING for p in result.payslips)
        assert all(p.config_version_no == published_config.version_no for p in result.payslips)
        assert len(payslip_service.list_for_run(run_id)) == 2

    def test_item_results_in_request_order(self, settler, published_config, test_actor_id):
        requests = [_request(), _request()]

        result = settler.settle_run(uuid4(), JANUARY, requests, test_actor_id)

        assert [r.item_key for r in result.item_results] == [str(r.employee_id) for r in requests]
        assert [r.item_index for r in result.item_results] == [0, 1]
        assert result.item_results[0].result_data["net_pay"] == "33354.17"

    def test_missing_profile_fails_item(self, settler, published_config, test_actor_id):
        good = _request()
        missing = SettlementRequest(employee_id=uuid4(), inputs=PeriodInputs(salary=Decimal("20000")))

        result = settler.settle_run(uuid4(), JANUARY, [good, missing], test_actor_id)

        assert result.status == BatchJobStatus.PARTIALLY_COMPLETED
        assert len(result.failures) == 1
        assert result.failures[0].error_code == ProfileNotFoundError.code
        assert len(result.payslips) == 1

    def test_failed_item_writes_nothing(self, settler, published_config, payslip_service, test_actor_id):
        run_id = uuid4()
        employee_id = uuid4()
        broken = SettlementRequest(
            employee_id=employee_id,
            inputs=PeriodInputs(
                salary=Decimal("20000"),
                water_previous=Decimal("100"),
                water_current=Decimal("80"),
            ),
            profile=EmployeeContributionProfile(employee_id=employee_id, allow_water=True),
        )

        result = settler.settle_run(run_id, JANUARY, [broken], test_actor_id)

        assert result.status == BatchJobStatus.FAILED
        assert result.item_results[0].error_code == NegativeMeterUsageError.code
        assert payslip_service.list_for_run(run_id) == ()

    def test_unexpected_error_recorded(self, settler, published_config, test_actor_id, captured_logs):
        employee_id = uuid4()
        request = SettlementRequest(
            employee_id=employee_id,
            inputs=PeriodInputs(salary=None),
            profile=EmployeeContributionProfile(employee_id=employee_id),
        )

        result = settler.settle_run(uuid4(), JANUARY, [request, _request()], test_actor_id)

        assert result.item_results[0].error_code == "UNHANDLED_EXCEPTION"
        assert result.item_results[1].status == BatchItemStatus.SUCCEEDED
        records = [r for r in captured_logs() if r["message"] == "batch_item_unhandled_exception"]
        assert records[0]["item_key"] == str(employee_id)
        assert "traceback" in records[0]

    def test_already_settled_employee_skipped(self, settler, published_config, test_actor_id):
        run_id = uuid4()
        request = _request()
        settler.settle_run(run_id, JANUARY, [request], test_actor_id)

        result = settler.settle_run(run_id, JANUARY, [request, _request()], test_actor_id)

        assert result.item_results[0].status == BatchItemStatus.SKIPPED
        assert result.status == BatchJobStatus.COMPLETED
        assert (result.succeeded, result.skipped) == (1, 1)

    def test_no_configuration(self, settler, test_actor_id):
        result = settler.settle_run(uuid4(), JANUARY, [_request(), _request()], test_actor_id)

        assert result.status == BatchJobStatus.FAILED
        assert {r.error_code for r in result.item_results} == {ConfigNotFoundError.code}

    def test_due_installments_deducted(
        self, settler, published_config, debt_service, employee_id, profile, test_actor_id
    ):
        loan = debt_service.create_plan(
            employee_id, Decimal("10000.00"), JANUARY, test_actor_id, month_count=3,
        )
        debt_service.approve(loan.id, test_actor_id)
        request = SettlementRequest(employee_id, PeriodInputs(salary=Decimal("34500.00")), profile)

        result = settler.settle_run(uuid4(), JANUARY, [request], test_actor_id)

        payslip = result.payslips[0]
        assert [line.amount for line in payslip.lines.loan_repayments] == [Decimal("3333.33")]
        assert payslip.lines.loan_repayments[0].debt_txn_id == loan.id
        assert payslip.net_pay == Decimal("30020.84")

    def test_employees_isolated_by_profile(self, settler, published_config, test_actor_id):
        service = _request(salary="20000.00", sso_contribute=False, income_class=IncomeClass.SERVICE)

        result = settler.settle_run(uuid4(), JANUARY, [service], test_actor_id)

        payslip = result.payslips[0]
        assert payslip.lines.sso == Decimal("0.00")
        assert payslip.totals.tax_amount == Decimal("600.00")


class TestApproveRun:

    def test_approves_pending_payslips(self, settler, published_config, ledger_service, test_actor_id):
        run_id = uuid4()
        requests = [_request(), _request()]
        settler.settle_run(run_id, JANUARY, requests, test_actor_id)

        result = settler.approve_run(run_id, test_actor_id)

        assert result.operation == BatchOperation.APPROVE
        assert result.status == BatchJobStatus.COMPLETED
        assert result.payroll_month == JANUARY
        assert len(result.approvals) == 2
        assert all(a.payslip.status == PayslipStatus.APPROVED for a in result.approvals)
        for request in requests:
            assert ledger_service.current_total(
                request.employee_id, AccumType.INCOME, 2025
            ) == Decimal("34500.00")
            assert ledger_service.current_total(
                request.employee_id, AccumType.TAX, 2025
            ) == Decimal("395.83")

    def test_second_approval_is_empty(self, settler, published_config, test_actor_id):
        run_id = uuid4()
        settler.settle_run(run_id, JANUARY, [_request()], test_actor_id)
        settler.approve_run(run_id, test_actor_id)

        result = settler.approve_run(run_id, test_actor_id)

        assert result.total_items == 0
        assert result.payroll_month is None
        assert result.status == BatchJobStatus.COMPLETED

    def test_only_this_run_is_approved(self, settler, published_config, payslip_service, test_actor_id):
        run_a, run_b = uuid4(), uuid4()
        settler.settle_run(run_a, JANUARY, [_request()], test_actor_id)
        settler.settle_run(run_b, JANUARY, [_request()], test_actor_id)

        settler.approve_run(run_a, test_actor_id)

        assert [p.status for p in payslip_service.list_for_run(run_b)] == [PayslipStatus.PENDING]

    def test_result_data_carries_deltas(self, settler, published_config, test_actor_id):
        run_id = uuid4()
        settler.settle_run(run_id, JANUARY, [_request()], test_actor_id)

        result = settler.approve_run(run_id, test_actor_id)

        deltas = result.item_results[0].result_data["ledger_deltas"]
        assert Decimal(deltas["income:2025"]) == Decimal("34500")
        assert Decimal(deltas["sso:2025"]) == Decimal("750")

    def test_run_logged_with_context(self, settler, published_config, test_actor_id, captured_logs):
        run_id = uuid4()
        settler.settle_run(run_id, JANUARY, [_request()], test_actor_id)

        records = [r for r in captured_logs() if r["message"] == "payroll_run_settled"]
        assert records[0]["run_id"] == str(run_id)
        assert records[0]["status"] == "completed"


def test_config_resolved_once_per_month(settler, config_resolver, published_config, test_actor_id, captured_logs):
    settler.settle_run(uuid4(), JANUARY, [_request(), _request(), _request()], test_actor_id)

    traces = [r for r in captured_logs() if r["message"] == "PAYROLL_CONFIG_TRACE"]
    assert len(traces) == 1
    assert published_config == config_resolver.resolve(JANUARY)


def test_reused_settler_sees_newly_published_version(settler, config_resolver, payroll_config, published_config, test_actor_id):
    first = settler.settle_run(uuid4(), JANUARY, [_request()], test_actor_id)
    config_resolver.publish(replace(payroll_config, sso_rate_employee=Decimal("0.04")), test_actor_id)

    second = settler.settle_run(uuid4(), JANUARY, [_request()], test_actor_id)

    assert first.payslips[0].config_version_no == published_config.version_no
    assert second.payslips[0].config_version_no == published_config.version_no + 1
    assert second.payslips[0].lines.sso == Decimal("600.00")
