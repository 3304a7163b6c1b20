"""
Tests for ORM-level immutability of settled records.

Validates:
- Audit events can never be updated or deleted
- Approved payslips are frozen except for the payment transition
- Approved debts and their schedules are frozen
- Stored configuration versions cannot be deleted
- Records still in draft states remain editable
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from payroll_config.orm import PayrollConfigVersionModel
from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_kernel.models.audit_event import AuditAction, AuditEvent
from payroll_modules.debt.orm import DebtInstallmentModel, DebtTxnModel
from payroll_modules.payslip.models import PayslipLines
from payroll_modules.payslip.orm import PayslipModel


@pytest.fixture
def stored_payslip(payslip_service, employee_id, profile, payroll_config, test_actor_id):
    return payslip_service.create(
        run_id=uuid4(),
        employee_id=employee_id,
        payroll_month=date(2025, 1, 1),
        lines=PayslipLines(salary=Decimal("34500.00"), sso=Decimal("750.00")),
        profile=profile,
        config=payroll_config,
        actor_id=test_actor_id,
    )


@pytest.fixture
def approved_payslip(payslip_service, stored_payslip, test_actor_id):
    return payslip_service.approve(stored_payslip.id, test_actor_id).payslip


@pytest.fixture
def pending_loan(debt_service, employee_id, test_actor_id):
    return debt_service.create_plan(
        employee_id, Decimal("900.00"), date(2025, 1, 1), test_actor_id, month_count=3,
    )


@pytest.fixture
def approved_loan(debt_service, pending_loan, test_actor_id):
    return debt_service.approve(pending_loan.id, test_actor_id)


class TestAuditEvents:

    @pytest.fixture
    def event(self, session, auditor_service, test_actor_id):
        auditor_service.record_cycle_event(uuid4(), AuditAction.CYCLE_CREATED, test_actor_id)
        return session.execute(select(AuditEvent)).scalars().one()

    def test_update_blocked(self, session, event):
        event.action = AuditAction.CYCLE_APPROVED.value

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "AuditEvent"

    def test_delete_blocked(self, session, event):
        session.delete(event)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestPayslips:

    def test_pending_payslip_editable(self, session, stored_payslip):
        model = session.get(PayslipModel, stored_payslip.id)
        model.bonus = Decimal("100.00")
        session.flush()

    def test_approved_payslip_frozen(self, session, approved_payslip):
        model = session.get(PayslipModel, approved_payslip.id)
        model.net_pay = Decimal("1.00")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "net_pay" in exc_info.value.reason

    def test_approved_payslip_cannot_revert(self, session, approved_payslip):
        model = session.get(PayslipModel, approved_payslip.id)
        model.status = "pending"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_paid_payslip_frozen(self, session, payslip_service, approved_payslip, test_actor_id):
        payslip_service.mark_paid(approved_payslip.id, test_actor_id)
        model = session.get(PayslipModel, approved_payslip.id)
        model.paid_by_id = uuid4()

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_approved_payslip_cannot_be_deleted(self, session, approved_payslip):
        session.delete(session.get(PayslipModel, approved_payslip.id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_logged(self, session, approved_payslip, captured_logs):
        model = session.get(PayslipModel, approved_payslip.id)
        model.salary = Decimal("1.00")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        records = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert records[0]["entity_type"] == "Payslip"
        assert records[0]["field"] == "salary"


class TestDebts:

    def test_pending_debt_editable(self, session, pending_loan):
        model = session.get(DebtTxnModel, pending_loan.id)
        model.reason = "Corrected"
        model.installments[0].amount = Decimal("300.00")
        session.flush()

    def test_approved_debt_frozen(self, session, approved_loan):
        model = session.get(DebtTxnModel, approved_loan.id)
        model.amount = Decimal("1.00")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_approved_schedule_frozen(self, session, approved_loan):
        installment = session.execute(
            select(DebtInstallmentModel).where(DebtInstallmentModel.debt_txn_id == approved_loan.id)
            .order_by(DebtInstallmentModel.installment_no)
        ).scalars().first()
        installment.payroll_month = date(2026, 1, 1)

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "DebtInstallment"

    def test_approved_installment_cannot_be_deleted(self, session, approved_loan):
        installment = session.execute(
            select(DebtInstallmentModel).where(DebtInstallmentModel.debt_txn_id == approved_loan.id)
        ).scalars().first()
        session.delete(installment)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestConfigVersions:

    def test_delete_blocked(self, session, published_config):
        session.delete(session.get(PayrollConfigVersionModel, published_config.config_id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_superseded_cannot_be_republished(self, session, config_resolver, payroll_config, test_actor_id):
        old = config_resolver.publish(payroll_config, test_actor_id)
        config_resolver.publish(payroll_config, test_actor_id)
        model = session.get(PayrollConfigVersionModel, old.config_id)
        model.status = "published"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
