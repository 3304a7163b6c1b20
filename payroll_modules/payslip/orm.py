"""
Payslip ORM Persistence Model (``payroll_modules.payslip.orm``).

Responsibility:
    Persist one payslip per (run, employee): every line item, the tax mode,
    the three totals, the lifecycle status and the optimistic version
    counter.

Architecture position:
    **Modules layer** -- persistence companion to
    ``payroll_modules.payslip.models``.  Inherits from ``TrackedBase``.

Invariants enforced:
    - (run_id, employee_id) is unique.
    - ``status`` is pending / approved / paid; ``tax_mode`` is auto / manual.
    - Meter readings are nullable: NULL means no reading, never zero.
    - Named entries are JSON lists whose amounts are strings, so no float
      ever touches money.
    - Approved and paid rows are frozen except approved -> paid (ORM
      immutability listeners).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Date, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase

_UTILITIES = ("water", "electricity")


class PayslipModel(TrackedBase):
    """
    ORM model for ``Payslip``.

    Guarantees:
        - Every amount is Decimal (Numeric(38,9)).
        - ``write_lines`` / ``to_dto`` round-trip ``PayslipLines`` exactly.
    """

    __tablename__ = "payroll_payslips"

    run_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    payroll_month: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    config_version_no: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Income
    salary: Mapped[Decimal] = mapped_column(nullable=False)
    ot_hours: Mapped[Decimal] = mapped_column(nullable=False)
    ot_amount: Mapped[Decimal] = mapped_column(nullable=False)
    housing_allowance: Mapped[Decimal] = mapped_column(nullable=False)
    bonus: Mapped[Decimal] = mapped_column(nullable=False)
    attendance_bonus_no_late: Mapped[Decimal] = mapped_column(nullable=False)
    attendance_bonus_no_leave: Mapped[Decimal] = mapped_column(nullable=False)
    leave_compensation: Mapped[Decimal] = mapped_column(nullable=False)
    doctor_fee: Mapped[Decimal] = mapped_column(nullable=False)
    others_income: Mapped[list] = mapped_column(JSON, nullable=False)

    # Attendance deductions
    late_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    late_deduction: Mapped[Decimal] = mapped_column(nullable=False)
    leave_days: Mapped[Decimal] = mapped_column(nullable=False)
    leave_days_deduction: Mapped[Decimal] = mapped_column(nullable=False)
    leave_double_days: Mapped[Decimal] = mapped_column(nullable=False)
    leave_double_deduction: Mapped[Decimal] = mapped_column(nullable=False)
    leave_hours: Mapped[Decimal] = mapped_column(nullable=False)
    leave_hours_deduction: Mapped[Decimal] = mapped_column(nullable=False)

    # Statutory
    tax_mode: Mapped[str] = mapped_column(String(10), nullable=False)
    tax_manual_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    tax_auto_amount: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    sso: Mapped[Decimal] = mapped_column(nullable=False)
    sso_employer: Mapped[Decimal] = mapped_column(nullable=False)
    provident_fund: Mapped[Decimal] = mapped_column(nullable=False)
    provident_fund_employer: Mapped[Decimal] = mapped_column(nullable=False)

    # Utilities
    water_unit_rate: Mapped[Decimal] = mapped_column(nullable=False)
    water_previous_reading: Mapped[Decimal | None] = mapped_column(nullable=True)
    water_current_reading: Mapped[Decimal | None] = mapped_column(nullable=True)
    water_amount: Mapped[Decimal] = mapped_column(nullable=False)
    electricity_unit_rate: Mapped[Decimal] = mapped_column(nullable=False)
    electricity_previous_reading: Mapped[Decimal | None] = mapped_column(nullable=True)
    electricity_current_reading: Mapped[Decimal | None] = mapped_column(nullable=True)
    electricity_amount: Mapped[Decimal] = mapped_column(nullable=False)
    internet: Mapped[Decimal] = mapped_column(nullable=False)

    # Other deductions
    others_deduction: Mapped[list] = mapped_column(JSON, nullable=False)
    advance_repayment: Mapped[Decimal] = mapped_column(nullable=False)
    loan_repayments: Mapped[list] = mapped_column(JSON, nullable=False)

    # Totals
    income_total: Mapped[Decimal] = mapped_column(nullable=False)
    deduction_total: Mapped[Decimal] = mapped_column(nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)

    # Lifecycle
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    ledger_snapshot: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("run_id", "employee_id", name="uq_payroll_payslip_run_employee"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'paid')",
            name="ck_payroll_payslip_status",
        ),
        CheckConstraint(
            "tax_mode IN ('auto', 'manual')",
            name="ck_payroll_payslip_tax_mode",
        ),
        Index("idx_payroll_payslip_run", "run_id", "status"),
        Index("idx_payroll_payslip_employee_month", "employee_id", "payroll_month"),
    )

    _LINE_FIELDS = (
        "salary",
        "ot_hours",
        "ot_amount",
        "housing_allowance",
        "bonus",
        "attendance_bonus_no_late",
        "attendance_bonus_no_leave",
        "leave_compensation",
        "doctor_fee",
        "late_minutes",
        "late_deduction",
        "leave_days",
        "leave_days_deduction",
        "leave_double_days",
        "leave_double_deduction",
        "leave_hours",
        "leave_hours_deduction",
        "sso",
        "sso_employer",
        "provident_fund",
        "provident_fund_employer",
        "internet",
        "advance_repayment",
    )

    def write_lines(self, lines, totals) -> None:
        """Copy every line item and total onto the row."""
        from payroll_modules.payslip.models import TaxManual

        for name in self._LINE_FIELDS:
            setattr(self, name, getattr(lines, name))

        for utility in _UTILITIES:
            line = getattr(lines, utility)
            setattr(self, f"{utility}_unit_rate", line.unit_rate)
            setattr(self, f"{utility}_previous_reading", line.previous_reading)
            setattr(self, f"{utility}_current_reading", line.current_reading)
            setattr(self, f"{utility}_amount", line.amount)

        self.others_income = _dump_named(lines.others_income)
        self.others_deduction = _dump_named(lines.others_deduction)
        self.loan_repayments = [
            {
                "amount": str(line.amount),
                "description": line.description,
                "installment_id": str(line.installment_id) if line.installment_id else None,
                "debt_txn_id": str(line.debt_txn_id) if line.debt_txn_id else None,
            }
            for line in lines.loan_repayments
        ]

        self.tax_mode = lines.tax.kind
        self.tax_manual_amount = lines.tax.amount if isinstance(lines.tax, TaxManual) else None
        self.tax_auto_amount = totals.auto_tax
        self.tax_amount = totals.tax_amount
        self.income_total = totals.income_total
        self.deduction_total = totals.deduction_total
        self.net_pay = totals.net_pay

    def to_lines(self):
        from payroll_modules.payslip.models import (
            LoanRepaymentLine,
            PayslipLines,
            TaxAuto,
            TaxManual,
            UtilityLine,
        )

        utilities = {
            utility: UtilityLine(
                unit_rate=getattr(self, f"{utility}_unit_rate"),
                previous_reading=getattr(self, f"{utility}_previous_reading"),
                current_reading=getattr(self, f"{utility}_current_reading"),
                amount=getattr(self, f"{utility}_amount"),
            )
            for utility in _UTILITIES
        }
        tax = TaxManual(self.tax_manual_amount) if self.tax_mode == "manual" else TaxAuto()

        return PayslipLines(
            others_income=_load_named(self.others_income),
            others_deduction=_load_named(self.others_deduction),
            loan_repayments=tuple(
                LoanRepaymentLine(
                    amount=Decimal(entry["amount"]),
                    description=entry["description"],
                    installment_id=UUID(entry["installment_id"]) if entry.get("installment_id") else None,
                    debt_txn_id=UUID(entry["debt_txn_id"]) if entry.get("debt_txn_id") else None,
                )
                for entry in self.loan_repayments
            ),
            tax=tax,
            **utilities,
            **{name: getattr(self, name) for name in self._LINE_FIELDS},
        )

    def to_totals(self):
        from payroll_modules.payslip.models import PayslipTotals

        return PayslipTotals(
            income_total=self.income_total,
            deduction_total=self.deduction_total,
            net_pay=self.net_pay,
            auto_tax=self.tax_auto_amount,
            tax_amount=self.tax_amount,
        )

    def to_dto(self):
        from payroll_modules.payslip.models import Payslip, PayslipStatus

        return Payslip(
            id=self.id,
            run_id=self.run_id,
            employee_id=self.employee_id,
            payroll_month=self.payroll_month,
            status=PayslipStatus(self.status),
            lines=self.to_lines(),
            totals=self.to_totals(),
            version=self.version,
            config_version_no=self.config_version_no,
            approved_at=self.approved_at,
            approved_by_id=self.approved_by_id,
            paid_at=self.paid_at,
            paid_by_id=self.paid_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<PayslipModel run={self.run_id} employee={self.employee_id} "
            f"net={self.net_pay} ({self.status})>"
        )


def _dump_named(entries) -> list[dict]:
    return [{"description": e.description, "amount": str(e.amount)} for e in entries]


def _load_named(rows) -> tuple:
    from payroll_modules.payslip.models import NamedAmount

    return tuple(NamedAmount(description=r["description"], amount=Decimal(r["amount"])) for r in rows)
