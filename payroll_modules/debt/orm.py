"""
Debt ORM Persistence Models (``payroll_modules.debt.orm``).

Responsibility:
    Persist debt transactions and their installment schedules with
    ``to_dto()`` conversion.

Architecture position:
    **Modules layer** -- persistence companion to
    ``payroll_modules.debt.models``.  Inherits from ``TrackedBase``.

Invariants enforced:
    - ``txn_type``, ``status`` and ``payment_method`` hold enum values
      (CHECK constraints).
    - An installment belongs to exactly one debt; no two installments of a
      debt share a payroll month (unique constraint).
    - Approved debts and their installments are frozen (ORM immutability
      listeners).  Deletion is a soft delete of a pending debt.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_kernel.db.base import TrackedBase


class DebtTxnModel(TrackedBase):
    """
    ORM model for ``DebtTxn``.

    Guarantees:
        - ``amount`` is Decimal (Numeric(38,9)).
        - ``installments`` load in schedule order.
    """

    __tablename__ = "payroll_debt_txns"

    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    txn_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    txn_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    other_desc: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    bank_account_no: Mapped[str | None] = mapped_column(String(50), nullable=True)
    transfer_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    excess_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    parent_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_debt_txns.id"), nullable=True,
    )
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    installments: Mapped[list["DebtInstallmentModel"]] = relationship(
        back_populates="debt_txn",
        order_by="DebtInstallmentModel.installment_no",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "txn_type IN ('loan', 'other', 'repayment')",
            name="ck_payroll_debt_txn_type",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved')",
            name="ck_payroll_debt_status",
        ),
        CheckConstraint(
            "payment_method IS NULL OR payment_method IN ('cash', 'bank_transfer')",
            name="ck_payroll_debt_payment_method",
        ),
        Index("idx_payroll_debt_employee", "employee_id", "txn_date"),
        Index("idx_payroll_debt_status", "status"),
    )

    def to_dto(self):
        from payroll_modules.debt.models import DebtTxn, DebtTxnStatus, DebtTxnType, PaymentMethod

        return DebtTxn(
            id=self.id,
            employee_id=self.employee_id,
            txn_type=DebtTxnType(self.txn_type),
            amount=self.amount,
            txn_date=self.txn_date,
            status=DebtTxnStatus(self.status),
            reason=self.reason,
            other_desc=self.other_desc,
            installments=tuple(i.to_dto() for i in self.installments),
            payment_method=PaymentMethod(self.payment_method) if self.payment_method else None,
            bank_account_no=self.bank_account_no,
            transfer_at=self.transfer_at,
            applied_amount=self.applied_amount,
            excess_amount=self.excess_amount,
            parent_id=self.parent_id,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            deleted_at=self.deleted_at,
        )

    def __repr__(self) -> str:
        return f"<DebtTxnModel {self.txn_type} {self.amount} ({self.status})>"


class DebtInstallmentModel(TrackedBase):
    """ORM model for ``Installment``."""

    __tablename__ = "payroll_debt_installments"

    debt_txn_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_debt_txns.id"), nullable=False,
    )
    installment_no: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payroll_month: Mapped[date] = mapped_column(Date, nullable=False)

    debt_txn: Mapped[DebtTxnModel] = relationship(back_populates="installments")

    __table_args__ = (
        UniqueConstraint("debt_txn_id", "payroll_month", name="uq_payroll_installment_month"),
        UniqueConstraint("debt_txn_id", "installment_no", name="uq_payroll_installment_no"),
        Index("idx_payroll_installment_month", "payroll_month"),
    )

    def to_dto(self):
        from payroll_modules.debt.models import Installment

        return Installment(
            id=self.id,
            index=self.installment_no,
            amount=self.amount,
            payroll_month=self.payroll_month,
        )
