"""
Configuration ORM Persistence Model (``payroll_config.orm``).

Responsibility:
    Append-only storage for ``PayrollConfigVersion`` rows with
    ``to_dto()`` / ``from_dto()`` round-trip conversion.

Architecture position:
    **Config layer** -- persistence companion to ``payroll_config.schema``.
    Inherits from ``TrackedBase`` (kernel DB base).

Invariants enforced:
    - ``version_no`` is unique (allocated by SequenceService).
    - ``status`` is one of draft / published / superseded.
    - Rows are never updated except published -> superseded, and never
      deleted (ORM immutability listeners).
    - Tax brackets are stored as a JSON list of string amounts so no
      float ever touches a rate.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import JSON, Boolean, CheckConstraint, Date, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase


class PayrollConfigVersionModel(TrackedBase):
    """
    ORM model for ``PayrollConfigVersion``.

    Guarantees:
        - Every amount and rate is Decimal (Numeric(38,9)).
        - ``tax_brackets`` JSON round-trips through the loader's parser.
    """

    __tablename__ = "payroll_config_versions"

    version_no: Mapped[int] = mapped_column(nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    hourly_rate: Mapped[Decimal] = mapped_column(nullable=False)
    ot_hourly_rate: Mapped[Decimal] = mapped_column(nullable=False)
    attendance_bonus_no_late: Mapped[Decimal] = mapped_column(nullable=False)
    attendance_bonus_no_leave: Mapped[Decimal] = mapped_column(nullable=False)
    housing_allowance: Mapped[Decimal] = mapped_column(nullable=False)
    water_rate_per_unit: Mapped[Decimal] = mapped_column(nullable=False)
    electricity_rate_per_unit: Mapped[Decimal] = mapped_column(nullable=False)
    internet_fee_monthly: Mapped[Decimal] = mapped_column(nullable=False)
    sso_rate_employee: Mapped[Decimal] = mapped_column(nullable=False)
    sso_rate_employer: Mapped[Decimal] = mapped_column(nullable=False)
    sso_wage_cap: Mapped[Decimal] = mapped_column(nullable=False)
    pf_rate_min: Mapped[Decimal] = mapped_column(nullable=False)
    pf_rate_max: Mapped[Decimal] = mapped_column(nullable=False)
    tax_apply_standard_expense: Mapped[bool] = mapped_column(Boolean, nullable=False)
    tax_standard_expense_rate: Mapped[Decimal] = mapped_column(nullable=False)
    tax_standard_expense_cap: Mapped[Decimal] = mapped_column(nullable=False)
    tax_apply_personal_allowance: Mapped[bool] = mapped_column(Boolean, nullable=False)
    tax_personal_allowance_amount: Mapped[Decimal] = mapped_column(nullable=False)
    tax_brackets: Mapped[list] = mapped_column(JSON, nullable=False)
    withholding_tax_rate_service: Mapped[Decimal] = mapped_column(nullable=False)
    work_hours_per_day: Mapped[Decimal] = mapped_column(nullable=False)
    late_rate_per_minute: Mapped[Decimal] = mapped_column(nullable=False)
    late_grace_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("version_no", name="uq_payroll_config_version_no"),
        CheckConstraint(
            "status IN ('draft', 'published', 'superseded')",
            name="ck_payroll_config_status",
        ),
        Index("idx_payroll_config_start_status", "start_date", "status"),
    )

    _AMOUNT_FIELDS = (
        "hourly_rate",
        "ot_hourly_rate",
        "attendance_bonus_no_late",
        "attendance_bonus_no_leave",
        "housing_allowance",
        "water_rate_per_unit",
        "electricity_rate_per_unit",
        "internet_fee_monthly",
        "sso_rate_employee",
        "sso_rate_employer",
        "sso_wage_cap",
        "pf_rate_min",
        "pf_rate_max",
        "tax_standard_expense_rate",
        "tax_standard_expense_cap",
        "tax_personal_allowance_amount",
        "withholding_tax_rate_service",
        "work_hours_per_day",
        "late_rate_per_minute",
    )

    def to_dto(self):
        from payroll_config.lifecycle import ConfigStatus
        from payroll_config.loader import parse_tax_bracket
        from payroll_config.schema import PayrollConfigVersion

        return PayrollConfigVersion(
            config_id=self.id,
            version_no=self.version_no,
            start_date=self.start_date,
            status=ConfigStatus(self.status),
            tax_apply_standard_expense=self.tax_apply_standard_expense,
            tax_apply_personal_allowance=self.tax_apply_personal_allowance,
            tax_brackets=tuple(parse_tax_bracket(b) for b in self.tax_brackets),
            late_grace_minutes=self.late_grace_minutes,
            note=self.note,
            **{name: getattr(self, name) for name in self._AMOUNT_FIELDS},
        )

    @classmethod
    def from_dto(cls, dto, version_no: int, created_by_id) -> "PayrollConfigVersionModel":
        from payroll_config.loader import dump_tax_brackets

        return cls(
            version_no=version_no,
            start_date=dto.start_date,
            status=dto.status.value,
            tax_apply_standard_expense=dto.tax_apply_standard_expense,
            tax_apply_personal_allowance=dto.tax_apply_personal_allowance,
            tax_brackets=dump_tax_brackets(dto.tax_brackets),
            late_grace_minutes=dto.late_grace_minutes,
            note=dto.note,
            created_by_id=created_by_id,
            **{name: getattr(dto, name) for name in cls._AMOUNT_FIELDS},
        )

    def __repr__(self) -> str:
        return (
            f"<PayrollConfigVersionModel v{self.version_no} "
            f"from {self.start_date} ({self.status})>"
        )
