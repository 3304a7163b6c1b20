"""
The ``audit_events`` table: one row per settlement-significant action.

Rows are written only by ``AuditorService`` and are never updated or
deleted (see ``payroll_kernel.db.immutability``).  ``hash`` covers
``entity_type | entity_id | action | payload_hash | prev_hash``; the
first row's ``prev_hash`` is NULL.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    CONFIG_PUBLISHED = "config_published"
    CONFIG_SUPERSEDED = "config_superseded"

    PAYSLIP_APPROVED = "payslip_approved"
    PAYSLIP_PAID = "payslip_paid"

    ACCUMULATION_ADJUSTED = "accumulation_adjusted"

    DEBT_CREATED = "debt_created"
    DEBT_APPROVED = "debt_approved"
    DEBT_DELETED = "debt_deleted"
    DEBT_REPAYMENT_RECORDED = "debt_repayment_recorded"

    CYCLE_CREATED = "cycle_created"
    CYCLE_APPROVED = "cycle_approved"
    CYCLE_REJECTED = "cycle_rejected"


_SHA256_HEX = String(64)


class AuditEvent(Base):
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
    )

    seq: Mapped[int] = mapped_column(unique=True)
    entity_type: Mapped[str] = mapped_column(String(50))
    entity_id: Mapped[UUID] = mapped_column(UUIDString())
    action: Mapped[str] = mapped_column(String(50))
    actor_id: Mapped[UUID] = mapped_column(UUIDString())
    occurred_at: Mapped[datetime] = mapped_column()
    payload: Mapped[dict | None] = mapped_column(JSON)
    payload_hash: Mapped[str] = mapped_column(_SHA256_HEX)
    prev_hash: Mapped[str | None] = mapped_column(_SHA256_HEX)
    hash: Mapped[str] = mapped_column(_SHA256_HEX)

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
