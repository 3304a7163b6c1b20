"""
Hash-chained audit trail for settlement state changes.

Config publication, payslip approval and payment, ledger adjustments,
debt lifecycle steps and cycle decisions each append one ``AuditEvent``.
Every event stores the hash of its predecessor, so rewriting any stored
row (payload, action or linkage) is detectable by ``validate_chain()``.

The service only adds and flushes; the caller owns the transaction.  An
audit event written inside a failed settlement is rolled back together
with the payslip it describes.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import AuditChainBrokenError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_event import AuditAction, AuditEvent
from payroll_kernel.services.sequence_service import SequenceService
from payroll_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")

CONFIG_ENTITY = "PayrollConfigVersion"
PAYSLIP_ENTITY = "Payslip"
ACCUMULATION_ENTITY = "AccumulationRecord"
DEBT_ENTITY = "DebtTxn"
CYCLE_ENTITY = "PayrollCycle"


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditTraceEntry":
        return cls(
            seq=event.seq,
            action=event.action,
            occurred_at=event.occurred_at,
            actor_id=event.actor_id,
            payload=dict(event.payload or {}),
            hash=event.hash,
        )


@dataclass(frozen=True)
class AuditTrace:
    """The audit history of one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(entry.action for entry in self.entries)


@dataclass(frozen=True)
class _ChainBreak:
    event: AuditEvent
    expected: str
    found: str


def _find_break(events: Iterable[AuditEvent]) -> _ChainBreak | None:
    """Walk events in seq order and return the first inconsistency, if any."""
    previous_hash: str | None = None
    for event in events:
        if event.prev_hash != previous_hash:
            return _ChainBreak(event, previous_hash or "None", event.prev_hash or "None")

        payload_hash = hash_payload(event.payload or {})
        if payload_hash != event.payload_hash:
            return _ChainBreak(event, payload_hash, event.payload_hash)

        event_hash = hash_audit_event(
            entity_type=event.entity_type,
            entity_id=str(event.entity_id),
            action=event.action,
            payload_hash=event.payload_hash,
            prev_hash=event.prev_hash,
        )
        if event_hash != event.hash:
            return _ChainBreak(event, event_hash, event.hash)

        previous_hash = event.hash
    return None


class AuditorService:
    """Appends audit events to the chain and verifies it on demand."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Appending
    # ------------------------------------------------------------------

    def record(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Append one event linked to the current chain head and flush it."""
        body = to_json_safe(payload or {})
        body_hash = hash_payload(body)
        head = self._head_hash()

        event = AuditEvent(
            seq=self._sequences.next_value(SequenceService.AUDIT_EVENT),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=body,
            payload_hash=body_hash,
            prev_hash=head,
            hash=hash_audit_event(
                entity_type=entity_type,
                entity_id=str(entity_id),
                action=action.value,
                payload_hash=body_hash,
                prev_hash=head,
            ),
        )
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": event.seq,
            },
        )
        return event

    def _head_hash(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def record_config_published(
        self,
        config_id: UUID,
        version_no: int,
        start_date: date,
        actor_id: UUID,
        superseded_id: UUID | None = None,
    ) -> AuditEvent:
        payload: dict[str, Any] = {"version_no": version_no, "start_date": start_date}
        if superseded_id is not None:
            payload["superseded_id"] = superseded_id
        return self.record(CONFIG_ENTITY, config_id, AuditAction.CONFIG_PUBLISHED, actor_id, payload)

    def record_config_superseded(
        self,
        config_id: UUID,
        version_no: int,
        successor_id: UUID,
        actor_id: UUID,
    ) -> AuditEvent:
        return self.record(
            CONFIG_ENTITY,
            config_id,
            AuditAction.CONFIG_SUPERSEDED,
            actor_id,
            {"version_no": version_no, "successor_id": successor_id},
        )

    def record_payslip_approved(
        self,
        payslip_id: UUID,
        employee_id: UUID,
        net_pay: Decimal,
        ledger_deltas: dict[str, Decimal],
        actor_id: UUID,
    ) -> AuditEvent:
        """Approval carries the ledger deltas so the trail explains every total."""
        return self.record(
            PAYSLIP_ENTITY,
            payslip_id,
            AuditAction.PAYSLIP_APPROVED,
            actor_id,
            {"employee_id": employee_id, "net_pay": net_pay, "ledger_deltas": ledger_deltas},
        )

    def record_payslip_paid(self, payslip_id: UUID, actor_id: UUID) -> AuditEvent:
        return self.record(PAYSLIP_ENTITY, payslip_id, AuditAction.PAYSLIP_PAID, actor_id)

    def record_accumulation_adjusted(
        self,
        record_id: UUID,
        employee_id: UUID,
        accum_type: str,
        year: int | None,
        previous_total: Decimal,
        new_total: Decimal,
        actor_id: UUID,
        actor_role: str,
        reason: str | None = None,
    ) -> AuditEvent:
        return self.record(
            ACCUMULATION_ENTITY,
            record_id,
            AuditAction.ACCUMULATION_ADJUSTED,
            actor_id,
            {
                "employee_id": employee_id,
                "accum_type": accum_type,
                "year": year,
                "previous_total": previous_total,
                "new_total": new_total,
                "actor_role": actor_role,
                "reason": reason,
            },
        )

    def record_debt_event(
        self,
        debt_txn_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        return self.record(DEBT_ENTITY, debt_txn_id, action, actor_id, payload)

    def record_cycle_event(
        self,
        cycle_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        return self.record(CYCLE_ENTITY, cycle_id, action, actor_id, payload)

    # ------------------------------------------------------------------
    # Verification and queries
    # ------------------------------------------------------------------

    def _events(self, *criteria: Any) -> Sequence[AuditEvent]:
        return self._session.execute(
            select(AuditEvent).where(*criteria).order_by(AuditEvent.seq)
        ).scalars().all()

    def validate_chain(self) -> bool:
        """
        Recompute every hash and link from the genesis event forward.

        Returns True for an intact (or empty) chain.  Raises
        ``AuditChainBrokenError`` naming the first inconsistent event.
        """
        events = self._events()
        broken = _find_break(events)
        if broken is not None:
            logger.critical(
                "audit_chain_broken",
                extra={"seq": broken.event.seq, "audit_event_id": str(broken.event.id)},
            )
            raise AuditChainBrokenError(str(broken.event.id), broken.expected, broken.found)

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._events(
            AuditEvent.entity_type == entity_type,
            AuditEvent.entity_id == entity_id,
        )
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(AuditTraceEntry.from_event(event) for event in events),
        )
