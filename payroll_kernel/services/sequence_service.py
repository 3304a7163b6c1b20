"""
Gap-tolerant, strictly increasing counters.

Audit event ``seq`` and config ``version_no`` both come from here.  Each
named counter is one row in ``sequence_counters``; ``next_value`` locks
that row, bumps it and flushes.  The bump only becomes visible when the
caller commits, and a rollback gives the number back.  Reading
``max(seq) + 1`` instead would hand out the same number to two
concurrent writers.
"""

from sqlalchemy import String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from payroll_kernel.db.base import Base
from payroll_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True)
    current_value: Mapped[int] = mapped_column(default=0)


class SequenceService:
    AUDIT_EVENT = "audit_event"
    CONFIG_VERSION = "payroll_config_version"

    def __init__(self, session: Session):
        self._session = session

    def _locked(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter | None:
        """Insert a fresh counter at 1; None if another transaction won the race."""
        savepoint = self._session.begin_nested()
        counter = SequenceCounter(name=name, current_value=1)
        self._session.add(counter)
        try:
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
            return None
        savepoint.commit()
        return counter

    def next_value(self, sequence_name: str) -> int:
        """Allocate the next number (starting at 1) inside the caller's transaction."""
        counter = self._locked(sequence_name)
        if counter is None:
            created = self._create(sequence_name)
            if created is not None:
                value = created.current_value
                logger.debug("sequence_allocated", extra={"sequence_name": sequence_name, "value": value})
                return value
            counter = self._locked(sequence_name)
            assert counter is not None

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last allocated number, or None if the counter was never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
