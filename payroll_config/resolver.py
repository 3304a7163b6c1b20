"""
Configuration Resolver (``payroll_config.resolver``).

Responsibility
--------------
Publishes payroll configuration versions to the append-only store and
resolves the single version effective on a calendar date.

Architecture position
---------------------
**Config layer** -- the runtime entry point for configuration.  Payslip
settlement receives a resolved ``PayrollConfigVersion``; it never reads the
store or YAML files itself.

Invariants enforced
-------------------
* Exactly one configuration is effective for any date: the latest
  published version whose ``start_date`` is on or before it.  Ties on
  ``start_date`` go to the highest ``version_no``.
* Validation happens before any write; an invalid version is never stored.
* Publishing a version with the same start date as a published one
  supersedes the older row.  No other mutation of stored versions occurs.

Failure modes
-------------
* ``ConfigNotFoundError`` -- no published version starts on or before the date.
* ``InvalidTaxBracketsError`` / ``ConfigValidationError`` -- publish rejected.

Audit relevance
---------------
Every publication writes a ``config_published`` audit event.  Every
resolution emits a ``PAYROLL_CONFIG_TRACE`` log line tying a settlement to
the exact configuration version that governed it.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_config.lifecycle import ConfigStatus, require_transition
from payroll_config.orm import PayrollConfigVersionModel
from payroll_config.schema import PayrollConfigVersion
from payroll_config.validator import validate_config_version
from payroll_kernel.domain.clock import Clock
from payroll_kernel.exceptions import ConfigNotFoundError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.services.auditor_service import AuditorService
from payroll_kernel.services.base import BaseService
from payroll_kernel.services.sequence_service import SequenceService

logger = get_logger("config.resolver")


def resolve_effective(
    versions: Iterable[PayrollConfigVersion],
    as_of: date,
) -> PayrollConfigVersion:
    """
    Pick the published version effective on ``as_of``.

    Pure: used by both the database resolver and the YAML entry point.

    Raises:
        ConfigNotFoundError: if no published version starts on or before ``as_of``.
    """
    candidates = [
        v for v in versions
        if v.status == ConfigStatus.PUBLISHED and v.start_date <= as_of
    ]
    if not candidates:
        raise ConfigNotFoundError(as_of)
    return max(candidates, key=lambda v: (v.start_date, v.version_no or 0))


def emit_config_trace(config: PayrollConfigVersion, as_of: date, source: str) -> None:
    logger.info(
        "PAYROLL_CONFIG_TRACE",
        extra={
            "trace_type": "PAYROLL_CONFIG_TRACE",
            "as_of": as_of,
            "source": source,
            "config_id": config.config_id,
            "version_no": config.version_no,
            "start_date": config.start_date,
            "bracket_count": len(config.tax_brackets),
        },
    )


class ConfigurationResolver(BaseService[PayrollConfigVersionModel]):
    """
    Database-backed configuration store.

    Non-goals:
        - Does NOT cache; callers hold the resolved version for the
          duration of a settlement run.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._sequence = SequenceService(session)

    def publish(self, config: PayrollConfigVersion, actor_id: UUID) -> PayrollConfigVersion:
        """
        Validate and store a new published version.

        Preconditions:
            - ``config`` has not been stored before (its version number, if
              any, is ignored and a fresh one is allocated).
        Postconditions:
            - The returned DTO carries its ``config_id`` and ``version_no``.
            - A published predecessor with the same start date is superseded.

        Raises:
            InvalidTaxBracketsError, ConfigValidationError: nothing is written.
        """
        validation = validate_config_version(config)
        validation.raise_for_errors()
        for warning in validation.warnings:
            logger.warning(
                "config_validation_warning",
                extra={"start_date": config.start_date, "warning": warning},
            )

        predecessor = self.session.execute(
            select(PayrollConfigVersionModel)
            .where(
                PayrollConfigVersionModel.start_date == config.start_date,
                PayrollConfigVersionModel.status == ConfigStatus.PUBLISHED.value,
            )
            .with_for_update()
        ).scalar_one_or_none()

        version_no = self._sequence.next_value(SequenceService.CONFIG_VERSION)
        model = PayrollConfigVersionModel.from_dto(
            config.with_status(ConfigStatus.PUBLISHED),
            version_no=version_no,
            created_by_id=actor_id,
        )
        self.session.add(model)

        if predecessor is not None:
            predecessor.status = require_transition(predecessor.status, ConfigStatus.SUPERSEDED).value
            predecessor.updated_by_id = actor_id
            logger.info(
                "config_version_superseded",
                extra={
                    "superseded_version_no": predecessor.version_no,
                    "version_no": version_no,
                    "start_date": config.start_date,
                },
            )

        self.session.flush()

        self._auditor.record_config_published(
            config_id=model.id,
            version_no=version_no,
            start_date=config.start_date,
            actor_id=actor_id,
            superseded_id=predecessor.id if predecessor is not None else None,
        )
        if predecessor is not None:
            self._auditor.record_config_superseded(
                config_id=predecessor.id,
                version_no=predecessor.version_no,
                successor_id=model.id,
                actor_id=actor_id,
            )

        logger.info(
            "config_version_published",
            extra={
                "config_id": str(model.id),
                "version_no": version_no,
                "start_date": config.start_date,
            },
        )
        return model.to_dto()

    def import_versions(
        self,
        versions: Iterable[PayrollConfigVersion],
        actor_id: UUID,
    ) -> tuple[PayrollConfigVersion, ...]:
        """Publish seed versions in start-date order."""
        ordered = sorted(versions, key=lambda v: (v.start_date, v.version_no or 0))
        return tuple(self.publish(v, actor_id) for v in ordered)

    def resolve(self, as_of: date) -> PayrollConfigVersion:
        """
        Return the published version effective on ``as_of``.

        Raises:
            ConfigNotFoundError: if none is effective.
        """
        model = self.session.execute(
            select(PayrollConfigVersionModel)
            .where(
                PayrollConfigVersionModel.status == ConfigStatus.PUBLISHED.value,
                PayrollConfigVersionModel.start_date <= as_of,
            )
            .order_by(
                PayrollConfigVersionModel.start_date.desc(),
                PayrollConfigVersionModel.version_no.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()

        if model is None:
            logger.warning("config_not_found", extra={"as_of": as_of})
            raise ConfigNotFoundError(as_of)

        config = model.to_dto()
        emit_config_trace(config, as_of, source="database")
        return config

    def history(self) -> tuple[PayrollConfigVersion, ...]:
        """Every stored version, oldest first, including superseded ones."""
        models = self.session.execute(
            select(PayrollConfigVersionModel).order_by(PayrollConfigVersionModel.version_no)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)
