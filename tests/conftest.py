"""
Shared fixtures for the payroll settlement tests.

Every test runs inside a transaction on its own connection that is rolled
back at teardown, so sequences restart at 1 and no rows leak between
tests.  Set ``DATABASE_URL`` to a PostgreSQL URL to run the suite against
a real server; the default is in-memory SQLite.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from payroll_batch.services.settlement import PayrollRunSettler
from payroll_config.lifecycle import ConfigStatus
from payroll_config.resolver import ConfigurationResolver
from payroll_config.schema import PayrollConfigVersion
from payroll_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from payroll_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules.cycles.service import CycleService
from payroll_modules.debt.service import DebtService
from payroll_modules.employee.models import EmployeeContributionProfile
from payroll_modules.ledger.service import LedgerService
from payroll_modules.payslip.service import PayslipService

TEST_ACTOR_ID = uuid4()
TEST_EMPLOYEE_ID = UUID("00000000-0000-4000-a000-000000000003")
TEST_BRANCH_ID = UUID("00000000-0000-4000-a000-000000000040")

DEFAULT_DATABASE_URL = "sqlite:///:memory:"


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _json_logging_at_debug():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _fresh_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Records emitted under ``payroll_kernel`` during the test, as dicts.

        records = captured_logs()
        assert any(r["message"] == "accumulation_clamped_at_zero" for r in records)
    """
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setFormatter(StructuredFormatter())
    kernel_logger = logging.getLogger("payroll_kernel")
    kernel_logger.addHandler(handler)

    def _records() -> list[dict]:
        return [json.loads(line) for line in buffer.getvalue().splitlines() if line.strip()]

    try:
        yield _records
    finally:
        kernel_logger.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


@pytest.fixture(scope="session")
def db_engine():
    engine = init_engine_from_url(get_database_url())
    yield engine
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Schema and immutability listeners live for the whole session."""
    drop_tables(db_engine)
    create_tables(db_engine)
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables(db_engine)


@pytest.fixture
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """
    Session bound to an outer transaction that is always rolled back.

    ``commit()`` and ``begin_nested()`` inside the code under test become
    savepoints of that transaction.
    """
    connection = db_engine.connect()
    outer = connection.begin()
    sess = Session(bind=connection, join_transaction_mode="create_savepoint", expire_on_commit=False)
    try:
        yield sess
    finally:
        sess.close()
        outer.rollback()
        connection.close()


# =============================================================================
# Identity and clock fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def employee_id() -> UUID:
    return TEST_EMPLOYEE_ID


@pytest.fixture
def branch_id() -> UUID:
    return TEST_BRANCH_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def payroll_config() -> PayrollConfigVersion:
    """A published configuration with the statutory tax schedule."""
    return PayrollConfigVersion(
        start_date=date(2024, 1, 1),
        hourly_rate=Decimal("45.00"),
        ot_hourly_rate=Decimal("67.50"),
        attendance_bonus_no_late=Decimal("300.00"),
        attendance_bonus_no_leave=Decimal("500.00"),
        housing_allowance=Decimal("1500.00"),
        water_rate_per_unit=Decimal("18.00"),
        electricity_rate_per_unit=Decimal("7.00"),
        internet_fee_monthly=Decimal("200.00"),
        pf_rate_min=Decimal("0.02"),
        pf_rate_max=Decimal("0.15"),
        version_no=1,
        status=ConfigStatus.PUBLISHED,
    )


@pytest.fixture
def profile(employee_id) -> EmployeeContributionProfile:
    """A salaried employee who contributes to social security."""
    return EmployeeContributionProfile(employee_id=employee_id)


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def auditor_service(session: Session, deterministic_clock):
    """Provide an AuditorService instance."""
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def ledger_service(session: Session, deterministic_clock, auditor_service):
    return LedgerService(session, deterministic_clock, auditor=auditor_service)


@pytest.fixture
def debt_service(session: Session, deterministic_clock, auditor_service, ledger_service):
    return DebtService(session, deterministic_clock, auditor=auditor_service, ledger=ledger_service)


@pytest.fixture
def payslip_service(session: Session, deterministic_clock, auditor_service, ledger_service):
    return PayslipService(session, deterministic_clock, auditor=auditor_service, ledger=ledger_service)


@pytest.fixture
def cycle_service(session: Session, deterministic_clock, auditor_service):
    return CycleService(session, deterministic_clock, auditor=auditor_service)


@pytest.fixture
def config_resolver(session: Session, deterministic_clock, auditor_service):
    return ConfigurationResolver(session, deterministic_clock, auditor_service)


@pytest.fixture
def published_config(config_resolver, payroll_config, test_actor_id) -> PayrollConfigVersion:
    """``payroll_config`` stored in the database."""
    return config_resolver.publish(payroll_config, test_actor_id)


@pytest.fixture
def settler(session: Session, deterministic_clock, auditor_service, config_resolver):
    return PayrollRunSettler(
        session,
        deterministic_clock,
        resolver=config_resolver,
        auditor=auditor_service,
    )
