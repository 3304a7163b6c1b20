"""
Tests for the database-backed configuration store.

Validates:
- Publication allocates version numbers and audits
- Resolution picks the latest published version on or before a date
- Same-day republication supersedes without deleting
- Invalid versions are never stored
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from payroll_config.lifecycle import ConfigStatus
from payroll_config.loader import load_config_versions
from payroll_config.schema import TaxBracket
from payroll_kernel.exceptions import (
    ConfigNotFoundError,
    ConfigValidationError,
    ImmutabilityViolationError,
    InvalidTaxBracketsError,
)


class TestPublish:

    def test_publish_assigns_identity(self, config_resolver, payroll_config, test_actor_id):
        stored = config_resolver.publish(replace(payroll_config, version_no=None), test_actor_id)

        assert stored.config_id is not None
        assert stored.version_no == 1
        assert stored.status == ConfigStatus.PUBLISHED
        assert stored.tax_brackets == payroll_config.tax_brackets

    def test_version_numbers_increase(self, config_resolver, payroll_config, test_actor_id):
        first = config_resolver.publish(payroll_config, test_actor_id)
        second = config_resolver.publish(
            replace(payroll_config, start_date=date(2025, 1, 1)), test_actor_id
        )
        assert second.version_no == first.version_no + 1

    def test_publication_audited(self, config_resolver, auditor_service, payroll_config, test_actor_id):
        stored = config_resolver.publish(payroll_config, test_actor_id)

        trace = auditor_service.get_trace("PayrollConfigVersion", stored.config_id)
        assert trace.actions == ("config_published",)
        assert trace.entries[0].payload["start_date"] == "2024-01-01"

    def test_invalid_brackets_not_stored(self, config_resolver, payroll_config, test_actor_id):
        broken = replace(
            payroll_config,
            tax_brackets=(TaxBracket(Decimal("10"), None, Decimal("0.1")),),
        )
        with pytest.raises(InvalidTaxBracketsError):
            config_resolver.publish(broken, test_actor_id)
        assert config_resolver.history() == ()

    def test_invalid_fields_not_stored(self, config_resolver, payroll_config, test_actor_id):
        with pytest.raises(ConfigValidationError):
            config_resolver.publish(replace(payroll_config, hourly_rate=Decimal("0")), test_actor_id)
        assert config_resolver.history() == ()


class TestSupersede:

    def test_same_start_date_supersedes(self, config_resolver, payroll_config, test_actor_id):
        old = config_resolver.publish(payroll_config, test_actor_id)
        new = config_resolver.publish(
            replace(payroll_config, ot_hourly_rate=Decimal("70.00")), test_actor_id
        )

        statuses = {v.version_no: v.status for v in config_resolver.history()}
        assert statuses == {
            old.version_no: ConfigStatus.SUPERSEDED,
            new.version_no: ConfigStatus.PUBLISHED,
        }
        assert config_resolver.resolve(date(2024, 6, 1)).ot_hourly_rate == Decimal("70.00")

    def test_supersede_audited_on_predecessor(
        self, config_resolver, auditor_service, payroll_config, test_actor_id
    ):
        old = config_resolver.publish(payroll_config, test_actor_id)
        new = config_resolver.publish(payroll_config, test_actor_id)

        trace = auditor_service.get_trace("PayrollConfigVersion", old.config_id)
        assert trace.actions == ("config_published", "config_superseded")
        assert trace.entries[1].payload["successor_id"] == str(new.config_id)

    def test_stored_version_fields_cannot_change(
        self, session, config_resolver, payroll_config, test_actor_id
    ):
        from payroll_config.orm import PayrollConfigVersionModel

        stored = config_resolver.publish(payroll_config, test_actor_id)
        model = session.get(PayrollConfigVersionModel, stored.config_id)
        model.hourly_rate = Decimal("99")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestResolve:

    @pytest.fixture
    def two_versions(self, config_resolver, payroll_config, test_actor_id):
        config_resolver.publish(payroll_config, test_actor_id)
        config_resolver.publish(
            replace(payroll_config, start_date=date(2025, 1, 1), sso_wage_cap=Decimal("17500")),
            test_actor_id,
        )

    def test_effective_version(self, config_resolver, two_versions):
        assert config_resolver.resolve(date(2024, 12, 31)).sso_wage_cap == Decimal("15000")
        assert config_resolver.resolve(date(2025, 1, 1)).sso_wage_cap == Decimal("17500")
        assert config_resolver.resolve(date(2030, 1, 1)).sso_wage_cap == Decimal("17500")

    def test_nothing_effective(self, config_resolver, two_versions):
        with pytest.raises(ConfigNotFoundError) as exc_info:
            config_resolver.resolve(date(2023, 12, 31))
        assert exc_info.value.code == "CONFIG_NOT_FOUND"

    def test_empty_store(self, config_resolver):
        with pytest.raises(ConfigNotFoundError):
            config_resolver.resolve(date(2025, 1, 1))

    def test_resolution_traced(self, config_resolver, two_versions, captured_logs):
        config_resolver.resolve(date(2025, 3, 1))

        traces = [r for r in captured_logs() if r["message"] == "PAYROLL_CONFIG_TRACE"]
        assert traces[-1]["source"] == "database"
        assert traces[-1]["as_of"] == "2025-03-01"


class TestImport:

    def test_import_shipped_defaults(self, config_resolver, test_actor_id):
        from payroll_config import _DEFAULT_CONFIG_DIR

        versions = load_config_versions(_DEFAULT_CONFIG_DIR / "versions.yaml")
        stored = config_resolver.import_versions(reversed(versions), test_actor_id)

        assert [v.start_date for v in stored] == [date(2024, 1, 1), date(2025, 1, 1)]
        assert config_resolver.resolve(date(2025, 2, 1)).electricity_rate_per_unit == Decimal("7.50")
