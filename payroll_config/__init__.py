"""
payroll_config -- versioned, date-effective payroll configuration.

Responsibility:
    Owns the rate and tax schedule every payslip is computed against.
    ``ConfigurationResolver`` is the runtime entry point (database store);
    ``get_effective_config()`` resolves straight from YAML seed files for
    tooling and tests.

Architecture position:
    Configuration -- sits above ``payroll_kernel`` and below
    ``payroll_modules`` / ``payroll_batch``.  The kernel never imports
    from this package at module load.

Invariants enforced:
    - Exactly one published version is effective for any date.
    - Versions are validated before they are stored or resolved.

Failure modes:
    - ``ConfigNotFoundError`` -- nothing effective on the requested date.
    - ``InvalidTaxBracketsError`` / ``ConfigValidationError`` -- invalid version.

Audit relevance:
    Every resolution emits a ``PAYROLL_CONFIG_TRACE`` log entry.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path

from payroll_config.lifecycle import ConfigStatus
from payroll_config.loader import load_config_versions
from payroll_config.resolver import ConfigurationResolver, emit_config_trace, resolve_effective
from payroll_config.schema import DEFAULT_TAX_BRACKETS, PayrollConfigVersion, TaxBracket, TaxConfig
from payroll_config.validator import (
    ConfigValidationResult,
    validate_config_version,
    validate_tax_brackets,
)

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets" / "default"


def get_effective_config(
    as_of_date: date,
    config_dir: Path | None = None,
) -> PayrollConfigVersion:
    """
    Resolve the configuration effective on ``as_of_date`` from YAML.

    Every version in ``<config_dir>/versions.yaml`` is validated before
    resolution, so a malformed seed file fails loudly rather than
    producing a wrong payslip.

    Raises:
        FileNotFoundError: if the versions file is missing.
        InvalidTaxBracketsError, ConfigValidationError: if a version is invalid.
        ConfigNotFoundError: if nothing is effective on the date.
    """
    versions = load_config_versions((config_dir or _DEFAULT_CONFIG_DIR) / "versions.yaml")
    for version in versions:
        validate_config_version(version).raise_for_errors()

    config = resolve_effective(versions, as_of_date)
    emit_config_trace(config, as_of_date, source="yaml")
    return config


__all__ = [
    "ConfigStatus",
    "ConfigValidationResult",
    "ConfigurationResolver",
    "DEFAULT_TAX_BRACKETS",
    "PayrollConfigVersion",
    "TaxBracket",
    "TaxConfig",
    "get_effective_config",
    "load_config_versions",
    "resolve_effective",
    "validate_config_version",
    "validate_tax_brackets",
]
