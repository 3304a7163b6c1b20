"""
Configuration Validator (``payroll_config.validator``).

Responsibility
--------------
Validates a ``PayrollConfigVersion`` at save time so that the tax
calculator and payslip aggregator can assume well-formed input.

Architecture position
---------------------
**Config layer** -- save-time validation.  Called by
``ConfigurationResolver.publish`` and by ``get_effective_config`` after
loading YAML.  Has no dependency on modules or services.

Invariants enforced
-------------------
* Brackets are non-empty, ascending, contiguous (each max equals the next
  min), start at zero, and only the last bracket may be unbounded.
* Every rate lies in [0, 1]; caps and allowances are non-negative.
* Hourly and OT rates are positive; the SSO wage cap is positive.

Failure modes
-------------
* Errors (``ConfigValidationResult.errors``) -> the version MUST NOT be
  stored.  ``raise_for_errors`` converts them to typed exceptions.
* Warnings -> stored, but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from payroll_config.schema import PayrollConfigVersion, TaxBracket
from payroll_kernel.exceptions import ConfigValidationError, InvalidTaxBracketsError

_ZERO = Decimal("0")
_ONE = Decimal("1")


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    bracket_errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_bracket_error(self, msg: str) -> None:
        self.bracket_errors.append(msg)
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def raise_for_errors(self) -> None:
        """Raise the typed error for this result, bracket problems first."""
        if self.bracket_errors:
            raise InvalidTaxBracketsError(self.errors)
        if self.errors:
            raise ConfigValidationError(self.errors)


def validate_tax_brackets(
    brackets: tuple[TaxBracket, ...] | list[TaxBracket],
    result: ConfigValidationResult | None = None,
) -> ConfigValidationResult:
    """
    Validate a progressive bracket table.

    Postconditions:
        - Returns a result whose ``bracket_errors`` names every gap, overlap,
          out-of-order bracket, bad bound and out-of-range rate.
    """
    result = result if result is not None else ConfigValidationResult()

    if not brackets:
        result.add_bracket_error("Tax brackets must not be empty")
        return result

    for i, bracket in enumerate(brackets):
        if bracket.min_income < _ZERO:
            result.add_bracket_error(f"Bracket {i}: min {bracket.min_income} is negative")
        if bracket.max_income is not None and bracket.max_income <= bracket.min_income:
            result.add_bracket_error(
                f"Bracket {i}: max {bracket.max_income} must exceed min {bracket.min_income}"
            )
        if not (_ZERO <= bracket.rate <= _ONE):
            result.add_bracket_error(f"Bracket {i}: rate {bracket.rate} outside [0, 1]")
        if bracket.max_income is None and i != len(brackets) - 1:
            result.add_bracket_error(f"Bracket {i}: only the last bracket may be unbounded")

    if brackets[0].min_income != _ZERO:
        result.add_bracket_error(
            f"First bracket must start at 0, starts at {brackets[0].min_income}"
        )

    for i in range(1, len(brackets)):
        prev, curr = brackets[i - 1], brackets[i]
        if curr.min_income <= prev.min_income:
            result.add_bracket_error(
                f"Bracket {i}: min {curr.min_income} not above previous min {prev.min_income}"
            )
            continue
        if prev.max_income is None:
            continue
        if curr.min_income > prev.max_income:
            result.add_bracket_error(
                f"Gap between bracket {i - 1} (max {prev.max_income}) "
                f"and bracket {i} (min {curr.min_income})"
            )
        elif curr.min_income < prev.max_income:
            result.add_bracket_error(
                f"Overlap between bracket {i - 1} (max {prev.max_income}) "
                f"and bracket {i} (min {curr.min_income})"
            )

    if brackets[-1].max_income is not None:
        result.add_warning(
            f"Last bracket is bounded at {brackets[-1].max_income}; "
            "income above it is untaxed"
        )

    return result


def _require_rate(result: ConfigValidationResult, name: str, value: Decimal) -> None:
    if not (_ZERO <= value <= _ONE):
        result.add_error(f"{name} {value} outside [0, 1]")


def _require_non_negative(result: ConfigValidationResult, name: str, value: Decimal) -> None:
    if value < _ZERO:
        result.add_error(f"{name} {value} must not be negative")


def _require_positive(result: ConfigValidationResult, name: str, value: Decimal) -> None:
    if value <= _ZERO:
        result.add_error(f"{name} {value} must be greater than 0")


def validate_config_version(config: PayrollConfigVersion) -> ConfigValidationResult:
    """
    Validate a configuration version.

    Postconditions:
        - Returns a ``ConfigValidationResult`` with errors and warnings.
        - A version with errors MUST NOT be stored.
    """
    result = ConfigValidationResult()

    _require_positive(result, "hourly_rate", config.hourly_rate)
    _require_positive(result, "ot_hourly_rate", config.ot_hourly_rate)
    _require_positive(result, "sso_wage_cap", config.sso_wage_cap)
    _require_positive(result, "work_hours_per_day", config.work_hours_per_day)

    for name in (
        "sso_rate_employee",
        "sso_rate_employer",
        "pf_rate_min",
        "pf_rate_max",
        "tax_standard_expense_rate",
        "withholding_tax_rate_service",
    ):
        _require_rate(result, name, getattr(config, name))

    for name in (
        "attendance_bonus_no_late",
        "attendance_bonus_no_leave",
        "housing_allowance",
        "water_rate_per_unit",
        "electricity_rate_per_unit",
        "internet_fee_monthly",
        "tax_standard_expense_cap",
        "tax_personal_allowance_amount",
        "late_rate_per_minute",
    ):
        _require_non_negative(result, name, getattr(config, name))

    if config.late_grace_minutes < 0:
        result.add_error(f"late_grace_minutes {config.late_grace_minutes} must not be negative")

    if config.pf_rate_min > config.pf_rate_max:
        result.add_error(
            f"pf_rate_min {config.pf_rate_min} exceeds pf_rate_max {config.pf_rate_max}"
        )

    validate_tax_brackets(config.tax_brackets, result)

    return result
