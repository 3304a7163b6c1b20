"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads YAML seed files and parses them into ``payroll_config.schema``
dataclass instances.  This is seed/test tooling: runtime resolution goes
through ``ConfigurationResolver`` (database) or ``get_effective_config``
(files).

Invariants enforced
-------------------
* Every amount and rate is parsed to ``Decimal`` without passing through
  binary floating point.
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown keys are rejected so a typo cannot silently fall back to a
  default.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown keys or bad dates  -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import fields
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from payroll_config.lifecycle import ConfigStatus
from payroll_config.schema import PayrollConfigVersion, TaxBracket
from payroll_kernel.db.types import to_decimal

_BOOL_FIELDS = frozenset({"tax_apply_standard_expense", "tax_apply_personal_allowance"})
_INT_FIELDS = frozenset({"late_grace_minutes", "version_no"})
_PASSTHROUGH_FIELDS = frozenset({"note"})
_SPECIAL_FIELDS = frozenset({"start_date", "status", "tax_brackets", "config_id"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """
    Parse a date from YAML (string or date object).

    Raises:
        ValueError: if ``value`` is not a valid date representation.
    """
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_tax_bracket(data: dict[str, Any]) -> TaxBracket:
    max_income = data.get("max")
    return TaxBracket(
        min_income=to_decimal(data["min"]),
        max_income=None if max_income is None else to_decimal(max_income),
        rate=to_decimal(data["rate"]),
    )


def parse_config_version(data: dict[str, Any]) -> PayrollConfigVersion:
    """
    Parse one configuration version mapping.

    Keys not given fall back to the schema defaults.
    """
    known = {f.name for f in fields(PayrollConfigVersion)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

    kwargs: dict[str, Any] = {"start_date": parse_date(data["start_date"])}

    if "status" in data:
        kwargs["status"] = ConfigStatus(data["status"])
    if "tax_brackets" in data:
        kwargs["tax_brackets"] = tuple(parse_tax_bracket(b) for b in data["tax_brackets"])

    for key, value in data.items():
        if key in _SPECIAL_FIELDS:
            continue
        if key in _BOOL_FIELDS:
            kwargs[key] = bool(value)
        elif key in _INT_FIELDS:
            kwargs[key] = int(value)
        elif key in _PASSTHROUGH_FIELDS:
            kwargs[key] = value
        else:
            kwargs[key] = to_decimal(value)

    return PayrollConfigVersion(**kwargs)


def load_config_versions(path: Path) -> tuple[PayrollConfigVersion, ...]:
    """Load every version declared under ``versions:`` in a YAML file."""
    raw = load_yaml_file(path)
    return tuple(parse_config_version(entry) for entry in raw.get("versions", []))


def dump_tax_brackets(brackets: tuple[TaxBracket, ...]) -> list[dict[str, Any]]:
    """Inverse of ``parse_tax_bracket`` for a whole table; amounts become strings."""
    return [
        {
            "min": str(b.min_income),
            "max": None if b.max_income is None else str(b.max_income),
            "rate": str(b.rate),
        }
        for b in brackets
    ]
