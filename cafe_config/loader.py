"""
Configuration loader (``cafe_config.loader``).

Responsibility
--------------
Loads the YAML configuration documents of one directory and parses them
into the typed ``cafe_config.schema`` dataclasses:

* ``payroll.yaml`` -- version, timezone, workday rules, multipliers,
  deduction settings, rest days, notice rules, allowances, locking
* ``deduction_brackets.yaml`` -- statutory bracket tables
* ``break_policies.yaml`` -- break policy table
* ``holidays.yaml`` -- holiday calendar

Invariants enforced
-------------------
* Numeric values become ``Decimal`` via their string form, never float.
* Every loaded configuration passes ``validate_configuration``.
* ``compute_checksum`` gives a deterministic SHA-256 over the documents.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing/invalid fields  -> ``ConfigurationError``.
* Invalid bracket table  -> ``BracketTableError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date, time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from cafe_config.schema import (
    BracketTable,
    BreakPolicy,
    BreakSpec,
    CafeConfiguration,
    DeductionBasis,
    DeductionBracket,
    DeductionSettings,
    DeductionType,
    Holiday,
    HolidayMultiplier,
    HolidayType,
    LockingSettings,
    PayMultipliers,
    RestDaySettings,
    SchedulingRules,
    WorkdayRules,
)
from cafe_config.validator import validate_configuration
from cafe_kernel.db.types import to_decimal
from cafe_kernel.exceptions import ConfigurationError
from cafe_kernel.logging_config import get_logger

logger = get_logger("config.loader")

CONFIG_FILES = (
    "payroll.yaml",
    "deduction_brackets.yaml",
    "break_policies.yaml",
    "holidays.yaml",
)

_WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}


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
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_time(value: Any) -> time:
    """Parse an ``HH:MM`` string.  Unquoted ``22:00`` is a YAML 1.1 integer, so reject ints."""
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        return time.fromisoformat(value)
    raise ValueError(f"Cannot parse time from {value!r}; quote HH:MM values")


def parse_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValueError(f"Cannot parse decimal from {value!r}")
    try:
        return to_decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Cannot parse decimal from {value!r}") from exc


def parse_weekday(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in _WEEKDAYS:
        return _WEEKDAYS[value.lower()]
    raise ValueError(f"Unknown weekday {value!r}")


def parse_break_policy(data: dict[str, Any]) -> BreakPolicy:
    return BreakPolicy(
        name=data.get("name", f"min_{data['min_shift_minutes']}"),
        min_shift_minutes=int(data["min_shift_minutes"]),
        breaks=tuple(
            BreakSpec(
                break_type=b["type"],
                duration_minutes=int(b["duration_minutes"]),
                paid=bool(b.get("paid", False)),
                required=bool(b.get("required", False)),
            )
            for b in data.get("breaks") or ()
        ),
    )


def parse_bracket(deduction_type: DeductionType, data: dict[str, Any]) -> DeductionBracket:
    max_salary = data.get("max")
    rate = data.get("rate")
    fixed = data.get("fixed_contribution")
    return DeductionBracket(
        deduction_type=deduction_type,
        min_salary=parse_decimal(data["min"]),
        max_salary=parse_decimal(max_salary) if max_salary is not None else None,
        rate=parse_decimal(rate) if rate is not None else None,
        fixed_contribution=parse_decimal(fixed) if fixed is not None else None,
        description=data.get("description", ""),
    )


def parse_bracket_table(data: dict[str, Any]) -> BracketTable:
    deduction_type = DeductionType(data["type"])
    return BracketTable(
        deduction_type=deduction_type,
        effective_from=parse_date(data["effective_from"]),
        brackets=tuple(parse_bracket(deduction_type, b) for b in data.get("brackets") or ()),
        source=data.get("source", ""),
    )


def parse_holiday(data: dict[str, Any]) -> Holiday:
    return Holiday(
        holiday_date=parse_date(data["date"]),
        name=data["name"],
        holiday_type=HolidayType(data["type"]),
    )


def parse_multipliers(data: dict[str, Any]) -> PayMultipliers:
    holidays = {
        HolidayType(kind): HolidayMultiplier(
            worked=parse_decimal(values["worked"]),
            rest_day=parse_decimal(values["rest_day"]),
        )
        for kind, values in (data.get("holiday") or {}).items()
    }
    return PayMultipliers(
        overtime=parse_decimal(data.get("overtime", "1.25")),
        rest_day=parse_decimal(data.get("rest_day", "1.30")),
        night_diff_rate=parse_decimal(data.get("night_differential", "0.10")),
        holidays=holidays,
    )


def parse_deduction_settings(data: dict[str, Any]) -> DeductionSettings:
    enabled = data.get("enabled")
    return DeductionSettings(
        basis=DeductionBasis(data.get("basis", DeductionBasis.MONTHLY_EQUIVALENT.value)),
        monthly_basis_days=int(data.get("monthly_basis_days", 30)),
        full_month_min_days=int(data.get("full_month_min_days", 28)),
        enabled=(
            frozenset(DeductionType(d) for d in enabled)
            if enabled is not None
            else frozenset(DeductionType)
        ),
        branch_overrides={
            str(branch): frozenset(DeductionType(d) for d in types or ())
            for branch, types in (data.get("branches") or {}).items()
        },
    )


def parse_payroll_document(data: dict[str, Any]) -> dict[str, Any]:
    """Parse ``payroll.yaml`` into keyword arguments of ``CafeConfiguration``."""
    workday = data.get("workday") or {}
    night = data.get("night_window") or {}
    rest_days = data.get("rest_days") or {}
    scheduling = data.get("scheduling") or {}
    locking = data.get("locking") or {}
    return {
        "version": str(data["version"]),
        "timezone": data.get("timezone", "Asia/Manila"),
        "currency": data.get("currency", "PHP"),
        "workday": WorkdayRules(
            regular_minutes_per_day=int(workday.get("regular_minutes_per_day", 480)),
            night_start=parse_time(night.get("start", "22:00")),
            night_end=parse_time(night.get("end", "06:00")),
        ),
        "multipliers": parse_multipliers(data.get("multipliers") or {}),
        "deductions": parse_deduction_settings(data.get("deductions") or {}),
        "rest_days": RestDaySettings(
            default_weekday=parse_weekday(rest_days.get("default", "sunday")),
            by_branch={
                str(branch): parse_weekday(day)
                for branch, day in (rest_days.get("branches") or {}).items()
            },
        ),
        "scheduling": SchedulingRules(
            min_notice_days=int(scheduling.get("min_notice_days", 3)),
            max_shift_minutes=int(scheduling.get("max_shift_hours", 24)) * 60,
            escalation_hours=int(scheduling.get("escalation_hours", 24)),
        ),
        "locking": LockingSettings(
            payroll_lock_timeout_seconds=float(locking.get("payroll_lock_timeout_seconds", 30)),
        ),
        "time_off_allowances": {
            str(kind): int(days)
            for kind, days in (data.get("time_off_allowances") or {}).items()
        },
    }


def compute_checksum(documents: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the parsed source documents."""
    canonical = json.dumps(documents, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_configuration(directory: Path | str) -> CafeConfiguration:
    """
    Load, parse and validate the configuration documents in ``directory``.

    Raises:
        FileNotFoundError: a required document is missing.
        ConfigurationError: a document is malformed or fails validation.
        BracketTableError: a bracket table is unordered, gapped or ambiguous.
    """
    directory = Path(directory)
    documents = {name: load_yaml_file(directory / name) for name in CONFIG_FILES}

    try:
        config = CafeConfiguration(
            **parse_payroll_document(documents["payroll.yaml"]),
            break_policies=tuple(
                parse_break_policy(p)
                for p in documents["break_policies.yaml"].get("policies") or ()
            ),
            bracket_tables=tuple(
                parse_bracket_table(t)
                for t in documents["deduction_brackets.yaml"].get("tables") or ()
            ),
            holidays=tuple(
                parse_holiday(h)
                for h in documents["holidays.yaml"].get("holidays") or ()
            ),
            checksum=compute_checksum(documents),
        )
    except (KeyError, ValueError, TypeError) as exc:
        logger.error(
            "config_parse_failed",
            extra={"config_dir": str(directory), "error": str(exc)},
        )
        raise ConfigurationError(str(directory), [f"{type(exc).__name__}: {exc}"]) from exc

    result = validate_configuration(config)
    for warning in result.warnings:
        logger.warning("config_validation_warning", extra={"warning": warning})
    if not result.is_valid:
        logger.error(
            "config_validation_failed",
            extra={"config_dir": str(directory), "errors": result.errors},
        )
        raise ConfigurationError(str(directory), result.errors)

    logger.info(
        "config_loaded",
        extra={
            "config_dir": str(directory),
            "config_version": config.version,
            "checksum": config.checksum,
            "bracket_tables": len(config.bracket_tables),
            "break_policies": len(config.break_policies),
            "holiday_count": len(config.holidays),
        },
    )
    return config
