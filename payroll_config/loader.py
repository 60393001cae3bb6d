"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into a typed
``EngineConfiguration``: module configs (``PayrollConfig``,
``LeaveConfig``, ``TerminationConfig``), the leave type catalogue and the
working calendar.

Architecture position
---------------------
**Config layer** -- sits above ``payroll_kernel``, ``payroll_engines`` and
the module config schemas. Modules never import this package; callers
hand the parsed configs to the services.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Numeric values are converted to ``Decimal`` through ``str`` so YAML
  floats never leak into money or leave-day arithmetic.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError`` from the config ``__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from payroll_config.schema import EngineConfiguration
from payroll_engines.leave_accrual import AccrualMethod, LeaveType
from payroll_modules.leave.config import LeaveConfig
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.termination.config import TerminationConfig

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


def parse_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def parse_weekday(value: Any) -> int:
    if isinstance(value, int):
        return value
    try:
        return _WEEKDAYS[str(value).lower()]
    except KeyError:
        raise ValueError(f"Unknown weekday {value!r}") from None


def parse_leave_type(data: dict[str, Any]) -> LeaveType:
    """
    Parse a ``LeaveType`` from a dict.

    ``carry_over_limit`` absent or null means unlimited; 0 means strict.

    Raises:
        KeyError: if ``id``, ``name`` or ``accrual_method`` is missing.
        ValueError: for an unknown accrual method or invalid values.
    """
    expire = data.get("carry_over_expire_months")
    return LeaveType(
        id=data["id"],
        name=data["name"],
        code=data.get("code", data["id"].upper()),
        accrual_method=AccrualMethod(data["accrual_method"]),
        accrual_rate=parse_decimal(data.get("accrual_rate", 0)),
        cycle_start_month=data.get("cycle_start_month", 1),
        carry_over_limit=parse_decimal(data.get("carry_over_limit")),
        carry_over_expire_months=int(expire) if expire is not None else None,
        allow_negative_balance=data.get("allow_negative_balance", False),
        requires_attachment=data.get("requires_attachment", False),
        is_paid=data.get("is_paid", True),
        is_active=data.get("is_active", True),
        description=data.get("description", ""),
    )


def parse_payroll_config(data: dict[str, Any]) -> PayrollConfig:
    data = dict(data)
    if "max_hours_per_period" in data:
        data["max_hours_per_period"] = parse_decimal(data["max_hours_per_period"])
    if isinstance(data.get("statutory"), dict):
        data["statutory"] = {k: parse_decimal(v) for k, v in data["statutory"].items()}
    return PayrollConfig.from_dict(data)


def parse_leave_config(data: dict[str, Any]) -> LeaveConfig:
    data = dict(data)
    for key in ("standard_day_hours", "max_request_days"):
        if key in data:
            data[key] = parse_decimal(data[key])
    return LeaveConfig.from_dict(data)


def parse_termination_config(data: dict[str, Any]) -> TerminationConfig:
    data = dict(data)
    for key in (
        "working_days_per_month",
        "working_days_per_week",
        "severance_weeks_per_year",
        "high_leave_payout_days",
    ):
        if key in data:
            data[key] = parse_decimal(data[key])
    return TerminationConfig.from_dict(data)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_engine_config(data: dict[str, Any]) -> EngineConfiguration:
    """
    Parse a full configuration document.

    Raises:
        KeyError: if ``config_id`` or ``organization_id`` is missing.
        ValueError: for duplicate leave type ids or invalid values.
    """
    leave_types = tuple(parse_leave_type(lt) for lt in data.get("leave_types", []))
    ids = [lt.id for lt in leave_types]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ValueError(f"Duplicate leave type ids: {', '.join(duplicates)}")

    calendar = data.get("calendar", {})
    weekend = calendar.get("weekend_days", ["saturday", "sunday"])

    return EngineConfiguration(
        config_id=data["config_id"],
        version=data.get("version", 1),
        checksum=compute_checksum(data),
        organization_id=data["organization_id"],
        payroll=parse_payroll_config(data.get("payroll", {})),
        leave=parse_leave_config(data.get("leave", {})),
        termination=parse_termination_config(data.get("termination", {})),
        leave_types=leave_types,
        weekend_days=frozenset(parse_weekday(d) for d in weekend),
        holidays=frozenset(parse_date(d) for d in calendar.get("holidays", [])),
    )


def load_engine_config(path: Path) -> EngineConfiguration:
    """Load and parse a configuration file."""
    return parse_engine_config(load_yaml_file(path))
