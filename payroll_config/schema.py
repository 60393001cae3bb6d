"""
Configuration schema (``payroll_config.schema``).

Typed bundle produced by the loader: module configs, the leave type
catalogue and the working calendar, plus the checksum of the source data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from payroll_engines.leave_accrual import LeaveType
from payroll_kernel.domain.calendar import WeekdayCalendar
from payroll_modules.leave.config import LeaveConfig
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.termination.config import TerminationConfig


@dataclass(frozen=True)
class EngineConfiguration:
    """Everything an organization's payroll engine is configured with.

    Attributes:
        config_id: Identifier of the source configuration (e.g. "ZA-DEFAULT").
        version: Configuration version number.
        checksum: SHA-256 of the canonical source data.
        organization_id: Organization the configuration belongs to.
        payroll: Payrun settings.
        leave: Leave request settings.
        termination: Settlement settings.
        leave_types: Leave type catalogue.
        weekend_days: Weekday numbers (Monday == 0) that are not worked.
        holidays: Public holidays.
    """

    config_id: str
    version: int
    checksum: str
    organization_id: str
    payroll: PayrollConfig
    leave: LeaveConfig
    termination: TerminationConfig
    leave_types: tuple[LeaveType, ...] = ()
    weekend_days: frozenset[int] = frozenset({5, 6})
    holidays: frozenset[date] = field(default_factory=frozenset)

    def calendar(self) -> WeekdayCalendar:
        return WeekdayCalendar(weekend_days=self.weekend_days, holidays=self.holidays)

    def leave_type(self, leave_type_id: str) -> LeaveType:
        for lt in self.leave_types:
            if lt.id == leave_type_id:
                return lt
        raise KeyError(f"Unknown leave type: {leave_type_id}")
