"""
Leave Configuration Schema.

Defines the structure and sensible defaults for leave settings.
Actual values are loaded from organization configuration at runtime.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.leave.config")


@dataclass
class LeaveConfig:
    """
    Configuration schema for the leave module.

        config = LeaveConfig(standard_day_hours=Decimal("9"))
    """

    # Hours in a working day; partial-day requests count hours / this
    standard_day_hours: Decimal = Decimal("8")

    # Overview horizons
    expiring_horizon_days: int = 30
    upcoming_horizon_days: int = 14

    # Requests
    allow_backdated_requests: bool = True
    max_request_days: Decimal = Decimal("365")

    def __post_init__(self):
        self.standard_day_hours = Decimal(str(self.standard_day_hours))
        self.max_request_days = Decimal(str(self.max_request_days))
        if self.standard_day_hours <= 0:
            raise ValueError("standard_day_hours must be positive")
        if self.standard_day_hours > 24:
            raise ValueError("standard_day_hours cannot exceed 24")
        if self.expiring_horizon_days < 0:
            raise ValueError("expiring_horizon_days cannot be negative")
        if self.upcoming_horizon_days < 0:
            raise ValueError("upcoming_horizon_days cannot be negative")
        if self.max_request_days <= 0:
            raise ValueError("max_request_days must be positive")

        logger.info(
            "leave_config_initialized",
            extra={
                "standard_day_hours": str(self.standard_day_hours),
                "expiring_horizon_days": self.expiring_horizon_days,
                "upcoming_horizon_days": self.upcoming_horizon_days,
                "allow_backdated_requests": self.allow_backdated_requests,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        logger.info("leave_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from a YAML file)."""
        logger.info(
            "leave_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
