"""
Termination Configuration Schema.

Defines the structure and sensible defaults for termination settlement.
Actual values are loaded from organization configuration at runtime.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from payroll_engines.settlement import SettlementRules, TerminationReason, WeeksPerYearSeverance
from payroll_kernel.domain.money import DEFAULT_CURRENCY, currency_places
from payroll_kernel.logging_config import get_logger
from payroll_modules.termination.models import DocumentType

logger = get_logger("modules.termination.config")


@dataclass
class TerminationConfig:
    """
    Configuration schema for the termination module.

        config = TerminationConfig(default_notice_period_days=28)
    """

    currency: str = DEFAULT_CURRENCY

    # Notice
    default_notice_period_days: int = 30

    # Rates
    working_days_per_month: Decimal = Decimal("21.67")
    working_days_per_week: Decimal = Decimal("5")

    # Severance
    severance_weeks_per_year: Decimal = Decimal("1")
    severance_reasons: tuple[TerminationReason, ...] = (TerminationReason.RETRENCHMENT,)

    # Validation
    high_leave_payout_days: Decimal = Decimal("30")

    # Documents issued on completion
    document_types: tuple[DocumentType, ...] = field(default_factory=lambda: tuple(DocumentType))

    def __post_init__(self):
        self.working_days_per_month = Decimal(str(self.working_days_per_month))
        self.working_days_per_week = Decimal(str(self.working_days_per_week))
        self.severance_weeks_per_year = Decimal(str(self.severance_weeks_per_year))
        self.high_leave_payout_days = Decimal(str(self.high_leave_payout_days))
        self.severance_reasons = tuple(
            r if isinstance(r, TerminationReason) else TerminationReason(r)
            for r in self.severance_reasons
        )
        self.document_types = tuple(
            d if isinstance(d, DocumentType) else DocumentType(d)
            for d in self.document_types
        )

        if self.default_notice_period_days < 0:
            raise ValueError("default_notice_period_days cannot be negative")
        if self.working_days_per_month <= 0:
            raise ValueError("working_days_per_month must be positive")
        if self.working_days_per_week <= 0:
            raise ValueError("working_days_per_week must be positive")
        if self.severance_weeks_per_year < 0:
            raise ValueError("severance_weeks_per_year cannot be negative")
        if self.high_leave_payout_days < 0:
            raise ValueError("high_leave_payout_days cannot be negative")
        currency_places(self.currency)

        logger.info(
            "termination_config_initialized",
            extra={
                "currency": self.currency,
                "default_notice_period_days": self.default_notice_period_days,
                "working_days_per_month": str(self.working_days_per_month),
                "severance_reasons": [r.value for r in self.severance_reasons],
                "document_count": len(self.document_types),
            },
        )

    def settlement_rules(self) -> SettlementRules:
        return SettlementRules(
            working_days_per_month=self.working_days_per_month,
            working_days_per_week=self.working_days_per_week,
            currency_places=currency_places(self.currency),
        )

    def severance_formula(self) -> WeeksPerYearSeverance:
        return WeeksPerYearSeverance(
            weeks_per_year=self.severance_weeks_per_year,
            qualifying_reasons=frozenset(self.severance_reasons),
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        logger.info("termination_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from a YAML file)."""
        logger.info(
            "termination_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        for key in ("severance_reasons", "document_types"):
            if key in data:
                data[key] = tuple(data[key])
        return cls(**data)
