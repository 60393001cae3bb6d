"""
Payroll Configuration Schema.

Defines the structure and sensible defaults for payrun settings.
Actual values are loaded from organization configuration at runtime.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from payroll_engines.payslip import PayslipRules
from payroll_engines.statutory import FlatRateStatutoryRules
from payroll_kernel.domain.money import DEFAULT_CURRENCY, currency_places
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.config")

VALID_PAY_FREQUENCIES = {"weekly", "biweekly", "semimonthly", "monthly"}


@dataclass
class StatutoryRatesConfig:
    """Rates for the flat-rate statutory rules."""
    paye_rate: Decimal = Decimal("0.25")
    uif_rate: Decimal = Decimal("0.01")
    uif_cap: Decimal = Decimal("177.12")
    sdl_rate: Decimal = Decimal("0.01")

    def __post_init__(self):
        for name in ("paye_rate", "uif_rate", "uif_cap", "sdl_rate"):
            setattr(self, name, Decimal(str(getattr(self, name))))
        for name in ("paye_rate", "uif_rate", "sdl_rate"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} cannot be negative")
            if value > 1:
                raise ValueError(f"{name} cannot exceed 1 (100%)")
        if self.uif_cap < 0:
            raise ValueError("uif_cap cannot be negative")


@dataclass
class PayrollConfig:
    """
    Configuration schema for the payroll module.

    Field defaults follow the South African rates the product shipped with.
    Override at instantiation with organization-specific values:

        config = PayrollConfig(
            max_workers=16,
            company_name="Acme (Pty) Ltd",
            **load_from_file("payroll_settings"),
        )
    """

    # Currency
    currency: str = DEFAULT_CURRENCY

    # Calculation fan-out
    max_workers: int = 8

    # Pay frequency
    default_pay_frequency: str = "monthly"

    # Payslip rules
    required_earning_codes: tuple[str, ...] = ("BASIC",)
    required_deduction_codes: tuple[str, ...] = ("PAYE", "UIF")
    max_hours_per_period: Decimal = Decimal("300")
    require_tax_number: bool = True
    require_bank_details: bool = True

    # Statutory rates
    statutory: StatutoryRatesConfig = field(default_factory=StatutoryRatesConfig)

    # EFT export
    company_name: str = "PAYROLL"
    company_id: str = "0000000000"

    def __post_init__(self):
        if self.max_workers <= 0:
            raise ValueError("max_workers must be positive")
        if self.default_pay_frequency not in VALID_PAY_FREQUENCIES:
            raise ValueError(
                f"default_pay_frequency must be one of {VALID_PAY_FREQUENCIES}, "
                f"got '{self.default_pay_frequency}'"
            )
        self.max_hours_per_period = Decimal(str(self.max_hours_per_period))
        if self.max_hours_per_period <= 0:
            raise ValueError("max_hours_per_period must be positive")
        self.required_earning_codes = tuple(self.required_earning_codes)
        self.required_deduction_codes = tuple(self.required_deduction_codes)
        if not self.company_name or not self.company_id:
            raise ValueError("company_name and company_id are required for EFT export")
        # Raises ValueError for unsupported currencies
        currency_places(self.currency)

        logger.info(
            "payroll_config_initialized",
            extra={
                "currency": self.currency,
                "max_workers": self.max_workers,
                "default_pay_frequency": self.default_pay_frequency,
                "required_earning_codes": list(self.required_earning_codes),
                "required_deduction_codes": list(self.required_deduction_codes),
                "paye_rate": str(self.statutory.paye_rate),
            },
        )

    @property
    def currency_places(self) -> int:
        return currency_places(self.currency)

    def payslip_rules(self) -> PayslipRules:
        return PayslipRules(
            required_earning_codes=self.required_earning_codes,
            required_deduction_codes=self.required_deduction_codes,
            max_hours=self.max_hours_per_period,
            require_tax_number=self.require_tax_number,
            require_bank_details=self.require_bank_details,
            currency_places=self.currency_places,
        )

    def statutory_rules(self) -> FlatRateStatutoryRules:
        return FlatRateStatutoryRules(
            paye_rate=self.statutory.paye_rate,
            uif_rate=self.statutory.uif_rate,
            uif_cap=self.statutory.uif_cap,
            sdl_rate=self.statutory.sdl_rate,
            currency_places=self.currency_places,
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        logger.info("payroll_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from a YAML file)."""
        logger.info(
            "payroll_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if isinstance(data.get("statutory"), dict):
            data["statutory"] = StatutoryRatesConfig(**data["statutory"])
        return cls(**data)
