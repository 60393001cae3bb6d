"""
Statutory deduction rules -- the injected tax & contribution capability.

Responsibility:
    Map a period's gross pay to statutory employee deductions (PAYE, UIF)
    and employer contributions (employer UIF, SDL). Country tax tables are
    not modelled here: callers inject any ``StatutoryRules`` implementation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

``FlatRateStatutoryRules`` is the reference implementation used by default
and in tests: PAYE 25 % of taxable gross, UIF 1 % of gross capped at
177.12 (matched by the employer), SDL 1 % of gross payable by the employer.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable

from payroll_kernel.domain.money import DEFAULT_CURRENCY_PLACES, ZERO, round_money

PAYE_CODE = "PAYE"
UIF_CODE = "UIF"
UIF_EMPLOYER_CODE = "UIF_ER"
SDL_CODE = "SDL"


@dataclass(frozen=True)
class StatutoryResult:
    """Statutory amounts for one payslip, all quantized to currency precision."""
    paye: Decimal
    uif_employee: Decimal
    uif_employer: Decimal
    sdl: Decimal

    @property
    def employee_total(self) -> Decimal:
        return self.paye + self.uif_employee

    @property
    def employer_total(self) -> Decimal:
        return self.uif_employer + self.sdl


@runtime_checkable
class StatutoryRules(Protocol):
    """Tax & contribution capability. Must be pure and synchronous."""

    def compute(
        self,
        gross_pay: Decimal,
        taxable_gross: Decimal,
        ytd_gross: Decimal,
        ytd_tax: Decimal,
    ) -> StatutoryResult:
        ...


@dataclass(frozen=True)
class FlatRateStatutoryRules:
    """Flat-rate PAYE/UIF/SDL."""
    paye_rate: Decimal = Decimal("0.25")
    uif_rate: Decimal = Decimal("0.01")
    uif_cap: Decimal = Decimal("177.12")
    sdl_rate: Decimal = Decimal("0.01")
    currency_places: int = DEFAULT_CURRENCY_PLACES

    def __post_init__(self) -> None:
        for name in ("paye_rate", "uif_rate", "sdl_rate"):
            rate = getattr(self, name)
            if rate < 0 or rate > 1:
                raise ValueError(f"{name} must be between 0 and 1, got {rate}")
        if self.uif_cap < 0:
            raise ValueError("uif_cap cannot be negative")

    def compute(
        self,
        gross_pay: Decimal,
        taxable_gross: Decimal,
        ytd_gross: Decimal = ZERO,
        ytd_tax: Decimal = ZERO,
    ) -> StatutoryResult:
        places = self.currency_places
        if gross_pay <= 0:
            return StatutoryResult(
                paye=round_money(ZERO, places),
                uif_employee=round_money(ZERO, places),
                uif_employer=round_money(ZERO, places),
                sdl=round_money(ZERO, places),
            )
        paye = round_money(max(taxable_gross, ZERO) * self.paye_rate, places)
        uif = round_money(min(gross_pay * self.uif_rate, self.uif_cap), places)
        sdl = round_money(gross_pay * self.sdl_rate, places)
        return StatutoryResult(
            paye=paye,
            uif_employee=uif,
            uif_employer=uif,
            sdl=sdl,
        )
