"""
Tests for the pure kernel primitives.

Tests cover:
- Workflow: transition lookup, InvalidTransitionError payload, construction checks
- Money: Decimal-only conversion, banker's rounding, currency precision
- WeekdayCalendar: weekends, holidays, working-day counting
- EngineContext: required organization and actor
- DeterministicClock: fixed and advancing time
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

import pytest

from payroll_kernel.domain.calendar import WeekdayCalendar, working_days_between
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.context import EngineContext
from payroll_kernel.domain.money import (
    currency_places,
    round_days,
    round_money,
    sum_money,
    to_decimal,
)
from payroll_kernel.domain.workflow import Transition, Workflow
from payroll_kernel.exceptions import InvalidTransitionError, PayrollKernelError


class _Door(Enum):
    OPEN = "open"
    CLOSED = "closed"
    LOCKED = "locked"


def _door_workflow() -> Workflow:
    return Workflow(
        name="door",
        description="test door",
        initial_state=_Door.OPEN,
        states=(_Door.OPEN, _Door.CLOSED, _Door.LOCKED),
        transitions=(
            Transition(_Door.OPEN, _Door.CLOSED, action="close"),
            Transition(_Door.CLOSED, _Door.OPEN, action="open"),
            Transition(_Door.CLOSED, _Door.LOCKED, action="lock"),
        ),
        terminal_states=(_Door.LOCKED,),
    )


# =========================================================================
# Workflow
# =========================================================================


class TestWorkflow:

    def test_require_returns_transition(self):
        transition = _door_workflow().require(_Door.OPEN, "close", "Door", "d-1")
        assert transition.to_state is _Door.CLOSED

    def test_illegal_action_raises_with_structured_fields(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            _door_workflow().require(_Door.OPEN, "lock", "Door", "d-1")

        err = exc_info.value
        assert err.code == "INVALID_TRANSITION"
        assert err.entity_type == "Door"
        assert err.entity_id == "d-1"
        assert err.from_state == "open"
        assert err.action == "lock"
        assert "close" in err.reason

    def test_terminal_state_has_no_actions(self):
        workflow = _door_workflow()
        assert workflow.actions_from(_Door.LOCKED) == ()
        with pytest.raises(InvalidTransitionError) as exc_info:
            workflow.require(_Door.LOCKED, "open", "Door", "d-1")
        assert "none" in exc_info.value.reason

    def test_transition_from_terminal_state_rejected_at_construction(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                name="bad",
                description="",
                initial_state=_Door.OPEN,
                states=(_Door.OPEN, _Door.LOCKED),
                transitions=(Transition(_Door.LOCKED, _Door.OPEN, action="open"),),
                terminal_states=(_Door.LOCKED,),
            )

    def test_undeclared_state_rejected_at_construction(self):
        with pytest.raises(ValueError, match="undeclared state"):
            Workflow(
                name="bad",
                description="",
                initial_state=_Door.OPEN,
                states=(_Door.OPEN,),
                transitions=(Transition(_Door.OPEN, _Door.CLOSED, action="close"),),
            )

    def test_invalid_transition_is_kernel_error_not_value_error(self):
        assert issubclass(InvalidTransitionError, PayrollKernelError)
        assert not issubclass(InvalidTransitionError, ValueError)


# =========================================================================
# Money
# =========================================================================


class TestMoney:

    def test_round_half_even(self):
        assert round_money(Decimal("0.125")) == Decimal("0.12")
        assert round_money(Decimal("0.135")) == Decimal("0.14")
        assert round_money(Decimal("2.5"), places=0) == Decimal("2")

    def test_round_days_four_places(self):
        assert round_days(Decimal("1.25") / Decimal("3")) == Decimal("0.4167")

    def test_sum_money_normalizes_exponent(self):
        assert str(sum_money([])) == "0.00"
        assert sum_money([Decimal("1.10"), Decimal("2.20")]) == Decimal("3.30")

    def test_float_refused(self):
        with pytest.raises(TypeError):
            to_decimal(1.5)

    def test_string_and_int_accepted(self):
        assert to_decimal("12.50") == Decimal("12.50")
        assert to_decimal(3) == Decimal("3")

    def test_garbage_refused(self):
        with pytest.raises(ValueError):
            to_decimal("twelve")

    def test_currency_places(self):
        assert currency_places("zar") == 2
        assert currency_places("JPY") == 0
        with pytest.raises(ValueError, match="Unsupported currency"):
            currency_places("XXX")


# =========================================================================
# Calendar
# =========================================================================


class TestWeekdayCalendar:

    def test_weekend_is_not_working(self):
        calendar = WeekdayCalendar()
        assert calendar.is_working_day("EMP-001", date(2026, 3, 6))  # Friday
        assert not calendar.is_working_day("EMP-001", date(2026, 3, 7))  # Saturday
        assert not calendar.is_working_day("EMP-001", date(2026, 3, 8))  # Sunday

    def test_holiday_is_not_working(self):
        calendar = WeekdayCalendar.with_holidays([date(2026, 3, 20)])
        assert not calendar.is_working_day("EMP-001", date(2026, 3, 20))

    def test_working_days_between_inclusive(self):
        calendar = WeekdayCalendar()
        # Monday 2 March .. Sunday 15 March 2026
        assert working_days_between(calendar, "EMP-001", date(2026, 3, 2), date(2026, 3, 15)) == 10

    def test_invalid_weekday_rejected(self):
        with pytest.raises(ValueError):
            WeekdayCalendar(weekend_days=frozenset({7}))


# =========================================================================
# Context and clock
# =========================================================================


class TestEngineContext:

    def test_requires_organization(self):
        with pytest.raises(ValueError, match="organization_id"):
            EngineContext(organization_id="", actor_id="user-1")

    def test_requires_actor(self):
        with pytest.raises(ValueError, match="actor_id"):
            EngineContext(organization_id="ORG-1", actor_id="")


class TestDeterministicClock:

    def test_now_is_stable_until_advanced(self):
        clock = DeterministicClock(datetime(2026, 1, 15, 8, tzinfo=timezone.utc))
        assert clock.now() == clock.now()
        first = clock.now()
        assert clock.tick() > first

    def test_set_date(self):
        clock = DeterministicClock()
        clock.set_date(date(2026, 7, 1))
        assert clock.today() == date(2026, 7, 1)
