"""
Pytest fixtures for the payroll engine test suite.

Provides:
- Structured logging configuration and log capture
- Deterministic clock, caller context and audit trail
- Leave type catalogue, leave ledger and leave service
- Payslip input factory and payrun/termination services

Everything runs in memory. The SQLAlchemy audit store tests create their
own in-memory SQLite engine.
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from payroll_engines.leave_accrual import AccrualMethod, LeaveType
from payroll_engines.payslip import (
    BankAccount,
    DeductionLine,
    EarningLine,
    PayslipInput,
    YearToDate,
)
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.context import EngineContext
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules.leave.config import LeaveConfig
from payroll_modules.leave.ledger import LeaveLedger
from payroll_modules.leave.service import LeaveService
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.payroll.service import PayrunService
from payroll_modules.termination.service import TerminationService

# Fixed "now" for every service under test: Thursday 15 January 2026.
TEST_NOW = datetime(2026, 1, 15, 8, 0, 0, tzinfo=timezone.utc)

ORG_ID = "ORG-1"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, payrun_service):
            payrun_service.finalize(payrun_id, context)
            logs = captured_logs()
            assert any(r["message"] == "payrun_finalized" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: test exercises real multi-threaded contention"
    )
    config.addinivalue_line(
        "markers", "fuzzing: Hypothesis property-based test"
    )


# =============================================================================
# Kernel fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def context() -> EngineContext:
    return EngineContext(organization_id=ORG_ID, actor_id="payroll-admin")


@pytest.fixture
def manager_context() -> EngineContext:
    return EngineContext(organization_id=ORG_ID, actor_id="line-manager")


@pytest.fixture
def auditor(clock) -> AuditorService:
    return AuditorService(clock=clock)


# =============================================================================
# Leave fixtures
# =============================================================================


@pytest.fixture
def annual_leave() -> LeaveType:
    """Monthly 1.25 days, carry-over capped at 5 days expiring after 3 months."""
    return LeaveType(
        id="annual",
        name="Annual Leave",
        code="ANNUAL",
        accrual_method=AccrualMethod.MONTHLY,
        accrual_rate=Decimal("1.25"),
        cycle_start_month=1,
        carry_over_limit=Decimal("5"),
        carry_over_expire_months=3,
    )


@pytest.fixture
def sick_leave() -> LeaveType:
    return LeaveType(
        id="sick",
        name="Sick Leave",
        code="SICK",
        accrual_method=AccrualMethod.ANNUAL,
        accrual_rate=Decimal("30"),
        requires_attachment=True,
    )


@pytest.fixture
def unpaid_leave() -> LeaveType:
    return LeaveType(
        id="unpaid",
        name="Unpaid Leave",
        code="UNPAID",
        accrual_method=AccrualMethod.NONE,
        allow_negative_balance=True,
        is_paid=False,
    )


@pytest.fixture
def leave_types(annual_leave, sick_leave, unpaid_leave) -> tuple[LeaveType, ...]:
    return (annual_leave, sick_leave, unpaid_leave)


@pytest.fixture
def leave_ledger(auditor, clock) -> LeaveLedger:
    return LeaveLedger(auditor, clock=clock)


@pytest.fixture
def leave_service(leave_ledger, auditor, clock, leave_types) -> LeaveService:
    return LeaveService(
        leave_ledger,
        auditor,
        clock=clock,
        config=LeaveConfig(),
        leave_types=leave_types,
    )


@pytest.fixture
def open_annual_balance(leave_service, context):
    """Open an ``annual`` balance holding ``days`` with accrual starting today."""

    def _open(employee_id: str = "EMP-001", days: str = "15") -> None:
        leave_service.open_balance(
            employee_id, "annual", TEST_NOW.date(), context,
            opening_accrued=Decimal(days),
        )

    return _open


# =============================================================================
# Payroll fixtures
# =============================================================================


def complete_bank_account(holder: str = "Thandi Nkosi") -> BankAccount:
    return BankAccount(
        bank_name="First Bank",
        account_number="62000000001",
        branch_code="250655",
        account_holder=holder,
    )


@pytest.fixture
def make_payslip_input():
    """
    Factory for a January 2026 payslip input.

    The default employee earns a BASIC of 30000.00 with no voluntary
    deductions, a tax number and complete bank details.
    """

    def _make(
        employee_id: str = "EMP-001",
        basic: str | None = "30000.00",
        deductions: tuple[DeductionLine, ...] = (),
        extra_earnings: tuple[EarningLine, ...] = (),
        tax_number: str | None = "0123456789",
        bank_account: BankAccount | None = None,
        pay_point_id: str | None = None,
        is_active: bool = True,
        ytd: YearToDate | None = None,
    ) -> PayslipInput:
        earnings = ()
        if basic is not None:
            earnings = (
                EarningLine(
                    id=f"{employee_id}-basic", code="BASIC", name="Basic Salary",
                    amount=Decimal(basic),
                ),
            )
        return PayslipInput(
            employee_id=employee_id,
            employee_name=f"Employee {employee_id}",
            employee_number=employee_id.replace("EMP-", "E"),
            period_start=date(2026, 1, 1),
            period_end=date(2026, 1, 31),
            pay_date=date(2026, 1, 25),
            earnings=earnings + tuple(extra_earnings),
            deductions=tuple(deductions),
            ytd=ytd or YearToDate(),
            tax_number=tax_number,
            bank_account=bank_account if bank_account is not None else complete_bank_account(),
            pay_point_id=pay_point_id,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def payroll_config() -> PayrollConfig:
    return PayrollConfig(max_workers=4, company_name="Acme Payroll", company_id="1234567890")


@pytest.fixture
def payrun_service(auditor, clock, payroll_config) -> PayrunService:
    return PayrunService(auditor, clock=clock, config=payroll_config)


@pytest.fixture
def create_payrun(payrun_service, context):
    """Create a January 2026 payrun."""

    def _create(pay_point_ids: tuple[str, ...] = ()):
        return payrun_service.create_run(
            "2026-01",
            date(2026, 1, 1),
            date(2026, 1, 31),
            date(2026, 1, 25),
            context,
            pay_point_ids=pay_point_ids,
        )

    return _create


@pytest.fixture
def termination_service(auditor, clock, leave_service, payrun_service) -> TerminationService:
    return TerminationService(
        auditor,
        is_employee_finalized=payrun_service.is_employee_finalized,
        leave_service=leave_service,
        clock=clock,
    )
