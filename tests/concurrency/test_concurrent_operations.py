"""
True concurrency tests for the in-memory services.

These tests use real threads released together through a Barrier so the
contended paths actually overlap.

Verifies:
- Two reservations against one balance never both succeed when the sum
  exceeds the available days
- Exactly one of many concurrent finalize calls wins
- Fan-out payslip calculation produces the same totals as a sequential pass
- Cancelling a run mid-calculation discards the in-flight results
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest

from payroll_engines.payslip import calculate_payslip
from payroll_engines.statutory import FlatRateStatutoryRules, StatutoryResult
from payroll_kernel.exceptions import InsufficientBalanceError, InvalidTransitionError
from payroll_modules.payroll.models import PayrunStatus
from payroll_modules.payroll.service import PayrunService

pytestmark = pytest.mark.concurrency

THREAD_TIMEOUT = 10


def _run_together(callables):
    """Start every callable behind one barrier; return (results, errors)."""
    barrier = threading.Barrier(len(callables))
    results, errors = [], []
    lock = threading.Lock()

    def _worker(fn):
        barrier.wait(timeout=THREAD_TIMEOUT)
        try:
            value = fn()
        except Exception as exc:
            with lock:
                errors.append(exc)
        else:
            with lock:
                results.append(value)

    threads = [threading.Thread(target=_worker, args=(fn,)) for fn in callables]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=THREAD_TIMEOUT)
    return results, errors


class TestLeaveReservationRace:

    def test_overlapping_reservations_cannot_overdraw(
        self, leave_service, context, open_annual_balance,
    ):
        open_annual_balance("EMP-001", days="5")

        results, errors = _run_together([
            lambda: leave_service.create_request(
                "EMP-001", "annual", date(2026, 2, 2), date(2026, 2, 4), context,
            ),
            lambda: leave_service.create_request(
                "EMP-001", "annual", date(2026, 2, 9), date(2026, 2, 11), context,
            ),
        ])

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientBalanceError)

        balance = leave_service.ledger.get_balance("EMP-001", "annual")
        assert balance.pending == Decimal("3")
        assert balance.available == Decimal("2")
        assert len(leave_service.list_requests()) == 1

    def test_many_single_day_requests(self, leave_service, context, open_annual_balance):
        open_annual_balance("EMP-001", days="5")
        # Ten distinct weekdays in February
        days = [d for d in range(2, 17) if date(2026, 2, d).weekday() < 5][:10]

        results, errors = _run_together([
            (lambda d=d: leave_service.create_request(
                "EMP-001", "annual", date(2026, 2, d), date(2026, 2, d), context,
            ))
            for d in days
        ])

        assert len(results) == 5
        assert all(isinstance(e, InsufficientBalanceError) for e in errors)
        assert leave_service.ledger.get_balance("EMP-001", "annual").available == Decimal("0")


class TestPayrunRaces:

    def test_single_finalize_winner(
        self, payrun_service, create_payrun, context, make_payslip_input,
    ):
        payrun = create_payrun()
        payrun_service.run(payrun.id, [make_payslip_input("EMP-001")], context)

        results, errors = _run_together(
            [lambda: payrun_service.finalize(payrun.id, context) for _ in range(8)]
        )

        assert len(results) == 1
        assert len(errors) == 7
        assert all(isinstance(e, InvalidTransitionError) for e in errors)
        assert payrun_service.get_run(payrun.id).status is PayrunStatus.FINALIZED

    def test_fan_out_matches_sequential(
        self, payrun_service, create_payrun, context, make_payslip_input,
    ):
        inputs = [
            make_payslip_input(f"EMP-{i:03d}", basic=f"{10000 + i * 137}.50")
            for i in range(1, 61)
        ]
        payrun = create_payrun()
        result = payrun_service.run(payrun.id, inputs, context)

        rules = FlatRateStatutoryRules()
        sequential = [calculate_payslip(i, rules) for i in inputs]

        assert result.status is PayrunStatus.READY
        assert result.employee_count == 60
        assert result.total_net == sum(c.net_pay for c in sequential)
        assert result.total_gross == sum(c.gross_pay for c in sequential)
        assert {p.employee_id for p in payrun_service.payslips(payrun.id)} == {
            i.employee_id for i in inputs
        }


class _BlockingRules:
    """Statutory rules that park the calculation until released."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self._inner = FlatRateStatutoryRules()

    def compute(self, gross_pay, taxable_gross, ytd_gross, ytd_tax) -> StatutoryResult:
        self.started.set()
        self.release.wait(timeout=THREAD_TIMEOUT)
        return self._inner.compute(gross_pay, taxable_gross, ytd_gross, ytd_tax)


class TestCancelDuringCalculation:

    def test_cancel_discards_in_flight_results(
        self, auditor, clock, payroll_config, context, make_payslip_input,
    ):
        rules = _BlockingRules()
        service = PayrunService(auditor, statutory_rules=rules, clock=clock, config=payroll_config)
        payrun = service.create_run(
            "2026-01", date(2026, 1, 1), date(2026, 1, 31), date(2026, 1, 25), context,
        )

        with ThreadPoolExecutor(max_workers=1) as executor:
            pending = executor.submit(service.run, payrun.id, [make_payslip_input()], context)
            assert rules.started.wait(timeout=THREAD_TIMEOUT)

            cancelled = service.cancel(payrun.id, context)
            rules.release.set()
            returned = pending.result(timeout=THREAD_TIMEOUT)

        assert cancelled.status is PayrunStatus.DRAFT
        assert returned.status is PayrunStatus.DRAFT
        assert service.payslips(payrun.id) == ()
        assert service.get_run(payrun.id).employee_count == 0

        # The run can be started again after a cancel.
        rerun = service.run(payrun.id, [make_payslip_input()], context)
        assert rerun.status is PayrunStatus.READY
