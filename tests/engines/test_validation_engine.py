"""
Tests for the shared validation engine and the engine tracer.

Tests cover:
- Deduplication by rule code and error-over-warning precedence
- Order-insensitive, code-sorted results
- Payrun finalization and termination rule sets
- Deterministic input fingerprints and PAYROLL_ENGINE_TRACE records
"""

from datetime import date
from decimal import Decimal

from payroll_engines.payslip import calculate_payslip
from payroll_engines.statutory import FlatRateStatutoryRules
from payroll_engines.tracer import compute_input_fingerprint
from payroll_engines.validation import (
    PAYRUN_FINALIZATION_RULES,
    TERMINATION_RULES,
    PayrunValidationContext,
    Severity,
    TerminationValidationContext,
    ValidationRule,
    validate,
)


def _always(message):
    return lambda ctx: message


def _never(ctx):
    return None


# =========================================================================
# Rule evaluation
# =========================================================================


class TestValidate:

    def test_no_failures_is_valid(self):
        result = validate(None, [ValidationRule("A", Severity.ERROR, _never)])
        assert result.is_valid
        assert result.errors == ()
        assert result.warnings == ()

    def test_duplicate_codes_reported_once(self):
        rules = [
            ValidationRule("DUP", Severity.ERROR, _always("first")),
            ValidationRule("DUP", Severity.ERROR, _always("second")),
        ]
        result = validate(None, rules)
        assert result.error_codes == ("DUP",)

    def test_error_overrides_warning_for_same_code(self):
        rules = [
            ValidationRule("X", Severity.WARNING, _always("soft")),
            ValidationRule("X", Severity.ERROR, _always("hard")),
        ]
        result = validate(None, rules)
        assert result.error_codes == ("X",)
        assert result.warning_codes == ()
        assert result.errors[0].message == "hard"

    def test_results_sorted_regardless_of_rule_order(self):
        rules = [
            ValidationRule("C", Severity.ERROR, _always("c")),
            ValidationRule("A", Severity.ERROR, _always("a")),
            ValidationRule("B", Severity.WARNING, _always("b")),
        ]
        forward = validate(None, rules)
        backward = validate(None, list(reversed(rules)))

        assert forward == backward
        assert forward.error_codes == ("A", "C")
        assert forward.warning_codes == ("B",)

    def test_to_dict(self):
        result = validate(None, [ValidationRule("A", Severity.WARNING, _always("a"))])
        assert result.to_dict() == {"errors": [], "warnings": [{"code": "A", "message": "a"}]}


class TestPayrunFinalizationRules:

    def test_clean_payrun_passes(self):
        ctx = PayrunValidationContext("run-1", employee_count=3, employees_with_errors=0)
        assert validate(ctx, PAYRUN_FINALIZATION_RULES).is_valid

    def test_payslip_errors_block(self):
        ctx = PayrunValidationContext(
            "run-1", employee_count=3, employees_with_errors=1,
            error_employee_ids=("EMP-002",),
        )
        result = validate(ctx, PAYRUN_FINALIZATION_RULES)
        assert result.error_codes == ("PAYSLIP_ERRORS",)
        assert "EMP-002" in result.errors[0].message

    def test_empty_payrun_blocks(self):
        ctx = PayrunValidationContext("run-1", employee_count=0, employees_with_errors=0)
        assert validate(ctx, PAYRUN_FINALIZATION_RULES).error_codes == ("EMPTY_PAYRUN",)

    def test_zero_net_only_warns(self):
        ctx = PayrunValidationContext(
            "run-1", employee_count=2, employees_with_errors=0, payslips_with_zero_net=1,
        )
        result = validate(ctx, PAYRUN_FINALIZATION_RULES)
        assert result.is_valid
        assert result.warning_codes == ("ZERO_NET_PAY",)


class TestTerminationRules:

    def _ctx(self, **overrides):
        values = dict(
            termination_date=date(2026, 1, 31),
            last_working_day=date(2026, 1, 31),
            hire_date=date(2020, 3, 1),
            notice_period_days=30,
            leave_payout_days=Decimal("0"),
            net_pay=Decimal("1000.00"),
        )
        values.update(overrides)
        return TerminationValidationContext(**values)

    def test_valid_termination(self):
        assert validate(self._ctx(), TERMINATION_RULES).is_valid

    def test_missing_dates(self):
        result = validate(self._ctx(termination_date=None, last_working_day=None), TERMINATION_RULES)
        assert result.error_codes == ("MISSING_LAST_WORKING_DAY", "MISSING_TERMINATION_DATE")

    def test_termination_before_last_working_day(self):
        result = validate(self._ctx(termination_date=date(2026, 1, 30)), TERMINATION_RULES)
        assert result.error_codes == ("TERMINATION_BEFORE_LAST_WORKING_DAY",)

    def test_leave_payout_warnings(self):
        result = validate(self._ctx(leave_payout_days=Decimal("35")), TERMINATION_RULES)
        assert result.is_valid
        assert result.warning_codes == ("HIGH_LEAVE_PAYOUT", "LEAVE_PAYOUT")


# =========================================================================
# Tracer
# =========================================================================


class TestEngineTracer:

    def test_fingerprint_deterministic(self):
        args = {"amount": Decimal("10.00"), "on": date(2026, 1, 1)}
        first = compute_input_fingerprint(("amount", "on"), args)
        assert first == compute_input_fingerprint(("amount", "on"), dict(args))
        assert len(first) == 16

    def test_fingerprint_sensitive_to_input(self):
        a = compute_input_fingerprint(("amount",), {"amount": Decimal("10.00")})
        b = compute_input_fingerprint(("amount",), {"amount": Decimal("10.01")})
        assert a != b

    def test_engine_call_emits_trace(self, captured_logs, make_payslip_input):
        payslip_input = make_payslip_input()
        calculate_payslip(payslip_input, FlatRateStatutoryRules())
        calculate_payslip(payslip_input, FlatRateStatutoryRules())

        traces = [r for r in captured_logs() if r["message"] == "PAYROLL_ENGINE_TRACE"]
        assert len(traces) == 2
        assert traces[0]["engine_name"] == "payslip"
        assert traces[0]["engine_version"] == "1.0"
        assert traces[0]["input_fingerprint"] == traces[1]["input_fingerprint"]
