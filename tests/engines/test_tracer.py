"""
Tests for the engine tracer.

Verifies that @traced_engine emits one BURSAR_ENGINE_TRACE record per call
with a deterministic input fingerprint, and leaves results untouched.
"""

from decimal import Decimal

import pytest

from bursar_engines.allocation import FeeAllocationEngine
from bursar_engines.tracer import TRACE_TYPE, compute_input_fingerprint, traced_engine
from bursar_kernel.domain.fees import FeeItem
from bursar_kernel.domain.values import Money


def _traces(records):
    return [r for r in records if r.get("trace_type") == TRACE_TYPE]


@traced_engine("double", "2.1", fingerprint_fields=("value",))
def _double(value: Decimal) -> Decimal:
    return value * 2


class TestTracedEngine:

    def test_result_unchanged(self):
        assert _double(Decimal("2.5")) == Decimal("5.0")

    def test_emits_trace(self, captured_logs):
        _double(Decimal("1"))
        traces = _traces(captured_logs())
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "double"
        assert traces[0]["engine_version"] == "2.1"
        assert len(traces[0]["input_fingerprint"]) == 16
        assert traces[0]["duration_ms"] >= 0

    def test_fingerprint_deterministic(self, captured_logs):
        _double(Decimal("1.0"))
        _double(value=Decimal("1"))
        first, second = _traces(captured_logs())
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_fingerprint_sensitive_to_input(self, captured_logs):
        _double(Decimal("1"))
        _double(Decimal("2"))
        first, second = _traces(captured_logs())
        assert first["input_fingerprint"] != second["input_fingerprint"]

    def test_engine_methods_traced(self, captured_logs):
        item = FeeItem("tuition", "Tuition", "tuition", Money.of("100", "NGN"), True)
        FeeAllocationEngine().auto_allocate(Money.of("50", "NGN"), [item])
        names = [t["engine_name"] for t in _traces(captured_logs())]
        assert names == ["fee_allocation"]


class TestFingerprint:

    def test_money_normalized(self):
        a = compute_input_fingerprint(("m",), {"m": Money.of("10.00", "NGN")})
        b = compute_input_fingerprint(("m",), {"m": Money.of("10", "NGN")})
        assert a == b

    def test_missing_field_is_null(self):
        a = compute_input_fingerprint(("m",), {})
        b = compute_input_fingerprint(("m",), {"m": None})
        assert a == b


class TestFailedCalls:

    def test_error_outcome_traced_and_reraised(self, captured_logs):
        with pytest.raises(ValueError):
            FeeAllocationEngine().auto_allocate(Money.of("-1", "NGN"), [])
        (trace,) = _traces(captured_logs())
        assert trace["outcome"] == "error"
        assert trace["engine_name"] == "fee_allocation"

    def test_ok_outcome(self, captured_logs):
        _double(Decimal("3"))
        assert _traces(captured_logs())[0]["outcome"] == "ok"
