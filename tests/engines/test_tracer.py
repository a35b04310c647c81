"""Tests for the engine invocation tracer."""

from datetime import date
from decimal import Decimal

from cashflow_engines.recurrence import advance
from cashflow_engines.tracer import compute_input_fingerprint


class TestFingerprint:
    def test_deterministic(self):
        a = compute_input_fingerprint(("x", "y"), {"x": Decimal("1.50"), "y": {"b": 1, "a": 2}})
        b = compute_input_fingerprint(("x", "y"), {"y": {"a": 2, "b": 1}, "x": Decimal("1.5")})
        assert a == b
        assert len(a) == 16

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})


class TestTracedEngine:
    def _traces(self, captured_logs):
        return [r for r in captured_logs() if r["message"] == "CASHFLOW_ENGINE_TRACE"]

    def test_emits_trace_record(self, captured_logs):
        advance(date(2024, 1, 31), "MONTHLY")

        traces = self._traces(captured_logs)
        assert traces[-1]["engine_name"] == "recurrence"
        assert traces[-1]["engine_version"] == "1.0"
        assert traces[-1]["function"] == "advance"

    def test_positional_and_keyword_calls_fingerprint_alike(self, captured_logs):
        advance(date(2024, 1, 31), "MONTHLY")
        advance(current=date(2024, 1, 31), frequency="MONTHLY")
        advance(date(2024, 2, 29), "MONTHLY")

        fps = [t["input_fingerprint"] for t in self._traces(captured_logs)[-3:]]
        assert fps[0] == fps[1]
        assert fps[0] != fps[2]
