"""Tests for @traced_engine and the input fingerprint."""

from datetime import UTC, datetime

from billing_engines.revenue import RevenuePeriod, generate_revenue_report
from billing_engines.tracer import compute_input_fingerprint, traced_engine

NOW = datetime(2024, 3, 15, 10, 0, tzinfo=UTC)


def _traces(records):
    return [r for r in records if r["message"] == "BILLING_ENGINE_TRACE"]


class TestFingerprint:

    def test_deterministic(self):
        kwargs = {"period": RevenuePeriod.MONTH, "now": NOW}
        fp1 = compute_input_fingerprint(("period", "now"), kwargs)
        fp2 = compute_input_fingerprint(("period", "now"), dict(kwargs))
        assert fp1 == fp2
        assert len(fp1) == 16

    def test_sensitive_to_values(self):
        a = compute_input_fingerprint(("period",), {"period": RevenuePeriod.MONTH})
        b = compute_input_fingerprint(("period",), {"period": RevenuePeriod.YEAR})
        assert a != b

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(
            ("x",), {"x": None}
        )

    def test_dict_key_order_irrelevant(self):
        a = compute_input_fingerprint(("m",), {"m": {"a": 1, "b": 2}})
        b = compute_input_fingerprint(("m",), {"m": {"b": 2, "a": 1}})
        assert a == b


class TestTracedEngine:

    def test_revenue_report_emits_trace(self, captured_logs):
        generate_revenue_report([], RevenuePeriod.MONTH, NOW)
        traces = _traces(captured_logs())
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "revenue"
        assert traces[0]["engine_version"] == "1.0"
        assert traces[0]["trace_type"] == "BILLING_ENGINE_TRACE"
        assert len(traces[0]["input_fingerprint"]) == 16
        assert traces[0]["duration_ms"] >= 0

    def test_positional_and_keyword_calls_fingerprint_alike(self, captured_logs):
        generate_revenue_report([], RevenuePeriod.MONTH, NOW)
        generate_revenue_report([], period=RevenuePeriod.MONTH, now=NOW)
        first, second = _traces(captured_logs())
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_different_period_different_fingerprint(self, captured_logs):
        generate_revenue_report([], RevenuePeriod.MONTH, NOW)
        generate_revenue_report([], RevenuePeriod.YEAR, NOW)
        first, second = _traces(captured_logs())
        assert first["input_fingerprint"] != second["input_fingerprint"]

    def test_wraps_preserves_metadata_and_result(self, captured_logs):
        @traced_engine("demo", "2.0")
        def double(value):
            """Double a value."""
            return value * 2

        assert double(21) == 42
        assert double.__name__ == "double"
        assert double.__doc__ == "Double a value."
        trace = _traces(captured_logs())[0]
        assert trace["input_fingerprint"] == ""
        assert trace["function"].endswith("double")
