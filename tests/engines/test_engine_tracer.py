"""Tests for the @traced_engine decorator and input fingerprints."""

import pytest

from approval_engines.tracer import compute_input_fingerprint, traced_engine


@traced_engine("sample", "2.1", fingerprint_fields=("category",))
def sample_engine(*, category, payload=None):
    if payload == "boom":
        raise ValueError("boom")
    return category * 2


class TestFingerprint:

    def test_deterministic(self):
        a = compute_input_fingerprint(("x", "y"), {"x": {"b": 1, "a": 2}, "y": frozenset({3, 1})})
        b = compute_input_fingerprint(("x", "y"), {"y": frozenset({1, 3}), "x": {"a": 2, "b": 1}})
        assert a == b
        assert len(a) == 16

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(
            ("x",), {"x": None},
        )


class TestTracedEngine:

    def test_emits_trace(self, captured_logs):
        assert sample_engine(category=4) == 8

        traces = [r for r in captured_logs() if r["message"] == "APPROVAL_ENGINE_TRACE"]
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "sample"
        assert traces[0]["engine_version"] == "2.1"
        assert traces[0]["level"] == "DEBUG"
        assert traces[0]["input_fingerprint"] == compute_input_fingerprint(
            ("category",), {"category": 4},
        )

    def test_no_trace_on_failure(self, captured_logs):
        with pytest.raises(ValueError):
            sample_engine(category=1, payload="boom")
        assert not [r for r in captured_logs() if r["message"] == "APPROVAL_ENGINE_TRACE"]
