"""Tests for the @traced_engine decorator and input fingerprints."""

from dataclasses import dataclass
from enum import Enum

from receivables_engines.tracer import compute_input_fingerprint, traced_engine


class Colour(Enum):
    RED = "red"


@dataclass(frozen=True)
class Point:
    x: int
    y: int


@traced_engine("adder", "2.1", fingerprint_fields=("a", "b"))
def add(a, b, note=None):
    return a + b


class TestFingerprint:

    def test_deterministic(self):
        args = {"a": Point(1, 2), "b": [Colour.RED, None]}
        assert compute_input_fingerprint(("a", "b"), args) == compute_input_fingerprint(("a", "b"), args)
        assert len(compute_input_fingerprint(("a",), args)) == 16

    def test_dict_order_irrelevant(self):
        first = compute_input_fingerprint(("m",), {"m": {"x": 1, "y": 2}})
        second = compute_input_fingerprint(("m",), {"m": {"y": 2, "x": 1}})
        assert first == second

    def test_different_inputs_differ(self):
        assert compute_input_fingerprint(("a",), {"a": 1}) != compute_input_fingerprint(("a",), {"a": 2})

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("a",), {}) == compute_input_fingerprint(("a",), {"a": None})


class TestTracedEngine:

    def test_returns_result_and_emits_trace(self, captured_logs):
        assert add(2, b=3) == 5

        traces = [r for r in captured_logs() if r["message"] == "RECEIVABLES_ENGINE_TRACE"]
        assert len(traces) == 1
        trace = traces[0]
        assert trace["engine_name"] == "adder"
        assert trace["engine_version"] == "2.1"
        assert trace["function"] == "add"
        assert trace["input_fingerprint"] == compute_input_fingerprint(("a", "b"), {"a": 2, "b": 3})
        assert trace["duration_ms"] >= 0

    def test_fingerprint_ignores_unlisted_arguments(self, captured_logs):
        add(1, 1, note="x")
        add(1, 1, note="y")
        fingerprints = {
            r["input_fingerprint"] for r in captured_logs()
            if r["message"] == "RECEIVABLES_ENGINE_TRACE"
        }
        assert len(fingerprints) == 1

    def test_preserves_metadata(self):
        assert add.__name__ == "add"
