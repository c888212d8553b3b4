"""Property-based tests for structured logging."""

import json
import sys
from datetime import datetime, timezone
from io import StringIO

from hypothesis import given
from hypothesis import strategies as st

from src.models.market_data import WeatherStatus
from src.utils.logger import StructuredLogger
from src.utils.trace_context import collection_trace


def _capture(callback) -> list[dict]:
    captured_output = StringIO()
    original_stdout = sys.stdout
    sys.stdout = captured_output
    try:
        callback()
    finally:
        sys.stdout = original_stdout
    return [json.loads(line) for line in captured_output.getvalue().split("\n") if line]


class TestLoggerJSONFormat:
    """Tests for JSON log format compliance."""

    @given(
        level=st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
        message=st.text(min_size=1),
        context=st.dictionaries(
            st.text(min_size=1, max_size=20).filter(lambda x: x[0].isalpha()),
            st.one_of(st.text(), st.integers(), st.booleans()),
            max_size=5,
        ),
    )
    def test_log_entries_have_required_fields(self, level, message, context):
        """
        **Feature: collector-observability, Property 1: Log entries have required fields**

        Every entry is one JSON object with timestamp, level, component and
        message; context is passed through unchanged.
        """
        logger = StructuredLogger("test_component", min_level="DEBUG")

        entries = _capture(lambda: logger.log(level, message, context or None))

        assert len(entries) == 1
        log_entry = entries[0]
        assert log_entry["level"] == level
        assert log_entry["component"] == "test_component"
        assert log_entry["message"] == message
        assert log_entry["timestamp"].endswith("Z")
        assert "T" in log_entry["timestamp"]
        if context:
            assert log_entry["context"] == context
        else:
            assert "context" not in log_entry

    @given(
        message=st.text(min_size=1),
        exception_type=st.sampled_from(
            [ValueError, TypeError, RuntimeError, KeyError, AttributeError]
        ),
    )
    def test_error_log_entries_include_exception_details(self, message, exception_type):
        """
        **Feature: collector-observability, Property 2: Error entries include exception details**
        """
        logger = StructuredLogger("test_component", min_level="DEBUG")

        def log_exception():
            try:
                raise exception_type("Test error message")
            except exception_type as e:
                logger.error(message, exception=e)

        log_entry = _capture(log_exception)[0]

        assert log_entry["exception"]["type"] == exception_type.__name__
        assert "Test error message" in log_entry["exception"]["message"]
        assert "raise exception_type" in log_entry["exception"]["stack_trace"]


class TestLoggerBehaviour:
    """Level filtering, trace injection and value encoding."""

    def test_entries_below_min_level_are_dropped(self):
        logger = StructuredLogger("test_component", min_level="WARNING")

        entries = _capture(
            lambda: (logger.debug("hidden"), logger.info("hidden"), logger.warning("shown"))
        )

        assert [e["message"] for e in entries] == ["shown"]

    def test_unknown_level_is_logged_as_info(self):
        logger = StructuredLogger("test_component", min_level="DEBUG")

        entries = _capture(lambda: logger.log("verbose", "message"))

        assert entries[0]["level"] == "INFO"

    def test_current_trace_is_attached_to_context(self):
        logger = StructuredLogger("test_component", min_level="DEBUG")
        with collection_trace("trace-123"):
            entries = _capture(
                lambda: (logger.info("no context"), logger.info("with context", {"source": "ECOS"}))
            )

        assert entries[0]["context"] == {"trace_id": "trace-123"}
        assert entries[1]["context"] == {"source": "ECOS", "trace_id": "trace-123"}

    def test_explicit_trace_id_is_not_overwritten(self):
        logger = StructuredLogger("test_component", min_level="DEBUG")
        with collection_trace("ambient"):
            entries = _capture(lambda: logger.info("message", {"trace_id": "explicit"}))

        assert entries[0]["context"]["trace_id"] == "explicit"

    def test_non_json_values_are_stringified(self):
        logger = StructuredLogger("test_component", min_level="DEBUG")
        moment = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        entries = _capture(
            lambda: logger.info("message", {"at": moment, "status": WeatherStatus.SUNNY})
        )

        assert entries[0]["context"]["at"] == str(moment)
        assert entries[0]["context"]["status"] == str(WeatherStatus.SUNNY)

    def test_line_separators_stay_on_one_line(self):
        logger = StructuredLogger("test_component", min_level="DEBUG")
        message = "장 마감\x85next\u2028line\u2029end\nbreak"

        captured_output = StringIO()
        original_stdout = sys.stdout
        sys.stdout = captured_output
        try:
            logger.info(message, {"note": "\u2028"})
        finally:
            sys.stdout = original_stdout

        raw = captured_output.getvalue()
        assert raw.count("\n") == 1
        assert raw.isascii()
        entry = json.loads(raw)
        assert entry["message"] == message
        assert entry["context"] == {"note": "\u2028"}

    def test_file_output(self, tmp_path):
        log_file = tmp_path / "logs" / "collector.log"
        logger = StructuredLogger("test_component", file_path=str(log_file), min_level="DEBUG")

        _capture(lambda: logger.warning("written", {"source": "Opinet"}))

        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["context"] == {"source": "Opinet"}
