"""Tests for the tracer module."""

import json
import os
import threading

import numpy as np
import pytest


@pytest.fixture(autouse=True)
def tracer_off():
    """Leave the global tracer disabled after every test."""
    yield
    from iconpost.tracer import configure_tracer
    configure_tracer(enabled=False)


class TestSummarize:
    """Tests for object summarization."""

    def test_numpy_array_summary(self):
        """Test that numpy arrays are summarized with shape and type."""
        from iconpost.tracer import summarize

        arr = np.zeros((100, 200, 4), dtype=np.uint8)
        summary = summarize(arr)

        assert "ndarray" in summary
        assert "100x200x4" in summary
        assert "uint8" in summary

    def test_summary_capped_length(self):
        """Test that summary never exceeds max length."""
        from iconpost.tracer import summarize

        large_dict = {f"key_{i}": f"value_{i}" for i in range(100)}
        summary = summarize(large_dict, max_len=20)

        assert len(summary) <= 20

    def test_list_summary(self):
        from iconpost.tracer import summarize

        summary = summarize([1, 2, 3, 4, 5])

        assert "list" in summary
        assert "len=5" in summary

    def test_bytes_summary(self):
        """Image bodies are reduced to their length and a hash."""
        from iconpost.tracer import summarize

        summary = summarize(b"\x89PNG" + b"\x00" * 5000)

        assert summary.startswith("bytes(len=5004")

    def test_pixel_buffer_summary(self):
        from iconpost.models import PixelBuffer
        from iconpost.tracer import summarize

        buffer = PixelBuffer(width=3, height=2, pixels=np.zeros((2, 3, 4), dtype=np.uint8))

        assert summarize(buffer) == "PixelBuffer(3x2)"

    def test_pydantic_model_summary(self):
        from iconpost.models import ProcessingParameters
        from iconpost.tracer import summarize

        summary = summarize(ProcessingParameters())

        assert "ProcessingParameters" in summary

    def test_none_summary(self):
        from iconpost.tracer import summarize

        assert summarize(None) == "None"


class TestTracerSpan:
    """Tests for tracer span functionality."""

    def test_span_nesting(self, capsys):
        """Inner spans are indented one level deeper than outer ones."""
        from iconpost.tracer import configure_tracer, get_tracer

        configure_tracer(enabled=True, level="INFO")
        tracer = get_tracer()

        with tracer.span("outer", module="test"):
            with tracer.span("inner", module="test"):
                tracer.event("inside")

        lines = capsys.readouterr().err.strip().split("\n")

        assert len(lines) == 5
        assert "test:outer  start" in lines[0]
        assert "  test:inner  start" in lines[1]
        assert "    test:inner  inside" in lines[2]

    def test_failed_span_logs_and_reraises(self, capsys):
        from iconpost.tracer import configure_tracer, get_tracer

        configure_tracer(enabled=True, level="INFO")
        tracer = get_tracer()

        with pytest.raises(ValueError):
            with tracer.span("doomed", module="test"):
                raise ValueError("boom")

        err = capsys.readouterr().err
        assert "ERROR" in err
        assert "ValueError: boom" in err
        assert tracer._depth == 0

    def test_level_filtering(self, capsys):
        from iconpost.tracer import configure_tracer, get_tracer

        configure_tracer(enabled=True, level="WARN")
        tracer = get_tracer()

        tracer.event("quiet")
        tracer.event("loud", level="WARN")

        err = capsys.readouterr().err
        assert "quiet" not in err
        assert "loud" in err

    def test_tracer_disabled_no_output(self, capsys):
        """Test that disabled tracer produces no output."""
        from iconpost.tracer import configure_tracer, get_tracer

        configure_tracer(enabled=False)
        tracer = get_tracer()

        with tracer.span("test", module="test"):
            tracer.event("should not appear")

        assert capsys.readouterr().err == ""

    def test_file_and_json_output(self, temp_dir):
        from iconpost.tracer import configure_tracer, get_tracer

        path = os.path.join(temp_dir, "trace.log")
        configure_tracer(enabled=True, file_path=path, json_output=True)

        get_tracer().event("hello", size=3)
        configure_tracer(enabled=False)

        with open(path, encoding="utf-8") as f:
            lines = f.read().strip().split("\n")
        record = json.loads(lines[1])
        assert record["message"] == "hello size=3"
        assert record["meta"] == {"size": "3"}

    def test_depth_is_per_thread(self):
        """A span open in one thread does not indent another thread's output."""
        from iconpost.tracer import configure_tracer, get_tracer

        configure_tracer(enabled=True, level="ERROR")
        tracer = get_tracer()
        seen = []

        with tracer.span("main", module="test"):
            worker = threading.Thread(target=lambda: seen.append(tracer._depth))
            worker.start()
            worker.join()
            assert tracer._depth == 1

        assert seen == [0]


class TestTraceDecorator:
    """Tests for the @trace decorator."""

    def test_decorator_runs_function(self):
        """Test that decorated function executes normally."""
        from iconpost.tracer import configure_tracer, trace

        configure_tracer(enabled=False)

        @trace(label="test_func")
        def my_func(x):
            return x * 2

        assert my_func(5) == 10

    def test_decorator_logs_when_enabled(self, capsys):
        from iconpost.tracer import configure_tracer, trace

        configure_tracer(enabled=True)

        @trace(label="doubler", arg_names=["x"])
        def my_func(x):
            return x * 2

        assert my_func(x=4) == 8
        err = capsys.readouterr().err
        assert "doubler  start x=4" in err
        assert "end ok" in err

    def test_decorator_with_exception(self):
        from iconpost.tracer import configure_tracer, trace

        configure_tracer(enabled=False)

        @trace(label="failing_func")
        def failing_func():
            raise ValueError("test error")

        with pytest.raises(ValueError):
            failing_func()
