"""
Tests for Prometheus metrics integration.
"""

from prometheus_client import REGISTRY

from myq.cli import run_dashboard
from myq.core.parser import FileParser
from myq.core.view_store import load_default_views
from myq.metrics import (HEADERS_RENDERED, LINES_DROPPED, QUEUE_DEPTH,
                         RECORDS_ACCEPTED, RECORDS_SKIPPED, RENDER_LATENCY,
                         SAMPLES_RENDERED, STREAM_ERRORS)


def sample_value(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetrics:
    """Test Prometheus metrics functionality."""

    def test_metrics_initialization(self):
        """Counters drop the _total suffix from their registered name."""
        assert RECORDS_ACCEPTED._name == "myq_records_accepted"
        assert RECORDS_SKIPPED._name == "myq_records_skipped"
        assert LINES_DROPPED._name == "myq_lines_dropped"
        assert STREAM_ERRORS._name == "myq_stream_errors"
        assert SAMPLES_RENDERED._name == "myq_samples_rendered"
        assert HEADERS_RENDERED._name == "myq_headers_rendered"
        assert QUEUE_DEPTH._name == "myq_feed_queue_depth"
        assert RENDER_LATENCY._name == "myq_render_seconds"

    def test_parser_counts_records(self, tmp_path, batch_capture):
        path = tmp_path / "status.txt"
        path.write_text(
            batch_capture([{"Uptime": n, "Threads_running": "x"} for n in range(1, 5)])
        )
        accepted = sample_value("myq_records_accepted_total")
        skipped = sample_value("myq_records_skipped_total", {"reason": "interval"})
        dropped = sample_value("myq_lines_dropped_total")

        with FileParser(str(path)) as parser:
            parser.initialize(3)
            assert len(list(parser.produce())) == 2

        assert sample_value("myq_records_accepted_total") == accepted + 2
        assert (
            sample_value("myq_records_skipped_total", {"reason": "interval"})
            == skipped + 2
        )
        assert sample_value("myq_lines_dropped_total") == dropped + 2

    def test_render_counters(self, make_sample):
        view = load_default_views()["cttf"]
        samples = [make_sample({"uptime": n}, seconds=n) for n in range(1, 4)]
        rendered = sample_value("myq_samples_rendered_total")
        headers = sample_value("myq_headers_rendered_total")
        observed = sample_value("myq_render_seconds_count")

        run_dashboard(view, samples, header_repeat=100, echo=lambda line: None,
                      term_size=lambda: (24, 80))

        assert sample_value("myq_samples_rendered_total") == rendered + 3
        assert sample_value("myq_headers_rendered_total") == headers + 1
        assert sample_value("myq_render_seconds_count") == observed + 3
