"""
Prometheus metrics for myq-status self-monitoring.

Tracks how the sample parser, the producer feed and the renderer behave
while a dashboard is running.  Exposed over HTTP only when the CLI is given
``--metrics-port``.
"""

from prometheus_client import Counter, Gauge, Histogram

# Parser metrics
RECORDS_ACCEPTED = Counter(
    "myq_records_accepted_total", "Status records parsed into samples"
)

RECORDS_SKIPPED = Counter(
    "myq_records_skipped_total",
    "Status records discarded before parsing",
    labelnames=["reason"],
)

LINES_DROPPED = Counter(
    "myq_lines_dropped_total", "Malformed or non-numeric lines dropped by the parser"
)

STREAM_ERRORS = Counter(
    "myq_stream_errors_total", "I/O errors that ended a sample stream early"
)

# Feed metrics
QUEUE_DEPTH = Gauge("myq_feed_queue_depth", "Samples waiting in the producer queue")

# Rendering metrics
SAMPLES_RENDERED = Counter("myq_samples_rendered_total", "Samples rendered by a view")

HEADERS_RENDERED = Counter("myq_headers_rendered_total", "Header blocks printed")

RENDER_LATENCY = Histogram(
    "myq_render_seconds",
    "Time spent rendering one sample",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1],
)
