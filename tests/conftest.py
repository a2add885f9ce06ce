import socket
import sys
from datetime import datetime, timedelta
from typing import Dict, Optional

import pytest
from loguru import logger

from myq.core.cache import MetricCache
from myq.core.parser import classify
from myq.core.sample import STATUS, MetricValue, Sample, make_values

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def _make_sample(
    readings: Dict[str, float],
    seconds: float = 0,
    extra: Optional[Dict[str, Dict[str, float]]] = None,
) -> Sample:
    end = BASE_TIME + timedelta(seconds=seconds)
    values = {
        STATUS: make_values(
            MetricValue(name, float(value), classify(name))
            for name, value in readings.items()
        )
    }
    for domain, more in (extra or {}).items():
        values[domain] = make_values(
            MetricValue(name, float(value)) for name, value in more.items()
        )
    return Sample(begin=end - timedelta(seconds=1), end=end, values=values)


@pytest.fixture
def make_sample():
    """Factory for Samples ending ``seconds`` after 12:00:00."""
    return _make_sample


@pytest.fixture
def make_cache():
    """Factory for a cache holding ``prev`` then ``cur``, ``seconds`` apart."""

    def _make(cur: Dict[str, float], prev: Optional[Dict[str, float]] = None, seconds: float = 1):
        cache = MetricCache()
        if prev is not None:
            cache.update(_make_sample(prev, 0))
        cache.update(_make_sample(cur, seconds))
        return cache

    return _make


def batch_record(**values: float) -> str:
    return "".join(f"{name}\t{value}\n" for name, value in values.items())


@pytest.fixture
def batch_capture():
    """Build a BATCH capture: records separated by MYQTOOLSEND lines."""

    def _build(records) -> str:
        return "".join(batch_record(**r) + "MYQTOOLSEND\n" for r in records)

    return _build


@pytest.fixture
def tabular_capture():
    """Build a TABULAR capture in ``mysqladmin extended-status`` layout."""

    def _build(records) -> str:
        border = "+-----------------------------------+-----------+\n"
        out = []
        for r in records:
            out.append(border)
            out.append(f"| {'Variable_name':<33} | {'Value':<9} |\n")
            out.append(border)
            for name, value in r.items():
                out.append(f"| {name:<33} | {str(value):<9} |\n")
            out.append(border)
        return "".join(out)

    return _build


@pytest.fixture(autouse=True)
def _reset_logging():
    """Restore a plain stderr sink after tests that reconfigure loguru."""
    yield
    logger.remove()
    logger.add(sys.stderr, level="WARNING")


@pytest.fixture(autouse=True)
def _block_network(request, monkeypatch):
    """Block outbound network access for all tests unless marked with @pytest.mark.network."""
    if request.node.get_closest_marker("network"):
        return

    def deny(*_args, **_kwargs):  # pragma: no cover - only hit by a broken test
        raise RuntimeError("Network access is disabled during tests.")

    monkeypatch.setattr(socket, "create_connection", deny, raising=True)
