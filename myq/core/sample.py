"""Core data model for server status samples.

A :class:`Sample` is one timestamped snapshot of named numeric readings,
partitioned into domains (``status`` for ``SHOW GLOBAL STATUS`` style
counters, ``variables`` for server variables).  Samples are immutable once
emitted by a producer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List

STATUS = "status"
VARIABLES = "variables"


class MetricKind(str, Enum):
    """How consumers should interpret successive readings."""

    GAUGE = "gauge"  # point-in-time magnitude
    COUNTER = "counter"  # monotonic, may reset


@dataclass(frozen=True)
class MetricValue:
    """A single named reading.

    Attributes:
        name: Lowercased metric name (e.g. ``com_select``).
        value: The numeric reading.
        kind: GAUGE or COUNTER.
    """

    name: str
    value: float
    kind: MetricKind = MetricKind.COUNTER


@dataclass(frozen=True)
class Sample:
    """A timestamped set of readings grouped by domain.

    Attributes:
        begin: Start of the interval this sample covers.
        end: End of the interval this sample covers.
        values: Domain name -> list of readings.
        source: Where the sample came from (file name or ``-``).
        interval: Sequence number of the sample within its stream.
    """

    begin: datetime
    end: datetime
    values: Dict[str, List[MetricValue]] = field(default_factory=dict)
    source: str = ""
    interval: int = 0

    def domain(self, name: str) -> List[MetricValue]:
        """Readings for one domain (empty if the domain is absent)."""
        return self.values.get(name, [])

    def __len__(self) -> int:
        return sum(len(v) for v in self.values.values())


def make_values(readings: Iterable[MetricValue]) -> List[MetricValue]:
    """Return readings sorted by name, for stable iteration order."""
    return sorted(readings, key=lambda mv: mv.name)
