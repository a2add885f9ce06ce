"""Two-generation metric cache.

Holds the current and the previous :class:`~myq.core.sample.Sample` with a
``domain -> name -> MetricValue`` index per generation, so columns can do
O(1) lookups and compare a reading with the same reading one generation
earlier.  Owned by the single consumer loop; nothing else mutates it.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from loguru import logger

from myq.core.sample import STATUS, MetricValue, Sample

__all__ = ["MetricCache", "match_pattern"]

Index = Dict[str, Dict[str, MetricValue]]


def _build_index(sample: Optional[Sample]) -> Index:
    index: Index = {}
    if sample is None:
        return index
    for domain, values in sample.values.items():
        index[domain] = {mv.name: mv for mv in values}
    return index


def match_pattern(name: str, pattern: str) -> bool:
    """Match *name* against a literal name or a prefix glob.

    ``com_*`` matches every name starting with ``com_``; a leading ``^`` is
    ignored.  Anything else must match exactly.
    """
    if pattern.startswith("^"):
        pattern = pattern[1:]
    if pattern.endswith("*"):
        return name.startswith(pattern[:-1])
    return name == pattern


class MetricCache:
    """Current/previous sample store with indexed lookups."""

    def __init__(self) -> None:
        self._current: Optional[Sample] = None
        self._previous: Optional[Sample] = None
        self._index: Index = {}
        self._prev_index: Index = {}

    # ------------------------------------------------------------------
    # State transition
    # ------------------------------------------------------------------

    def update(self, sample: Optional[Sample]) -> None:
        """Install *sample* as current, shifting current to previous.

        An absent (``None``) or empty sample clears the current generation
        and leaves the previous one untouched.  The next sample then has no
        previous generation, so it is never compared across the gap.
        """
        if not sample:
            self._current = None
            self._index = {}
            logger.debug("MetricCache cleared current generation")
            return

        self._previous, self._prev_index = self._current, self._index
        self._current = sample
        self._index = _build_index(sample)

    # ------------------------------------------------------------------
    # Point lookups
    # ------------------------------------------------------------------

    def get_metric(self, domain: str, name: str) -> Optional[MetricValue]:
        return self._index.get(domain, {}).get(name)

    def get_prev_metric(self, domain: str, name: str) -> Optional[MetricValue]:
        return self._prev_index.get(domain, {}).get(name)

    def get_value(self, domain: str, name: str) -> float:
        """Current reading as a float, 0 when not found."""
        mv = self.get_metric(domain, name)
        return mv.value if mv is not None else 0.0

    def get_prev_value(self, domain: str, name: str) -> float:
        """Previous reading as a float, 0 when not found."""
        mv = self.get_prev_metric(domain, name)
        return mv.value if mv is not None else 0.0

    # ------------------------------------------------------------------
    # Pattern lookups and metadata
    # ------------------------------------------------------------------

    def find_metrics(self, domain: str, pattern: str) -> List[MetricValue]:
        """All current readings in *domain* whose name matches *pattern*.

        Always evaluated against the live index, so names that only appear
        in later generations are picked up as soon as they exist.
        """
        return [
            mv
            for name, mv in sorted(self._index.get(domain, {}).items())
            if match_pattern(name, pattern)
        ]

    def domain_exists(self, domain: str) -> bool:
        return domain in self._index

    def all_domains(self) -> List[str]:
        return sorted(self._index)

    def seconds_diff(self) -> float:
        """Seconds between the end of the previous and current samples."""
        if self._current is None or self._previous is None:
            return 0.0
        return (self._current.end - self._previous.end).total_seconds()

    @property
    def current(self) -> Optional[Sample]:
        return self._current

    @property
    def previous(self) -> Optional[Sample]:
        return self._previous

    def has_current(self) -> bool:
        return self._current is not None

    def has_previous(self) -> bool:
        return self._previous is not None

    def time_string(self) -> str:
        """``HH:MM:SS`` of the current sample, empty if there is none."""
        if self._current is None:
            return ""
        return self._current.end.strftime("%H:%M:%S")

    def uptime(self) -> int:
        return int(self.get_value(STATUS, "uptime"))

    def __repr__(self) -> str:
        if self._current is None:
            return "MetricCache(empty)"
        return (
            f"MetricCache(domains={len(self._index)}, time={self.time_string()}, "
            f"interval={self._current.interval})"
        )
