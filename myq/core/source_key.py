from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from myq.core.sample import STATUS, VARIABLES

# Legacy domain spellings accepted in view definitions
DOMAIN_ALIASES = {
    "status.global": STATUS,
    "var.global": VARIABLES,
    "var": VARIABLES,
}


class SourceKey(BaseModel):
    """Reference to a metric (or a glob of metrics) within a domain.

    Written as ``domain/metric`` in view definitions, e.g.
    ``status/com_select`` or ``status/com_insert*``.  A regex style trailing
    ``.*`` is read as the glob ``*``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    domain: str
    metric: str

    @model_validator(mode="before")
    @classmethod
    def _normalise_input(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _split(value)
        # mapping form: {domain: status, metric: com_select}
        if isinstance(value, dict):
            domain, metric = value.get("domain"), value.get("metric")
            if isinstance(domain, str) and isinstance(metric, str):
                return {**value, **_normalise(domain, metric)}
        return value

    @classmethod
    def parse(cls, text: str) -> "SourceKey":
        return cls.model_validate(text)

    @property
    def is_pattern(self) -> bool:
        return self.metric.endswith("*")

    def __str__(self) -> str:
        return f"{self.domain}/{self.metric}"


def _split(text: str) -> dict[str, str]:
    domain, sep, metric = text.strip().partition("/")
    if not sep or not domain or not metric:
        raise ValueError(f"invalid source key {text!r} (expected domain/metric)")
    return _normalise(domain, metric)


def _normalise(domain: str, metric: str) -> dict[str, str]:
    metric = metric.lower()
    if metric.endswith(".*"):
        metric = metric[:-2] + "*"
    return {"domain": DOMAIN_ALIASES.get(domain, domain), "metric": metric}
