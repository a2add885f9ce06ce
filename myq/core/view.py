"""Groups and views: stacking columns side by side.

Children of a group can produce a different number of lines.  Headers are
aligned at the bottom ("pushed down", so every column name sits on the row
just above the data) while data is aligned at the top ("pushed up", so the
first row of every child is the row for the current sample).
"""

from __future__ import annotations

from typing import Annotated, Callable, List, Literal, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from myq.core.cache import MetricCache
from myq.core.columns import (
    BaseCol,
    Diff,
    Duration,
    Gauge,
    Percent,
    Rate,
    RateSum,
    SortedExpandedCounts,
    String,
    Subtract,
    SubtractRate,
    Switch,
)
from myq.core.numbers import fit_string, fit_string_left
from myq.core.source_key import SourceKey

HELP_INDENT = "   "
TIME_WIDTH = 8

Lines = List[str]


def _stack(
    cols: Sequence[BaseCol], get_output: Callable[[BaseCol], Lines], top: bool
) -> Lines:
    outputs = [get_output(col) for col in cols]
    height = max((len(out) for out in outputs), default=0)

    result = []
    for line in range(height):
        row = []
        for col, out in zip(cols, outputs):
            # index into this column's lines once the padding is accounted for
            i = line if top else line - (height - len(out))
            row.append(out[i] if 0 <= i < len(out) else col.get_blank())
        result.append(" ".join(row))
    return result


def push_col_output_down(
    cols: Sequence[BaseCol], get_output: Callable[[BaseCol], Lines]
) -> Lines:
    """Join column outputs, padding short columns with blanks above."""
    return _stack(cols, get_output, top=False)


def push_col_output_up(
    cols: Sequence[BaseCol], get_output: Callable[[BaseCol], Lines]
) -> Lines:
    """Join column outputs, padding short columns with blanks below."""
    return _stack(cols, get_output, top=True)


def _indented_help(title: str, children: Sequence[BaseCol]) -> Lines:
    lines = [title]
    for child in children:
        lines.extend(HELP_INDENT + line for line in child.detailed_help())
    return lines


def _unique_keys(children: Sequence[BaseCol]) -> List[SourceKey]:
    keys: List[SourceKey] = []
    for child in children:
        for key in child.required_metrics():
            if key not in keys:
                keys.append(key)
    return keys


class GroupCol(BaseCol):
    """A titled set of columns rendered as one.

    The title is left aligned over the children's headers.  The group is as
    wide as its children plus the separating spaces; a larger ``width``
    pads every row on the right, a smaller one is rejected at load time.
    """

    type: Literal["Group"] = "Group"
    cols: List["Column"] = Field(min_length=1)

    @model_validator(mode="after")
    def _fits_children(self) -> "GroupCol":
        needed = self._children_width()
        if self.width and self.width < needed:
            raise ValueError(
                f"group {self.name!r} width {self.width} is narrower than its "
                f"columns ({needed})"
            )
        return self

    def _children_width(self) -> int:
        return sum(col.get_width() for col in self.cols) + len(self.cols) - 1

    def get_width(self) -> int:
        return self.width or self._children_width()

    def detailed_help(self) -> Lines:
        return _indented_help(self.short_help(), self.cols)

    def required_metrics(self) -> List[SourceKey]:
        return _unique_keys(self.cols)

    def get_header(self, cache: MetricCache) -> Lines:
        width = self.get_width()
        lines = push_col_output_down(self.cols, lambda col: col.get_header(cache))
        return [fit_string_left(self.name, width)] + [line.ljust(width) for line in lines]

    def get_data(self, cache: MetricCache) -> Lines:
        width = self.get_width()
        lines = push_col_output_up(self.cols, lambda col: col.get_data(cache))
        return [line.ljust(width) for line in lines]


Column = Annotated[
    Union[
        Gauge,
        Rate,
        Diff,
        Percent,
        RateSum,
        Subtract,
        SubtractRate,
        Switch,
        String,
        Duration,
        SortedExpandedCounts,
        GroupCol,
    ],
    Field(discriminator="type"),
]

GroupCol.model_rebuild()


class SampleTimeCol(BaseCol):
    """Clock time (``HH:MM:SS``) of the current sample."""

    name: str = "time"
    description: str = "Time of the sample"
    width: int = TIME_WIDTH

    def get_data(self, cache: MetricCache) -> Lines:
        return [fit_string(cache.time_string(), self.width)]


class View(BaseModel):
    """A named dashboard: groups first, then loose columns.

    The time column is always rendered first and is not part of the
    definition.
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    description: str = ""
    groups: List[GroupCol] = Field(default_factory=list)
    cols: List[Column] = Field(default_factory=list)

    @model_validator(mode="after")
    def _has_columns(self) -> "View":
        if not self.groups and not self.cols:
            raise ValueError(f"view {self.name!r} defines no groups or cols")
        return self

    @property
    def children(self) -> List[BaseCol]:
        return [*self.groups, *self.cols]

    def short_help(self) -> str:
        return f"{self.name}: {self.description}"

    def detailed_help(self) -> Lines:
        return _indented_help(self.short_help(), self.children)

    def required_metrics(self) -> List[SourceKey]:
        return _unique_keys(self.children)

    def get_sources(self) -> List[str]:
        """Sorted domains the view reads from."""
        return sorted({key.domain for key in self.required_metrics()})

    def get_header(self, cache: MetricCache) -> Lines:
        return push_col_output_down(
            self._render_cols(), lambda col: col.get_header(cache)
        )

    def get_data(self, cache: MetricCache) -> Lines:
        return push_col_output_up(self._render_cols(), lambda col: col.get_data(cache))

    def _render_cols(self) -> List[BaseCol]:
        return [TIME_COL, *self.children]


TIME_COL = SampleTimeCol()

__all__ = [
    "Column",
    "GroupCol",
    "SampleTimeCol",
    "View",
    "push_col_output_down",
    "push_col_output_up",
]
