import pytest
from pydantic import ValidationError

from myq.core.cache import MetricCache
from myq.core.columns import Gauge, Rate
from myq.core.view import (
    GroupCol,
    SampleTimeCol,
    View,
    push_col_output_down,
    push_col_output_up,
)


class Stub:
    """Column stand-in with fixed output lines."""

    def __init__(self, lines, width):
        self.lines = lines
        self.width = width

    def get_blank(self):
        return " " * self.width


def connects_group():
    return GroupCol(
        name="Connects",
        description="Connection related metrics",
        cols=[
            Rate(type="Rate", name="cons", description="Connections per second",
                 key="status/connections", width=4),
            Gauge(type="Gauge", name="conn", description="Threads connected",
                  key="status/threads_connected", width=4),
        ],
    )


@pytest.fixture
def connects_cache(make_cache):
    return make_cache(
        {"connections": 15, "threads_connected": 4},
        {"connections": 10, "threads_connected": 3},
        seconds=1,
    )


class TestStacking:
    def test_push_down_pads_short_columns_above(self):
        cols = [Stub(["cons"], 4), Stub(["acns", "idle"], 4)]
        assert push_col_output_down(cols, lambda c: c.lines) == [
            "     acns",
            "cons idle",
        ]

    def test_push_up_pads_short_columns_below(self):
        cols = [Stub(["cons"], 4), Stub(["acns", "idle"], 4)]
        assert push_col_output_up(cols, lambda c: c.lines) == [
            "cons acns",
            "     idle",
        ]

    def test_no_output(self):
        assert push_col_output_up([Stub([], 3)], lambda c: c.lines) == []


class TestGroupCol:
    def test_header(self, connects_cache):
        assert connects_group().get_header(connects_cache) == ["Connects ", "cons conn"]

    def test_data(self, connects_cache):
        assert connects_group().get_data(connects_cache) == ["   5    4"]

    def test_width_and_blank(self):
        group = connects_group()
        assert group.get_width() == 9
        assert group.get_blank() == " " * 9

    def test_nested_group_header_is_pushed_down(self, connects_cache):
        outer = GroupCol(
            name="All",
            cols=[
                Gauge(type="Gauge", name="run", key="status/threads_running", width=3),
                {"type": "Group", "name": "Connects", "cols": [
                    {"type": "Rate", "name": "cons", "key": "status/connections", "width": 4},
                ]},
            ],
        )
        assert outer.get_header(connects_cache) == [
            "All     ",
            "    Conn",
            "run cons",
        ]

    def test_detailed_help_is_indented(self):
        assert connects_group().detailed_help() == [
            "Connects: Connection related metrics",
            "   cons: Connections per second",
            "   conn: Threads connected",
        ]

    def test_required_metrics(self):
        keys = [str(k) for k in connects_group().required_metrics()]
        assert keys == ["status/connections", "status/threads_connected"]

    def test_needs_columns(self):
        with pytest.raises(ValidationError):
            GroupCol(name="Empty", cols=[])

    def test_width_narrower_than_columns_rejected(self):
        data = connects_group().model_dump()
        data["width"] = 5
        with pytest.raises(ValidationError, match="narrower"):
            GroupCol.model_validate(data)

    def test_wider_width_pads_every_row(self, connects_cache):
        data = connects_group().model_dump()
        data["width"] = 12
        group = GroupCol.model_validate(data)
        lines = group.get_header(connects_cache) + group.get_data(connects_cache)
        assert lines == ["Connects    ", "cons conn   ", "   5    4   "]
        assert group.get_blank() == " " * 12

    def test_padded_group_keeps_siblings_aligned(self, connects_cache):
        data = connects_group().model_dump()
        data["width"] = 12
        outer = GroupCol(
            name="All",
            cols=[
                data,
                {"type": "Gauge", "name": "run", "key": "status/threads_running",
                 "width": 3},
            ],
        )
        lines = outer.get_header(connects_cache) + outer.get_data(connects_cache)
        assert len({len(line) for line in lines}) == 1
        assert lines[-1] == "   5    4      -"


class TestView:
    def view(self):
        return View(
            name="mini",
            description="A small view",
            groups=[connects_group()],
            cols=[
                {"type": "Gauge", "name": "maxc", "key": "variables/max_connections",
                 "width": 4},
            ],
        )

    def test_header_has_time_column_first(self, connects_cache):
        assert self.view().get_header(connects_cache) == [
            " " * 9 + "Connects" + " " * 6,
            "    time cons conn maxc",
        ]

    def test_data(self, connects_cache):
        assert self.view().get_data(connects_cache) == ["12:00:01    5    4    -"]

    def test_data_on_empty_cache(self):
        assert self.view().get_data(MetricCache()) == [
            " " * 12 + "-    -    -",
        ]

    def test_sources(self):
        assert self.view().get_sources() == ["status", "variables"]

    def test_detailed_help(self):
        assert self.view().detailed_help() == [
            "mini: A small view",
            "   Connects: Connection related metrics",
            "      cons: Connections per second",
            "      conn: Threads connected",
            "   maxc: ",
        ]

    def test_requires_groups_or_cols(self):
        with pytest.raises(ValidationError):
            View(name="empty")

    def test_unknown_column_type(self):
        with pytest.raises(ValidationError):
            View(name="bad", cols=[{"type": "Sparkline", "name": "x", "key": "status/x"}])


def test_time_column(make_cache):
    col = SampleTimeCol()
    assert col.get_header(MetricCache()) == ["    time"]
    assert col.get_data(make_cache({"uptime": 1}, seconds=65)) == ["12:01:05"]
    assert col.get_data(MetricCache()) == ["        "]
