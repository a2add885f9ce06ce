import itertools

import pytest

from myq.core.parser import FileParser
from myq.core.pipeline import SampleFeed


class FakeSource:
    """Produces numbered samples and records whether it was closed."""

    def __init__(self, make_sample, count=None, fail_after=None):
        self.make_sample = make_sample
        self.count = count
        self.fail_after = fail_after
        self.closed = False

    def produce(self):
        numbers = itertools.count() if self.count is None else range(self.count)
        for n in numbers:
            if self.fail_after is not None and n >= self.fail_after:
                raise RuntimeError("source broke")
            yield self.make_sample({"uptime": n}, seconds=n)

    def close(self):
        self.closed = True


def test_samples_arrive_in_order(make_sample):
    source = FakeSource(make_sample, count=20)
    with SampleFeed(source) as feed:
        uptimes = [s.domain("status")[0].value for s in feed]
    assert uptimes == list(range(20))
    assert source.closed


def test_early_close_cancels_endless_producer(make_sample):
    source = FakeSource(make_sample)
    feed = SampleFeed(source, maxsize=2)
    received = []
    for sample in feed:
        received.append(sample)
        if len(received) == 3:
            break
    feed.close()

    assert len(received) == 3
    assert source.closed
    assert not feed._thread.is_alive()
    assert feed.cancelled


def test_producer_error_ends_stream(make_sample):
    source = FakeSource(make_sample, count=10, fail_after=4)
    feed = SampleFeed(source)
    with feed:
        received = list(feed)
    assert len(received) == 4
    assert isinstance(feed.error, RuntimeError)
    assert source.closed


def test_maxsize_must_be_positive(make_sample):
    with pytest.raises(ValueError):
        SampleFeed(FakeSource(make_sample), maxsize=0)


def test_feed_over_file_parser(tmp_path, batch_capture):
    path = tmp_path / "status.txt"
    path.write_text(batch_capture([{"Uptime": n} for n in range(1, 6)]))
    parser = FileParser(str(path))
    parser.initialize(1)
    stream = parser._stream

    with SampleFeed(parser) as feed:
        assert len(list(feed)) == 5
    assert stream.closed


def test_cancel_file_parser_repeatedly(tmp_path, batch_capture):
    """Starting and stopping many feeds leaves no open handles."""
    path = tmp_path / "status.txt"
    path.write_text(batch_capture([{"Uptime": n} for n in range(1, 50)]))
    streams = []
    for _ in range(20):
        parser = FileParser(str(path))
        parser.initialize(1)
        streams.append(parser._stream)
        with SampleFeed(parser) as feed:
            next(iter(feed))
    assert all(s.closed for s in streams)
