"""Turn captured ``SHOW GLOBAL STATUS`` output into Samples.

Two historical capture formats are understood, detected once from the first
bytes of the stream:

BATCH
    ``name<TAB>value`` lines (``mysql -B`` / ``mysqladmin ext`` style).  A
    record ends at a ``MYQTOOLSEND`` line or at a ``Variable_name<TAB>Value``
    header line.
TABULAR
    Bordered rows ``| name | value |``.  A record ends at the
    ``| Variable_name | Value |`` header row.

Records are cut from a rolling buffer as soon as their end marker has been
read, so the stream is never buffered whole and live pipes work.  Before a
record is parsed its ``Uptime`` is checked against the last accepted record;
records closer together than the requested interval are dropped unparsed,
which down-samples a source that emits faster than asked for.

Public API:
    parser = FileParser("status.txt", var_file="vars.txt")
    parser.initialize(interval=5)       # raises ParserError
    for sample in parser.produce(): ...  # closes the source when done
"""

from __future__ import annotations

import re
import sys
from datetime import datetime, timedelta
from enum import Enum
from typing import BinaryIO, Dict, Iterator, List, Optional, Union

from loguru import logger

from myq.core.sample import STATUS, VARIABLES, MetricKind, MetricValue, Sample, make_values
from myq.metrics import LINES_DROPPED, RECORDS_ACCEPTED, RECORDS_SKIPPED, STREAM_ERRORS

__all__ = [
    "END_MARKER",
    "KNOWN_GAUGES",
    "MIN_INTERVAL",
    "FileParser",
    "OutputFormat",
    "ParserError",
]

END_MARKER = "MYQTOOLSEND"
MIN_INTERVAL = 1.0
CHUNK_SIZE = 64 * 1024

# Readings that are point-in-time magnitudes; everything else is a counter.
KNOWN_GAUGES = frozenset(
    {
        "threads_running",
        "threads_connected",
        "threads_cached",
        "prepared_stmt_count",
        "innodb_buffer_pool_pages_dirty",
        "innodb_buffer_pool_pages_free",
        "innodb_buffer_pool_pages_total",
        "innodb_buffer_pool_pages_data",
        "innodb_buffer_pool_pages_misc",
        "innodb_buffer_pool_bytes_data",
        "innodb_buffer_pool_bytes_dirty",
        "innodb_row_lock_current_waits",
        "innodb_os_log_pending_writes",
        "innodb_os_log_pending_fsyncs",
        "innodb_checkpoint_age",
        "max_used_connections",
        "open_tables",
        "open_files",
    }
)

_BATCH_MARKER = re.compile(rb"^(?:MYQTOOLSEND|Variable_name\t)[^\n]*\n", re.M)
_TABULAR_MARKER = re.compile(rb"^\| Variable_name[^\n]*\n", re.M)
_UPTIME = re.compile(rb"^\|?[ \t]*uptime[ \t]*[\t|][ \t]*([0-9.]+)", re.M | re.I)
_NUMBER = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


class ParserError(RuntimeError):
    """Raised when a sample source cannot be initialised."""


class OutputFormat(Enum):
    BATCH = "batch"
    TABULAR = "tabular"

    @property
    def marker(self) -> "re.Pattern[bytes]":
        return _TABULAR_MARKER if self is OutputFormat.TABULAR else _BATCH_MARKER


def sniff_format(head: bytes) -> OutputFormat:
    """Tabular output starts with a table border, anything else is batch."""
    if head.startswith((b"+", b"|")):
        return OutputFormat.TABULAR
    return OutputFormat.BATCH


def parse_fields(record: bytes, output_format: OutputFormat) -> Dict[str, float]:
    """Parse one record into ``lowercased name -> value``.

    Lines that do not have the expected shape and values that are not
    numbers are dropped.
    """
    fields: Dict[str, float] = {}
    divider = 0

    for line in record.decode("utf-8", errors="replace").splitlines():
        if output_format is OutputFormat.TABULAR:
            # | varname   | value    |
            if not line.startswith("|"):
                continue
            if divider <= 0:
                divider = line.find(" | ")
                if divider <= 0:
                    LINES_DROPPED.inc()
                    continue
            elif len(line) < divider:
                # truncated row, usually the tail of the stream
                LINES_DROPPED.inc()
                continue
            key = line[:divider].strip("| ")
            value = line[divider:].strip("| ")
        else:
            parts = line.split("\t")
            if len(parts) != 2:
                if line:
                    LINES_DROPPED.inc()
                continue
            key, value = parts

        value = value.strip()
        if not key or not _NUMBER.fullmatch(value):
            LINES_DROPPED.inc()
            continue
        fields[key.lower()] = float(value)

    return fields


def classify(name: str) -> MetricKind:
    return MetricKind.GAUGE if name in KNOWN_GAUGES else MetricKind.COUNTER


class FileParser:
    """Incremental parser over a captured (or piped) status stream.

    Parameters
    ----------
    status_file : str
        Path of the status capture, or ``-`` for standard input.
    var_file : str, optional
        Path of a variables capture.  Its first record is attached to every
        sample under the ``variables`` domain.
    chunk_size : int, optional
        Bytes requested from the source per read.
    """

    def __init__(
        self,
        status_file: str,
        var_file: Optional[str] = None,
        *,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self.status_file = status_file
        self.var_file = var_file
        self.chunk_size = chunk_size
        self.interval: float = 0.0
        self.output_format: Optional[OutputFormat] = None

        self._stream: Optional[BinaryIO] = None
        self._variables: Optional[List[MetricValue]] = None
        self._reset_state()

    def _reset_state(self) -> None:
        self.output_format = None
        self._prev_uptime: Optional[float] = None
        self._anchor: Optional[datetime] = None
        self._first_uptime: Optional[float] = None
        self._last_uptime: Optional[float] = None
        self._last_end: Optional[datetime] = None
        self._count = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, interval: Union[float, int, timedelta]) -> None:
        """Validate *interval* (seconds) and open the sources.

        Raises
        ------
        ParserError
            If the interval is below one second or a source cannot be opened.
        """
        seconds = (
            interval.total_seconds()
            if isinstance(interval, timedelta)
            else float(interval)
        )
        if seconds < MIN_INTERVAL:
            raise ParserError(f"interval cannot be less than 1s ({seconds}s)")

        self.close()
        self._reset_state()
        self.interval = seconds
        self._stream = self._open(self.status_file, "status")

        if self.var_file:
            try:
                self._variables = self._load_variables(self.var_file)
            except ParserError:
                self.close()
                raise
            logger.debug(
                "Loaded {} variables from {}", len(self._variables), self.var_file
            )

    def close(self) -> None:
        """Release the source handle (safe to call repeatedly)."""
        stream, self._stream = self._stream, None
        if stream is not None and stream is not _stdin():
            stream.close()

    def __enter__(self) -> "FileParser":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @staticmethod
    def _open(path: str, what: str) -> BinaryIO:
        if path == "-":
            return _stdin()
        try:
            return open(path, "rb")
        except OSError as e:
            raise ParserError(f"cannot open {what} file {path}: {e}") from e

    @staticmethod
    def _load_variables(path: str) -> List[MetricValue]:
        # only the first record of a variables capture is used
        parser = FileParser(path)
        parser._stream = parser._open(path, "variables")
        with parser:
            first = next(parser._samples(), None)
        if first is None:
            return []
        return list(first.domain(STATUS))

    # ------------------------------------------------------------------
    # Production
    # ------------------------------------------------------------------

    def produce(self) -> Iterator[Sample]:
        """Yield Samples until the source is exhausted.

        I/O errors end the sequence early (logged, not raised).  The source
        is closed when the generator finishes or is closed.
        """
        if self._stream is None:
            raise ParserError("initialize() must be called before produce()")
        try:
            yield from self._samples()
        except OSError as e:
            STREAM_ERRORS.inc()
            logger.error("Error reading {}: {}", self.status_file, e)
        finally:
            self.close()

    def _samples(self) -> Iterator[Sample]:
        for record in self._records():
            if self._skippable(record):
                RECORDS_SKIPPED.labels(reason="interval").inc()
                continue

            fields = parse_fields(record, self.output_format or OutputFormat.BATCH)
            if not fields:
                RECORDS_SKIPPED.labels(reason="empty").inc()
                continue

            RECORDS_ACCEPTED.inc()
            yield self._to_sample(fields)

    def _records(self) -> Iterator[bytes]:
        """Cut the stream into raw records at each end marker."""
        assert self._stream is not None
        buf = bytearray()
        search_from = 0
        eof = False

        while True:
            if self.output_format is None and buf:
                self.output_format = sniff_format(bytes(buf[:1]))
                logger.debug(
                    "Detected {} format in {}", self.output_format.value, self.status_file
                )

            if self.output_format is not None:
                match = self.output_format.marker.search(buf, search_from)
                if match is not None:
                    record = bytes(buf[: match.start()])
                    del buf[: match.end()]
                    search_from = 0
                    if record:
                        yield record
                    continue
                # resume at the start of the last, incomplete line
                search_from = buf.rfind(b"\n") + 1

            if eof:
                if buf:
                    yield bytes(buf)
                return

            chunk = self._stream.read(self.chunk_size)
            if not chunk:
                eof = True
            else:
                buf += chunk

    def _skippable(self, record: bytes) -> bool:
        """True if *record* is closer than the interval to the last one kept."""
        match = _UPTIME.search(record)
        if match is None:
            return False
        try:
            uptime = float(match.group(1))
        except ValueError:
            return False

        if self._prev_uptime is not None and 0 <= uptime - self._prev_uptime < self.interval:
            logger.debug(
                "Skipping record at uptime {} (previous {}, interval {}s)",
                uptime,
                self._prev_uptime,
                self.interval,
            )
            return True

        self._prev_uptime = uptime
        return False

    def _to_sample(self, fields: Dict[str, float]) -> Sample:
        readings = make_values(
            MetricValue(name=name, value=value, kind=classify(name))
            for name, value in fields.items()
        )
        begin, end = self._timestamps(fields.get("uptime"))

        values = {STATUS: readings}
        if self._variables is not None:
            values[VARIABLES] = self._variables

        sample = Sample(
            begin=begin,
            end=end,
            values=values,
            source=self.status_file,
            interval=self._count,
        )
        self._count += 1
        return sample

    def _timestamps(self, uptime: Optional[float]) -> tuple[datetime, datetime]:
        """Place a record on the time line, using Uptime where available."""
        step = timedelta(seconds=self.interval)

        if self._anchor is None or self._last_end is None:
            self._anchor = datetime.now()
            self._first_uptime = uptime
            end = self._anchor
        elif uptime is None or self._first_uptime is None:
            end = self._last_end + step
        elif self._last_uptime is not None and uptime < self._last_uptime:
            # server restarted, start a new time line after the last sample
            self._anchor = self._last_end + step
            self._first_uptime = uptime
            end = self._anchor
        else:
            end = self._anchor + timedelta(seconds=uptime - self._first_uptime)

        begin = self._last_end if self._last_end is not None else end - step
        self._last_end = end
        if uptime is not None:
            self._last_uptime = uptime
        return begin, end


def _stdin() -> BinaryIO:
    return sys.stdin.buffer
