from __future__ import annotations

import shutil
import signal
import sys
from enum import IntEnum
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple

import typer
from loguru import logger

from myq.core.cache import MetricCache
from myq.core.config import StatusConfig, load_config
from myq.core.parser import FileParser, ParserError
from myq.core.pipeline import SampleFeed
from myq.core.sample import STATUS, VARIABLES, Sample
from myq.core.view import View
from myq.core.view_store import ViewError, get_view, list_views, load_default_views
from myq.metrics import HEADERS_RENDERED, RENDER_LATENCY, SAMPLES_RENDERED

# Typer application
app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="iostat-like views of MySQL server status",
)

SUPPORTED_SOURCES = {STATUS, VARIABLES}


class ExitCode(IntEnum):
    OK = 0
    BAD_ARGS = 1
    LOADER_ERROR = 2
    SOURCES_ERROR = 3


def start_http_server(port: int) -> None:
    """Indirection for Prometheus server to allow monkeypatching in tests."""
    from prometheus_client import start_http_server as _start

    _start(port)


def terminal_size() -> Tuple[int, int]:
    """(lines, columns) of the controlling terminal."""
    size = shutil.get_terminal_size(fallback=(80, 24))
    return size.lines, size.columns


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


def _fail(message: str, code: ExitCode) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=int(code))


def _load_config(config_file: Optional[Path], **overrides: object) -> StatusConfig:
    try:
        return load_config(config_file).merged(**overrides)
    except ValueError as e:
        raise _fail(str(e), ExitCode.BAD_ARGS)


def _load_views(config: StatusConfig) -> Dict[str, View]:
    try:
        return load_default_views(config.views_dir)
    except ViewError as e:
        raise _fail(str(e), ExitCode.LOADER_ERROR)


def _pick_view(views: Dict[str, View], name: str) -> View:
    try:
        return get_view(views, name)
    except ViewError as e:
        raise _fail(str(e), ExitCode.BAD_ARGS)


def run_dashboard(
    view: View,
    samples: Iterable[Sample],
    *,
    header_repeat: int = 0,
    truncate_width: bool = False,
    echo: Callable[[str], None] = typer.echo,
    term_size: Callable[[], Tuple[int, int]] = terminal_size,
) -> int:
    """Render every sample from *samples* through *view*.

    The header is printed before the first data line and again whenever
    ``header_repeat`` lines (the terminal height when 0) have been printed
    since the last one.

    Returns
    -------
    int
        Number of samples rendered.
    """
    cache = MetricCache()
    height, width = term_size()
    repeat = max(header_repeat or height, 1)
    lines_since_header = 0
    rendered = 0

    def emit(line: str) -> None:
        if truncate_width:
            line = line[:width]
        echo(line)

    for sample in samples:
        cache.update(sample)
        with RENDER_LATENCY.time():
            output = []
            if lines_since_header == 0:
                output.extend(view.get_header(cache))
                HEADERS_RENDERED.inc()
            output.extend(view.get_data(cache))
        for line in output:
            emit(line)
        lines_since_header += len(output)
        rendered += 1
        SAMPLES_RENDERED.inc()

        if lines_since_header >= repeat:
            lines_since_header = 0
            if truncate_width or header_repeat == 0:
                height, width = term_size()
                if header_repeat == 0:
                    repeat = max(height, 1)

    return rendered


@app.command("version")
def version_cmd() -> None:
    """Print the myq-status package version."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        v = version("myq-status")
    except PackageNotFoundError:
        v = "0.0.0"
    typer.echo(v)


@app.command("views")
def views_cmd(
    config_file: Optional[Path] = typer.Option(
        None, "--config", help="YAML configuration file"
    ),
) -> None:
    """List the available views."""
    config = _load_config(config_file)
    for line in list_views(_load_views(config).values()):
        typer.echo(f"  {line}")


@app.command("describe")
def describe_cmd(
    view_name: str = typer.Argument(..., metavar="VIEW", help="View to describe"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", help="YAML configuration file"
    ),
) -> None:
    """Print every column of a view with its description."""
    config = _load_config(config_file)
    view = _pick_view(_load_views(config), view_name)
    for line in view.detailed_help():
        typer.echo(line)


@app.command("status")
def status_cmd(
    view_name: str = typer.Argument(..., metavar="VIEW", help="View to display"),
    status_file: str = typer.Option(
        ..., "-f", "--file", help="mysqladmin extended-status output, '-' for stdin"
    ),
    var_file: Optional[str] = typer.Option(
        None, "--varfile", "--vf", help="mysqladmin variables output"
    ),
    interval: Optional[float] = typer.Option(
        None, "-i", "--interval", help="Seconds between samples (at least 1)"
    ),
    header: Optional[int] = typer.Option(
        None, "--header", help="Repeat the header every N lines (0: terminal height)"
    ),
    width: bool = typer.Option(
        False, "--width", help="Truncate output to the terminal width"
    ),
    metrics_port: Optional[int] = typer.Option(
        None, "--metrics-port", help="Serve Prometheus metrics on this port"
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", help="YAML configuration file"
    ),
) -> None:
    """Show VIEW for the samples captured in a status file."""
    config = _load_config(
        config_file,
        interval=interval,
        header_repeat=header,
        truncate_width=True if width else None,
    )
    configure_logging(config.log_level)

    if not config.interval_is_whole():
        logger.warning(
            "Interval will be rounded to {:.0f} seconds", round(config.interval)
        )

    view = _pick_view(_load_views(config), view_name)

    unsupported = [s for s in view.get_sources() if s not in SUPPORTED_SOURCES]
    if unsupported:
        raise _fail(
            f"view {view.name!r} needs unsupported sources: {', '.join(unsupported)}",
            ExitCode.SOURCES_ERROR,
        )
    if VARIABLES in view.get_sources() and not var_file:
        logger.warning("View {} reads variables but no --varfile was given", view.name)

    if metrics_port is not None:
        start_http_server(metrics_port)
        logger.info("Metrics server listening on :{}", metrics_port)

    parser = FileParser(status_file, var_file)
    try:
        parser.initialize(config.interval)
    except ParserError as e:
        raise _fail(str(e), ExitCode.LOADER_ERROR)

    feed = SampleFeed(parser, maxsize=config.queue_size)

    def _handle_signal(signum: int, _frame: object) -> None:  # pragma: no cover
        logger.info("Received signal {}, stopping", signum)
        feed.cancel()

    previous_handler = None
    try:
        previous_handler = signal.signal(signal.SIGTERM, _handle_signal)
    except ValueError:  # pragma: no cover - not in the main thread
        logger.debug("SIGTERM handler not installed")

    try:
        with feed:
            rendered = run_dashboard(
                view,
                feed,
                header_repeat=config.header_repeat,
                truncate_width=config.truncate_width,
            )
        logger.debug("Rendered {} samples", rendered)
    except KeyboardInterrupt:  # pragma: no cover
        logger.info("Interrupted, exiting")
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGTERM, previous_handler)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
