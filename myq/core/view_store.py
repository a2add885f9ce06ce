"""
View Store
==========

Loads view definitions from YAML.  Each file holds a list of views; the
built-in ones live in ``myq/views``.  Definitions are validated completely
at load time, so a typo in a column type or a source key is reported before
anything is read from the server.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from myq.core.view import View

BUILTIN_VIEWS_DIR = Path(__file__).resolve().parent.parent / "views"

_VIEW_LIST = TypeAdapter(List[View])


class ViewError(ValueError):
    """Raised for view definitions that cannot be used."""


def _flatten(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()
    )


def parse_views(data: Any, source: str = "<data>") -> List[View]:
    """Validate already-loaded YAML data as a list of views.

    Raises
    ------
    ViewError
        If the data is not a list of valid view definitions.
    """
    if data is None:
        return []
    try:
        return _VIEW_LIST.validate_python(data)
    except ValidationError as e:
        raise ViewError(f"Invalid view definition in {source}: {_flatten(e)}") from e


def _yaml_files(path: Path) -> List[Path]:
    if path.is_dir():
        return sorted([*path.glob("*.yaml"), *path.glob("*.yml")])
    return [path]


def load_views(path: Union[str, Path]) -> Dict[str, View]:
    """Load views from a YAML file or from every YAML file in a directory.

    Returns
    -------
    dict
        View name -> View, in definition order.
    """
    path = Path(path)
    if not path.exists():
        raise ViewError(f"View definitions not found: {path}")

    views: Dict[str, View] = {}
    for file in _yaml_files(path):
        try:
            with open(file, "r") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ViewError(f"Cannot read view definitions from {file}: {e}") from e

        for view in parse_views(data, str(file)):
            if view.name in views:
                raise ViewError(f"Duplicate view {view.name!r} in {file}")
            views[view.name] = view

    logger.debug("Loaded {} views from {}", len(views), path)
    return views


def load_default_views(extra_dir: Optional[Union[str, Path]] = None) -> Dict[str, View]:
    """Built-in views, overridden by name by any found in *extra_dir*."""
    views = load_views(BUILTIN_VIEWS_DIR)
    if extra_dir is not None:
        for name, view in load_views(extra_dir).items():
            if name in views:
                logger.info("View {!r} overridden from {}", name, extra_dir)
            views[name] = view
    return views


def get_view(views: Dict[str, View], name: str) -> View:
    try:
        return views[name]
    except KeyError:
        available = ", ".join(views)
        raise ViewError(f"Unknown view {name!r} (available: {available})") from None


def list_views(views: Iterable[View]) -> List[str]:
    """One ``name: description`` line per view."""
    return [view.short_help() for view in views]


__all__ = [
    "BUILTIN_VIEWS_DIR",
    "ViewError",
    "get_view",
    "list_views",
    "load_default_views",
    "load_views",
    "parse_views",
]
