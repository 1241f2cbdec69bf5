"""Target list loading for multidb-query."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from multidb_cli.shared import paths
from multidb_cli.shared.exceptions import TargetListError

from .types import Target


def parse_target(raw: str) -> Target:
    """Parse ``server/database``; the last slash separates the two parts.

    Splitting on the last slash keeps SQLite directory paths and named
    instances (``host\\instance``) intact on the server side.
    """
    server, separator, database = raw.strip().rpartition("/")
    if not separator or not server.strip() or not database.strip():
        raise TargetListError(f"Target '{raw}' must be in SERVER/DATABASE format.")
    return Target(server=server.strip(), database=database.strip())


def load_targets(path: str | Path) -> list[Target]:
    """Read targets from a YAML or JSON file, preserving file order."""
    resolved = paths.resolve_path(path)
    try:
        with resolved.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise TargetListError(f"Target list not found: {resolved}") from exc
    except yaml.YAMLError as exc:
        raise TargetListError(f"Target list {resolved} is not valid YAML/JSON: {exc}") from exc

    if isinstance(data, Mapping):
        entries = data.get("databases")
    else:
        entries = data
    if not isinstance(entries, list):
        raise TargetListError(
            f"Target list {resolved} must be a list of targets or a mapping with a 'databases' list."
        )
    return [_parse_entry(entry, index) for index, entry in enumerate(entries)]


def collect_targets(target_file: str | Path | None, inline: Iterable[str]) -> list[Target]:
    """Combine file-based and inline targets; file entries come first."""
    targets: list[Target] = []
    if target_file:
        targets.extend(load_targets(target_file))
    targets.extend(parse_target(raw) for raw in inline)
    if not targets:
        raise TargetListError("No targets given; use --targets FILE or --target SERVER/DATABASE.")
    return targets


def _parse_entry(entry: Any, index: int) -> Target:
    if isinstance(entry, str):
        return parse_target(entry)
    if not isinstance(entry, Mapping):
        raise TargetListError(f"Target #{index + 1} must be a mapping with 'server' and 'database'.")
    server = str(entry.get("server") or "").strip()
    database = str(entry.get("database") or "").strip()
    if not server or not database:
        raise TargetListError(f"Target #{index + 1} requires non-empty 'server' and 'database'.")
    return Target(server=server, database=database)
