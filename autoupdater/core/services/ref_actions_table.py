"""
Ref actions table builder — all autoinstall directories into one table.

Directories are layered (vendor defaults under /usr, site overrides
under /etc). When the same file name exists in more than one
directory, the file from the highest-priority directory replaces the
others entirely; entries are never merged across files.

Merge pass:
    sort directories by priority (stable) → read each, low to high → last write wins
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from autoupdater.core.errors import FileSystemError, MalformedSpec
from autoupdater.core.models.environment import EnvironmentFacts
from autoupdater.core.models.ref_action import RefActionsFile, RefActionsTable
from autoupdater.core.services.autoinstall_parser import parse_autoinstall_data

logger = logging.getLogger(__name__)


def is_autoinstall_file(path: Path) -> bool:
    """Regular, non-hidden files are autoinstall files."""
    return path.is_file() and not path.name.startswith(".")


def list_autoinstall_files(directory: Path) -> list[Path]:
    """Autoinstall files in a directory, sorted by name.

    A missing directory yields nothing. A path that exists but cannot
    be listed raises FileSystemError.
    """
    if not directory.exists():
        logger.debug("Autoinstall directory %s does not exist — skipping", directory)
        return []
    if not directory.is_dir():
        raise FileSystemError(directory, "not a directory")

    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise FileSystemError(directory, e.strerror or str(e)) from e

    return [p for p in entries if is_autoinstall_file(p)]


def load_ref_actions_file(path: Path, facts: EnvironmentFacts, priority: int = 0) -> RefActionsFile:
    """Read and parse a single autoinstall file.

    Raises:
        FileSystemError: If the file cannot be read.
        MalformedSpec: If the file is invalid (annotated with its path).
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise FileSystemError(path, e.strerror or str(e)) from e

    try:
        actions = parse_autoinstall_data(data, path.name, facts)
    except MalformedSpec as e:
        raise e.with_source(str(path)) from e

    return RefActionsFile(
        name=path.name,
        actions=tuple(actions),
        priority=priority,
        path=str(path),
    )


def build_ref_actions_table(
    directories: Iterable[tuple[Path, int]],
    facts: EnvironmentFacts,
) -> RefActionsTable:
    """Read every autoinstall file in every directory.

    Args:
        directories: (directory, priority) pairs. Higher priority wins
            on a file-name clash; on equal priority the later pair wins.
        facts: Environment for filter evaluation.

    Returns:
        Table keyed by file name.

    Raises:
        FileSystemError: If a present directory or file is unreadable.
        MalformedSpec: If any file is invalid. Nothing is returned.
    """
    ordered = sorted(directories, key=lambda pair: pair[1])

    table: RefActionsTable = {}
    for directory, priority in ordered:
        for path in list_autoinstall_files(Path(directory)):
            parsed = load_ref_actions_file(path, facts, priority)
            previous = table.get(parsed.name)
            if previous is not None:
                logger.info(
                    "%s (priority %d) shadows %s (priority %d)",
                    parsed.path,
                    priority,
                    previous.path,
                    previous.priority,
                )
            table[parsed.name] = parsed

    logger.debug("Built ref actions table with %d files", len(table))
    return table
