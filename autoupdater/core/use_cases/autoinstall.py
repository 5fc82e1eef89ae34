"""
Autoinstall use case — from configured directories to the action list.

    config → environment facts → table (parse + shadow) → flattened list

The result is what the apply step hands to the transport.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from autoupdater.core.config.loader import AutoupdaterConfig
from autoupdater.core.errors import FileSystemError, MalformedSpec
from autoupdater.core.models.environment import EnvironmentFacts
from autoupdater.core.models.ref_action import RefAction, RefActionsTable
from autoupdater.core.services.autoinstall_parser import parse_autoinstall_data
from autoupdater.core.services.environment_facts import resolve_environment_facts
from autoupdater.core.services.ref_actions_flatten import flatten_ref_actions_table
from autoupdater.core.services.ref_actions_table import build_ref_actions_table

logger = logging.getLogger(__name__)


@dataclass
class AutoinstallResult:
    """Resolved autoinstall actions for this machine."""

    facts: EnvironmentFacts = field(default_factory=EnvironmentFacts)
    table: RefActionsTable = field(default_factory=dict)
    actions: list[RefAction] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "architecture": self.facts.architecture,
            "locales": list(self.facts.locales),
            "files": {
                name: {"path": f.path, "priority": f.priority, "actions": len(f.actions)}
                for name, f in sorted(self.table.items())
            },
            "actions": [a.to_dict() for a in self.actions],
        }


def facts_for_config(config: AutoupdaterConfig) -> EnvironmentFacts:
    """Environment facts for an invocation, with overrides applied."""
    return resolve_environment_facts(
        architecture=config.architecture,
        locales=config.locales,
    )


def resolve_autoinstall_actions(
    config: AutoupdaterConfig,
    facts: EnvironmentFacts | None = None,
) -> AutoinstallResult:
    """Build the flattened autoinstall action list.

    Raises:
        MalformedSpec: If any autoinstall file is invalid.
        FileSystemError: If a present directory or file is unreadable.
    """
    facts = facts if facts is not None else facts_for_config(config)
    table = build_ref_actions_table(config.autoinstall_search_path(), facts)
    actions = flatten_ref_actions_table(table)
    logger.info(
        "Resolved %d autoinstall actions from %d files (arch=%s, locales=%s)",
        len(actions),
        len(table),
        facts.architecture,
        ",".join(facts.locales) or "-",
    )
    return AutoinstallResult(facts=facts, table=table, actions=actions)


@dataclass
class FileCheck:
    """Validation outcome for one autoinstall file."""

    path: Path
    actions: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def check_autoinstall_files(paths: list[Path], facts: EnvironmentFacts) -> list[FileCheck]:
    """Validate autoinstall files one by one, collecting every error."""
    checks: list[FileCheck] = []
    for path in paths:
        check = FileCheck(path=path)
        try:
            data = path.read_bytes()
        except OSError as e:
            check.error = str(FileSystemError(path, e.strerror or str(e)))
            checks.append(check)
            continue
        try:
            check.actions = len(parse_autoinstall_data(data, str(path), facts))
        except MalformedSpec as e:
            check.error = str(e)
        checks.append(check)
    return checks
