"""
Compression and flattening — one net action per ref, in a stable order.

Files are walked in file-name order and entries in document order.
Entries are grouped by RefIdentity (first-seen order), and each group
is folded into a single action:

    - the effective type starts as the first entry's type
    - a later UPDATE never changes it
    - a later INSTALL or UNINSTALL replaces it
    - ref, source and serial always come from the last entry

So install→update is install, install→uninstall is uninstall, and a
group of only updates stays an update.

Pure functions: no I/O, no failure modes.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from autoupdater.core.models.ref_action import (
    RefAction,
    RefActionsTable,
    RefActionType,
    RefIdentity,
)


def iter_table_actions(table: RefActionsTable) -> Iterable[RefAction]:
    """All actions of the table, files by name, entries in order."""
    for name in sorted(table):
        yield from table[name].actions


def compress_ref_actions(actions: Sequence[RefAction]) -> RefAction:
    """Reduce the actions of one ref to its net action.

    Args:
        actions: Non-empty sequence of actions sharing one identity.
    """
    if not actions:
        raise ValueError("cannot compress an empty action sequence")

    effective = actions[0].type
    for action in actions[1:]:
        if action.type != RefActionType.UPDATE:
            effective = action.type

    last = actions[-1]
    if last.type == effective:
        return last
    return last.model_copy(update={"type": effective})


def group_ref_actions(actions: Iterable[RefAction]) -> dict[RefIdentity, list[RefAction]]:
    """Group actions by identity, preserving first-seen order."""
    groups: dict[RefIdentity, list[RefAction]] = {}
    for action in actions:
        groups.setdefault(action.identity, []).append(action)
    return groups


def flatten_ref_actions_table(table: RefActionsTable) -> list[RefAction]:
    """Produce the flattened, compressed action list for a table."""
    groups = group_ref_actions(iter_table_actions(table))
    return [compress_ref_actions(group) for group in groups.values()]
