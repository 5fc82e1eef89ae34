"""
Cycle ledger — append-only record of every poll/apply invocation.

One NDJSON line per invocation in <state_dir>/audit.ndjson. Useful for
answering "when did this machine last poll, and what did it decide?".
The ledger is best-effort: a write failure is logged, never raised.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "audit.ndjson"


class CycleAuditEntry(BaseModel):
    """A single ledger entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    step: str = ""                 # poll, apply
    state: str = ""                # final CycleState
    refspec: str = ""
    update_id: str = ""
    polled: bool = False
    changed: bool = False
    deployed: bool = False
    ref_actions: int = 0
    duration_ms: int = 0
    error: str | None = None


class CycleAuditWriter:
    """Append-only ledger writer."""

    def __init__(self, state_dir: Path):
        self._path = Path(state_dir) / DEFAULT_AUDIT_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: CycleAuditEntry) -> None:
        """Append an entry to the ledger."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s → %s", entry.step, entry.state)
        except OSError as e:
            logger.error("Failed to write audit entry: %s", e)

    def read_recent(self, n: int = 20) -> list[CycleAuditEntry]:
        """The most recent N entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries: list[CycleAuditEntry] = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(CycleAuditEntry.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValueError) as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read audit ledger: %s", e)

        return entries[-n:] if n > 0 else []
