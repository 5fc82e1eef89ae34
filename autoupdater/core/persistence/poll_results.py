"""
Poll result persistence — atomic, locked read/write of PollResult.

The record lives at <state_dir>/state/autoupdater-poll-results as JSON.
Writes are atomic (write to temp file, fsync, rename) so a reader never
sees half a record. Read-modify-write sequences run under an exclusive
flock on <state_dir>/autoupdater.lock so two invocations against the
same state directory cannot lose each other's update.

A record that cannot be decoded is treated as "no prior result" and
logged loudly.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError

from autoupdater.core.errors import FileSystemError, StateCorruption
from autoupdater.core.models.poll_result import PollResult

logger = logging.getLogger(__name__)

STATE_SUBDIR = "state"
POLL_RESULTS_FILE = "autoupdater-poll-results"
LOCK_FILE = "autoupdater.lock"


def default_poll_results_path(state_dir: Path) -> Path:
    """Get the poll results path for a state directory."""
    return state_dir / STATE_SUBDIR / POLL_RESULTS_FILE


def decode_poll_result(raw: bytes | str, path: Path | str = "<memory>") -> PollResult:
    """Decode a serialized record.

    Missing fields take their defaults; unknown fields are ignored.

    Raises:
        StateCorruption: If the text is not a valid record.
    """
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError and UnicodeDecodeError are both ValueErrors
        raise StateCorruption(path, str(e)) from e

    if not isinstance(data, dict):
        raise StateCorruption(path, f"expected an object, got {type(data).__name__}")

    known = {key: data[key] for key in PollResult.model_fields if key in data}
    try:
        return PollResult.model_validate(known)
    except ValidationError as e:
        raise StateCorruption(path, str(e)) from e


def encode_poll_result(result: PollResult) -> str:
    return json.dumps(result.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"


class PollResultStore:
    """Durable home of the PollResult for one autoupdater instance."""

    def __init__(self, state_dir: Path):
        self._state_dir = Path(state_dir)
        self._path = default_poll_results_path(self._state_dir)
        self._lock_path = self._state_dir / LOCK_FILE

    @property
    def path(self) -> Path:
        return self._path

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> PollResult:
        """Load the persisted result.

        Returns:
            The record, or an empty PollResult if there is none or it is
            corrupt.
        """
        if not self._path.is_file():
            logger.debug("No poll results at %s — starting fresh", self._path)
            return PollResult()

        try:
            raw = self._path.read_bytes()
        except OSError as e:
            raise FileSystemError(self._path, e.strerror or str(e)) from e

        try:
            result = decode_poll_result(raw, self._path)
        except StateCorruption as e:
            logger.error("%s — treating as no prior poll result", e)
            return PollResult()

        logger.debug(
            "Loaded poll results from %s (update_id=%r, last_changed=%d)",
            self._path,
            result.update_id,
            result.last_changed,
        )
        return result

    def save(self, result: PollResult) -> None:
        """Write the record atomically (temp file + rename)."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = encode_poll_result(result)

        fd, tmp_path = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=".poll-results_",
            suffix=".tmp",
        )
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            tmp.replace(self._path)
            logger.debug("Poll results saved to %s", self._path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            logger.error("Failed to save poll results to %s: %s", self._path, e)
            raise FileSystemError(self._path, e.strerror or str(e)) from e

    @contextmanager
    def locked(self) -> Iterator[PollResultStore]:
        """Hold the exclusive state lock for a read-modify-write.

        Usage::

            with store.locked():
                result = store.load()
                ...
                store.save(result)
        """
        self._state_dir.mkdir(parents=True, exist_ok=True)
        with self._lock_path.open("a") as lock:
            fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
            try:
                yield self
            finally:
                fcntl.flock(lock.fileno(), fcntl.LOCK_UN)
