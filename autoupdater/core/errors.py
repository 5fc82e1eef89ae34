"""
Error taxonomy for the autoupdater core.

Parser and table builder failures are raised and never partially
applied. Transport failures carry a ``retryable`` flag so callers can
tell "try again later" from "an operator needs to look at this".
"""

from __future__ import annotations

from pathlib import Path


class AutoupdaterError(Exception):
    """Base class for all autoupdater errors."""


class MalformedSpec(AutoupdaterError):
    """An autoinstall document failed to parse or validate.

    Args:
        reason: Human-readable description of what is wrong.
        source: Label or path of the offending document.
        index: Position of the offending element, if known.
    """

    def __init__(self, reason: str, source: str | None = None, index: int | None = None):
        self.reason = reason
        self.source = source
        self.index = index
        super().__init__(self._format())

    def _format(self) -> str:
        where = ""
        if self.source:
            where = self.source
        if self.index is not None:
            where = f"{where}[{self.index}]" if where else f"element {self.index}"
        return f"{where}: {self.reason}" if where else self.reason

    def with_source(self, source: str) -> MalformedSpec:
        """Copy of this error annotated with a (more precise) source."""
        return MalformedSpec(self.reason, source=source, index=self.index)


class FileSystemError(AutoupdaterError):
    """A file or directory exists but could not be read or written."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class TransportError(AutoupdaterError):
    """The transport collaborator failed to resolve or deploy an update."""

    def __init__(self, message: str, retryable: bool = False):
        self.retryable = retryable
        super().__init__(message)


class StateCorruption(AutoupdaterError):
    """The persisted poll result could not be decoded."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Corrupt state file {path}: {reason}")
