"""
Ref action models — the autoinstall vocabulary.

A RefAction is one line item from an autoinstall file: "install (or
update, or uninstall) this app/runtime from this collection". Files
are parsed into ordered lists of RefAction, grouped per file into a
RefActionsFile, and keyed by file name in a RefActionsTable.

All models are frozen: once the parser produces an action, nothing
downstream mutates it.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

SERIAL_MIN = -(2**31)
SERIAL_MAX = 2**31 - 1


class RefKind(StrEnum):
    """Kind of installable unit."""

    APP = "app"
    RUNTIME = "runtime"


class RefActionType(StrEnum):
    """What to do with a ref."""

    INSTALL = "install"
    UPDATE = "update"
    UNINSTALL = "uninstall"


class FilterDimension(StrEnum):
    """Environment dimension a filter applies to."""

    ARCHITECTURE = "architecture"
    LOCALE = "locale"


class RefIdentity(BaseModel):
    """Identifies "the same application" across actions.

    Two actions with equal identities are compressed together,
    regardless of which file or remote they came from.
    """

    model_config = ConfigDict(frozen=True)

    kind: RefKind
    name: str
    collection_id: str

    def __str__(self) -> str:
        return f"{self.kind.value}/{self.name} ({self.collection_id})"


class LocationRef(BaseModel):
    """A ref identity plus where to fetch it from.

    ``remote`` is None when the entry names no specific location;
    resolving it against configured remotes is the transport's job.
    """

    model_config = ConfigDict(frozen=True)

    identity: RefIdentity
    remote: str | None = None


class RefAction(BaseModel):
    """One entry of an autoinstall file."""

    model_config = ConfigDict(frozen=True)

    type: RefActionType
    ref: LocationRef
    source: str                         # label of the file it came from
    serial: int = Field(ge=SERIAL_MIN, le=SERIAL_MAX)

    @property
    def identity(self) -> RefIdentity:
        return self.ref.identity

    def to_dict(self) -> dict:
        return {
            "action": self.type.value,
            "ref-kind": self.identity.kind.value,
            "name": self.identity.name,
            "collection-id": self.identity.collection_id,
            "remote": self.ref.remote,
            "source": self.source,
            "serial": self.serial,
        }


class Filter(BaseModel):
    """A single filter clause of an autoinstall entry.

    ``negated`` clauses are written with a ``~`` prefix in the file
    (``~architecture``, ``~locale``).
    """

    model_config = ConfigDict(frozen=True)

    dimension: FilterDimension
    negated: bool = False
    values: frozenset[str] = Field(default_factory=frozenset)

    @property
    def key(self) -> str:
        """The key this filter is written under in an autoinstall file."""
        prefix = "~" if self.negated else ""
        return f"{prefix}{self.dimension.value}"


class RefActionsFile(BaseModel):
    """All actions parsed from one autoinstall file, in document order."""

    model_config = ConfigDict(frozen=True)

    name: str
    actions: tuple[RefAction, ...] = ()
    priority: int = 0
    path: str = ""


# File name → parsed file. Keys are unique; a higher-priority directory's
# file replaces a lower-priority one of the same name outright.
RefActionsTable = dict[str, RefActionsFile]
