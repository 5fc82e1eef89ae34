"""
Transport adapter base — the contract between the update cycle and
the machinery that actually moves content.

The update cycle never pulls, deploys, installs or uninstalls anything
itself. It asks a transport:

    resolve_latest(refspec)          → newest update identity, or None
    is_installed(update_id)          → already deployed?
    deploy(update, ref_actions)      → fetch + deploy, raise on failure

Failures are raised as TransportError with ``retryable`` set when a
later invocation may succeed (timeouts, network trouble).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from pydantic import BaseModel

from autoupdater.core.models.ref_action import RefAction


class UpdateRef(BaseModel):
    """Identity of a discovered update: where it comes from and what it is."""

    refspec: str
    update_id: str


class TransportAdapter(ABC):
    """Abstract base class for transports.

    To create a new transport:
        1. Subclass TransportAdapter
        2. Implement name, is_available, resolve_latest, is_installed, deploy
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The transport identifier (e.g., 'command', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the underlying tools are usable. Should never raise."""

    @abstractmethod
    def resolve_latest(self, refspec: str, timeout: float | None = None) -> UpdateRef | None:
        """Newest update available for ``refspec``, or None.

        Raises:
            TransportError: If the remote could not be queried.
        """

    @abstractmethod
    def is_installed(self, update_id: str) -> bool:
        """Whether ``update_id`` is already deployed on this machine."""

    @abstractmethod
    def deploy(
        self,
        update: UpdateRef,
        ref_actions: Sequence[RefAction] = (),
        timeout: float | None = None,
    ) -> None:
        """Fetch and deploy ``update``, then apply the autoinstall actions.

        Raises:
            TransportError: On any failure; nothing is reported as
                success unless it completed.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
