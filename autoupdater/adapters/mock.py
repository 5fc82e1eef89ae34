"""
Mock transport — in-memory test double for the update cycle.

Holds a fake "remote" (refspec → newest update id) and a fake set of
deployed update ids. Failures can be injected per operation.
"""

from __future__ import annotations

from collections.abc import Sequence

from autoupdater.adapters.base import TransportAdapter, UpdateRef
from autoupdater.core.errors import TransportError
from autoupdater.core.models.ref_action import RefAction


class MockTransport(TransportAdapter):
    """Universal mock transport for testing.

    By default nothing is published and everything succeeds.
    """

    def __init__(self, available: bool = True):
        self._available = available
        self._published: dict[str, str] = {}
        self._installed: set[str] = set()
        self._failures: dict[str, TransportError] = {}
        self._deploy_log: list[tuple[UpdateRef, list[RefAction]]] = []
        self._resolve_count = 0

    @property
    def name(self) -> str:
        return "mock"

    @property
    def deploy_log(self) -> list[tuple[UpdateRef, list[RefAction]]]:
        """Every successful deploy call, in order."""
        return self._deploy_log

    @property
    def resolve_count(self) -> int:
        return self._resolve_count

    def is_available(self) -> bool:
        return self._available

    def publish(self, refspec: str, update_id: str) -> None:
        """Make ``update_id`` the newest update for ``refspec``."""
        self._published[refspec] = update_id

    def withdraw(self, refspec: str) -> None:
        self._published.pop(refspec, None)

    def mark_installed(self, update_id: str) -> None:
        self._installed.add(update_id)

    def set_failure(self, operation: str, error: str = "Mock failure", retryable: bool = False) -> None:
        """Make ``operation`` ('resolve' or 'deploy') raise TransportError."""
        self._failures[operation] = TransportError(error, retryable=retryable)

    def clear_failures(self) -> None:
        self._failures.clear()

    def resolve_latest(self, refspec: str, timeout: float | None = None) -> UpdateRef | None:
        self._resolve_count += 1
        if "resolve" in self._failures:
            raise self._failures["resolve"]
        update_id = self._published.get(refspec)
        if update_id is None:
            return None
        return UpdateRef(refspec=refspec, update_id=update_id)

    def is_installed(self, update_id: str) -> bool:
        return update_id in self._installed

    def deploy(
        self,
        update: UpdateRef,
        ref_actions: Sequence[RefAction] = (),
        timeout: float | None = None,
    ) -> None:
        if "deploy" in self._failures:
            raise self._failures["deploy"]
        self._installed.add(update.update_id)
        self._deploy_log.append((update, list(ref_actions)))
