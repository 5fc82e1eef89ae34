"""
Command transport — drive the ``ostree`` and ``flatpak`` CLIs.

resolve_latest:  ostree pull --commit-metadata-only REMOTE REF
                 ostree rev-parse REMOTE:REF
is_installed:    ostree admin status
deploy:          ostree pull REMOTE REF
                 ostree admin deploy REMOTE:REF
                 flatpak install|update|uninstall ... (one per ref action)

Timeouts and failed pulls are reported as retryable; a failed deploy
or flatpak operation is not.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from collections.abc import Sequence

from autoupdater.adapters.base import TransportAdapter, UpdateRef
from autoupdater.core.errors import TransportError
from autoupdater.core.models.ref_action import RefAction, RefActionType, RefKind

logger = logging.getLogger(__name__)

DEFAULT_REPO = "/ostree/repo"


def split_refspec(refspec: str) -> tuple[str, str]:
    """``REMOTE:REF`` → (remote, ref)."""
    remote, sep, ref = refspec.partition(":")
    if not sep or not remote or not ref:
        raise TransportError(f"Invalid refspec {refspec!r} (expected REMOTE:REF)")
    return remote, ref


def flatpak_command(action: RefAction) -> list[str]:
    """The flatpak invocation for one ref action."""
    identity = action.identity
    kind_flag = "--app" if identity.kind == RefKind.APP else "--runtime"
    base = ["flatpak"]

    if action.type == RefActionType.INSTALL:
        cmd = base + ["install", "--system", "--noninteractive", kind_flag]
        if action.ref.remote:
            cmd.append(action.ref.remote)
        return cmd + [identity.name]

    if action.type == RefActionType.UPDATE:
        return base + ["update", "--system", "--noninteractive", kind_flag, identity.name]

    return base + ["uninstall", "--system", "--noninteractive", kind_flag, identity.name]


class CommandTransport(TransportAdapter):
    """Transport over the system's ostree/flatpak command-line tools.

    Args:
        repo: OSTree repository path.
        sysroot: Optional sysroot for ``ostree admin``.
        default_timeout: Timeout (seconds) when the caller gives none.
    """

    def __init__(
        self,
        repo: str = DEFAULT_REPO,
        sysroot: str | None = None,
        default_timeout: float | None = 600.0,
    ):
        self._repo = repo
        self._sysroot = sysroot
        self._default_timeout = default_timeout

    @property
    def name(self) -> str:
        return "command"

    def is_available(self) -> bool:
        return shutil.which("ostree") is not None and shutil.which("flatpak") is not None

    # ── Helpers ─────────────────────────────────────────────────

    def _admin_args(self) -> list[str]:
        args = ["ostree", "admin"]
        if self._sysroot:
            args.append(f"--sysroot={self._sysroot}")
        return args

    def _run(
        self,
        cmd: list[str],
        timeout: float | None,
        retryable: bool = False,
    ) -> str:
        """Run a command, returning stdout; raise TransportError on failure."""
        timeout = timeout if timeout is not None else self._default_timeout
        logger.debug("Executing: %s (timeout=%s)", " ".join(cmd), timeout)
        start = time.monotonic()

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise TransportError(
                f"{cmd[0]} timed out after {timeout}s: {' '.join(cmd)}",
                retryable=True,
            ) from e
        except OSError as e:
            raise TransportError(f"Cannot execute {cmd[0]}: {e}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise TransportError(
                stderr or f"{' '.join(cmd)} exited with code {result.returncode}",
                retryable=retryable,
            )

        logger.debug("%s finished in %dms", cmd[0], elapsed_ms)
        return result.stdout.strip()

    # ── Contract ────────────────────────────────────────────────

    def resolve_latest(self, refspec: str, timeout: float | None = None) -> UpdateRef | None:
        remote, ref = split_refspec(refspec)
        self._run(
            ["ostree", f"--repo={self._repo}", "pull", "--commit-metadata-only", remote, ref],
            timeout,
            retryable=True,
        )
        checksum = self._run(
            ["ostree", f"--repo={self._repo}", "rev-parse", refspec],
            timeout,
        )
        if not checksum:
            return None
        return UpdateRef(refspec=refspec, update_id=checksum)

    def is_installed(self, update_id: str) -> bool:
        try:
            status = self._run(self._admin_args() + ["status"], None)
        except TransportError as e:
            logger.warning("Cannot read deployment status: %s", e)
            return False
        return update_id in status

    def deploy(
        self,
        update: UpdateRef,
        ref_actions: Sequence[RefAction] = (),
        timeout: float | None = None,
    ) -> None:
        remote, ref = split_refspec(update.refspec)

        self._run(
            ["ostree", f"--repo={self._repo}", "pull", remote, f"{ref}@{update.update_id}"],
            timeout,
            retryable=True,
        )
        self._run(self._admin_args() + ["deploy", update.update_id], timeout)
        logger.info("Deployed %s (%s)", update.refspec, update.update_id)

        for action in ref_actions:
            self._run(flatpak_command(action), timeout)
            logger.info("flatpak %s %s", action.type.value, action.identity)
