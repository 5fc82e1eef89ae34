"""
Update cycle — the poll/apply state machine.

Each invocation runs exactly one step and then exits; the cycle is
driven by external re-invocation (a timer), not by a loop in here.

    POLL:   IDLE → POLLING → UPDATE_AVAILABLE | IDLE
    APPLY:  IDLE → UPDATE_AVAILABLE → APPLYING → APPLIED
                 (or stop at UPDATE_AVAILABLE while the delay runs,
                  or stay IDLE when nothing is known)

The persisted PollResult is the only state carried between
invocations. ``last_changed`` moves only when the discovered update
actually changes, which is what makes the user-visible delay work:
an update must have been known for ``user_visible_delay`` before it
is applied, unless ``force_update`` is set.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from autoupdater.adapters.base import TransportAdapter, UpdateRef
from autoupdater.core.errors import TransportError
from autoupdater.core.models.cycle import CycleResult, CycleState, UpdateStep
from autoupdater.core.models.poll_result import PollResult
from autoupdater.core.models.ref_action import RefAction
from autoupdater.core.persistence.poll_results import PollResultStore

logger = logging.getLogger(__name__)

USECS_PER_SECOND = 1_000_000
SECONDS_PER_DAY = 24 * 60 * 60


def _resting_state(result: PollResult) -> CycleState:
    """State that reflects a persisted result."""
    return CycleState.IDLE if result.empty else CycleState.UPDATE_AVAILABLE


class UpdateCycle:
    """The poll/apply state machine for one tracked refspec.

    Args:
        transport: Where updates are resolved and deployed.
        store: Persisted PollResult.
        refspec: ``REMOTE:REF`` to track.
        user_visible_delay: Seconds an update must be known before apply.
        force_update: Apply regardless of the delay (and poll regardless
            of the interval).
        poll_interval: Minimum seconds between two polls (0 = no gate).
        timeout: Seconds passed to every transport call (None = transport default).
        clock: Wall-clock source in seconds; injectable for tests.
    """

    def __init__(
        self,
        transport: TransportAdapter,
        store: PollResultStore,
        refspec: str,
        user_visible_delay: float = 0.0,
        force_update: bool = False,
        poll_interval: float = 0.0,
        timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._transport = transport
        self._store = store
        self._refspec = refspec
        self._delay_usecs = int(user_visible_delay * USECS_PER_SECOND)
        self._force_update = force_update
        self._interval_usecs = int(poll_interval * USECS_PER_SECOND)
        self._timeout = timeout
        self._clock = clock

    def _now_usecs(self) -> int:
        return int(self._clock() * USECS_PER_SECOND)

    def run(
        self,
        step: UpdateStep,
        ref_actions: Sequence[RefAction] = (),
        resolve_actions: Callable[[], Sequence[RefAction]] | None = None,
    ) -> CycleResult:
        """Run one step."""
        if step == UpdateStep.POLL:
            return self.poll()
        return self.apply(ref_actions, resolve_actions)

    # ── Poll ────────────────────────────────────────────────────

    def poll(self) -> CycleResult:
        """Query the transport and persist what it reports.

        A transport failure is recorded on the result and leaves the
        persisted record untouched; a later APPLY still works from the
        last good result.
        """
        result = CycleResult(step=UpdateStep.POLL)

        with self._store.locked():
            had_record = self._store.exists()
            previous = self._store.load()
            result.poll_result = previous
            now = self._now_usecs()

            if self._poll_too_soon(previous, now):
                result.skipped_reason = "poll interval has not elapsed"
                logger.info("Skipping poll: last poll was %ds ago",
                            (now - previous.last_polled) // USECS_PER_SECOND)
                self._settle(result, previous)
                return result

            result.enter(CycleState.POLLING)
            try:
                latest = self._transport.resolve_latest(self._refspec, timeout=self._timeout)
            except TransportError as e:
                logger.warning(
                    "Poll of %s failed (%s): %s",
                    self._refspec or "<no refspec>",
                    "retryable" if e.retryable else "fatal",
                    e,
                )
                result.error = str(e)
                result.retryable = e.retryable
                self._settle(result, previous)
                return result
            result.polled = True

            refspec, update_id = "", ""
            if latest is not None and latest.update_id:
                if self._transport.is_installed(latest.update_id):
                    logger.info("Update %s is already deployed", latest.update_id)
                else:
                    refspec, update_id = latest.refspec, latest.update_id

            changed = not had_record or not previous.same_update(refspec, update_id)
            if changed:
                current = PollResult(
                    last_changed=max(now, previous.last_changed + 1),
                    last_polled=now,
                    update_refspec=refspec,
                    update_id=update_id,
                )
                logger.info(
                    "Poll result changed: %r → %r",
                    previous.update_id,
                    update_id,
                )
            else:
                current = previous.model_copy(update={"last_polled": now})
                logger.debug("Poll result unchanged (%r)", update_id)

            self._store.save(current)
            result.changed = changed
            result.poll_result = current
            self._settle(result, current)

        return result

    def _poll_too_soon(self, previous: PollResult, now: int) -> bool:
        if self._force_update or self._interval_usecs <= 0 or not previous.last_polled:
            return False
        return 0 <= now - previous.last_polled < self._interval_usecs

    # ── Apply ───────────────────────────────────────────────────

    def apply(
        self,
        ref_actions: Sequence[RefAction] = (),
        resolve_actions: Callable[[], Sequence[RefAction]] | None = None,
    ) -> CycleResult:
        """Deploy the persisted update once the delay has elapsed.

        ``resolve_actions``, when given, replaces ``ref_actions`` and is
        only called once the update is actually going to be deployed.

        Raises:
            AutoupdaterError: Whatever ``resolve_actions`` raises.
            TransportError: If the deploy fails. The persisted record is
                left as it was so the next invocation can retry.
        """
        result = CycleResult(step=UpdateStep.APPLY)

        with self._store.locked():
            current = self._store.load()
            result.poll_result = current

            if current.empty:
                logger.info("No update available — nothing to apply")
                return result

            result.enter(CycleState.UPDATE_AVAILABLE)

            age = self._now_usecs() - current.last_changed
            if not self._force_update and age < self._delay_usecs:
                result.skipped_reason = "user-visible update delay has not elapsed"
                logger.info(
                    "Update %s known for %ds, waiting for %ds before applying",
                    current.update_id,
                    max(age, 0) // USECS_PER_SECOND,
                    self._delay_usecs // USECS_PER_SECOND,
                )
                return result

            update = UpdateRef(refspec=current.update_refspec, update_id=current.update_id)

            if self._transport.is_installed(update.update_id):
                logger.info("Update %s is already deployed", update.update_id)
                result.enter(CycleState.APPLIED)
                return result

            if resolve_actions is not None:
                ref_actions = resolve_actions()

            result.enter(CycleState.APPLYING)
            try:
                self._transport.deploy(update, ref_actions, timeout=self._timeout)
            except TransportError as e:
                logger.error(
                    "Applying %s failed (%s): %s",
                    update.update_id,
                    "retryable" if e.retryable else "fatal",
                    e,
                )
                raise

            result.deployed = True
            result.enter(CycleState.APPLIED)
            logger.info(
                "Applied update %s with %d autoinstall actions",
                update.update_id,
                len(ref_actions),
            )

        return result

    @staticmethod
    def _settle(result: CycleResult, persisted: PollResult) -> None:
        state = _resting_state(persisted)
        if result.state != state:
            result.enter(state)
