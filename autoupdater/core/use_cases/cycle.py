"""
Cycle use case — one poll or apply invocation, end to end.

Loads nothing itself: the caller passes the validated config and a
transport. This wires the state machine to its store, resolves the
autoinstall actions for an apply, records the invocation in the
ledger, and turns failures into a result instead of a traceback.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from autoupdater.adapters.base import TransportAdapter
from autoupdater.core.config.loader import AutoupdaterConfig
from autoupdater.core.engine.update_cycle import SECONDS_PER_DAY, UpdateCycle
from autoupdater.core.errors import AutoupdaterError, TransportError
from autoupdater.core.models.cycle import CycleResult, CycleState, UpdateStep
from autoupdater.core.models.poll_result import PollResult
from autoupdater.core.models.ref_action import RefAction
from autoupdater.core.persistence.audit import CycleAuditEntry, CycleAuditWriter
from autoupdater.core.persistence.poll_results import PollResultStore
from autoupdater.core.use_cases.autoinstall import resolve_autoinstall_actions

logger = logging.getLogger(__name__)

# sysexits.h
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_TEMPFAIL = 75


@dataclass
class CycleRunResult:
    """Outcome of a whole invocation (one or more steps)."""

    results: list[CycleResult] = field(default_factory=list)
    ref_actions: list[RefAction] = field(default_factory=list)
    error: str | None = None
    retryable: bool = False

    @property
    def final(self) -> CycleResult | None:
        return self.results[-1] if self.results else None

    @property
    def exit_code(self) -> int:
        if self.error is None:
            return EXIT_OK
        return EXIT_TEMPFAIL if self.retryable else EXIT_FAILURE

    def to_dict(self) -> dict:
        return {
            "steps": [r.to_dict() for r in self.results],
            "ref_actions": [a.to_dict() for a in self.ref_actions],
            "error": self.error,
            "retryable": self.retryable,
        }


def load_poll_result(config: AutoupdaterConfig) -> PollResult:
    """The currently persisted PollResult."""
    return PollResultStore(config.state_dir).load()


def build_update_cycle(
    config: AutoupdaterConfig,
    transport: TransportAdapter,
    clock: Callable[[], float] = time.time,
) -> UpdateCycle:
    """Construct the state machine described by ``config``."""
    return UpdateCycle(
        transport=transport,
        store=PollResultStore(config.state_dir),
        refspec=config.refspec,
        user_visible_delay=config.user_visible_update_delay_days * SECONDS_PER_DAY,
        force_update=config.force_update,
        poll_interval=config.interval_days * SECONDS_PER_DAY,
        timeout=config.transport_timeout_seconds,
        clock=clock,
    )


def _audit(
    writer: CycleAuditWriter,
    result: CycleResult,
    refspec: str,
    ref_actions: int,
    started: float,
) -> None:
    writer.write(CycleAuditEntry(
        step=result.step.value,
        state=result.state.value,
        refspec=refspec,
        update_id=result.poll_result.update_id,
        polled=result.polled,
        changed=result.changed,
        deployed=result.deployed,
        ref_actions=ref_actions,
        duration_ms=int((time.monotonic() - started) * 1000),
        error=result.error,
    ))


def _action_count(run: CycleRunResult, step: UpdateStep) -> int:
    return len(run.ref_actions) if step == UpdateStep.APPLY else 0


def run_steps(
    config: AutoupdaterConfig,
    transport: TransportAdapter,
    steps: list[UpdateStep],
    clock: Callable[[], float] = time.time,
) -> CycleRunResult:
    """Run the given steps in order, stopping at the first hard failure.

    A failed poll is not a hard failure: a following apply still runs
    from the last good persisted result, but the invocation still
    reports the poll error (and exits non-zero).
    """
    run = CycleRunResult()
    cycle = build_update_cycle(config, transport, clock)
    writer = CycleAuditWriter(config.state_dir)

    def resolve_actions() -> list[RefAction]:
        # only reached once apply has decided to deploy
        run.ref_actions = resolve_autoinstall_actions(config).actions
        return run.ref_actions

    for step in steps:
        started = time.monotonic()

        try:
            result = cycle.run(step, resolve_actions=resolve_actions)
        except TransportError as e:
            run.error = str(e)
            run.retryable = e.retryable
            failed = CycleResult(step=step, error=str(e), retryable=e.retryable)
            failed.poll_result = load_poll_result(config)
            if not failed.poll_result.empty:
                failed.enter(CycleState.UPDATE_AVAILABLE)
            _audit(writer, failed, config.refspec, _action_count(run, step), started)
            run.results.append(failed)
            break
        except AutoupdaterError as e:
            logger.error("%s step failed: %s", step.value, e)
            run.error = str(e)
            failed = CycleResult(step=step, error=str(e))
            _audit(writer, failed, config.refspec, _action_count(run, step), started)
            run.results.append(failed)
            break

        _audit(writer, result, config.refspec, _action_count(run, step), started)
        run.results.append(result)
        if result.error and run.error is None:
            run.error = result.error
            run.retryable = result.retryable

    return run


def steps_for(last_automatic_step: str) -> list[UpdateStep]:
    """Steps a ``run`` invocation performs for the configured last step."""
    if last_automatic_step == UpdateStep.APPLY.value:
        return [UpdateStep.POLL, UpdateStep.APPLY]
    return [UpdateStep.POLL]
