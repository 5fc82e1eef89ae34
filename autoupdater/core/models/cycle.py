"""
Update cycle models — steps, states, and the per-invocation result.

One process runs one step. The state machine walks through states
during that step and always ends in a terminal state for the
invocation (IDLE, UPDATE_AVAILABLE, or APPLIED).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from autoupdater.core.models.poll_result import PollResult


class UpdateStep(StrEnum):
    """What an invocation was asked to do."""

    POLL = "poll"
    APPLY = "apply"


class CycleState(StrEnum):
    """States of the update cycle."""

    IDLE = "idle"
    POLLING = "polling"
    UPDATE_AVAILABLE = "update_available"
    APPLYING = "applying"
    APPLIED = "applied"


@dataclass
class CycleResult:
    """What one step did.

    ``transitions`` records every state entered, starting with the
    initial IDLE, so callers (and tests) can see the path taken.
    """

    step: UpdateStep
    state: CycleState = CycleState.IDLE
    transitions: list[CycleState] = field(default_factory=lambda: [CycleState.IDLE])
    poll_result: PollResult = field(default_factory=PollResult)
    polled: bool = False            # transport was actually queried
    changed: bool = False           # persisted record was rewritten
    deployed: bool = False          # transport deploy ran and succeeded
    skipped_reason: str = ""
    error: str | None = None
    retryable: bool = False

    def enter(self, state: CycleState) -> None:
        self.state = state
        self.transitions.append(state)

    def to_dict(self) -> dict:
        return {
            "step": self.step.value,
            "state": self.state.value,
            "transitions": [s.value for s in self.transitions],
            "polled": self.polled,
            "changed": self.changed,
            "deployed": self.deployed,
            "skipped_reason": self.skipped_reason,
            "error": self.error,
            "retryable": self.retryable,
            "poll_result": self.poll_result.model_dump(mode="json"),
        }
