"""
PollResult — the only durable state of the update cycle.

Serialized as a small versioned JSON record. Decoding is lenient about
missing fields (each one falls back to its zero/empty default) and
ignores unknown ones, so records written by older or newer versions
stay readable.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

POLL_RESULT_VERSION = 1


class PollResult(BaseModel):
    """Outcome of the most recent poll.

    ``last_changed`` only moves when ``update_refspec``/``update_id``
    change value; ``last_polled`` moves on every completed poll and
    drives the poll interval.
    """

    version: int = POLL_RESULT_VERSION
    last_changed: int = Field(default=0, ge=0)     # µs since the epoch
    last_polled: int = Field(default=0, ge=0)      # µs since the epoch
    update_refspec: str = ""
    update_id: str = ""

    @property
    def empty(self) -> bool:
        """True when no update is known."""
        return not self.update_id

    def same_update(self, refspec: str, update_id: str) -> bool:
        return self.update_refspec == refspec and self.update_id == update_id
