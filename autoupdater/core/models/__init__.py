"""
Domain models — autoinstall actions, poll results, and cycle state.

All models are re-exported here for convenient access:

    from autoupdater.core.models import RefAction, PollResult, CycleState
"""

from autoupdater.core.models.cycle import CycleResult, CycleState, UpdateStep
from autoupdater.core.models.environment import EnvironmentFacts
from autoupdater.core.models.poll_result import POLL_RESULT_VERSION, PollResult
from autoupdater.core.models.ref_action import (
    SERIAL_MAX,
    SERIAL_MIN,
    Filter,
    FilterDimension,
    LocationRef,
    RefAction,
    RefActionsFile,
    RefActionsTable,
    RefActionType,
    RefIdentity,
    RefKind,
)

__all__ = [
    "CycleResult",
    "CycleState",
    "EnvironmentFacts",
    "Filter",
    "FilterDimension",
    "LocationRef",
    "POLL_RESULT_VERSION",
    "PollResult",
    "RefAction",
    "RefActionType",
    "RefActionsFile",
    "RefActionsTable",
    "RefIdentity",
    "RefKind",
    "SERIAL_MAX",
    "SERIAL_MIN",
    "UpdateStep",
]
