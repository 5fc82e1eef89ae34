"""
Filter evaluator — does an autoinstall entry apply to this machine?

Each dimension is evaluated independently and the results are ANDed.
A dimension with no filter always matches.

    architecture: [L]   matches iff arch ∈ L        (empty L never matches)
    ~architecture: [L]  matches iff arch ∉ L        (empty L always matches)
    locale: [L]         matches iff locales ∩ L ≠ ∅ (empty L never matches)
    ~locale: [L]        matches iff locales ∩ L = ∅ (empty L always matches)
"""

from __future__ import annotations

from collections.abc import Iterable

from autoupdater.core.models.environment import EnvironmentFacts
from autoupdater.core.models.ref_action import Filter, FilterDimension


def _active_values(dimension: FilterDimension, facts: EnvironmentFacts) -> set[str]:
    if dimension == FilterDimension.ARCHITECTURE:
        return {facts.architecture}
    return set(facts.locales)


def filter_matches(flt: Filter, facts: EnvironmentFacts) -> bool:
    """Evaluate a single filter clause."""
    hit = bool(_active_values(flt.dimension, facts) & flt.values)
    return not hit if flt.negated else hit


def filters_match(filters: Iterable[Filter], facts: EnvironmentFacts) -> bool:
    """Evaluate all filter clauses of one entry (no clauses = match)."""
    return all(filter_matches(flt, facts) for flt in filters)
