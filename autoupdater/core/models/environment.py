"""
EnvironmentFacts — the snapshot filters are evaluated against.

Built once per invocation (see services/environment_facts.py) and
passed explicitly; tests construct it directly.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class EnvironmentFacts(BaseModel):
    """Current architecture and active locales (most preferred first)."""

    model_config = ConfigDict(frozen=True)

    architecture: str = ""
    locales: tuple[str, ...] = ()
