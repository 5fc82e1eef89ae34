"""
Transport adapters — how updates are resolved, fetched and deployed.
"""

from autoupdater.adapters.base import TransportAdapter, UpdateRef
from autoupdater.adapters.command import CommandTransport
from autoupdater.adapters.mock import MockTransport

__all__ = [
    "CommandTransport",
    "MockTransport",
    "TransportAdapter",
    "UpdateRef",
]
