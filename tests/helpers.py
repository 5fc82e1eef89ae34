"""
Test helpers — autoinstall document builders and a settable clock.
"""

import json
from pathlib import Path


def make_entry(
    name: str = "org.test.Test",
    action: str = "install",
    serial: int = 1,
    ref_kind: str = "app",
    collection_id: str = "com.example.Apps",
    remote: str = "example-apps",
    filters: dict | None = None,
) -> dict:
    """One autoinstall document element."""
    entry = {
        "action": action,
        "serial": serial,
        "ref-kind": ref_kind,
        "name": name,
        "collection-id": collection_id,
        "remote": remote,
    }
    if filters is not None:
        entry["filters"] = filters
    return entry


def write_autoinstall(directory: Path, name: str, entries: list[dict]) -> Path:
    """Write an autoinstall file and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(json.dumps(entries, indent=2))
    return path


class FakeClock:
    """Settable wall clock (seconds)."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
