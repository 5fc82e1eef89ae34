"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from autoupdater.adapters.mock import MockTransport
from autoupdater.core.models import EnvironmentFacts
from autoupdater.core.persistence.poll_results import PollResultStore

from tests.helpers import FakeClock



@pytest.fixture
def facts() -> EnvironmentFacts:
    """A fixed x86_64, English environment."""
    return EnvironmentFacts(architecture="x86_64", locales=("en_GB", "en"))


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def store(tmp_state_dir: Path) -> PollResultStore:
    return PollResultStore(tmp_state_dir)


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _no_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the host's override/config variables out of every test."""
    for var in (
        "AUTOUPDATER_OVERRIDE_ARCHITECTURE",
        "AUTOUPDATER_OVERRIDE_LOCALES",
        "AUTOUPDATER_CONFIG",
        "AUTOUPDATER_LOG_LEVEL",
        "AUTOUPDATER_LOG_FILE",
        "AUTOUPDATER_LOG_FILE_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """setup_logging() replaces root handlers; put the originals back."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
