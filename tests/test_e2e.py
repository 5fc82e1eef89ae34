"""
End-to-end tests — autoinstall directories through to the deployed
action list, and a full poll/apply cycle across invocations.
"""

from pathlib import Path

from autoupdater.adapters.mock import MockTransport
from autoupdater.core.config.loader import AutoinstallDir, AutoupdaterConfig
from autoupdater.core.engine.update_cycle import SECONDS_PER_DAY
from autoupdater.core.models import CycleState, EnvironmentFacts, RefActionType, UpdateStep
from autoupdater.core.use_cases.autoinstall import resolve_autoinstall_actions
from autoupdater.core.use_cases.cycle import run_steps

from tests.helpers import FakeClock, make_entry, write_autoinstall

REFSPEC = "eos:os/eos/amd64/eos3"


def _config(tmp_path: Path, **overrides) -> AutoupdaterConfig:
    values = dict(
        refspec=REFSPEC,
        state_dir=tmp_path / "state",
        interval_days=0,
        user_visible_update_delay_days=0,
        autoinstall_dirs=[
            AutoinstallDir(path=tmp_path / "vendor", priority=0),
            AutoinstallDir(path=tmp_path / "site", priority=10),
        ],
        architecture="x86_64",
        locales=["en"],
    )
    values.update(overrides)
    return AutoupdaterConfig(**values)


class TestAutoinstallPipeline:
    def test_install_then_update_is_one_install(self, tmp_path: Path):
        write_autoinstall(tmp_path / "vendor", "autoinstall", [
            make_entry(action="install", serial=1),
            make_entry(action="update", serial=2),
        ])
        result = resolve_autoinstall_actions(_config(tmp_path))

        assert len(result.actions) == 1
        assert result.actions[0].type == RefActionType.INSTALL
        assert result.actions[0].serial == 2

    def test_negated_architecture_filter(self, tmp_path: Path):
        write_autoinstall(tmp_path / "vendor", "autoinstall", [
            make_entry(filters={"~architecture": ["armhf"]}),
        ])
        facts = EnvironmentFacts(architecture="armhf", locales=())
        assert resolve_autoinstall_actions(_config(tmp_path), facts).actions == []

        facts = EnvironmentFacts(architecture="x86_64", locales=())
        assert len(resolve_autoinstall_actions(_config(tmp_path), facts).actions) == 1

    def test_site_file_overrides_vendor_file(self, tmp_path: Path):
        write_autoinstall(tmp_path / "vendor", "apps", [make_entry(name="org.test.Vendor")])
        write_autoinstall(tmp_path / "site", "apps", [
            make_entry(name="org.test.Vendor", action="uninstall", serial=9),
        ])
        result = resolve_autoinstall_actions(_config(tmp_path))

        assert [(a.identity.name, a.type) for a in result.actions] == [
            ("org.test.Vendor", RefActionType.UNINSTALL),
        ]
        assert result.to_dict()["files"]["apps"]["priority"] == 10

    def test_uninstall_in_later_file(self, tmp_path: Path):
        write_autoinstall(tmp_path / "vendor", "10-apps", [make_entry(name="org.test.A")])
        write_autoinstall(tmp_path / "vendor", "20-cleanup", [
            make_entry(name="org.test.A", action="uninstall", serial=2),
        ])
        result = resolve_autoinstall_actions(_config(tmp_path))
        assert result.actions[0].type == RefActionType.UNINSTALL
        assert result.actions[0].source == "20-cleanup"


class TestCycleAcrossInvocations:
    def test_delay_then_apply(self, tmp_path: Path):
        clock = FakeClock()
        transport = MockTransport()
        transport.publish(REFSPEC, "commit-1")
        write_autoinstall(tmp_path / "vendor", "apps", [make_entry(name="org.test.A")])
        config = _config(tmp_path, user_visible_update_delay_days=1)

        first = run_steps(config, transport, [UpdateStep.POLL, UpdateStep.APPLY], clock)
        assert [r.state for r in first.results] == [CycleState.UPDATE_AVAILABLE, CycleState.UPDATE_AVAILABLE]
        assert transport.deploy_log == []
        assert first.exit_code == 0

        clock.advance(SECONDS_PER_DAY)
        second = run_steps(config, transport, [UpdateStep.POLL, UpdateStep.APPLY], clock)
        assert second.final.state == CycleState.APPLIED
        assert [a.identity.name for a in transport.deploy_log[0][1]] == ["org.test.A"]

        clock.advance(SECONDS_PER_DAY)
        third = run_steps(config, transport, [UpdateStep.POLL], clock)
        assert third.final.state == CycleState.IDLE

    def test_retryable_deploy_failure(self, tmp_path: Path):
        transport = MockTransport()
        transport.publish(REFSPEC, "commit-1")
        transport.set_failure("deploy", "timed out", retryable=True)
        config = _config(tmp_path)

        result = run_steps(config, transport, [UpdateStep.POLL, UpdateStep.APPLY], FakeClock())
        assert result.exit_code == 75
        assert result.final.state == CycleState.UPDATE_AVAILABLE
        assert result.final.error == "timed out"

        transport.clear_failures()
        retry = run_steps(config, transport, [UpdateStep.APPLY], FakeClock())
        assert retry.final.state == CycleState.APPLIED
        assert retry.exit_code == 0

    def test_malformed_file_stops_apply(self, tmp_path: Path):
        transport = MockTransport()
        transport.publish(REFSPEC, "commit-1")
        (tmp_path / "vendor").mkdir()
        (tmp_path / "vendor" / "broken").write_text("[1, 2]")
        config = _config(tmp_path)

        result = run_steps(config, transport, [UpdateStep.POLL, UpdateStep.APPLY], FakeClock())
        assert result.exit_code == 1
        assert not result.retryable
        assert "broken" in result.error
        assert transport.deploy_log == []
