"""
Tests for the update cycle state machine — poll, apply, delay, interval,
and transport failures.
"""

from pathlib import Path

import pytest

from autoupdater.adapters.mock import MockTransport
from autoupdater.core.engine.update_cycle import SECONDS_PER_DAY, USECS_PER_SECOND, UpdateCycle
from autoupdater.core.errors import TransportError
from autoupdater.core.models import CycleState, PollResult, UpdateStep
from autoupdater.core.persistence.poll_results import PollResultStore

from tests.helpers import FakeClock

REFSPEC = "eos:os/eos/amd64/eos3"

IDLE = CycleState.IDLE
POLLING = CycleState.POLLING
AVAILABLE = CycleState.UPDATE_AVAILABLE
APPLYING = CycleState.APPLYING
APPLIED = CycleState.APPLIED


@pytest.fixture
def make_cycle(transport: MockTransport, store: PollResultStore, clock: FakeClock):
    def _make(**kwargs) -> UpdateCycle:
        kwargs.setdefault("refspec", REFSPEC)
        return UpdateCycle(transport, store, clock=clock, **kwargs)

    return _make


def _usecs(clock: FakeClock) -> int:
    return int(clock.now * USECS_PER_SECOND)


class TestPoll:
    def test_first_poll_without_update_writes_record(self, make_cycle, store: PollResultStore, clock: FakeClock):
        result = make_cycle().poll()

        assert result.state == IDLE
        assert result.transitions == [IDLE, POLLING, IDLE]
        assert result.polled
        assert result.changed
        assert store.exists()
        record = store.load()
        assert record.empty
        assert record.last_changed == _usecs(clock)
        assert record.last_changed > 0

    def test_poll_finds_update(self, make_cycle, transport: MockTransport, store: PollResultStore):
        transport.publish(REFSPEC, "commit-1")
        result = make_cycle().poll()

        assert result.state == AVAILABLE
        assert result.transitions == [IDLE, POLLING, AVAILABLE]
        record = store.load()
        assert record.update_id == "commit-1"
        assert record.update_refspec == REFSPEC

    def test_same_update_keeps_last_changed(self, make_cycle, transport, store, clock):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()
        first = store.load()

        clock.advance(3600)
        result = make_cycle().poll()

        second = store.load()
        assert not result.changed
        assert second.last_changed == first.last_changed
        assert second.last_polled == _usecs(clock)
        assert result.state == AVAILABLE

    def test_new_update_moves_last_changed(self, make_cycle, transport, store, clock):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()
        first = store.load()

        clock.advance(60)
        transport.publish(REFSPEC, "commit-2")
        result = make_cycle().poll()

        assert result.changed
        assert store.load().update_id == "commit-2"
        assert store.load().last_changed > first.last_changed

    def test_last_changed_monotonic_when_clock_goes_back(self, make_cycle, transport, store, clock):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()
        first = store.load()

        clock.advance(-3600)
        transport.publish(REFSPEC, "commit-2")
        make_cycle().poll()

        assert store.load().last_changed == first.last_changed + 1

    def test_withdrawn_update_returns_to_idle(self, make_cycle, transport, store):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()

        transport.withdraw(REFSPEC)
        result = make_cycle().poll()

        assert result.state == IDLE
        assert result.changed
        assert store.load().empty

    def test_installed_update_is_not_offered(self, make_cycle, transport, store):
        transport.publish(REFSPEC, "commit-1")
        transport.mark_installed("commit-1")
        result = make_cycle().poll()

        assert result.state == IDLE
        assert store.load().empty

    def test_transport_failure_leaves_record(self, make_cycle, transport, store):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()
        before = store.load()

        transport.set_failure("resolve", "network unreachable", retryable=True)
        result = make_cycle().poll()

        assert result.error == "network unreachable"
        assert not result.polled
        assert result.state == AVAILABLE
        assert store.load() == before

    def test_transport_failure_on_first_poll(self, make_cycle, transport, store):
        transport.set_failure("resolve")
        result = make_cycle().poll()

        assert result.state == IDLE
        assert result.error
        assert not store.exists()


class TestPollInterval:
    def test_second_poll_within_interval_skipped(self, make_cycle, transport, clock):
        transport.publish(REFSPEC, "commit-1")
        cycle = make_cycle(poll_interval=SECONDS_PER_DAY)
        cycle.poll()

        clock.advance(60)
        result = cycle.poll()

        assert transport.resolve_count == 1
        assert not result.polled
        assert result.skipped_reason
        assert result.state == AVAILABLE
        assert POLLING not in result.transitions

    def test_poll_after_interval(self, make_cycle, transport, clock):
        cycle = make_cycle(poll_interval=SECONDS_PER_DAY)
        cycle.poll()
        clock.advance(SECONDS_PER_DAY)
        cycle.poll()
        assert transport.resolve_count == 2

    def test_force_ignores_interval(self, make_cycle, transport, clock):
        cycle = make_cycle(poll_interval=SECONDS_PER_DAY, force_update=True)
        cycle.poll()
        clock.advance(1)
        cycle.poll()
        assert transport.resolve_count == 2

    def test_clock_going_back_does_not_block_polling(self, make_cycle, transport, clock):
        cycle = make_cycle(poll_interval=SECONDS_PER_DAY)
        cycle.poll()
        clock.advance(-SECONDS_PER_DAY * 2)
        cycle.poll()
        assert transport.resolve_count == 2


class TestApply:
    def test_nothing_known_stays_idle(self, make_cycle, transport):
        result = make_cycle().apply()

        assert result.state == IDLE
        assert result.transitions == [IDLE]
        assert transport.deploy_log == []

    def test_delay_not_elapsed(self, make_cycle, transport, clock):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()

        clock.advance(SECONDS_PER_DAY - 1)
        result = make_cycle(user_visible_delay=SECONDS_PER_DAY).apply()

        assert result.state == AVAILABLE
        assert result.skipped_reason
        assert not result.deployed
        assert transport.deploy_log == []

    def test_delay_elapsed(self, make_cycle, transport, clock):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()

        clock.advance(SECONDS_PER_DAY)
        result = make_cycle(user_visible_delay=SECONDS_PER_DAY).apply()

        assert result.state == APPLIED
        assert result.transitions == [IDLE, AVAILABLE, APPLYING, APPLIED]
        assert result.deployed
        assert transport.deploy_log[0][0].update_id == "commit-1"

    def test_zero_delay_applies_immediately(self, make_cycle, transport):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()
        assert make_cycle(user_visible_delay=0).apply().state == APPLIED

    def test_force_overrides_delay(self, make_cycle, transport):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()
        result = make_cycle(user_visible_delay=SECONDS_PER_DAY, force_update=True).apply()
        assert result.state == APPLIED

    def test_new_update_restarts_delay(self, make_cycle, transport, clock):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()
        clock.advance(SECONDS_PER_DAY - 10)
        transport.publish(REFSPEC, "commit-2")
        make_cycle().poll()
        clock.advance(20)

        result = make_cycle(user_visible_delay=SECONDS_PER_DAY).apply()
        assert result.state == AVAILABLE

    def test_ref_actions_passed_to_deploy(self, make_cycle, transport):
        from autoupdater.core.models import LocationRef, RefAction, RefActionType, RefIdentity, RefKind

        action = RefAction(
            type=RefActionType.INSTALL,
            ref=LocationRef(identity=RefIdentity(kind=RefKind.APP, name="org.test.A", collection_id="c")),
            source="apps",
            serial=1,
        )
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()
        make_cycle().apply([action])

        assert transport.deploy_log[0][1] == [action]

    def test_deploy_failure_raises_and_keeps_record(self, make_cycle, transport, store):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()
        before = store.load()

        transport.set_failure("deploy", "disk full", retryable=False)
        with pytest.raises(TransportError, match="disk full"):
            make_cycle().apply()
        assert store.load() == before

        transport.clear_failures()
        assert make_cycle().apply().state == APPLIED

    def test_already_installed_is_applied_without_deploy(self, make_cycle, transport, store):
        store.save(PollResult(last_changed=1, update_refspec=REFSPEC, update_id="commit-1"))
        transport.mark_installed("commit-1")

        result = make_cycle().apply()

        assert result.state == APPLIED
        assert not result.deployed
        assert APPLYING not in result.transitions
        assert transport.deploy_log == []

    def test_apply_does_not_poll(self, make_cycle, transport, store):
        store.save(PollResult(last_changed=1, update_refspec=REFSPEC, update_id="commit-1"))
        make_cycle().apply()
        assert transport.resolve_count == 0


class TestRun:
    def test_dispatches_by_step(self, make_cycle, transport):
        transport.publish(REFSPEC, "commit-1")
        cycle = make_cycle()
        assert cycle.run(UpdateStep.POLL).step == UpdateStep.POLL
        assert cycle.run(UpdateStep.APPLY).state == APPLIED

    def test_result_to_dict(self, make_cycle, transport):
        transport.publish(REFSPEC, "commit-1")
        data = make_cycle().poll().to_dict()
        assert data["step"] == "poll"
        assert data["state"] == "update_available"
        assert data["transitions"] == ["idle", "polling", "update_available"]
        assert data["poll_result"]["update_id"] == "commit-1"


def test_store_shared_between_invocations(tmp_path: Path, clock: FakeClock):
    """Each invocation is a fresh process; only the record carries over."""
    transport = MockTransport()
    transport.publish(REFSPEC, "commit-1")
    UpdateCycle(transport, PollResultStore(tmp_path), REFSPEC, clock=clock).poll()

    clock.advance(SECONDS_PER_DAY * 7)
    result = UpdateCycle(
        transport, PollResultStore(tmp_path), REFSPEC,
        user_visible_delay=SECONDS_PER_DAY * 7, clock=clock,
    ).apply()
    assert result.state == APPLIED


class TestResolveActionsProvider:
    def test_not_called_without_update(self, make_cycle):
        calls = []
        make_cycle().apply(resolve_actions=lambda: calls.append(1) or [])
        assert calls == []

    def test_not_called_while_delayed(self, make_cycle, transport):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()
        calls = []
        make_cycle(user_visible_delay=SECONDS_PER_DAY).apply(resolve_actions=lambda: calls.append(1) or [])
        assert calls == []

    def test_not_called_when_already_installed(self, make_cycle, transport, store):
        store.save(PollResult(last_changed=1, update_refspec=REFSPEC, update_id="commit-1"))
        transport.mark_installed("commit-1")
        calls = []
        make_cycle().apply(resolve_actions=lambda: calls.append(1) or [])
        assert calls == []

    def test_result_handed_to_deploy(self, make_cycle, transport):
        transport.publish(REFSPEC, "commit-1")
        make_cycle().poll()
        result = make_cycle().run(UpdateStep.APPLY, resolve_actions=lambda: ["sentinel"])
        assert result.state == APPLIED
        assert transport.deploy_log[0][1] == ["sentinel"]


def test_non_utf8_record_does_not_break_poll(make_cycle, transport, store):
    store.path.parent.mkdir(parents=True)
    store.path.write_bytes(b"\xff\xfe\x00garbage")
    transport.publish(REFSPEC, "commit-1")

    result = make_cycle().poll()
    assert result.state == AVAILABLE
    assert store.load().update_id == "commit-1"
