"""
Tests for PollScheduler — cadence, stop guarantees, restart, skipping.

Time is driven by ``FakeTimer``; nothing here sleeps for real.
"""

import logging

import pytest

from readiness.core.models.resource import ResourceStatus
from readiness.core.services.scheduler import PollScheduler
from tests.fakes import FakeTimer, settle

IDS = ["node", "uv", "resource-bundle"]


@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def scheduler(controller, timer) -> PollScheduler:
    return PollScheduler(controller, async_sleep=timer.sleep, clock=timer.clock)


class TestCadence:
    @pytest.mark.asyncio
    async def test_first_round_marks_everything_absent(self, scheduler, store):
        """Fresh process with nothing installed: absent without waiting an interval."""
        scheduler.start(IDS, 10)
        await settle()

        assert {rid: store.get(rid).status for rid in IDS} == {
            "node": ResourceStatus.ABSENT,
            "uv": ResourceStatus.ABSENT,
            "resource-bundle": ResourceStatus.ABSENT,
        }
        scheduler.stop()

    @pytest.mark.asyncio
    async def test_first_round_has_no_initial_delay(self, scheduler, timer, backend):
        scheduler.start(["node", "uv"], 10)
        await settle()

        assert timer.now == 0
        assert backend.call_count("check", "node") == 1
        assert backend.call_count("check", "uv") == 1
        scheduler.stop()

    @pytest.mark.asyncio
    async def test_one_check_per_id_within_first_interval(self, scheduler, timer, backend):
        scheduler.start(["node", "uv"], 10)
        await settle()
        await timer.advance(9)
        assert backend.call_count("check", "node") == 1
        assert backend.call_count("check", "uv") == 1

        await timer.advance(1)
        assert backend.call_count("check", "node") == 2
        assert backend.call_count("check", "uv") == 2

        scheduler.stop()
        await timer.advance(10)
        await timer.advance(100)
        assert backend.call_count("check", "node") == 2
        assert backend.call_count("check", "uv") == 2

    @pytest.mark.asyncio
    async def test_fixed_cadence_with_slow_check(self, scheduler, timer, backend, controller):
        """A slow check neither delays the next round nor gets duplicated."""
        backend.hold("check", "node")
        scheduler.start(["node"], 10)
        await settle()

        await timer.advance(10)
        await timer.advance(10)
        await timer.advance(10)

        assert scheduler.rounds == 4
        assert timer.sleep_calls == [10, 10, 10, 10]
        assert backend.call_count("check", "node") == 1
        assert "node" in controller.in_flight

        backend.release("check", "node")
        await settle()
        scheduler.stop()

    @pytest.mark.asyncio
    async def test_missed_ticks_are_skipped(self, scheduler, timer):
        scheduler.start(["node"], 10)
        await settle()
        assert scheduler.rounds == 1

        await timer.advance(35)
        assert scheduler.rounds == 2
        assert timer.sleep_calls == [10, 5]

        await timer.advance(5)
        assert scheduler.rounds == 3
        scheduler.stop()


class TestLifecycle:
    def test_stop_before_start(self, scheduler):
        scheduler.stop()
        scheduler.stop()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_invalid_interval(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.start(["node"], 0)
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, scheduler, timer, backend):
        scheduler.start(["node"], 10)
        await settle()
        scheduler.stop()
        scheduler.stop()
        await scheduler.wait_closed()
        assert not scheduler.running
        assert timer.pending == 0

        await timer.advance(50)
        assert backend.call_count("check") == 1

    @pytest.mark.asyncio
    async def test_stop_before_loop_runs(self, scheduler, timer, backend):
        scheduler.start(["node"], 10)
        scheduler.stop()
        await settle()
        await timer.advance(50)
        assert backend.call_count("check") == 0

    @pytest.mark.asyncio
    async def test_restart_replaces_set(self, scheduler, timer, backend):
        scheduler.start(["node"], 10)
        await settle()
        scheduler.start(["uv"], 5)
        await settle()
        assert backend.call_count("check", "uv") == 1

        await timer.advance(5)
        assert scheduler.resource_ids == ("uv",)
        assert scheduler.interval == 5
        assert backend.call_count("check", "uv") == 2
        await timer.advance(10)
        assert backend.call_count("check", "node") == 1

        scheduler.stop()

    @pytest.mark.asyncio
    async def test_duplicate_ids_checked_once(self, scheduler, timer, backend):
        scheduler.start(["node", "node"], 10)
        await settle()
        await timer.advance(10)
        assert scheduler.resource_ids == ("node",)
        assert backend.call_count("check", "node") == 2
        scheduler.stop()

    @pytest.mark.asyncio
    async def test_in_flight_check_finishes_after_stop(self, scheduler, backend, store):
        backend.hold("check", "node")
        scheduler.start(["node"], 10)
        await settle()
        assert store.get("node").status == ResourceStatus.CHECKING

        scheduler.stop()
        backend.release("check", "node")
        await settle()
        assert store.get("node").status == ResourceStatus.ABSENT

    @pytest.mark.asyncio
    async def test_bad_id_logged_and_loop_continues(self, scheduler, timer, backend, caplog):
        with caplog.at_level(logging.ERROR, logger="readiness.core.services.scheduler"):
            scheduler.start(["ruby", "node"], 10)
            await settle()
            await timer.advance(10)

        assert backend.call_count("check", "node") == 2
        assert "ruby" in caplog.text
        assert scheduler.running
        scheduler.stop()
