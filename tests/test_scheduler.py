"""Tests for slot scheduling and global failure backoff."""

import pytest

from fleet.lifecycle import AgentLifecycle, LifecycleState
from fleet.scheduler import SchedulerState, SlotScheduler
from integration.mc_client import ConnectionErrorClass, SimulatedGameClient
from utils.config import SchedulerConfig, ServerConfig
from helpers import FakeLoop


class Occupant:
    def __init__(self, slot_index):
        self.slot_index = slot_index


def _scheduler(slot_count=3, spawn=None, **config):
    loop = FakeLoop()
    spawned = []

    def default_spawn(slot_index):
        spawned.append((slot_index, loop.time()))
        return Occupant(slot_index)

    scheduler = SlotScheduler(
        SchedulerState(slot_count),
        SchedulerConfig(**config),
        spawn or default_spawn,
        loop=loop
    )
    return scheduler, loop, spawned


def test_interval_is_deterministic_and_within_window():
    scheduler, _, _ = _scheduler(slot_count=20)

    for i in range(20):
        interval = scheduler.interval_for(i)
        assert 300 <= interval <= 360
        assert interval == scheduler.interval_for(i)
        assert interval == 300 + i


def test_interval_wraps_inside_a_narrow_window():
    scheduler, _, _ = _scheduler(slot_count=6, base_interval_seconds=10, max_interval_seconds=12)

    assert [scheduler.interval_for(i) for i in range(6)] == [10, 11, 12, 10, 11, 12]


def test_each_global_failure_adds_one_penalty_to_every_slot():
    scheduler, _, _ = _scheduler(slot_count=4)
    before = [scheduler.interval_for(i) for i in range(4)]

    for _ in range(3):
        scheduler.record_global_failure()

    after = [scheduler.interval_for(i) for i in range(4)]
    assert [b - a for a, b in zip(before, after)] == [180.0] * 4
    assert scheduler.failure_count == 3


def test_timer_fire_on_occupied_slot_is_a_noop():
    scheduler, loop, spawned = _scheduler(slot_count=1)
    scheduler.occupy(0, Occupant(0))

    scheduler.schedule_slot(0)
    loop.advance(400)

    assert spawned == []


def test_fire_on_free_slot_spawns_and_occupies():
    scheduler, loop, spawned = _scheduler(slot_count=1)

    scheduler.schedule_slot(0)
    loop.advance(299)
    assert spawned == []
    loop.advance(1)

    assert spawned == [(0, 300.0)]
    assert scheduler.state[0].occupied
    assert not scheduler.is_pending(0)


def test_rescheduling_replaces_the_pending_timer():
    scheduler, loop, spawned = _scheduler(slot_count=1)

    scheduler.schedule_slot(0)
    scheduler.schedule_slot(0, delay=5)
    loop.advance(400)

    assert spawned == [(0, 5.0)]


def test_vacate_ignores_stale_occupant():
    scheduler, _, _ = _scheduler(slot_count=1)
    old, new = Occupant(0), Occupant(0)
    scheduler.occupy(0, new)

    assert scheduler.vacate(0, old) is False
    assert scheduler.state[0].occupant is new
    assert scheduler.vacate(0, new) is True
    assert not scheduler.state[0].occupied


def test_cancel_all_disarms_every_timer():
    scheduler, loop, spawned = _scheduler(slot_count=3)
    scheduler.schedule_all()

    scheduler.cancel_all()
    loop.advance(1000)

    assert spawned == []


def test_refused_connection_backs_off_fleet_and_retries_failed_slot_after_cooldown():
    loop = FakeLoop()
    client = SimulatedGameClient()
    timing = SchedulerConfig()
    agents = {}

    def spawn(slot_index):
        agent = AgentLifecycle(slot_index, f"Agent_{slot_index}", client, scheduler,
                               ServerConfig(), timing)
        agents[slot_index] = agent
        return agent

    scheduler = SlotScheduler(SchedulerState(3), timing, spawn, loop=loop)
    scheduler.schedule_all()

    first_fires = sorted(timer.when for timer in loop.pending())
    assert all(300 <= when <= 360 for when in first_fires)

    loop.advance(360)
    assert sorted(agents) == [0, 1, 2]
    assert all(scheduler.state[i].occupant is agents[i] for i in range(3))

    agents[1]._on_faulted(ConnectionErrorClass.REFUSED, "connect ECONNREFUSED")

    assert agents[1].state == LifecycleState.FAILED
    assert not scheduler.state[1].occupied
    assert scheduler.state[0].occupant is agents[0]
    assert scheduler.state[2].occupant is agents[2]

    pending = loop.pending()
    assert len(pending) == 1
    assert pending[0].args == (1,)
    assert pending[0].when == pytest.approx(loop.time() + 60)

    assert scheduler.interval_for(0) == 300 + 60
    assert scheduler.interval_for(2) == 302 + 60
