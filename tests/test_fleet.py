"""End-to-end fleet tests against the simulated game client."""

import asyncio
import json
import random

import pytest

from agent.q_agent import QAgentConfig
from env.actions import ActionOutcome
from fleet.lifecycle import LifecycleState
from fleet.manager import FleetManager
from integration.mc_client import ConnectionErrorClass, SimulatedGameClient
from utils.config import FleetConfig, SchedulerConfig
from helpers import wait_until

ACTIVE = LifecycleState.ACTIVE


def _config(tmp_path, agent_count=1, mode="rl", lifetime_minutes=100.0):
    return FleetConfig(
        mode=mode,
        agent_count=agent_count,
        fleet_config_file=str(tmp_path / "bots_config.json"),
        models_dir=str(tmp_path / "models"),
        episode_log_dir=str(tmp_path / "logs"),
        seed=0,
        scheduler=SchedulerConfig(
            base_interval_seconds=0,
            max_interval_seconds=0,
            tick_interval_seconds=0.001,
            lifetime_minutes=lifetime_minutes,
        ),
        agent=QAgentConfig(hidden_dim=16, batch_size=4, replay_buffer_size=1000),
    )


def _all_active(manager):
    count = manager.config.agent_count
    return all(i in manager.agents and manager.agents[i].state == ACTIVE for i in range(count))


def test_shutdown_disconnects_agents_and_saves_models_and_identities(tmp_path):
    client = SimulatedGameClient(seed=1)
    manager = FleetManager(_config(tmp_path, agent_count=3), client)

    async def scenario():
        manager.initialize()
        await wait_until(lambda: _all_active(manager))
        stats = manager.get_stats()
        manager.shutdown()
        await asyncio.sleep(0)
        return stats

    stats = asyncio.run(scenario())

    assert [slot['state'] for slot in stats['slots']] == ['ACTIVE'] * 3
    assert len(client.sessions) == 3
    assert not any(session.is_connected for session in client.sessions)
    assert all(agent.state == LifecycleState.DISCONNECTED for agent in manager.agents.values())
    assert not any(manager.scheduler.is_pending(i) for i in range(3))

    saved = json.loads((tmp_path / "bots_config.json").read_text())
    assert [entry['username'] for entry in saved] == manager.identities
    for identity in manager.identities:
        assert identity.startswith("RL_Agent_")
        assert (tmp_path / "models" / identity / "model.pt").exists()


def test_restart_reuses_identities_and_restores_models(tmp_path):
    async def start_and_stop(manager):
        manager.initialize()
        manager.shutdown()
        await asyncio.sleep(0)

    first = FleetManager(_config(tmp_path, agent_count=2), SimulatedGameClient())
    asyncio.run(start_and_stop(first))

    second = FleetManager(_config(tmp_path, agent_count=2), SimulatedGameClient())
    second.rng = random.Random(99)
    asyncio.run(start_and_stop(second))

    assert second.identities == first.identities
    for trainer in second.trainers.values():
        assert trainer.estimator.epsilon == pytest.approx(0.005)


def test_saved_identities_are_reused_first_and_surplus_skipped(tmp_path):
    store_path = tmp_path / "bots_config.json"
    store_path.write_text(json.dumps([{"username": n} for n in ("A_1", "A_2", "A_3")]))

    manager = FleetManager(_config(tmp_path, agent_count=2), SimulatedGameClient())

    assert manager.resolve_identities() == ["A_1", "A_2"]


def test_missing_identities_are_generated_without_collisions(tmp_path):
    (tmp_path / "bots_config.json").write_text(json.dumps([{"username": "RL_Agent_5"}]))

    manager = FleetManager(_config(tmp_path, agent_count=4), SimulatedGameClient())
    identities = manager.resolve_identities()

    assert identities[0] == "RL_Agent_5"
    assert len(set(identities)) == 4
    assert all(name.startswith("RL_Agent_") for name in identities)


def test_agent_death_ends_episode_and_reconnects_same_identity(tmp_path):
    client = SimulatedGameClient(seed=2)
    manager = FleetManager(_config(tmp_path), client)

    async def scenario():
        manager.initialize()
        await wait_until(lambda: _all_active(manager))
        first = manager.agents[0]
        client.sessions[0].world.health = 0.0
        await wait_until(lambda: len(client.sessions) == 2 and _all_active(manager))
        manager.shutdown()
        await asyncio.sleep(0)
        return first

    first = asyncio.run(scenario())
    trainer = manager.trainers[0]

    assert first is not manager.agents[0]
    assert first.state == LifecycleState.DISCONNECTED
    assert client.sessions[1].username == client.sessions[0].username == trainer.identity
    assert trainer.episode == 2
    assert any(t.terminal and t.reward == -100.0 for t in trainer.buffer)
    assert (tmp_path / "logs" / trainer.identity / "summary.json").exists()


def test_rotate_mode_expires_sessions_with_fresh_identities(tmp_path):
    client = SimulatedGameClient()
    manager = FleetManager(_config(tmp_path, mode="rotate", lifetime_minutes=0.001), client)

    async def scenario():
        manager.initialize()
        await wait_until(lambda: len(client.sessions) >= 2)
        manager.shutdown()
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert manager.trainers == {}
    assert not client.sessions[0].is_connected
    assert client.sessions[0].username != client.sessions[1].username
    assert all(s.username.startswith("RL_Agent_") for s in client.sessions)
    assert not (tmp_path / "bots_config.json").exists()


def test_rotate_mode_early_exit_waits_for_lifetime_timer(tmp_path):
    client = SimulatedGameClient()
    manager = FleetManager(_config(tmp_path, mode="rotate", lifetime_minutes=0.005), client)

    async def scenario():
        manager.initialize()
        await wait_until(lambda: _all_active(manager))
        client.sessions[0].disconnect()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert not manager.scheduler.state[0].occupied
        assert not manager.scheduler.is_pending(0)
        assert len(client.sessions) == 1
        await wait_until(lambda: len(client.sessions) == 2)
        manager.shutdown()
        await asyncio.sleep(0)

    asyncio.run(scenario())


def test_refused_connections_back_off_every_slot(tmp_path):
    client = SimulatedGameClient(refuse_connections=True)
    manager = FleetManager(_config(tmp_path, agent_count=2), client)

    async def scenario():
        manager.initialize()
        await wait_until(lambda: manager.scheduler.failure_count == 2)
        pending = [manager.scheduler.is_pending(i) for i in range(2)]
        states = [manager.agents[i].state for i in range(2)]
        manager.shutdown()
        return pending, states

    pending, states = asyncio.run(scenario())

    assert pending == [True, True]
    assert states == [LifecycleState.FAILED] * 2
    assert [slot.accumulated_delay_seconds for slot in manager.scheduler.state] == [120.0, 120.0]
    assert client.sessions == []


def test_run_forever_stops_on_termination_signal(tmp_path):
    client = SimulatedGameClient()
    manager = FleetManager(_config(tmp_path, agent_count=2), client)

    async def scenario():
        task = asyncio.ensure_future(manager.run_forever())
        await wait_until(lambda: _all_active(manager))
        manager._on_signal("SIGTERM")
        await asyncio.wait_for(task, 5.0)

    asyncio.run(scenario())

    assert not any(session.is_connected for session in client.sessions)
    assert (tmp_path / "bots_config.json").exists()


def _failing_save():
    raise OSError(28, "No space left on device")


def test_death_with_failing_episode_log_still_reconnects(tmp_path, monkeypatch):
    client = SimulatedGameClient(seed=2)
    manager = FleetManager(_config(tmp_path), client)

    async def scenario():
        manager.initialize()
        monkeypatch.setattr(manager.trainers[0].episode_logger, "save", _failing_save)
        await wait_until(lambda: _all_active(manager))
        client.sessions[0].world.health = 0.0
        await wait_until(lambda: len(client.sessions) == 2 and _all_active(manager))
        occupant = manager.scheduler.state[0].occupant
        manager.shutdown()
        await asyncio.sleep(0)
        return occupant

    occupant = asyncio.run(scenario())
    trainer = manager.trainers[0]

    assert occupant is manager.agents[0]
    assert not client.sessions[0].is_connected
    assert sum(1 for t in trainer.buffer if t.terminal) == 1
    assert (tmp_path / "models" / trainer.identity / "model.pt").exists()
    assert (tmp_path / "bots_config.json").exists()


def test_connection_reset_with_failing_episode_log_frees_the_slot(tmp_path, monkeypatch):
    client = SimulatedGameClient()
    manager = FleetManager(_config(tmp_path), client)

    async def scenario():
        manager.initialize()
        monkeypatch.setattr(manager.trainers[0].episode_logger, "save", _failing_save)
        await wait_until(lambda: _all_active(manager))
        client.sessions[0].inject_fault(ConnectionErrorClass.RESET, "read ECONNRESET")
        result = (
            manager.agents[0].state,
            manager.scheduler.state[0].occupied,
            manager.scheduler.is_pending(0),
            manager.scheduler.failure_count,
        )
        manager.shutdown()
        await asyncio.sleep(0)
        return result

    state, occupied, pending, failures = asyncio.run(scenario())

    assert state == LifecycleState.FAILED
    assert occupied is False
    assert pending is True
    assert failures == 1
    assert manager.scheduler.state[0].accumulated_delay_seconds == 60.0
    assert not client.sessions[0].is_connected


def test_model_save_failure_does_not_stop_shutdown(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    config = _config(tmp_path)
    config.models_dir = str(blocker / "models")
    manager = FleetManager(config, SimulatedGameClient())

    async def scenario():
        manager.initialize()
        await wait_until(lambda: _all_active(manager))
        assert manager.trainers[0].estimator.persist() is False
        manager.shutdown()
        await asyncio.sleep(0)

    asyncio.run(scenario())

    saved = json.loads((tmp_path / "bots_config.json").read_text())
    assert [entry['username'] for entry in saved] == manager.identities


class BlockingRegistry:
    """Action registry whose actions wait until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.calls = 0

    async def dispatch(self, action_id, session, observation, game_data):
        self.calls += 1
        await self.release.wait()
        return ActionOutcome(success=True, reward=0.0)


def test_slow_tick_delays_the_next_one(tmp_path):
    client = SimulatedGameClient()
    manager = FleetManager(_config(tmp_path), client)
    entered = []

    async def scenario():
        manager.initialize()
        trainer = manager.trainers[0]
        registry = BlockingRegistry()
        trainer.registry = registry
        original_tick = trainer.tick

        async def counting_tick():
            entered.append(registry.calls)
            return await original_tick()

        trainer.tick = counting_tick
        await wait_until(lambda: registry.calls == 1)
        await asyncio.sleep(0.05)
        assert len(entered) == 1
        registry.release.set()
        await wait_until(lambda: len(entered) >= 3)
        manager.shutdown()
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert entered[:2] == [0, 1]
