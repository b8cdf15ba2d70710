"""Tests for configuration loading and the command line."""

import pytest

from main import main
from utils.config import FleetConfig, load_config, load_fleet_config, save_config


def test_defaults():
    config = FleetConfig()

    assert config.mode == "rl"
    assert config.agent_count == 10
    assert config.scheduler.base_interval_seconds == 300.0
    assert config.scheduler.max_interval_seconds == 360.0
    assert config.scheduler.lifetime_minutes == 100.0
    assert config.agent.batch_size == 64
    assert config.agent.target_update_freq == 200


@pytest.mark.parametrize("overrides", [
    {'mode': 'swarm'},
    {'agent_count': 0},
    {'agent_count': 21},
])
def test_invalid_settings_are_rejected(overrides):
    with pytest.raises(ValueError):
        FleetConfig(**overrides)


def test_from_dict_reads_sections_and_ignores_unknown_keys():
    config = FleetConfig.from_dict({
        'server': {'host': 'mc.example.org', 'port': 25570},
        'fleet': {'agent_count': 3, 'colour': 'blue'},
        'scheduler': {'base_interval_seconds': 10, 'max_interval_seconds': 20},
        'agent': {'hidden_dim': 64},
    })

    assert config.server.host == 'mc.example.org'
    assert config.server.port == 25570
    assert config.agent_count == 3
    assert config.scheduler.max_interval_seconds == 20
    assert config.agent.hidden_dim == 64
    assert config.agent.batch_size == 64


def test_window_must_not_be_inverted():
    with pytest.raises(ValueError):
        FleetConfig.from_dict({'scheduler': {'base_interval_seconds': 50, 'max_interval_seconds': 10}})


def test_yaml_round_trip(tmp_path):
    path = str(tmp_path / "config.yaml")
    expected = FleetConfig.from_dict({'fleet': {'agent_count': 4, 'mode': 'rotate'}})

    save_config(expected.to_dict(), path)

    assert load_fleet_config(path) == expected


def test_missing_or_broken_file_falls_back_to_defaults(tmp_path):
    broken = tmp_path / "broken.yaml"
    broken.write_text("server: [unclosed")

    assert load_config(str(tmp_path / "absent.yaml")) is None
    assert load_config(str(broken)) is None
    assert load_fleet_config(str(broken)) == FleetConfig()


def test_init_config_command_writes_defaults(tmp_path):
    path = str(tmp_path / "fleet.yaml")

    assert main(['init-config', path]) == 0
    assert load_fleet_config(path) == FleetConfig()


def test_run_rejects_invalid_agent_count(tmp_path):
    assert main(['run', '--config', str(tmp_path / "none.yaml"), '--agents', '50']) == 2


def test_run_without_dry_run_needs_a_networked_client(tmp_path):
    assert main(['run', '--config', str(tmp_path / "none.yaml")]) == 1
