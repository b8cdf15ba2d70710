"""Tests for identity and model persistence."""

import json

import torch

from agent.checkpoint import ModelStore
from fleet.persistence import FleetStore


def test_first_run_has_no_identities(tmp_path):
    assert FleetStore(str(tmp_path / "bots_config.json")).load_identities() == []


def test_identities_round_trip_in_order(tmp_path):
    store = FleetStore(str(tmp_path / "bots_config.json"))

    assert store.save_identities(["RL_Agent_3", "RL_Agent_1"])

    assert store.load_identities() == ["RL_Agent_3", "RL_Agent_1"]
    assert json.loads((tmp_path / "bots_config.json").read_text()) == [
        {"username": "RL_Agent_3"}, {"username": "RL_Agent_1"}
    ]


def test_invalid_entries_and_duplicates_are_skipped(tmp_path):
    path = tmp_path / "bots_config.json"
    path.write_text(json.dumps([
        {"username": "A"}, {"name": "B"}, "C", {"username": ""}, {"username": "A"}, {"username": "D"}
    ]))

    assert FleetStore(str(path)).load_identities() == ["A", "D"]


def test_unreadable_file_starts_fresh(tmp_path):
    path = tmp_path / "bots_config.json"
    path.write_text("{not json")
    assert FleetStore(str(path)).load_identities() == []

    path.write_text(json.dumps({"username": "A"}))
    assert FleetStore(str(path)).load_identities() == []


def test_save_failure_is_reported(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")

    assert FleetStore(str(blocker / "bots_config.json")).save_identities(["A"]) is False


def test_model_store_layout_and_round_trip(tmp_path):
    store = ModelStore(str(tmp_path))
    weights = {'fc1.weight': torch.ones(2, 3)}

    assert store.save_model_weights("RL_Agent_9", weights)

    assert store.path_for("RL_Agent_9") == str(tmp_path / "RL_Agent_9" / "model.pt")
    loaded = store.load_model_weights("RL_Agent_9")
    assert torch.equal(loaded['fc1.weight'], weights['fc1.weight'])
    assert store.load_model_weights("RL_Agent_10") is None
