import json

import pytest

from dfs_simulator import main as cli
from dfs_simulator.persistence.state_store import TopologyStateStore
from dfs_simulator.scenarios import SCENARIOS, build_simple_download, run_all_scenarios, run_scenario


def test_every_scenario_reports_expected_state():
    expected = {
        "download": ["SUCCESS"],
        "upload": ["NOT_ENOUGH_SPACE_ON_DEVICE"],
        "reroute": ["SUCCESS"],
        "tiering": ["SUCCESS"],
        "replication": ["SUCCESS"],
    }
    summaries = run_all_scenarios()

    assert [summary["scenario"] for summary in summaries] == [
        "simple-download",
        "upload-rejection",
        "dynamic-reroute",
        "lru-cascade",
        "replicated-upload",
    ]
    for name, summary in zip(SCENARIOS, summaries):
        assert [result["state"] for result in summary["summary"]["results"]] == expected[name]


def test_tiering_scenario_reports_placement():
    summary = run_scenario("tiering")
    assert summary["placement"] == {"/cold.bin": "slow", "/hot.bin": "fast", "/bulk.bin": "slow"}


def test_event_log_is_capped():
    summary = run_scenario("reroute", event_limit=2)
    assert len(summary["events"]) == 2
    assert summary["events"][0].startswith("[0 ms] simulation_started")


def test_run_scenario_validates_names():
    with pytest.raises(ValueError):
        run_scenario("invalid")


def test_cli_lists_scenarios_and_modes(capsys):
    assert cli.main(["--list"]) == 0
    out = capsys.readouterr().out
    assert "Available scenarios:" in out
    assert "  - tiering" in out
    assert "SHORTEST (Shortest)" in out


def test_cli_emits_json(capsys):
    assert cli.main(["--scenario", "download", "--json"]) == 0
    summaries = json.loads(capsys.readouterr().out)
    assert summaries[0]["summary"]["results"][0]["total_time_ms"] == 1000


def test_cli_prints_formatted_summary(capsys):
    assert cli.main(["--scenario", "upload"]) == 0
    out = capsys.readouterr().out
    assert "=== Scenario: upload-rejection [Shortest] ===" in out
    assert "Not enough space on device" in out


def test_cli_simulates_topology_file(tmp_path, capsys):
    path = tmp_path / "topology.json"
    TopologyStateStore(str(path)).save(build_simple_download().topology)

    assert cli.main(["--topology", str(path), "--mode", "shortest", "--json"]) == 0
    summaries = json.loads(capsys.readouterr().out)
    assert summaries[0]["mode"] == "Shortest"
    assert summaries[0]["summary"]["results"][0]["state"] == "SUCCESS"
    assert summaries[0]["events"][0] == "[0] Simulation started."


def test_cli_reports_unusable_topology(tmp_path):
    assert cli.main(["--topology", str(tmp_path / "missing.json")]) == 1
    path = tmp_path / "topology.json"
    TopologyStateStore(str(path)).save(build_simple_download().topology)
    assert cli.main(["--topology", str(path), "--client", "ghost"]) == 1
    assert cli.main(["--topology", str(path), "--mode", "warp"]) == 1
