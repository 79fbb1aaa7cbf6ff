import json

import pytest

from dfs_simulator.errors import InvalidPersistedState
from dfs_simulator.persistence.codec import export_topology, restore_topology, topology_from_dict, topology_to_dict
from dfs_simulator.persistence.element import StateElement
from dfs_simulator.persistence.state_store import TopologyStateStore
from dfs_simulator.scenarios import build_dynamic_reroute, build_lru_cascade, build_simple_download
from dfs_simulator.simulation.engine import TimeSliceSimulator
from dfs_simulator.simulation.results import TaskResultState
from dfs_simulator.simulation.tasks import PutSimulationTask, TaskType


def _server_element(node_id="s1", **mount):
    return {
        "name": "server_node",
        "attributes": {"id": node_id},
        "elements": [
            {
                "name": "file_structure",
                "elements": [
                    {
                        "name": "fs_directory",
                        "attributes": {"name": "/"},
                        "elements": [{"name": "fs_file", "attributes": {"name": "a.bin", "size": "10"}}],
                    }
                ],
            },
            {
                "name": "server_storage",
                "elements": [{"name": "storage_device", "attributes": {"id": "disk", "size": "100", "speed": "10"}}],
            },
            {
                "name": "mount_table",
                "elements": [{"name": "mount_entry", "attributes": {"path": "/", "device": "disk", **mount}}],
            },
        ],
    }


def test_state_element_round_trip_and_accessors():
    element = StateElement("topology")
    child = element.add_element(StateElement("server_node")).add_attribute("id", 7)

    payload = element.to_dict()
    restored = StateElement.from_dict(json.loads(json.dumps(payload)))

    assert payload == {"name": "topology", "elements": [{"name": "server_node", "attributes": {"id": "7"}}]}
    assert restored.get_element("server_node").int_attribute("id") == 7
    assert child.get_attribute("missing") is None
    with pytest.raises(InvalidPersistedState):
        child.require_attribute("missing")
    with pytest.raises(InvalidPersistedState):
        StateElement("x").add_attribute("size", "big").int_attribute("size")
    with pytest.raises(InvalidPersistedState):
        StateElement.from_dict({"attributes": {}})
    with pytest.raises(InvalidPersistedState):
        StateElement.from_dict(["not", "an", "object"])


def test_topology_export_restores_equivalent_model():
    setup = build_dynamic_reroute()
    restored = topology_from_dict(json.loads(json.dumps(topology_to_dict(setup.topology))))

    assert sorted(restored.nodes) == ["client", "origin", "relay"]
    origin = restored.get_server("origin")
    video = origin.root.get_child_object("/video.bin")
    assert video.size == 10_000_000
    assert origin.fs_manager.get_fs_object_mount_device(video).speed == 100_000_000
    link = restored.get_client("client").get_neighbour_connection(origin)
    assert (link.bandwidth, link.latency, link.characteristic.period_ms) == (1_000_000, 10, 20000)
    assert link.characteristic.modifier_at(5000) == pytest.approx(0.0)
    plan = restored.get_client("client").simulation_plan.tasks
    assert [(task.type, task.path) for task in plan] == [(TaskType.GET, "/video.bin")]
    assert plan[0].file is video


def test_restored_topology_simulates_like_source():
    setup = build_simple_download()
    topology = topology_from_dict(topology_to_dict(setup.topology))

    summary = TimeSliceSimulator(topology, topology.get_client("client"), setup.mode).run()
    assert summary.results[0].state is TaskResultState.SUCCESS
    assert summary.results[0].total_time == 1000


def test_separate_mounts_survive_restore():
    setup = build_lru_cascade()
    restored = restore_topology(export_topology(setup.topology))
    server = restored.get_server("server")
    fast = server.storage_manager.get_storage_by_id("fast")
    slow = server.storage_manager.get_storage_by_id("slow")

    assert server.fs_manager.storage_used_size(fast) == 100
    assert server.fs_manager.storage_used_size(slow) == 1000
    assert server.fs_manager.get_fs_object_mount_device(server.root) is None


def test_nested_mounts_are_not_double_charged():
    setup = build_simple_download()
    server = setup.topology.get_server("server")
    extra = setup.topology.add_storage(server, 1_000_000, 10, "extra")
    server.fs_manager.mount(extra, server.root.get_child_object("/data/movie.bin"))
    root_storage = server.storage_manager.get_storage_by_id("stor1")
    root_storage.size = 10

    restored = topology_from_dict(topology_to_dict(setup.topology)).get_server("server")

    assert restored.fs_manager.storage_used_size(restored.storage_manager.get_storage_by_id("stor1")) == 0
    assert restored.fs_manager.storage_used_size(restored.storage_manager.get_storage_by_id("extra")) == 1_000_000


def test_malformed_documents_raise():
    with pytest.raises(InvalidPersistedState):
        topology_from_dict({"name": "not_a_topology"})

    missing_device = _server_element(device="nope")
    with pytest.raises(InvalidPersistedState):
        topology_from_dict({"name": "topology", "elements": [missing_device]})

    bad_root = _server_element()
    bad_root["elements"][0]["elements"][0]["attributes"]["name"] = "root"
    with pytest.raises(InvalidPersistedState):
        topology_from_dict({"name": "topology", "elements": [bad_root]})

    directory_upload = {
        "name": "client_node",
        "attributes": {"id": "c"},
        "elements": [
            {"name": "simulation_plan", "elements": [{"name": "put_task", "attributes": {"path": "/dir/", "size": "1"}}]}
        ],
    }
    with pytest.raises(InvalidPersistedState, match="cannot be a directory"):
        topology_from_dict({"name": "topology", "elements": [directory_upload]})

    duplicate = {"name": "topology", "elements": [_server_element(), _server_element()]}
    with pytest.raises(InvalidPersistedState):
        topology_from_dict(duplicate)

    dangling_link = {
        "name": "topology",
        "elements": [
            _server_element(),
            {"name": "connection", "attributes": {"a": "s1", "b": "ghost", "bandwidth": "1", "latency": "1"}},
        ],
    }
    with pytest.raises(InvalidPersistedState):
        topology_from_dict(dangling_link)


def test_lenient_restore_skips_bad_subtrees():
    document = {
        "name": "topology",
        "elements": [
            _server_element("good"),
            _server_element("bad", device="nope"),
            {"name": "client_node", "attributes": {"id": "c"}},
        ],
    }

    topology = topology_from_dict(document, strict=False)

    assert topology.get_server("good").root.get_child_object("/a.bin").size == 10
    assert topology.get_client("c").node_id == "c"


def test_state_store_saves_and_loads(tmp_path):
    store = TopologyStateStore(str(tmp_path / "nested" / "state.json"))
    assert not store.exists()
    assert store.load() is None

    setup = build_simple_download()
    store.save(setup.topology)

    assert store.exists()
    assert not (tmp_path / "nested" / "state.json.tmp").exists()
    restored = store.load()
    assert restored.get_server("server").root.get_child_object("/data/movie.bin").size == 1_000_000
    assert [task.path for task in restored.get_client("client").simulation_plan] == ["/data/movie.bin"]


def test_state_store_rejects_corrupt_snapshot(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(InvalidPersistedState):
        TopologyStateStore(str(path)).load()

    path.write_text('{"name": "not_a_topology"}', encoding="utf-8")
    with pytest.raises(InvalidPersistedState):
        TopologyStateStore(str(path)).load()


def test_upload_task_restores_with_size():
    setup = build_simple_download()
    setup.client.simulation_plan.clear()
    setup.client.simulation_plan.add(PutSimulationTask.upload("/up/new.bin", 42))
    restored = topology_from_dict(topology_to_dict(setup.topology))

    task = restored.get_client("client").simulation_plan.tasks[0]
    assert (task.type, task.path, task.file.size) == (TaskType.PUT, "/up/new.bin", 42)
