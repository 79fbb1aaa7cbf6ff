import pytest

from dfs_simulator.errors import FsObjectNotFound, NoNeighboursAvailable, NoPathAvailable, NotMounted
from dfs_simulator.model.topology import Topology
from dfs_simulator.routing.metrics import (
    DistanceMetric,
    GraphMetric,
    HierarchicalThroughputMetric,
    LinkBandwidthMetric,
    PathThroughputLatencyMetric,
    PathThroughputMetric,
)
from dfs_simulator.routing.path import DfsPath, data_transfer_time, data_transferred_in_time
from dfs_simulator.routing.picker import MetricPathPicker
from dfs_simulator.scenarios import add_file
from dfs_simulator.simulation.modes import SimulationMode
from dfs_simulator.simulation.tasks import GetSimulationTask, PutSimulationTask


def _build_triangle():
    """Client with a narrow direct link to the origin and a wide two-hop detour."""
    topology = Topology()
    client = topology.add_client("client")
    origin = topology.add_server("origin")
    topology.add_server("relay")
    storage = topology.add_storage(origin, 10_000, 1_000_000, "disk")
    origin.fs_manager.mount(storage, origin.root)
    file = add_file(origin, "/data.bin", 1000)
    topology.connect(client, "origin", 1000, 1)
    topology.connect(client, "relay", 1_000_000, 1)
    topology.connect("relay", "origin", 1_000_000, 1)
    return topology, client, file


def test_transfer_helpers():
    assert data_transferred_in_time(1000, 500) == 500
    assert data_transferred_in_time(0, 500) == 0
    assert data_transfer_time(1000, 250) == 250
    assert data_transfer_time(0, 250) == -1


def test_hop_count_and_bandwidth_pick_opposite_routes():
    topology, client, file = _build_triangle()
    task = GetSimulationTask(file)

    shortest = MetricPathPicker(DistanceMetric(), topology.registry).select_path(client, task, 0)
    widest = MetricPathPicker(LinkBandwidthMetric(), topology.registry).select_path(client, task, 0)

    assert str(shortest) == "client->origin"
    assert str(widest) == "client->relay->origin"
    assert shortest.target.node_id == "origin"
    assert widest.cumulative_latency == 2
    assert widest.maximum_link_bandwidth == 1_000_000


def test_path_selection_is_deterministic():
    topology, client, file = _build_triangle()
    picker = MetricPathPicker(PathThroughputLatencyMetric(), topology.registry)
    task = GetSimulationTask(file)

    first = picker.select_path(client, task, 0)
    second = picker.select_path(client, task, 0)

    assert first == second
    assert hash(first) == hash(second)
    assert str(first) == "client->relay->origin"


def test_picker_prefers_server_with_faster_disk():
    topology = Topology()
    client = topology.add_client("client")
    for node_id, speed in (("slow", 100), ("fast", 10_000)):
        server = topology.add_server(node_id)
        storage = topology.add_storage(server, 10_000, speed)
        server.fs_manager.mount(storage, server.root)
        add_file(server, "/doc.txt", 1000)
        topology.connect(client, server, 1_000_000, 1)
    task = GetSimulationTask(topology.get_server("slow").root.get_child_object("/doc.txt"))

    path = MetricPathPicker(PathThroughputMetric(), topology.registry).select_path(client, task, 0)

    assert path.target.node_id == "fast"
    assert path.get_target_file() is topology.get_server("fast").root.get_child_object("/doc.txt")


def test_picker_errors():
    topology, client, file = _build_triangle()
    picker = MetricPathPicker(DistanceMetric(), topology.registry)

    with pytest.raises(FsObjectNotFound):
        picker.select_path(client, GetSimulationTask.placeholder("/missing.bin"), 0)

    origin = topology.get_server("origin")
    origin.fs_manager.unmount(origin.root)
    with pytest.raises(NotMounted):
        picker.select_path(client, GetSimulationTask(file), 0)

    lonely = topology.add_client("lonely")
    with pytest.raises(NoNeighboursAvailable):
        picker.get_object_registry_query_time(lonely)
    assert picker.get_object_registry_query_time(client) == 1


def test_unreachable_server_has_no_path():
    topology, _, file = _build_triangle()
    island = topology.add_client("island")
    topology.add_server("cut-off")
    topology.connect(island, "cut-off", 1000, 1)

    with pytest.raises(NoPathAvailable):
        MetricPathPicker(DistanceMetric(), topology.registry).select_path(island, GetSimulationTask(file), 0)


def test_upload_targets_directory_host_and_creates_file():
    topology, client, _ = _build_triangle()
    task = PutSimulationTask.upload("/new.bin", 100)

    path = MetricPathPicker(DistanceMetric(), topology.registry).select_path(client, task, 0)
    created = path.get_or_create_target_file()

    assert path.target.node_id == "origin"
    assert created.full_path == "/new.bin"
    assert path.target_storage.id == "disk"


def test_hierarchical_metric_sees_promotable_tier():
    topology = Topology()
    server = topology.add_server("server")
    slow = topology.add_storage(server, 1000, 100, "slow")
    fast = topology.add_storage(server, 1000, 10_000, "fast")
    file = add_file(server, "/hot.bin", 100)
    server.fs_manager.mount(slow, file)
    metric = HierarchicalThroughputMetric()

    assert metric.possible_disk_bandwidth(server, file) == slow.speed
    mode = SimulationMode.HIERARCHICAL_DYNAMIC_PATH_THROUGHPUT_LATENCY_ADVANCED
    assert metric.possible_disk_bandwidth(server, file, mode) == fast.speed
    assert DistanceMetric().possible_disk_bandwidth(server, file, mode) == slow.speed


def test_dfs_path_throughput_without_operation_is_zero():
    topology, client, file = _build_triangle()
    path = DfsPath(client.connections[:1], GetSimulationTask(file), 0)

    assert path.average_transfer_throughput(0, 500) == 0
    assert path.current_link_bandwidth(0) == 1000


def test_metric_without_combine_cannot_be_built():
    class HalfMetric(GraphMetric):
        def edge_weight(self, connection, transfer_size, disk_bandwidth, time):
            return 1

    with pytest.raises(TypeError):
        HalfMetric()
    with pytest.raises(TypeError):
        GraphMetric()
