import pytest

from dfs_simulator.hierarchy.planner import HierarchicalPlanner, LRUCascadeMigrationPlanner
from dfs_simulator.model.topology import Topology
from dfs_simulator.scenarios import add_file, build_lru_cascade
from dfs_simulator.simulation.loggers import StringSimulatorLogger
from dfs_simulator.simulation.tasks import GetSimulationTask, PutSimulationTask
from dfs_simulator.storage.filesystem import FsFile


def _files(setup):
    server = setup.topology.get_server("server")
    return server, {name: server.root.get_child_object(f"/{name}.bin") for name in ("cold", "hot", "bulk")}


def _storages(server):
    return server.storage_manager.get_storage_by_id("fast"), server.storage_manager.get_storage_by_id("slow")


def test_lru_subset_prefers_least_accessed_files():
    planner = LRUCascadeMigrationPlanner()
    busy = FsFile("busy.bin", 50)
    busy.access_count = 5
    idle = FsFile("idle.bin", 50)

    assert planner.get_lru_subset_with_size([busy, idle], 40) == [idle]
    assert planner.get_lru_subset_with_size([busy, idle], 100) == [idle, busy]
    assert planner.get_lru_subset_with_size([busy, idle], 101) is None


def test_cascade_demotes_cold_file_before_promoting_hot_one():
    server, files = _files(build_lru_cascade())
    fast, slow = _storages(server)
    planner = LRUCascadeMigrationPlanner()

    plans = planner.build_migration_plans_to_fit(files["hot"], slow, fast, [slow, fast], server)

    assert [(plan.files, plan.source, plan.target) for plan in plans] == [
        ([files["cold"]], fast, slow),
        ([files["hot"]], slow, fast),
    ]


def test_cascade_fails_when_eviction_would_leave_lowest_tier():
    server, files = _files(build_lru_cascade())
    fast, slow = _storages(server)
    files["hot"].size = 50
    slow.operation_manager.reserve_space(100)
    planner = LRUCascadeMigrationPlanner()

    plans = planner.build_migration_plans_to_fit(files["hot"], slow, fast, [slow, fast], server)

    assert plans == []
    assert planner.get_highest_available_storage(files["hot"], server) is None


def test_access_begins_migration_for_download():
    setup = build_lru_cascade()
    server, files = _files(setup)
    fast, slow = _storages(server)
    planner = LRUCascadeMigrationPlanner()
    sim_logger = StringSimulatorLogger()

    planner.on_before_access(files["hot"], server, GetSimulationTask(files["hot"]), sim_logger, 0)

    assert files["hot"].access_count == 1
    assert files["hot"].migrating and files["cold"].migrating
    assert fast.operation_manager.reserved_space == 100
    assert slow.operation_manager.reserved_space == 100

    setup.topology.finish_storage_operations(1000)

    assert server.fs_manager.get_fs_object_mount_device(files["hot"]) is fast
    assert server.fs_manager.get_fs_object_mount_device(files["cold"]) is slow
    assert not files["hot"].migrating
    assert any(line.startswith("[1000] END MIGRATION: File migration /hot.bin") for line in sim_logger.messages)


def test_upload_with_direct_room_moves_immediately():
    topology = Topology()
    server = topology.add_server("server")
    slow = topology.add_storage(server, 1000, 100, "slow")
    fast = topology.add_storage(server, 1000, 10_000, "fast")
    server.fs_manager.mount(slow, server.root)
    file = add_file(server, "/new.bin", 100)
    sim_logger = StringSimulatorLogger()

    LRUCascadeMigrationPlanner().on_before_access(file, server, PutSimulationTask.upload("/new.bin", 100), sim_logger, 7)

    assert server.fs_manager.get_fs_object_mount_device(file) is fast
    assert sim_logger.messages == [
        "[7] UPLOAD MIGRATION: Uploading file /new.bin at server ServerNode server to highest storage -> "
        f"{fast}"
    ]


def test_planner_needs_a_migration_strategy():
    class NoStrategy(HierarchicalPlanner):
        pass

    with pytest.raises(TypeError):
        NoStrategy()
