import pytest

from dfs_simulator.errors import NotEnoughSpaceLeft
from dfs_simulator.model.topology import Topology
from dfs_simulator.scenarios import add_file
from dfs_simulator.storage.replication import ReplicaTarget


def _build_replicated(capacity=1000):
    topology = Topology()
    servers = []
    for node_id in ("s1", "s2"):
        server = topology.add_server(node_id)
        storage = topology.add_storage(server, capacity, 100, f"{node_id}-disk")
        server.fs_manager.mount(storage, server.root)
        add_file(server, "/shared/doc.txt", 100)
        servers.append(server)
    return topology, servers


def test_registry_tracks_every_instance():
    topology, (s1, s2) = _build_replicated()
    registry = topology.registry

    assert registry.get_entry_mounted_node_list("/shared/doc.txt") == [s1, s2]
    entry = registry.get_entry("/shared/doc.txt")
    assert entry.objects[0] is s1.root.get_child_object("/shared/doc.txt")

    s2.fs_manager.remove_directory_child("/shared/doc.txt")
    assert registry.get_entry_mounted_node_list("/shared/doc.txt") == [s1]


def test_replica_targets_and_instance():
    topology, (s1, s2) = _build_replicated()
    replication = topology.replication
    file = s1.root.get_child_object("/shared/doc.txt")

    assert replication.is_file_replicated(file)
    assert [target.server for target in replication.get_replica_targets(file)] == [s1, s2]
    assert replication.get_replica_instance("/shared/doc.txt") is file
    assert replication.get_replica_instance("/shared/") is None


def test_replicate_file_is_all_or_nothing():
    topology, (s1, _) = _build_replicated()
    roomy = topology.add_server("roomy")
    cramped = topology.add_server("cramped")
    roomy_disk = topology.add_storage(roomy, 1000, 100)
    cramped_disk = topology.add_storage(cramped, 50, 100)
    file = s1.root.get_child_object("/shared/doc.txt")
    targets = [ReplicaTarget(roomy, roomy_disk), ReplicaTarget(cramped, cramped_disk)]

    with pytest.raises(NotEnoughSpaceLeft):
        topology.replication.replicate_file(file, targets)
    assert roomy.root.get_child_object("/shared/doc.txt") is None
    assert cramped.root.get_child_object("/shared/doc.txt") is None

    topology.replication.force_replicate_file(file, targets)
    assert roomy.root.get_child_object("/shared/doc.txt").size == 100
    assert cramped.fs_manager.get_fs_object_mount_device(cramped.root.get_child_object("/shared/doc.txt")) is cramped_disk
    assert cramped_disk.size == 100
    assert len(topology.registry.get_entry_mounted_node_list(file)) == 4


def test_resize_replicated_file():
    topology, (s1, s2) = _build_replicated(capacity=300)
    replication = topology.replication
    file = s1.root.get_child_object("/shared/doc.txt")

    replication.resize_replicated_file(file, 250)
    assert s1.root.get_child_object("/shared/doc.txt").size == 250
    assert s2.root.get_child_object("/shared/doc.txt").size == 250

    with pytest.raises(NotEnoughSpaceLeft):
        replication.resize_replicated_file(file, 400)
    assert s2.root.get_child_object("/shared/doc.txt").size == 250

    replication.force_resize_replicated_file(file, 400)
    assert s2.root.get_child_object("/shared/doc.txt").size == 400
    assert s2.storage_manager.get_storage_by_id("s2-disk").size == 400


def test_update_replica_targets_drops_removed_servers():
    topology, (s1, s2) = _build_replicated()
    file = s1.root.get_child_object("/shared/doc.txt")
    targets = topology.replication.get_replica_targets(file)

    topology.replication.update_replica_targets(file, [targets[0]])

    assert s2.root.get_child_object("/shared/doc.txt") is None
    assert topology.registry.get_entry_mounted_node_list(file) == [s1]


def test_rename_replicated_object_moves_registry_paths():
    topology, (s1, s2) = _build_replicated()
    shared = s1.root.get_child_object("/shared/")

    topology.replication.rename_replicated_object(shared, "docs")

    assert s2.root.get_child_object("/docs/doc.txt") is not None
    assert "/docs/doc.txt" in topology.registry
    assert "/shared/doc.txt" not in topology.registry


def test_delete_replicated_object():
    topology, (s1, s2) = _build_replicated()
    file = s1.root.get_child_object("/shared/doc.txt")

    topology.replication.delete_replicated_object(file)

    assert s1.root.get_child_object("/shared/doc.txt") is None
    assert s2.root.get_child_object("/shared/doc.txt") is None
    assert "/shared/doc.txt" not in topology.registry


def test_force_update_replica_targets_grows_new_target():
    topology, (s1, s2) = _build_replicated()
    s3 = topology.add_server("s3")
    small = topology.add_storage(s3, 40, 100, "s3-disk")
    file = s1.root.get_child_object("/shared/doc.txt")
    targets = topology.replication.get_replica_targets(file)

    topology.replication.force_update_replica_targets(file, [targets[0], ReplicaTarget(s3, small)])

    assert s2.root.get_child_object("/shared/doc.txt") is None
    assert s3.root.get_child_object("/shared/doc.txt").size == 100
    assert small.size == 100
    assert s3.fs_manager.storage_unused_size(small) == 0
    assert topology.registry.get_entry_mounted_node_list(file) == [s1, s3]
