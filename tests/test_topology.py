import pytest

from dfs_simulator.errors import LabelError
from dfs_simulator.model.topology import Topology
from dfs_simulator.scenarios import add_file


def _build_pair():
    topology = Topology()
    client = topology.add_client("c1")
    server = topology.add_server("s1")
    storage = topology.add_storage(server, 1000, 100)
    server.fs_manager.mount(storage, server.root)
    add_file(server, "/a.txt", 10)
    topology.connect(client, server, 100, 5)
    return topology, client, server


def test_generated_ids_skip_taken_labels():
    topology = Topology()
    topology.add_server("1")
    assert topology.add_server().node_id == "2"
    assert topology.add_client().node_id == "3"
    with pytest.raises(LabelError):
        topology.add_client("1")


def test_storage_ids_are_sequential_per_topology():
    topology = Topology()
    server = topology.add_server("s1")
    first = topology.add_storage(server, 10, 10)
    second = topology.add_storage(server, 10, 10)
    assert (first.id, second.id) == ("stor1", "stor2")
    assert Topology().next_storage_id() == "stor1"


def test_rename_node_keeps_links():
    topology, client, server = _build_pair()

    topology.rename_node(server, "renamed")

    assert topology.get_node("s1") is None
    assert topology.get_server("renamed") is server
    assert client.get_neighbour_connection(server) is not None
    with pytest.raises(LabelError):
        topology.rename_node(client, "renamed")


def test_disconnect_and_connect_validation():
    topology, client, server = _build_pair()
    with pytest.raises(ValueError):
        topology.connect(client, server, 100, 5)
    with pytest.raises(ValueError):
        topology.connect(client, client, 100, 5)
    with pytest.raises(KeyError):
        topology.connect(client, "ghost", 100, 5)

    topology.disconnect("c1", "s1")

    assert topology.connections() == []
    assert not client.connection_exists(server)
    assert not server.connection_exists(client)


def test_remove_server_drops_links_and_registry_entries():
    topology, client, server = _build_pair()
    assert "/a.txt" in topology.registry

    topology.remove_node(server)

    assert topology.servers == []
    assert client.connections == []
    assert "/a.txt" not in topology.registry
    assert topology.replication.get_replica_instance("/a.txt") is None
