"""Export and restore of a whole topology as a :class:`StateElement` tree.

Servers are restored file tree first, then storage devices, then the mount
table, so mount entries can refer to both. Clients and their plans come after
every server so download tasks can bind to existing replicas, and links come
last.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List

from ..errors import InvalidPersistedState, LabelError, NotEnoughSpaceLeft
from ..model.connection import CharacteristicPoint, LineConnectionCharacteristic, NodeConnection
from ..model.nodes import ClientNode, ServerNode
from ..model.topology import Topology
from ..simulation.tasks import GetSimulationTask, PutSimulationTask, SimulationTask, TaskType
from ..storage.filesystem import PATH_SEPARATOR, ROOT_NAME, FsDirectory, FsFile, FsObjectType
from .element import StateElement

logger = logging.getLogger(__name__)

TOPOLOGY = "topology"
SERVER_NODE = "server_node"
CLIENT_NODE = "client_node"
CONNECTION = "connection"
FILE_STRUCTURE = "file_structure"
FS_DIRECTORY = "fs_directory"
FS_FILE = "fs_file"
SERVER_STORAGE = "server_storage"
STORAGE_DEVICE = "storage_device"
MOUNT_TABLE = "mount_table"
MOUNT_ENTRY = "mount_entry"
CHARACTERISTIC = "line_connection_characteristic"
CHARACTERISTIC_POINT = "connection_characteristic_point"
PERIOD_INTERVAL_MS = "period_interval_ms"
SIMULATION_PLAN = "simulation_plan"
GET_TASK = "get_task"
PUT_TASK = "put_task"


# -- export ---------------------------------------------------------------


def export_topology(topology: Topology) -> StateElement:
    element = StateElement(TOPOLOGY)
    for server in topology.servers:
        element.add_element(export_server(server))
    for client in topology.clients:
        element.add_element(export_client(client))
    for connection in topology.connections():
        element.add_element(export_connection(connection))
    return element


def export_server(server: ServerNode) -> StateElement:
    element = StateElement(SERVER_NODE).add_attribute("id", server.node_id)
    element.add_element(StateElement(FILE_STRUCTURE)).add_element(export_directory(server.root))

    storages = element.add_element(StateElement(SERVER_STORAGE))
    for storage in server.storage_manager:
        device = StateElement(STORAGE_DEVICE)
        device.add_attribute("id", storage.id).add_attribute("size", storage.size).add_attribute("speed", storage.speed)
        storages.add_element(device)

    mount_table = element.add_element(StateElement(MOUNT_TABLE))
    for obj, storage in server.fs_manager.entries():
        entry = StateElement(MOUNT_ENTRY).add_attribute("path", obj.full_path).add_attribute("device", storage.id)
        mount_table.add_element(entry)
    return element


def export_directory(directory: FsDirectory) -> StateElement:
    element = StateElement(FS_DIRECTORY).add_attribute("name", directory.name)
    for child in directory.children:
        if isinstance(child, FsDirectory):
            element.add_element(export_directory(child))
        else:
            element.add_element(StateElement(FS_FILE).add_attribute("name", child.name).add_attribute("size", child.size))
    return element


def export_characteristic(characteristic: LineConnectionCharacteristic) -> StateElement:
    element = StateElement(CHARACTERISTIC).add_attribute(PERIOD_INTERVAL_MS, characteristic.period_ms)
    for point in characteristic.points:
        element.add_element(StateElement(CHARACTERISTIC_POINT).add_attribute("x", point.x).add_attribute("y", point.y))
    return element


def export_connection(connection: NodeConnection) -> StateElement:
    element = StateElement(CONNECTION)
    element.add_attribute("a", connection.origin.node_id)
    element.add_attribute("b", connection.neighbour.node_id)
    element.add_attribute("bandwidth", connection.bandwidth)
    element.add_attribute("latency", connection.latency)
    element.add_element(export_characteristic(connection.characteristic))
    return element


def export_client(client: ClientNode) -> StateElement:
    element = StateElement(CLIENT_NODE).add_attribute("id", client.node_id)
    plan = element.add_element(StateElement(SIMULATION_PLAN))
    for task in client.simulation_plan:
        plan.add_element(export_task(task))
    return element


def export_task(task: SimulationTask) -> StateElement:
    if task.type is TaskType.GET:
        return StateElement(GET_TASK).add_attribute("path", task.path)
    return StateElement(PUT_TASK).add_attribute("path", task.path).add_attribute("size", task.file.size)


def topology_to_dict(topology: Topology) -> Dict[str, Any]:
    return export_topology(topology).to_dict()


# -- restore --------------------------------------------------------------


def restore_topology(element: StateElement, strict: bool = True) -> Topology:
    """Build a fresh topology from ``element``.

    With ``strict`` unset, a malformed node or link subtree is logged and
    skipped instead of aborting the whole restore.
    """
    element.expect(TOPOLOGY)
    topology = Topology()
    _restore_each(element.get_elements(SERVER_NODE), lambda e: restore_server(topology, e), strict)
    _restore_each(element.get_elements(CLIENT_NODE), lambda e: restore_client(topology, e), strict)
    _restore_each(element.get_elements(CONNECTION), lambda e: restore_connection(topology, e), strict)
    logger.debug("Restored topology with %d node(s)", len(topology.nodes))
    return topology


def topology_from_dict(payload: Any, strict: bool = True) -> Topology:
    return restore_topology(StateElement.from_dict(payload), strict)


def _restore_each(elements: Iterable[StateElement], restore: Callable[[StateElement], Any], strict: bool) -> None:
    for element in elements:
        try:
            restore(element)
        except InvalidPersistedState as exc:
            if strict:
                raise
            logger.warning("Skipping %s: %s", element.name, exc)


def restore_server(topology: Topology, element: StateElement) -> ServerNode:
    element.expect(SERVER_NODE)
    try:
        server = topology.add_server(element.require_attribute("id"))
    except LabelError as exc:
        raise InvalidPersistedState(f"{exc}: {element.name}") from exc

    structure = element.get_element(FILE_STRUCTURE)
    if structure is not None:
        root = structure.get_element(FS_DIRECTORY)
        if root is not None:
            if root.require_attribute("name") != ROOT_NAME:
                raise InvalidPersistedState(f"Root directory of server {server.node_id} must be named {ROOT_NAME}.")
            _restore_children(server, server.root, root)

    storages = element.get_element(SERVER_STORAGE)
    if storages is not None:
        for device in storages.get_elements(STORAGE_DEVICE):
            try:
                topology.add_storage(
                    server, device.int_attribute("size"), device.int_attribute("speed"), device.require_attribute("id")
                )
            except ValueError as exc:
                raise InvalidPersistedState(str(exc)) from exc

    mount_table = element.get_element(MOUNT_TABLE)
    if mount_table is not None:
        entries = mount_table.get_elements(MOUNT_ENTRY)
        # deepest first, so an ancestor's mount size no longer counts its separately mounted children
        entries.sort(key=lambda entry: -_path_depth(entry.get_attribute("path") or ""))
        for entry in entries:
            _restore_mount_entry(server, entry)
    return server


def _restore_children(server: ServerNode, directory: FsDirectory, element: StateElement) -> None:
    fs_manager = server.fs_manager
    for child in element.elements:
        name = child.require_attribute("name")
        if child.name == FS_DIRECTORY:
            existing = directory.get_by_name_and_type(name, FsObjectType.DIRECTORY)
            if not isinstance(existing, FsDirectory):
                existing = FsDirectory(name)
                fs_manager.add_directory_child(directory, existing)
            _restore_children(server, existing, child)
        elif child.name == FS_FILE:
            try:
                file = FsFile(name, child.int_attribute("size"))
            except ValueError as exc:
                raise InvalidPersistedState(str(exc)) from exc
            fs_manager.add_directory_child(directory, file)
        else:
            raise InvalidPersistedState(f"Unexpected element {child.name} in directory {directory.full_path}.")


def _restore_mount_entry(server: ServerNode, entry: StateElement) -> None:
    path = entry.require_attribute("path")
    device = entry.require_attribute("device")
    obj = server.root.get_child_object(path)
    if obj is None:
        raise InvalidPersistedState(f"Object {path} does not exist on server {server.node_id}.")
    storage = server.storage_manager.get_storage_by_id(device)
    if storage is None:
        raise InvalidPersistedState(f"Storage {device} does not exist on server {server.node_id}.")
    try:
        server.fs_manager.mount(storage, obj)
    except NotEnoughSpaceLeft as exc:
        raise InvalidPersistedState(f"Cannot mount {path} on {device}: {exc}") from exc


def restore_characteristic(element: StateElement) -> LineConnectionCharacteristic:
    element.expect(CHARACTERISTIC)
    period = element.int_attribute(PERIOD_INTERVAL_MS)
    points: List[CharacteristicPoint] = [
        CharacteristicPoint(point.float_attribute("x"), point.float_attribute("y"))
        for point in element.get_elements(CHARACTERISTIC_POINT)
    ]
    try:
        return LineConnectionCharacteristic(points or None, period)
    except ValueError as exc:
        raise InvalidPersistedState(str(exc)) from exc


def restore_connection(topology: Topology, element: StateElement) -> NodeConnection:
    element.expect(CONNECTION)
    a = element.require_attribute("a")
    b = element.require_attribute("b")
    bandwidth = element.int_attribute("bandwidth")
    latency = element.int_attribute("latency")
    characteristic_element = element.get_element(CHARACTERISTIC)
    characteristic = None
    if characteristic_element is not None:
        characteristic = restore_characteristic(characteristic_element)
    try:
        return topology.connect(a, b, bandwidth, latency, characteristic)
    except (KeyError, ValueError) as exc:
        raise InvalidPersistedState(f"Cannot connect {a} and {b}: {exc}") from exc


def restore_client(topology: Topology, element: StateElement) -> ClientNode:
    element.expect(CLIENT_NODE)
    try:
        client = topology.add_client(element.require_attribute("id"))
    except LabelError as exc:
        raise InvalidPersistedState(f"{exc}: {element.name}") from exc
    plan = element.get_element(SIMULATION_PLAN)
    if plan is not None:
        for task_element in plan.elements:
            client.simulation_plan.add(restore_task(topology, task_element))
    return client


def restore_task(topology: Topology, element: StateElement) -> SimulationTask:
    """A download binds to an existing replica when one exists, otherwise to a placeholder."""
    path = element.require_attribute("path")
    if PATH_SEPARATOR not in path:
        raise InvalidPersistedState(f"Task path {path!r} must be absolute.")
    if path.endswith(PATH_SEPARATOR):
        kind = "Get" if element.name == GET_TASK else "Put"
        raise InvalidPersistedState(f"{kind} simulation task cannot be a directory.")
    try:
        if element.name == GET_TASK:
            replica = topology.replication.get_replica_instance(path)
            if replica is not None:
                return GetSimulationTask(replica)
            return GetSimulationTask.placeholder(path)
        if element.name == PUT_TASK:
            return PutSimulationTask.upload(path, element.int_attribute("size"))
    except ValueError as exc:
        raise InvalidPersistedState(str(exc)) from exc
    raise InvalidPersistedState(f"Unknown task element {element.name}.")


def _path_depth(path: str) -> int:
    return len([part for part in path.split(PATH_SEPARATOR) if part])
