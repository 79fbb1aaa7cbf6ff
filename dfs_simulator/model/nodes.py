"""Client and server nodes of the modelled topology."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from ..simulation.tasks import SimulationPlan
from ..storage.devices import ServerStorageManager
from ..storage.filesystem import ROOT_NAME, FsDirectory
from ..storage.mount_table import ServerFileSystemManager
from .connection import NodeConnection


class NodeType(Enum):
    SERVER = "Server"
    CLIENT = "Client"

    def __str__(self) -> str:
        return self.value


class ModelNode:
    type: NodeType

    def __init__(self, node_id: str = "") -> None:
        self.node_id = node_id
        self.connections: List[NodeConnection] = []

    def add_connection(self, connection: NodeConnection) -> bool:
        if self.connection_exists(connection.neighbour):
            return False
        self.connections.append(connection)
        return True

    def remove_connection_with(self, neighbour: "ModelNode") -> None:
        for connection in self.connections:
            if connection.neighbour is neighbour:
                self.connections.remove(connection)
                return

    def connection_exists(self, neighbour: "ModelNode") -> bool:
        return any(connection.neighbour is neighbour for connection in self.connections)

    def get_neighbour_connection(self, neighbour: "ModelNode") -> Optional[NodeConnection]:
        for connection in self.connections:
            if connection.neighbour is neighbour:
                return connection
        return None

    def get_direct_server_connections(self) -> List[NodeConnection]:
        return [c for c in self.connections if isinstance(c.neighbour, ServerNode)]


class ServerNode(ModelNode):
    type = NodeType.SERVER

    def __init__(self, node_id: str = "", root: Optional[FsDirectory] = None) -> None:
        super().__init__(node_id)
        self.root = root if root is not None else FsDirectory(ROOT_NAME)
        self.storage_manager = ServerStorageManager()
        self.fs_manager = ServerFileSystemManager(self)

    def __str__(self) -> str:
        return f"ServerNode {self.node_id}"

    def __repr__(self) -> str:
        return f"ServerNode({self.node_id!r})"


class ClientNode(ModelNode):
    type = NodeType.CLIENT

    def __init__(self, node_id: str = "") -> None:
        super().__init__(node_id)
        self.simulation_plan = SimulationPlan()

    def __str__(self) -> str:
        return f"ClientNode {self.node_id}"

    def __repr__(self) -> str:
        return f"ClientNode({self.node_id!r})"
