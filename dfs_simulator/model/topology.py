"""Per-run topology context: nodes, links and the shared filesystem services."""

from __future__ import annotations

import itertools
import logging
from typing import Dict, Iterator, List, Optional, Union

from ..errors import LabelError
from ..storage.devices import STORAGE_ID_PREFIX, ServerStorage
from ..storage.registry import ObjectRegistry
from ..storage.replication import ReplicationManager
from ..units import SizeLike, SpeedLike
from .connection import LineConnectionCharacteristic, NodeConnection
from .nodes import ClientNode, ModelNode, NodeType, ServerNode

logger = logging.getLogger(__name__)


class Topology:
    """Owns every node of one simulation run and the services they share.

    Node ids are handed out from a counter unless given explicitly; the
    object registry and replication manager are scoped to this instance so
    independent runs never observe each other's files.
    """

    def __init__(self) -> None:
        self.nodes: Dict[str, ModelNode] = {}
        self.registry = ObjectRegistry()
        self.replication = ReplicationManager(self.registry)
        self._node_ids = itertools.count(1)
        self._storage_ids = itertools.count(1)

    # -- nodes --------------------------------------------------------

    def _register(self, node: ModelNode) -> None:
        if node.node_id:
            if node.node_id in self.nodes:
                raise LabelError(f"Attempting to register duplicate node with id {node.node_id}.")
        else:
            node.node_id = self._next_free_id()
        self.nodes[node.node_id] = node

    def _next_free_id(self) -> str:
        while True:
            candidate = str(next(self._node_ids))
            if candidate not in self.nodes:
                return candidate

    def add_server(self, node_id: Optional[str] = None) -> ServerNode:
        server = ServerNode(node_id or "")
        self._register(server)
        server.fs_manager.registry = self.registry
        server.fs_manager.register_tree()
        return server

    def add_client(self, node_id: Optional[str] = None) -> ClientNode:
        client = ClientNode(node_id or "")
        self._register(client)
        return client

    def rename_node(self, node: ModelNode, new_id: str) -> None:
        if new_id == node.node_id:
            return
        if new_id in self.nodes:
            raise LabelError(f"Attempting to register duplicate node with id {new_id}.")
        del self.nodes[node.node_id]
        node.node_id = new_id
        self.nodes[new_id] = node

    def remove_node(self, node: ModelNode) -> None:
        for other in self.nodes.values():
            other.remove_connection_with(node)
        if isinstance(node, ServerNode):
            for obj in [node.root, *node.root.walk()]:
                self.registry.remove_entry(obj, node)
        self.nodes.pop(node.node_id, None)

    def get_node(self, node_id: str) -> Optional[ModelNode]:
        return self.nodes.get(node_id)

    def get_server(self, node_id: str) -> ServerNode:
        node = self.nodes.get(node_id)
        if not isinstance(node, ServerNode):
            raise KeyError(f"unknown server {node_id!r}")
        return node

    def get_client(self, node_id: str) -> ClientNode:
        node = self.nodes.get(node_id)
        if not isinstance(node, ClientNode):
            raise KeyError(f"unknown client {node_id!r}")
        return node

    @property
    def servers(self) -> List[ServerNode]:
        return [node for node in self.nodes.values() if node.type is NodeType.SERVER]

    @property
    def clients(self) -> List[ClientNode]:
        return [node for node in self.nodes.values() if node.type is NodeType.CLIENT]

    def __iter__(self) -> Iterator[ModelNode]:
        return iter(list(self.nodes.values()))

    # -- links and devices --------------------------------------------

    def connect(
        self,
        a: Union[ModelNode, str],
        b: Union[ModelNode, str],
        bandwidth: SpeedLike,
        latency: int,
        characteristic: Optional[LineConnectionCharacteristic] = None,
    ) -> NodeConnection:
        """Link two nodes both ways; the two directions share one characteristic."""
        first = self._resolve_node(a)
        second = self._resolve_node(b)
        if first is second:
            raise ValueError("cannot connect a node to itself")
        shared = characteristic or LineConnectionCharacteristic()
        forward = NodeConnection(first, second, bandwidth, latency, shared)
        backward = NodeConnection(second, first, bandwidth, latency, shared)
        if not first.add_connection(forward) or not second.add_connection(backward):
            raise ValueError(f"nodes {first.node_id} and {second.node_id} are already connected")
        return forward

    def disconnect(self, a: Union[ModelNode, str], b: Union[ModelNode, str]) -> None:
        first = self._resolve_node(a)
        second = self._resolve_node(b)
        first.remove_connection_with(second)
        second.remove_connection_with(first)

    def connections(self) -> List[NodeConnection]:
        """One connection per linked pair, in node registration order."""
        seen = set()
        result: List[NodeConnection] = []
        for node in self.nodes.values():
            for connection in node.connections:
                key = frozenset((id(connection.origin), id(connection.neighbour)))
                if key in seen:
                    continue
                seen.add(key)
                result.append(connection)
        return result

    def _resolve_node(self, node: Union[ModelNode, str]) -> ModelNode:
        if isinstance(node, ModelNode):
            return node
        found = self.nodes.get(node)
        if found is None:
            raise KeyError(f"unknown node {node!r}")
        return found

    def next_storage_id(self) -> str:
        taken = {storage.id for server in self.servers for storage in server.storage_manager}
        while True:
            candidate = f"{STORAGE_ID_PREFIX}{next(self._storage_ids)}"
            if candidate not in taken:
                return candidate

    def add_storage(
        self,
        server: Union[ServerNode, str],
        capacity: SizeLike,
        speed: SpeedLike,
        storage_id: Optional[str] = None,
    ) -> ServerStorage:
        node = self._resolve_node(server)
        if not isinstance(node, ServerNode):
            raise ValueError(f"node {node.node_id} is not a server")
        storage = ServerStorage(storage_id or self.next_storage_id(), capacity, speed)
        node.storage_manager.add(storage)
        logger.debug("Added %s to %s", storage, node)
        return storage

    def remove_storage(self, server: Union[ServerNode, str], storage: ServerStorage) -> None:
        """Drop a device; objects mounted on it fall back to their parent's device."""
        node = self._resolve_node(server)
        if not isinstance(node, ServerNode):
            raise ValueError(f"node {node.node_id} is not a server")
        node.fs_manager.remove_storage(storage)
        node.storage_manager.remove(storage)

    def reset_access_counters(self) -> None:
        self.registry.reset_access_counters()

    def finish_storage_operations(self, time: int) -> None:
        for server in self.servers:
            server.storage_manager.finish_storage_operations(time)
