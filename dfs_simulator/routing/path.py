"""A selected route from a client to the server that serves a task."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

from ..storage.filesystem import FsFile

if TYPE_CHECKING:  # pragma: no cover
    from ..model.connection import NodeConnection
    from ..model.nodes import ServerNode
    from ..simulation.tasks import SimulationTask
    from ..storage.devices import ServerStorage
    from ..storage.operations import StorageOperation

UNBOUNDED_BPS = 2 ** 63 - 1


def data_transferred_in_time(bps: int, ms: int) -> int:
    if bps <= 0:
        return 0
    return int(bps * (ms / 1000.0))


def data_transfer_time(bps: int, size: int) -> int:
    """Milliseconds needed to move ``size`` bytes at ``bps``, or -1 when nothing moves."""
    if bps <= 0:
        return -1
    return int(size / bps * 1000)


class DfsPath:
    def __init__(self, connections: Sequence["NodeConnection"], task: "SimulationTask", time: int) -> None:
        self.connections: List["NodeConnection"] = list(connections)
        self.task = task
        self.time = time
        self.running_operation: Optional["StorageOperation"] = None

    @property
    def target(self) -> Optional["ServerNode"]:
        from ..model.nodes import ServerNode

        if not self.connections:
            return None
        node = self.connections[-1].neighbour
        return node if isinstance(node, ServerNode) else None

    @property
    def cumulative_latency(self) -> int:
        return sum(connection.latency for connection in self.connections)

    def current_link_bandwidth(self, time: int) -> int:
        bottleneck = UNBOUNDED_BPS
        for connection in self.connections:
            bottleneck = min(bottleneck, connection.average_bandwidth(time, 0))
        return bottleneck

    @property
    def maximum_link_bandwidth(self) -> int:
        bottleneck = UNBOUNDED_BPS
        for connection in self.connections:
            bottleneck = min(bottleneck, connection.bandwidth)
        return bottleneck

    def average_transfer_throughput(self, time: int, interval: int) -> int:
        """Bottleneck of the running operation's share and each link's average over the window."""
        if self.running_operation is None:
            return 0
        bottleneck = self.running_operation.available_throughput
        for connection in self.connections:
            bottleneck = min(bottleneck, connection.average_bandwidth(time, interval))
        return bottleneck

    def current_possible_throughput(self, time: int) -> int:
        return self.average_transfer_throughput(time, 0)

    def get_target_file(self) -> Optional[FsFile]:
        server = self.target
        if server is None:
            return None
        obj = server.root.get_child_object(self.task.file.full_path)
        return obj if isinstance(obj, FsFile) else None

    def get_or_create_target_file(self) -> Optional[FsFile]:
        """The task's file on the target server, created (empty) for uploads."""
        from ..simulation.tasks import TaskType

        server = self.target
        if server is None:
            return None
        obj = server.root.get_child_object(self.task.file.full_path)
        if obj is None and self.task.type is TaskType.PUT:
            obj = server.fs_manager.resolve(self.task.file.full_path, create=True)
        return obj if isinstance(obj, FsFile) else None

    @property
    def target_storage(self) -> Optional["ServerStorage"]:
        file = self.get_or_create_target_file()
        server = self.target
        if file is None or server is None:
            return None
        return server.fs_manager.get_fs_object_mount_device(file)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DfsPath):
            return NotImplemented
        return len(self.connections) == len(other.connections) and all(
            a is b for a, b in zip(self.connections, other.connections)
        )

    def __hash__(self) -> int:
        return hash(tuple(id(connection) for connection in self.connections))

    def __str__(self) -> str:
        if not self.connections:
            return ""
        nodes = [self.connections[0].origin.node_id]
        nodes.extend(connection.neighbour.node_id for connection in self.connections)
        return "->".join(nodes)

    def __repr__(self) -> str:
        return f"DfsPath({self})"
