"""Edge-weight strategies used by the path search.

A metric defines how one link is weighed, how weights combine along a path,
which direction of the order is better and the sentinel values for the
origin (``best``) and for unknown nodes (``worst``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from ..storage.filesystem import FileSystemObject, FsFile
from .path import data_transfer_time

if TYPE_CHECKING:  # pragma: no cover
    from ..model.connection import NodeConnection
    from ..model.nodes import ServerNode
    from ..simulation.modes import SimulationMode

METRIC_MAX = 2 ** 63 - 1


class GraphMetric(ABC):
    name = "metric"
    best = 0
    worst = METRIC_MAX
    # larger values are better when set
    descending = False

    @abstractmethod
    def edge_weight(self, connection: "NodeConnection", transfer_size: int, disk_bandwidth: int, time: int) -> int:
        """Weight of one link for a transfer of ``transfer_size`` bytes at ``time``."""

    @abstractmethod
    def combine(self, current: int, edge: int, connection: "NodeConnection") -> int:
        """Path value after extending ``current`` by a link weighing ``edge``."""

    def compare(self, a: int, b: int) -> int:
        """Negative when ``a`` is better than ``b``, zero on a tie."""
        if a == b:
            return 0
        better = a > b if self.descending else a < b
        return -1 if better else 1

    def is_better(self, a: int, b: int) -> bool:
        return self.compare(a, b) < 0

    def sort_key(self, value: int) -> int:
        return -value if self.descending else value

    def possible_disk_bandwidth(
        self,
        server: "ServerNode",
        target: FileSystemObject,
        mode: Optional["SimulationMode"] = None,
    ) -> Optional[int]:
        storage = server.fs_manager.get_fs_object_mount_device_by_name(target)
        if storage is None:
            return None
        return storage.speed

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DistanceMetric(GraphMetric):
    """Hop count."""

    name = "distance"
    best = 1
    worst = METRIC_MAX

    def edge_weight(self, connection, transfer_size, disk_bandwidth, time):
        return 1

    def combine(self, current, edge, connection):
        return current + edge


class LinkBandwidthMetric(GraphMetric):
    """Widest path over link bandwidth at ``time`` (nominal bandwidth when ``time`` < 0)."""

    name = "link_bandwidth"
    best = METRIC_MAX
    worst = 0
    descending = True

    def edge_weight(self, connection, transfer_size, disk_bandwidth, time):
        if time >= 0:
            return connection.average_bandwidth(time, 0)
        return connection.bandwidth

    def combine(self, current, edge, connection):
        return min(current, edge)


class LinkBandwidthLatencyMetric(GraphMetric):
    """Estimated transfer time over each link plus accumulated latency."""

    name = "link_bandwidth_latency"
    best = 0
    worst = METRIC_MAX

    def edge_weight(self, connection, transfer_size, disk_bandwidth, time):
        elapsed = data_transfer_time(connection.average_bandwidth(time, 0), transfer_size)
        return elapsed if elapsed >= 0 else self.worst

    def combine(self, current, edge, connection):
        return max(current, edge) + connection.latency


class PathThroughputMetric(GraphMetric):
    """Widest path where every hop is capped by the target disk bandwidth."""

    name = "path_throughput"
    best = METRIC_MAX
    worst = 0
    descending = True

    def edge_weight(self, connection, transfer_size, disk_bandwidth, time):
        link = connection.average_bandwidth(time, 0) if time >= 0 else connection.bandwidth
        return min(link, disk_bandwidth)

    def combine(self, current, edge, connection):
        return min(current, edge)


class PathThroughputLatencyMetric(GraphMetric):
    name = "path_throughput_latency"
    best = 0
    worst = METRIC_MAX

    def edge_weight(self, connection, transfer_size, disk_bandwidth, time):
        bottleneck = min(connection.average_bandwidth(time, 0), disk_bandwidth)
        elapsed = data_transfer_time(bottleneck, transfer_size)
        return elapsed if elapsed >= 0 else self.worst

    def combine(self, current, edge, connection):
        return max(current, edge) + connection.latency


class HierarchicalThroughputMetric(PathThroughputLatencyMetric):
    """Weighs disks by the fastest tier the file could be promoted to."""

    name = "hierarchical_throughput"

    def possible_disk_bandwidth(self, server, target, mode=None):
        storage = None
        if isinstance(target, FsFile) and mode is not None and mode.hierarchical and mode.planner is not None:
            storage = mode.planner.get_highest_available_storage(target, server)
        if storage is None:
            storage = server.fs_manager.get_fs_object_mount_device_by_name(target)
        if storage is None:
            return None
        return storage.speed
