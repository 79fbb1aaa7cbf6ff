"""Dijkstra search over server links under a pluggable metric."""

from __future__ import annotations

import heapq
import itertools
import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

from ..errors import NotMounted
from .metrics import GraphMetric

if TYPE_CHECKING:  # pragma: no cover
    from ..model.connection import NodeConnection
    from ..model.nodes import ModelNode, ServerNode
    from ..simulation.modes import SimulationMode
    from ..simulation.tasks import SimulationTask

logger = logging.getLogger(__name__)

SearchResult = Tuple[int, List["NodeConnection"]]


class DijkstraGraphSearcher:
    def __init__(self, metric: GraphMetric) -> None:
        self.metric = metric

    def find_path(
        self,
        origin: "ModelNode",
        target: "ServerNode",
        task: "SimulationTask",
        time: int,
        mode: Optional["SimulationMode"] = None,
    ) -> Optional[SearchResult]:
        """Best route from ``origin`` to ``target`` for ``task`` at ``time``.

        Returns ``(metric value, connections)`` in origin-to-target order, or
        None when ``target`` cannot be reached. Raises :class:`NotMounted`
        when ``target`` has no device for the task's object.
        """
        from ..simulation.tasks import TaskType

        disk_bandwidth = self._disk_bandwidth(target, task, mode, TaskType)
        metric = self.metric

        distances: Dict[int, int] = {id(origin): metric.best}
        predecessors: Dict[int, "NodeConnection"] = {}
        settled: Set[int] = set()
        counter = itertools.count()
        heap: List[Tuple[int, int, "ModelNode"]] = [(metric.sort_key(metric.best), next(counter), origin)]

        while heap:
            _, _, node = heapq.heappop(heap)
            if id(node) in settled:
                continue
            settled.add(id(node))
            if node is target:
                break
            current = distances[id(node)]
            for connection in node.get_direct_server_connections():
                neighbour = connection.neighbour
                if id(neighbour) in settled:
                    continue
                edge = metric.edge_weight(connection, task.file.size, disk_bandwidth, time)
                candidate = metric.combine(current, edge, connection)
                if metric.is_better(candidate, distances.get(id(neighbour), metric.worst)):
                    distances[id(neighbour)] = candidate
                    predecessors[id(neighbour)] = connection
                    heapq.heappush(heap, (metric.sort_key(candidate), next(counter), neighbour))

        if id(target) not in predecessors:
            return None
        return distances[id(target)], self._build_path(predecessors, origin, target)

    def _disk_bandwidth(self, target, task, mode, task_types) -> int:
        target_object = task.file if task.type is task_types.GET else task.file.parent
        bandwidth = None
        if target_object is not None:
            bandwidth = self.metric.possible_disk_bandwidth(target, target_object, mode)
        if (bandwidth is None or bandwidth <= 0) and task.type is task_types.PUT:
            # an upload over an existing replica mounted on its own
            bandwidth = self.metric.possible_disk_bandwidth(target, task.file, mode)
        if bandwidth is None or bandwidth <= 0:
            raise NotMounted(f"{task.file.full_path} is not mounted on server {target.node_id}")
        return bandwidth

    @staticmethod
    def _build_path(
        predecessors: Dict[int, "NodeConnection"],
        origin: "ModelNode",
        target: "ModelNode",
    ) -> List["NodeConnection"]:
        path: List["NodeConnection"] = []
        current = target
        while current is not origin:
            connection = predecessors[id(current)]
            path.append(connection)
            current = connection.origin
        path.reverse()
        return path
