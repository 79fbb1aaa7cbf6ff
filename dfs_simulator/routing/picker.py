"""Chooses the serving server and route for a task."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Union

from ..errors import FsObjectNotFound, NoNeighboursAvailable, NoPathAvailable, NotMounted
from .metrics import GraphMetric
from .path import DfsPath
from .search import DijkstraGraphSearcher, SearchResult

if TYPE_CHECKING:  # pragma: no cover
    from ..model.nodes import ModelNode, ServerNode
    from ..simulation.modes import SimulationMode
    from ..simulation.tasks import SimulationTask
    from ..storage.registry import ObjectRegistry

logger = logging.getLogger(__name__)


class MetricPathPicker:
    """Runs the searcher against every server hosting the task's object and keeps the best route."""

    def __init__(self, searcher: Union[DijkstraGraphSearcher, GraphMetric], registry: "ObjectRegistry") -> None:
        if isinstance(searcher, GraphMetric):
            searcher = DijkstraGraphSearcher(searcher)
        self.searcher = searcher
        self.registry = registry

    @property
    def metric(self) -> GraphMetric:
        return self.searcher.metric

    def select_path(
        self,
        client: "ModelNode",
        task: "SimulationTask",
        time: int,
        fixed_target: Optional["ServerNode"] = None,
        mode: Optional["SimulationMode"] = None,
    ) -> DfsPath:
        from ..simulation.tasks import TaskType

        if fixed_target is not None:
            candidates: List["ServerNode"] = [fixed_target]
        else:
            target_object = task.file if task.type is TaskType.GET else task.file.parent
            candidates = self.registry.get_entry_mounted_node_list(target_object) if target_object is not None else []
        if not candidates:
            raise FsObjectNotFound("Couldn't find requested file in file registry.")

        best: Optional[SearchResult] = None
        unmounted = 0
        for server in candidates:
            try:
                found = self.searcher.find_path(client, server, task, time, mode)
            except NotMounted:
                unmounted += 1
                continue
            if found is None:
                continue
            if best is None or self.metric.compare(found[0], best[0]) < 0:
                best = found

        if unmounted == len(candidates):
            raise NotMounted(f"{task.file.full_path} is not mounted on any candidate server")
        if best is None:
            raise NoPathAvailable("No path available")
        path = DfsPath(best[1], task, time)
        logger.debug("Picked %s for %s (metric %d)", path, task.path, best[0])
        return path

    def get_object_registry_query_time(self, client: "ModelNode") -> int:
        connections = client.get_direct_server_connections()
        if not connections:
            raise NoNeighboursAvailable("Client node has no neighbour servers.")
        return connections[0].latency
