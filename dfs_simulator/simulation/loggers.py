"""Sinks for simulation events."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List

from ..units import format_speed

if TYPE_CHECKING:  # pragma: no cover
    from ..model.nodes import ServerNode
    from ..routing.path import DfsPath
    from ..storage.devices import ServerStorage
    from ..storage.filesystem import FsFile
    from .results import TaskResult
    from .tasks import SimulationTask

logger = logging.getLogger(__name__)

Event = Dict[str, Any]


class SimulatorLogger:
    """Receives every simulation event; the base class ignores them all."""

    def simulation_started(self, time: int) -> None:
        pass

    def simulation_ended(self, time: int) -> None:
        pass

    def task_started(self, task: "SimulationTask", time: int) -> None:
        pass

    def task_ended(self, result: "TaskResult", time: int) -> None:
        pass

    def path_selected(self, path: "DfsPath", time: int) -> None:
        pass

    def migration_started(
        self, file: "FsFile", server: "ServerNode", source: "ServerStorage", target: "ServerStorage", time: int
    ) -> None:
        pass

    def migration_finished(
        self, file: "FsFile", server: "ServerNode", source: "ServerStorage", target: "ServerStorage", time: int
    ) -> None:
        pass

    def upload_moved(self, file: "FsFile", server: "ServerNode", target: "ServerStorage", time: int) -> None:
        pass

    def replication_started(self, file: "FsFile", origin: "ServerNode", target: "ServerNode", time: int) -> None:
        pass

    def replication_finished(self, file: "FsFile", origin: "ServerNode", target: "ServerNode", time: int) -> None:
        pass

    def error(self, message: str, time: int) -> None:
        pass


class StringSimulatorLogger(SimulatorLogger):
    """Collects human readable lines, one per event."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def _add(self, time: int, text: str) -> None:
        self.messages.append(f"[{time}] {text}")

    def simulation_started(self, time):
        self._add(time, "Simulation started.")

    def simulation_ended(self, time):
        self._add(time, "Simulation ended.")

    def task_started(self, task, time):
        self._add(time, f"Starting task: {task}")

    def task_ended(self, result, time):
        self._add(time, str(result))

    def path_selected(self, path, time):
        throughput = format_speed(path.current_possible_throughput(time))
        self._add(
            time,
            f"Selecting path [{path}] with current maximum throughput {throughput} "
            f"and total latency of {path.cumulative_latency} ms.",
        )

    def migration_started(self, file, server, source, target, time):
        self._add(time, f"START MIGRATION: File migration {file.full_path} at server {server} {source} -> {target}")

    def migration_finished(self, file, server, source, target, time):
        self._add(time, f"END MIGRATION: File migration {file.full_path} at server {server} {source} -> {target}")

    def upload_moved(self, file, server, target, time):
        self._add(
            time,
            f"UPLOAD MIGRATION: Uploading file {file.full_path} at server {server} to highest storage -> {target}",
        )

    def replication_started(self, file, origin, target, time):
        self._add(
            time,
            f"REPLICATION START: File replication started {file.full_path} from server {origin} to server -> {target}",
        )

    def replication_finished(self, file, origin, target, time):
        self._add(
            time,
            f"REPLICATION FINISHED: File replication finished {file.full_path} "
            f"from server {origin} to server -> {target}",
        )

    def error(self, message, time):
        self._add(time, f"ERROR: {message}")


class EventSimulatorLogger(SimulatorLogger):
    """Turns events into dicts and fans them out to registered observers."""

    def __init__(self) -> None:
        self.observers: List[Callable[[Event], None]] = []
        self.events: List[Event] = []

    def register_observer(self, callback: Callable[[Event], None]) -> None:
        """Register a callback to receive simulation events."""
        self.observers.append(callback)

    def _emit_event(self, event_type: str, time: int, **payload: Any) -> None:
        event = {"type": event_type, "time": time, **payload}
        self.events.append(event)
        logger.debug("%s at %d ms: %s", event_type, time, payload)
        for observer in self.observers:
            observer(event)

    def simulation_started(self, time):
        self._emit_event("simulation_started", time)

    def simulation_ended(self, time):
        self._emit_event("simulation_ended", time)

    def task_started(self, task, time):
        self._emit_event("task_started", time, task=task.type.name, path=task.path, size=task.file.size)

    def task_ended(self, result, time):
        self._emit_event(
            "task_ended",
            time,
            path=result.task.path,
            state=result.state.name,
            total_time=result.total_time,
            average_speed=result.average_speed,
        )

    def path_selected(self, path, time):
        self._emit_event(
            "path_selected",
            time,
            route=str(path),
            latency=path.cumulative_latency,
            throughput=path.current_possible_throughput(time),
        )

    def migration_started(self, file, server, source, target, time):
        self._emit_event(
            "migration_started", time, file=file.full_path, server=server.node_id, source=source.id, target=target.id
        )

    def migration_finished(self, file, server, source, target, time):
        self._emit_event(
            "migration_finished", time, file=file.full_path, server=server.node_id, source=source.id, target=target.id
        )

    def upload_moved(self, file, server, target, time):
        self._emit_event("upload_moved", time, file=file.full_path, server=server.node_id, target=target.id)

    def replication_started(self, file, origin, target, time):
        self._emit_event(
            "replication_started", time, file=file.full_path, origin=origin.node_id, target=target.node_id
        )

    def replication_finished(self, file, origin, target, time):
        self._emit_event(
            "replication_finished", time, file=file.full_path, origin=origin.node_id, target=target.node_id
        )

    def error(self, message, time):
        self._emit_event("error", time, message=message)
