"""Per-task outcomes and the aggregated run summary."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from ..units import format_speed

if TYPE_CHECKING:  # pragma: no cover
    from ..routing.path import DfsPath
    from ..storage.filesystem import FsFile
    from .modes import SimulationMode
    from .tasks import SimulationTask

Sample = Tuple[int, int]


class TaskResultState(Enum):
    SUCCESS = "Success"
    NO_NEIGHBOURS_AVAILABLE = "No neighbours available"
    NO_PATH_AVAILABLE = "No path available"
    NOT_ENOUGH_SPACE_ON_DEVICE = "Not enough space on device"
    OBJECT_NOT_FOUND = "Object not found"
    OBJECT_NOT_MOUNTED = "Object is not mounted on any device"
    NOT_ENOUGH_SPACE_FOR_REPLICA = "Not enough space to resize replicas"

    @property
    def label(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


class FilteringThroughputSampler:
    """Keeps ``(time, bps)`` samples only where the throughput changes."""

    def __init__(self) -> None:
        self.samples: List[Sample] = []
        self.max_sample: Sample = (0, 0)
        self._previous = -1

    def record_sample(self, time: int, bps: int, last_sample: bool = False) -> None:
        if bps == self._previous and not last_sample:
            return
        self._previous = bps
        self.samples.append((time, bps))
        if bps > self.max_sample[1]:
            self.max_sample = (time, bps)


@dataclass
class TaskResult:
    task: "SimulationTask"
    state: TaskResultState
    total_time: int
    average_speed: int = 0
    path_history: List["DfsPath"] = field(default_factory=list)
    sampler: FilteringThroughputSampler = field(default_factory=FilteringThroughputSampler)
    # file instance that served the task, set on success
    object: Optional["FsFile"] = None

    def __str__(self) -> str:
        return (
            f"Simulation of task [{self.task}] ended with result [{self.state}], "
            f"total time {self.total_time} ms and with average speed {format_speed(self.average_speed)}."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": {"type": self.task.type.name, "path": self.task.path, "size": self.task.file.size},
            "state": self.state.name,
            "label": self.state.label,
            "total_time_ms": self.total_time,
            "average_speed_bps": self.average_speed,
            "paths": [
                {"route": str(path), "latency_ms": path.cumulative_latency, "selected_at_ms": path.time}
                for path in self.path_history
            ],
            "samples": [list(sample) for sample in self.sampler.samples],
        }


@dataclass
class SimulationResult:
    mode: "SimulationMode"
    results: List[TaskResult]
    total_elapsed_time: int = 0
    total_downloaded: int = 0
    total_uploaded: int = 0
    total_average_speed: int = 0
    cumulative_samples: List[Sample] = field(default_factory=list)
    maximum_speed: Optional[Sample] = None
    built: bool = False

    def build(self) -> "SimulationResult":
        """Aggregate the task results; repeated calls are no-ops."""
        if self.built:
            return self
        from .tasks import TaskType

        for result in self.results:
            self.total_elapsed_time += result.total_time
            if result.object is not None:
                if result.task.type is TaskType.GET:
                    self.total_downloaded += result.object.size
                else:
                    self.total_uploaded += result.object.size
            self.cumulative_samples.extend(result.sampler.samples)
            candidate = result.sampler.max_sample
            if self.maximum_speed is None or candidate[1] > self.maximum_speed[1]:
                self.maximum_speed = candidate

        if self.total_elapsed_time > 0:
            transferred = self.total_downloaded + self.total_uploaded
            self.total_average_speed = (transferred // self.total_elapsed_time) * 1000
        self.built = True
        return self

    def to_dict(self) -> Dict[str, Any]:
        self.build()
        return {
            "mode": self.mode.name,
            "mode_label": self.mode.label,
            "total_elapsed_time_ms": self.total_elapsed_time,
            "total_downloaded_bytes": self.total_downloaded,
            "total_uploaded_bytes": self.total_uploaded,
            "total_average_speed_bps": self.total_average_speed,
            "maximum_speed": list(self.maximum_speed) if self.maximum_speed is not None else None,
            "results": [result.to_dict() for result in self.results],
        }
