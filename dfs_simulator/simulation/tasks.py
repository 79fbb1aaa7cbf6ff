"""Download and upload tasks queued on a client."""

from __future__ import annotations

from enum import Enum
from typing import Iterator, List

from ..storage.filesystem import PATH_SEPARATOR, FsDirectory, FsFile, split_path
from ..units import SizeLike, format_size


class TaskType(Enum):
    GET = "Download"
    PUT = "Upload"

    def __str__(self) -> str:
        return self.value


class SimulationTask:
    type: TaskType

    def __init__(self, file: FsFile) -> None:
        self.file = file

    @property
    def path(self) -> str:
        return self.file.full_path

    def __str__(self) -> str:
        return (
            f"{self.type.name} simulation task, target: {self.file.full_path} "
            f"of size {format_size(self.file.size)}."
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.file.full_path!r})"


def _detached_file(path: str, size: SizeLike) -> FsFile:
    if PATH_SEPARATOR not in path:
        raise ValueError(f"task path must be absolute: {path!r}")
    parent_path, name = split_path(path)
    if len(parent_path) > 1 and parent_path.endswith(PATH_SEPARATOR):
        parent_path = parent_path[:-1]
    return FsFile(name, size, FsDirectory(parent_path))


class GetSimulationTask(SimulationTask):
    type = TaskType.GET

    @classmethod
    def placeholder(cls, path: str) -> "GetSimulationTask":
        """Download of a file that does not exist anywhere (yet)."""
        return cls(_detached_file(path, 0))


class PutSimulationTask(SimulationTask):
    """Upload of ``file``.

    The file is detached; its parent is a detached directory whose name is the
    target directory path, so ``file.full_path`` is the destination path.
    """

    type = TaskType.PUT

    @classmethod
    def upload(cls, path: str, size: SizeLike) -> "PutSimulationTask":
        return cls(_detached_file(path, size))


class SimulationPlan:
    def __init__(self) -> None:
        self.tasks: List[SimulationTask] = []

    def add(self, task: SimulationTask) -> SimulationTask:
        self.tasks.append(task)
        return task

    def __iter__(self) -> Iterator[SimulationTask]:
        return iter(self.tasks)

    def __len__(self) -> int:
        return len(self.tasks)

    def clear(self) -> None:
        self.tasks.clear()
