"""Storage devices attached to a server and the per-server device list."""

from __future__ import annotations

from typing import Iterator, List, Optional

from ..units import SizeLike, SpeedLike, as_bps, as_bytes, format_size, format_speed
from .operations import StorageOperationManager

STORAGE_ID_PREFIX = "stor"


class ServerStorage:
    MAX_CAPACITY = 100000 * 1000 ** 3
    MAX_SPEED = 100000 * 1000 ** 2

    def __init__(self, storage_id: str, capacity: SizeLike, speed: SpeedLike) -> None:
        size_bytes = as_bytes(capacity)
        speed_bps = as_bps(speed)
        if size_bytes < 0:
            raise ValueError("capacity must be non-negative")
        if speed_bps < 0:
            raise ValueError("speed must be non-negative")
        self.id = storage_id
        self.size = size_bytes
        self.speed = speed_bps
        self.operation_manager = StorageOperationManager(self)

    def __str__(self) -> str:
        return f"{self.id} [{format_size(self.size)}, {format_speed(self.speed)}]"

    def __repr__(self) -> str:
        return f"ServerStorage(id={self.id!r}, size={self.size}, speed={self.speed})"


class ServerStorageManager:
    def __init__(self) -> None:
        self._storage: List[ServerStorage] = []

    def add(self, storage: ServerStorage) -> ServerStorage:
        if self.get_storage_by_id(storage.id) is not None:
            raise ValueError(f"duplicate storage id {storage.id!r}")
        self._storage.append(storage)
        return storage

    def remove(self, storage: ServerStorage) -> None:
        self._storage.remove(storage)

    @property
    def storage(self) -> List[ServerStorage]:
        return list(self._storage)

    def __iter__(self) -> Iterator[ServerStorage]:
        return iter(list(self._storage))

    def __len__(self) -> int:
        return len(self._storage)

    def get_storage_by_id(self, storage_id: str) -> Optional[ServerStorage]:
        for storage in self._storage:
            if storage.id == storage_id:
                return storage
        return None

    def update_storage_available_throughput(self, time: int) -> None:
        for storage in self._storage:
            storage.operation_manager.update_available_throughput(time)

    def update_storage_transferred_size(self, interval_ms: int, time: int) -> None:
        for storage in self._storage:
            storage.operation_manager.update_transferred_size(interval_ms, time)

    def finish_storage_operations(self, time: int) -> None:
        for storage in self._storage:
            storage.operation_manager.finish(time)
