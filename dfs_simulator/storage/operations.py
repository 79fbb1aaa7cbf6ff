"""Throughput bookkeeping for concurrent reads and writes on one storage device.

Each device runs a small queue machine: operations enter ``pending`` (waiting
for a predecessor) or ``prepared``, move to ``running`` on the next update and
share the device's maximum speed. Managed operations (migrations,
replications) progress on their own; unmanaged placeholders stand in for the
transfer the simulator drives itself and only take part in the throughput
split.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from .devices import ServerStorage
    from .filesystem import FsFile

logger = logging.getLogger(__name__)

TransferLimiter = Callable[[int], int]


class StorageOperationType(Enum):
    READ = ("read", True, False)
    WRITE = ("write", True, True)
    CLIENT_READ = ("client_read", False, False)
    CLIENT_WRITE = ("client_write", False, True)

    @property
    def managed(self) -> bool:
        return self.value[1]

    @property
    def writing(self) -> bool:
        return self.value[2]


@dataclass
class OperationCallback:
    on_started: Optional[Callable[[int], None]] = None
    on_finished: Optional[Callable[[int], None]] = None


class StorageOperation:
    def __init__(
        self,
        storage: Optional["ServerStorage"],
        op_type: StorageOperationType,
        transfer_list: Sequence["FsFile"],
        limiter: TransferLimiter,
        callback: Optional[OperationCallback] = None,
        linked: Optional["StorageOperation"] = None,
        pending: bool = False,
    ) -> None:
        self.storage = storage
        self.type = op_type
        self.transfer_list = list(transfer_list)
        self.limiter = limiter
        self.callback = callback
        self.linked = linked
        self.pending = pending
        self.total_size = sum(f.size for f in self.transfer_list)
        self.transferred_size = 0
        self.following: List[StorageOperation] = []
        self._available_throughput = 0

    def add_following_operation(self, operation: "StorageOperation") -> None:
        self.following.append(operation)

    def max_transfer_throughput(self, time: int) -> int:
        own = self.limiter(time)
        if self.linked is not None:
            return min(own, self.linked.limiter(time))
        return own

    @property
    def available_throughput(self) -> int:
        if self.linked is not None:
            return min(self._available_throughput, self.linked._available_throughput)
        return self._available_throughput

    @available_throughput.setter
    def available_throughput(self, bps: int) -> None:
        self._available_throughput = bps

    @property
    def bytes_left(self) -> int:
        return self.total_size - self.transferred_size

    def remove_unmanaged(self) -> None:
        if self.storage is not None:
            self.storage.operation_manager.remove_unmanaged_operation(self)

    def __repr__(self) -> str:
        return (
            f"StorageOperation({self.type.name}, {self.transferred_size}/{self.total_size} B, "
            f"pending={self.pending})"
        )


class StorageOperationManager:
    def __init__(self, storage: "ServerStorage") -> None:
        self.storage = storage
        self.running: List[StorageOperation] = []
        self.prepared: List[StorageOperation] = []
        self.pending: List[StorageOperation] = []
        self._added: List[StorageOperation] = []
        self._update_in_progress = False
        self.reserved_space = 0

    # -- registration -------------------------------------------------

    def add_replication_operation(
        self,
        transfer_list: Sequence["FsFile"],
        source: "ServerStorage",
        link_bandwidth: TransferLimiter,
        callback: Optional[OperationCallback] = None,
        pending: bool = False,
    ) -> Tuple[StorageOperation, StorageOperation]:
        """Linked write here and read on ``source``, limited by the path's link bandwidth."""
        write_op = self.add_write_operation(transfer_list, link_bandwidth, callback, True, pending)
        read_op = source.operation_manager.add_read_operation(transfer_list, link_bandwidth, pending=pending)
        read_op.linked = write_op
        write_op.linked = read_op
        return write_op, read_op

    def add_migration_operation(
        self,
        transfer_list: Sequence["FsFile"],
        source: "ServerStorage",
        callback: Optional[OperationCallback] = None,
        auto_reserve_space: bool = True,
        pending: bool = False,
    ) -> Tuple[StorageOperation, StorageOperation]:
        """Linked write here and read on ``source``, limited by the slower of both devices."""
        max_bps = min(self.storage.speed, source.speed)

        def limiter(_time: int) -> int:
            return max_bps

        write_op = self.add_write_operation(transfer_list, limiter, callback, auto_reserve_space, pending)
        read_op = source.operation_manager.add_read_operation(transfer_list, limiter, pending=pending)
        read_op.linked = write_op
        write_op.linked = read_op
        return write_op, read_op

    def add_unmanaged_read_operation(
        self,
        transfer_list: Sequence["FsFile"],
        limiter: TransferLimiter,
        callback: Optional[OperationCallback] = None,
    ) -> StorageOperation:
        return self._add_operation(StorageOperationType.CLIENT_READ, transfer_list, limiter, callback, False)

    def add_unmanaged_write_operation(
        self,
        transfer_list: Sequence["FsFile"],
        limiter: TransferLimiter,
        callback: Optional[OperationCallback] = None,
        auto_reserve_space: bool = True,
    ) -> StorageOperation:
        operation = self._add_operation(StorageOperationType.CLIENT_WRITE, transfer_list, limiter, callback, False)
        if auto_reserve_space:
            self.reserve_space(operation.total_size)
        return operation

    def add_read_operation(
        self,
        transfer_list: Sequence["FsFile"],
        limiter: TransferLimiter,
        callback: Optional[OperationCallback] = None,
        pending: bool = False,
    ) -> StorageOperation:
        return self._add_operation(StorageOperationType.READ, transfer_list, limiter, callback, pending)

    def add_write_operation(
        self,
        transfer_list: Sequence["FsFile"],
        limiter: TransferLimiter,
        callback: Optional[OperationCallback] = None,
        auto_reserve_space: bool = True,
        pending: bool = False,
    ) -> StorageOperation:
        operation = self._add_operation(StorageOperationType.WRITE, transfer_list, limiter, callback, pending)
        if auto_reserve_space:
            self.reserve_space(operation.total_size)
        return operation

    def remove_unmanaged_operation(self, operation: StorageOperation) -> None:
        if operation.type.writing:
            self.remove_space_reservation(operation.total_size)
        if operation.pending:
            _discard(self.pending, operation)
        else:
            _discard(self.running, operation)
            _discard(self.prepared, operation)

    def _add_operation(
        self,
        op_type: StorageOperationType,
        transfer_list: Sequence["FsFile"],
        limiter: TransferLimiter,
        callback: Optional[OperationCallback],
        pending: bool,
    ) -> StorageOperation:
        operation = StorageOperation(self.storage, op_type, transfer_list, limiter, callback, pending=pending)
        if self._update_in_progress:
            self._added.append(operation)
        else:
            self._enqueue(operation)
        return operation

    def _enqueue(self, operation: StorageOperation) -> None:
        if operation.pending:
            self.pending.append(operation)
        else:
            self.prepared.append(operation)

    # -- progress -----------------------------------------------------

    def _update_queues(self, time: int) -> None:
        released = [op for op in self.pending if not op.pending]
        for operation in released:
            self.pending.remove(operation)
            self.prepared.append(operation)
        starting, self.prepared = self.prepared, []
        for operation in starting:
            self.running.append(operation)
            if operation.callback is not None and operation.callback.on_started is not None:
                operation.callback.on_started(time)

    def update_available_throughput(self, time: int) -> None:
        """Split the device speed across running operations.

        Every operation gets an equal share; operations limited below the
        share give back the rest, which is handed to the hungrier operations
        in ascending order of their extra demand.
        """
        self._update_queues(time)
        if not self.running:
            return

        per_operation = self.storage.speed // len(self.running)
        leftover = 0
        candidates: List[Tuple[StorageOperation, int]] = []
        for operation in self.running:
            limit = operation.max_transfer_throughput(time)
            unused = per_operation - limit
            if unused >= 0:
                leftover += unused
                operation.available_throughput = limit
            else:
                candidates.append((operation, -unused))
                operation.available_throughput = per_operation

        if leftover != 0 and leftover > len(candidates):
            candidates.sort(key=lambda pair: pair[1])
            for index, (operation, demand) in enumerate(candidates):
                if leftover <= 0:
                    break
                share = leftover // (len(candidates) - index)
                granted = demand if demand <= share else share
                operation.available_throughput = operation._available_throughput + granted
                leftover -= granted

    def update_transferred_size(self, interval_ms: int, time: int) -> None:
        self._update_in_progress = True
        seconds = interval_ms / 1000.0
        try:
            for operation in list(self.running):
                if not operation.type.managed or operation.pending:
                    continue
                transferred = int(operation.available_throughput * seconds)
                if operation.bytes_left > transferred:
                    operation.transferred_size += transferred
                else:
                    operation.transferred_size = operation.total_size
                    self.running.remove(operation)
                    self._complete(operation, time)
        finally:
            self._update_in_progress = False
        added, self._added = self._added, []
        for operation in added:
            self._enqueue(operation)
        self._update_queues(time)

    def _complete(self, operation: StorageOperation, time: int) -> None:
        if operation.callback is not None and operation.callback.on_finished is not None:
            operation.callback.on_finished(time)
        if operation.type.writing:
            self.remove_space_reservation(operation.total_size)
        for following in operation.following:
            following.pending = False

    def finish(self, time: int) -> None:
        """Complete every queued operation at ``time``."""
        queued = self.running + self.prepared + self.pending
        self.running, self.prepared, self.pending = [], [], []
        if queued:
            logger.debug("Finishing %d operation(s) on %s at %d ms", len(queued), self.storage.id, time)
        for operation in queued:
            self._complete(operation, time)

    def has_operations(self) -> bool:
        return bool(self.running or self.prepared or self.pending or self._added)

    # -- reservations -------------------------------------------------

    def reserve_space(self, size: int) -> None:
        self.reserved_space += size

    def remove_space_reservation(self, size: int) -> None:
        self.reserved_space = max(0, self.reserved_space - size)


def _discard(queue: List[StorageOperation], operation: StorageOperation) -> None:
    if operation in queue:
        queue.remove(operation)
