"""Storage-tier planning: promote accessed files to faster devices.

Before every access the planner looks for the fastest device on the serving
server that can take the file, either directly or after a cascade of
evictions pushing the least recently used files one tier down. The moves run
as chained migration operations on the devices involved; mount entries are
only rewritten once the whole chain has finished.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set

from ..storage.devices import ServerStorage
from ..storage.filesystem import FsFile
from ..storage.operations import OperationCallback

if TYPE_CHECKING:  # pragma: no cover
    from ..model.nodes import ServerNode
    from ..simulation.loggers import SimulatorLogger
    from ..simulation.tasks import SimulationTask

logger = logging.getLogger(__name__)


@dataclass
class MigrationPlan:
    files: List[FsFile] = field(default_factory=list)
    source: Optional[ServerStorage] = None
    target: Optional[ServerStorage] = None

    @property
    def size(self) -> int:
        return sum(f.size for f in self.files)


class HierarchicalPlanner(ABC):
    """Access hooks and tier selection shared by every planning strategy."""

    def available_space(self, storage: ServerStorage, server: "ServerNode") -> int:
        unused = server.fs_manager.storage_unused_size(storage) - storage.operation_manager.reserved_space
        return max(0, unused)

    @abstractmethod
    def build_migration_plans_to_fit(
        self,
        file: FsFile,
        source: ServerStorage,
        target: ServerStorage,
        storages: Sequence[ServerStorage],
        server: "ServerNode",
    ) -> List[MigrationPlan]:
        """Moves that free room for ``file`` on ``target``, or an empty list when it cannot fit."""

    # -- access hooks -------------------------------------------------

    def on_before_access(
        self,
        file: FsFile,
        server: "ServerNode",
        task: "SimulationTask",
        sim_logger: "SimulatorLogger",
        time: int,
    ) -> None:
        from ..simulation.tasks import TaskType

        local = _local_instance(file, server)
        if local is None:
            return
        local.increment_access_counter()
        if local.migrating:
            return

        plans: List[MigrationPlan] = []
        highest = self._select_highest_possible_storage(server.storage_manager.storage, local, server, plans)
        if highest is None or not plans:
            return
        if task.type is TaskType.GET or len(plans) > 1:
            self.begin_migration_process(plans, server, sim_logger, time)
        else:
            sim_logger.upload_moved(local, server, highest, time)
            server.fs_manager.force_mount(highest, local)

    def on_after_access(
        self,
        file: FsFile,
        server: "ServerNode",
        task: "SimulationTask",
        sim_logger: "SimulatorLogger",
        time: int,
    ) -> None:
        pass

    # -- tier selection -----------------------------------------------

    def get_highest_available_storage(self, file: FsFile, server: "ServerNode") -> Optional[ServerStorage]:
        """Fastest device ``file`` could be moved to on ``server``, without planning anything."""
        local = _local_instance(file, server)
        if local is None:
            return None
        return self._select_highest_possible_storage(server.storage_manager.storage, local, server, None)

    def _select_highest_possible_storage(
        self,
        storages: Sequence[ServerStorage],
        file: FsFile,
        server: "ServerNode",
        plans: Optional[List[MigrationPlan]],
    ) -> Optional[ServerStorage]:
        ordered = sorted(storages, key=lambda storage: storage.speed)
        current = server.fs_manager.get_fs_object_mount_device(file)
        if current is None:
            return None
        current_index = ordered.index(current) if current in ordered else -1

        for index in range(len(ordered) - 1, current_index, -1):
            storage = ordered[index]
            if self.available_space(storage, server) > file.size:
                if plans is not None:
                    plans.append(MigrationPlan([file], current, storage))
                return storage

        for index in range(len(ordered) - 1, current_index, -1):
            storage = ordered[index]
            cascade = self.build_migration_plans_to_fit(file, current, storage, ordered, server)
            if cascade:
                if plans is not None:
                    plans.extend(cascade)
                return storage
        return None

    # -- execution ----------------------------------------------------

    def begin_migration_process(
        self,
        plans: Sequence[MigrationPlan],
        server: "ServerNode",
        sim_logger: "SimulatorLogger",
        time: int,
    ) -> None:
        """Queue ``plans`` as a chain of migrations, each waiting for the previous write."""
        logger.debug("Starting %d migration(s) on %s at %d ms", len(plans), server, time)
        remaining = [len(plans)]
        previous_write = None
        for plan in plans:
            for f in plan.files:
                f.migrating = True
            plan.target.operation_manager.reserve_space(plan.size)
            callback = self._migration_callback(plan, plans, server, sim_logger, remaining)
            write_op, read_op = plan.target.operation_manager.add_migration_operation(
                plan.files,
                plan.source,
                callback,
                auto_reserve_space=False,
                pending=previous_write is not None,
            )
            if previous_write is not None:
                previous_write.add_following_operation(write_op)
                previous_write.add_following_operation(read_op)
            previous_write = write_op

    @staticmethod
    def _migration_callback(
        plan: MigrationPlan,
        plans: Sequence[MigrationPlan],
        server: "ServerNode",
        sim_logger: "SimulatorLogger",
        remaining: List[int],
    ) -> OperationCallback:
        def started(time: int) -> None:
            for f in plan.files:
                sim_logger.migration_started(f, server, plan.source, plan.target, time)

        def finished(time: int) -> None:
            for f in plan.files:
                sim_logger.migration_finished(f, server, plan.source, plan.target, time)
            remaining[0] -= 1
            if remaining[0] == 0:
                _apply_plans(plans, server)

        return OperationCallback(on_started=started, on_finished=finished)


class LRUCascadeMigrationPlanner(HierarchicalPlanner):
    """Makes room on a tier by demoting its least accessed files one tier down, recursively."""

    def get_lru_subset_with_size(self, files: Sequence[FsFile], size: int) -> Optional[List[FsFile]]:
        subset: List[FsFile] = []
        collected = 0
        for f in sorted(files, key=lambda f: f.access_count):
            if collected >= size:
                break
            subset.append(f)
            collected += f.size
        if collected < size:
            return None
        return subset

    def fit_subset_onto_storage(
        self,
        subset: Sequence[FsFile],
        storage: ServerStorage,
        server: "ServerNode",
        excluded: Set[FsFile],
        released: Dict[ServerStorage, int],
    ) -> Optional[List[FsFile]]:
        """Files that must leave ``storage`` for ``subset`` to fit; None when it cannot be done."""
        candidates = [
            f for f in server.fs_manager.get_storage_mounted_files(storage)
            if not f.migrating and f not in excluded
        ]
        required = (
            sum(f.size for f in subset)
            - self.available_space(storage, server)
            - released.get(storage, 0)
        )
        if required <= 0:
            return []
        return self.get_lru_subset_with_size(candidates, required)

    def build_migration_plans_to_fit(self, file, source, target, storages, server):
        plans: List[MigrationPlan] = []
        excluded: Set[FsFile] = {file}
        released: Dict[ServerStorage, int] = {}
        subset: List[FsFile] = [file]

        while True:
            evicted = self.fit_subset_onto_storage(subset, target, server, excluded, released)
            if evicted is None:
                return []
            plans.append(MigrationPlan(list(subset), source, target))
            released[source] = released.get(source, 0) + sum(f.size for f in subset)
            if not evicted:
                break
            excluded.update(evicted)
            target_index = storages.index(target)
            if target_index == 0:
                return []
            subset, source, target = evicted, target, storages[target_index - 1]

        # deepest eviction runs first
        plans.reverse()
        return plans


def _local_instance(file: FsFile, server: "ServerNode") -> Optional[FsFile]:
    local = server.root.get_child_object(file.full_path)
    return local if isinstance(local, FsFile) else None


def _apply_plans(plans: Sequence[MigrationPlan], server: "ServerNode") -> None:
    fs_manager = server.fs_manager
    for plan in plans:
        for f in plan.files:
            f.migrating = False
            fs_manager.unmount(f)
    for plan in plans:
        for f in plan.files:
            fs_manager.force_mount(plan.target, f)
    logger.debug("Applied %d migration plan(s) on %s", len(plans), server)
