"""Fixed-resolution time-slice simulation of a client's task queue."""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Dict, List, Optional, Tuple

from ..errors import (
    FsObjectNotFound,
    NoNeighboursAvailable,
    NoPathAvailable,
    NotEnoughSpaceLeft,
    NotEnoughSpaceLeftReplica,
    NotMounted,
    ReplicationError,
)
from ..model.nodes import ClientNode, ServerNode
from ..model.topology import Topology
from ..routing.path import DfsPath, data_transfer_time, data_transferred_in_time
from ..routing.picker import MetricPathPicker
from ..storage.filesystem import FsFile
from ..storage.operations import StorageOperation
from .loggers import SimulatorLogger
from .modes import SimulationMode
from .results import FilteringThroughputSampler, SimulationResult, TaskResult, TaskResultState
from .tasks import SimulationPlan, SimulationTask, TaskType

logger = logging.getLogger(__name__)

TIME_RESOLUTION_MS = 500

_TASK_ERRORS = (NoPathAvailable, NotMounted, FsObjectNotFound, NotEnoughSpaceLeft)


class TimeSliceSimulator:
    """Runs every task of ``plan`` one after another, advancing time in fixed slices.

    Each task selects a route, registers a placeholder operation on the
    serving device so it competes for that device's throughput with running
    migrations and replications, then moves ``throughput * slice`` bytes per
    slice until the file is complete. In dynamic modes the route is
    re-evaluated every ``recalculation_interval_ms`` of transfer time.
    """

    def __init__(
        self,
        topology: Topology,
        client: ClientNode,
        mode: SimulationMode = SimulationMode.SHORTEST,
        plan: Optional[SimulationPlan] = None,
        picker: Optional[MetricPathPicker] = None,
        recalculation_interval_ms: Optional[int] = None,
        time_resolution_ms: int = TIME_RESOLUTION_MS,
    ) -> None:
        self.topology = topology
        self.client = client
        self.mode = mode
        self.plan = plan if plan is not None else client.simulation_plan
        self.picker = picker if picker is not None else MetricPathPicker(mode.metric, topology.registry)
        if recalculation_interval_ms is None:
            recalculation_interval_ms = mode.recalculation_interval_ms
        self.recalculation_interval_ms = recalculation_interval_ms
        self.time_resolution_ms = time_resolution_ms
        self.results: List[TaskResult] = []

    def run(self, sim_logger: Optional[SimulatorLogger] = None) -> SimulationResult:
        if sim_logger is None:
            sim_logger = SimulatorLogger()
        queue = deque(self.plan.tasks)
        time = 0
        logger.info("Simulating %d task(s) for %s in mode %s", len(queue), self.client, self.mode.name)
        sim_logger.simulation_started(time)
        while queue:
            result = self._process_task(queue.popleft(), time, sim_logger)
            self.results.append(result)
            time += result.total_time
        self.topology.finish_storage_operations(time)
        sim_logger.simulation_ended(time)
        logger.info("Simulation finished at %d ms", time)
        return SimulationResult(self.mode, list(self.results)).build()

    # -- tasks --------------------------------------------------------

    def _process_task(self, task: SimulationTask, start: int, sim_logger: SimulatorLogger) -> TaskResult:
        sim_logger.task_started(task, start)
        history: List[DfsPath] = []
        sampler = FilteringThroughputSampler()
        try:
            if task.type is TaskType.GET:
                elapsed, served = self._execute_download(task, start, history, sampler, sim_logger)
            else:
                elapsed, served = self._execute_upload(task, start, history, sampler, sim_logger)
        except _TASK_ERRORS as exc:
            result = self._failed_result(task, exc, history, sampler)
            logger.warning("Task %s failed: %s (%s)", task.path, result.state.label, exc)
        else:
            average = int(task.file.size / (elapsed / 1000.0)) if elapsed > 0 else 0
            result = TaskResult(task, TaskResultState.SUCCESS, elapsed, average, history, sampler, served)
        sim_logger.task_ended(result, start + result.total_time)
        return result

    def _failed_result(
        self,
        task: SimulationTask,
        exc: Exception,
        history: List[DfsPath],
        sampler: FilteringThroughputSampler,
    ) -> TaskResult:
        try:
            query_time = self.picker.get_object_registry_query_time(self.client)
        except NoNeighboursAvailable:
            return TaskResult(task, TaskResultState.NO_NEIGHBOURS_AVAILABLE, 0, 0, history, sampler)
        return TaskResult(task, _failure_state(exc), query_time, 0, history, sampler)

    def _execute_download(self, task, start, history, sampler, sim_logger) -> Tuple[int, Optional[FsFile]]:
        elapsed = self._simulate_transfer(task, start, history, sampler, sim_logger)
        return elapsed, history[-1].get_target_file()

    def _execute_upload(self, task, start, history, sampler, sim_logger) -> Tuple[int, Optional[FsFile]]:
        replication = self.topology.replication
        if replication.is_file_replicated(task.file) and not replication.can_replica_be_resized(task.file):
            raise NotEnoughSpaceLeftReplica("File cannot be resized on all replicas.")

        elapsed = self._simulate_transfer(task, start, history, sampler, sim_logger)
        path = history[-1]
        uploaded = path.get_or_create_target_file()
        if uploaded is None:
            raise NoPathAvailable(f"{task.path} cannot be created on {path.target}")
        uploaded.size = task.file.size
        if replication.is_file_replicated(uploaded):
            try:
                replication.propagate_replica_resize(
                    uploaded, path.target, self.picker, self.mode, sim_logger, start + elapsed
                )
            except ReplicationError as exc:
                logger.warning("Replica update of %s incomplete: %s", uploaded.full_path, exc)
        return elapsed, uploaded

    # -- transfer loop ------------------------------------------------

    def _simulate_transfer(
        self,
        task: SimulationTask,
        start: int,
        history: List[DfsPath],
        sampler: FilteringThroughputSampler,
        sim_logger: SimulatorLogger,
    ) -> int:
        """Move the task's bytes and return the elapsed time in ms.

        A failed upload leaves the target server as it found it: a file the
        upload created is removed again and an overwritten file gets its
        previous size back.
        """
        path = self.picker.select_path(self.client, task, start, None, self.mode)
        if task.type is TaskType.GET:
            return self._transfer(task, path, start, history, sampler, sim_logger)

        rollback = _upload_rollback(task, path)
        try:
            self._check_upload_capacity(task, path)
            return self._transfer(task, path, start, history, sampler, sim_logger)
        except _TASK_ERRORS:
            rollback()
            raise

    def _transfer(
        self,
        task: SimulationTask,
        path: DfsPath,
        start: int,
        history: List[DfsPath],
        sampler: FilteringThroughputSampler,
        sim_logger: SimulatorLogger,
    ) -> int:
        planner = self.mode.planner
        resolution = self.time_resolution_ms
        total = task.file.size
        transferred = 0
        transfer_list = [task.file]
        accessed: Dict[Tuple[int, int], Tuple[FsFile, ServerNode]] = {}

        elapsed = path.cumulative_latency
        recalc = 0

        target_file = path.get_or_create_target_file()
        if target_file is not None:
            accessed[(id(target_file), id(path.target))] = (target_file, path.target)
            if planner is not None:
                if task.type is TaskType.PUT:
                    target_file.size = total
                planner.on_before_access(target_file, path.target, task, sim_logger, start + elapsed)

        placeholder = [self._register_placeholder(task, path, transfer_list)]
        self._update_storage_operations(elapsed, start + elapsed)
        last_update = elapsed
        sim_logger.path_selected(path, start + elapsed)
        history.append(path)

        try:
            while transferred != total:
                now = start + elapsed
                self._update_storage_operations(elapsed - last_update, now)
                last_update = elapsed

                if self.mode.dynamic_routing and recalc >= self.recalculation_interval_ms:
                    # uploads keep their destination and may only change route
                    fixed_target = path.target if task.type is TaskType.PUT else None
                    rerouted = self.picker.select_path(self.client, task, now, fixed_target, self.mode)
                    if rerouted != path:
                        logger.debug("Re-routing %s from %s to %s at %d ms", task.path, path, rerouted, now)
                        placeholder.pop().remove_unmanaged()
                        placeholder.append(self._register_placeholder(task, rerouted, transfer_list))
                        self._update_storage_operations(0, now)
                        sim_logger.path_selected(rerouted, now)
                        elapsed += rerouted.cumulative_latency
                        history.append(rerouted)
                        path = rerouted
                        target_file = path.get_or_create_target_file()
                        if target_file is not None:
                            accessed[(id(target_file), id(path.target))] = (target_file, path.target)
                            if planner is not None:
                                planner.on_before_access(target_file, path.target, task, sim_logger, start + elapsed)
                    recalc = 0

                now = start + elapsed
                slice_bps = path.average_transfer_throughput(now, resolution)
                step = data_transferred_in_time(slice_bps, resolution)
                if step <= 0:
                    logger.debug("No throughput left for %s at %d ms", task.path, now)
                    break
                if transferred + step == total:
                    sampler.record_sample(now, slice_bps, True)
                    transferred = total
                    elapsed += resolution
                elif transferred + step > total:
                    sampler.record_sample(now, slice_bps, True)
                    remaining_ms = data_transfer_time(path.current_possible_throughput(now), total - transferred)
                    elapsed += remaining_ms if remaining_ms >= 0 else resolution
                    transferred = total
                else:
                    sampler.record_sample(now, slice_bps, False)
                    transferred += step
                    elapsed += resolution
                    recalc += resolution
        finally:
            for operation in placeholder:
                operation.remove_unmanaged()
            self._update_storage_operations(elapsed - last_update, start + elapsed)

        if transferred < total:
            raise NoPathAvailable(f"transfer of {task.path} stalled after {transferred} of {total} B")
        if planner is not None:
            for accessed_file, server in accessed.values():
                planner.on_after_access(accessed_file, server, task, sim_logger, start + elapsed)
        return elapsed

    def _check_upload_capacity(self, task: SimulationTask, path: DfsPath) -> None:
        server = path.target
        target_file = path.get_or_create_target_file()
        if target_file is None:
            raise NoPathAvailable(f"{task.path} cannot be created on {server}")
        if not server.fs_manager.can_file_fit_storage(target_file, task.file.size):
            raise NotEnoughSpaceLeft(f"{task.path} does not fit the storage of {server}")

    def _register_placeholder(
        self,
        task: SimulationTask,
        path: DfsPath,
        transfer_list: List[FsFile],
    ) -> StorageOperation:
        storage = path.target_storage
        if storage is None:
            raise NotMounted(f"{task.path} is not mounted on {path.target}")
        manager = storage.operation_manager
        if task.type is TaskType.GET:
            operation = manager.add_unmanaged_read_operation(transfer_list, path.current_link_bandwidth)
        else:
            operation = manager.add_unmanaged_write_operation(
                transfer_list, path.current_link_bandwidth, auto_reserve_space=True
            )
        path.running_operation = operation
        return operation

    def _update_storage_operations(self, interval_ms: int, time: int) -> None:
        servers = self.topology.servers
        for server in servers:
            server.storage_manager.update_storage_available_throughput(time)
        for server in servers:
            server.storage_manager.update_storage_transferred_size(interval_ms, time)


def _upload_rollback(task: SimulationTask, path: DfsPath) -> Callable[[], None]:
    server = path.target
    if server is None:
        raise NoPathAvailable("No path available")
    existing = server.root.get_child_object(task.path)

    if isinstance(existing, FsFile):
        previous_size = existing.size

        def restore_size() -> None:
            existing.size = previous_size

        return restore_size

    def remove_created() -> None:
        created = server.root.get_child_object(task.path)
        if existing is None and isinstance(created, FsFile):
            logger.debug("Removing %s left behind on %s by a failed upload", task.path, server)
            server.fs_manager.remove_directory_child(created)

    return remove_created


def _failure_state(exc: Exception) -> TaskResultState:
    if isinstance(exc, NotEnoughSpaceLeftReplica):
        return TaskResultState.NOT_ENOUGH_SPACE_FOR_REPLICA
    if isinstance(exc, NotEnoughSpaceLeft):
        return TaskResultState.NOT_ENOUGH_SPACE_ON_DEVICE
    if isinstance(exc, FsObjectNotFound):
        return TaskResultState.OBJECT_NOT_FOUND
    if isinstance(exc, NotMounted):
        return TaskResultState.OBJECT_NOT_MOUNTED
    return TaskResultState.NO_PATH_AVAILABLE
