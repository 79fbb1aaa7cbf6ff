"""Replica consistency: the set of servers holding a file path and its upkeep."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..errors import FsObjectNotFound, NoPathAvailable, NotEnoughSpaceLeft, NotMounted, ReplicationError
from ..units import SizeLike, as_bytes
from .devices import ServerStorage
from .filesystem import FileSystemObject, FsDirectory, FsFile
from .operations import OperationCallback
from .registry import ObjectRegistry

if TYPE_CHECKING:  # pragma: no cover
    from ..model.nodes import ServerNode
    from ..routing.picker import MetricPathPicker
    from ..simulation.loggers import SimulatorLogger
    from ..simulation.modes import SimulationMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplicaTarget:
    """A server holding a replica and the device it resolves to there."""

    server: "ServerNode"
    storage: ServerStorage


class ReplicationManager:
    def __init__(self, registry: ObjectRegistry) -> None:
        self.registry = registry

    # -- replica set --------------------------------------------------

    def get_replica_targets(self, file: FileSystemObject) -> List[ReplicaTarget]:
        targets: List[ReplicaTarget] = []
        for server in self.registry.get_entry_mounted_node_list(file):
            storage = server.fs_manager.get_fs_object_mount_device_by_name(file)
            if storage is not None:
                targets.append(ReplicaTarget(server, storage))
        return targets

    def is_file_replicated(self, file: FsFile) -> bool:
        return len(self.get_replica_targets(file)) > 1

    def get_replica_instance(self, path: str) -> Optional[FsFile]:
        entry = self.registry.get_entry(path)
        if entry is not None and entry.objects and isinstance(entry.objects[0], FsFile):
            return entry.objects[0]
        return None

    # -- placement ----------------------------------------------------

    def replicate_file(self, file: FsFile, targets: Sequence[ReplicaTarget]) -> None:
        """Place ``file`` on every target, or on none when any target lacks space."""
        for target in targets:
            unused = target.server.fs_manager.storage_unused_size(target.storage)
            if unused < file.size:
                raise NotEnoughSpaceLeft(
                    f"Server {target.server} does not have enough space on storage {target.storage}"
                )
        self.force_replicate_file(file, targets)

    def force_replicate_file(self, file: FsFile, targets: Sequence[ReplicaTarget]) -> None:
        """Place ``file`` on every target, growing storages where needed."""
        parent_path = file.parent.full_path if file.parent is not None else "/"
        for target in targets:
            fs_manager = target.server.fs_manager
            directory = fs_manager.resolve(parent_path, create=True)
            if not isinstance(directory, FsDirectory):
                raise ReplicationError(f"cannot create {parent_path} on {target.server}")
            replica = directory.get_by_name_and_type(file.name, file.type)
            if isinstance(replica, FsFile):
                fs_manager.force_mount(target.storage, replica)
            else:
                replica = FsFile(file.name, file.size)
                # mounted before attaching so the parent's device is not charged
                fs_manager.force_mount(target.storage, replica)
                fs_manager.add_directory_child(directory, replica)
            logger.debug("Replicated %s to %s on %s", file.full_path, target.server, target.storage.id)

    def update_replica_targets(self, file: FsFile, new_targets: Sequence[ReplicaTarget]) -> None:
        if not self._update_replica_targets(file, new_targets, force=False):
            raise NotEnoughSpaceLeft("One or more targets does not have enough space.")

    def force_update_replica_targets(self, file: FsFile, new_targets: Sequence[ReplicaTarget]) -> None:
        self._update_replica_targets(file, new_targets, force=True)

    def _update_replica_targets(self, file: FsFile, new_targets: Sequence[ReplicaTarget], force: bool) -> bool:
        current = self.get_replica_targets(file)
        additions = [target for target in new_targets if target not in current]
        new_servers = [target.server for target in new_targets]
        removals = [target for target in current if not any(target.server is s for s in new_servers)]

        path = file.full_path
        for target in removals:
            target.server.fs_manager.remove_directory_child(path)

        if force:
            self.force_replicate_file(file, additions)
            return True
        try:
            self.replicate_file(file, additions)
        except NotEnoughSpaceLeft:
            return False
        return True

    # -- resize -------------------------------------------------------

    def can_replica_be_resized(self, file: FsFile, targets: Optional[Sequence[ReplicaTarget]] = None) -> bool:
        if targets is None:
            targets = self.get_replica_targets(file)
        for target in targets:
            if target.server.fs_manager.storage_unused_size(target.storage) < file.size:
                return False
        return True

    def resize_replicated_file(self, file: FsFile, new_size: SizeLike) -> None:
        new_bytes = as_bytes(new_size)
        if new_bytes > file.size:
            for server, instance in self._server_instances(file):
                if not server.fs_manager.can_file_fit_storage(instance, new_bytes):
                    raise NotEnoughSpaceLeft(f"Not enough space left on server id {server.node_id}")
        self.force_resize_replicated_file(file, new_bytes)

    def force_resize_replicated_file(self, file: FsFile, new_size: SizeLike) -> None:
        new_bytes = as_bytes(new_size)
        for server, instance in self._server_instances(file):
            if not server.fs_manager.can_file_fit_storage(instance, new_bytes):
                server.fs_manager.resize_storage_to_fit(instance, new_bytes)
            instance.size = new_bytes

    def _server_instances(self, file: FsFile) -> List[tuple]:
        pairs = []
        for server in self.registry.get_entry_mounted_node_list(file):
            instance = server.root.get_child_object(file.full_path)
            if isinstance(instance, FsFile):
                pairs.append((server, instance))
        return pairs

    # -- rename and delete --------------------------------------------

    def rename_replicated_object(self, obj: FileSystemObject, new_name: str) -> None:
        entry = self.registry.get_entry(obj)
        if entry is None:
            return
        if isinstance(obj, FsFile) and not (FsFile.NAME_MIN_LENGTH <= len(new_name) <= FsFile.NAME_MAX_LENGTH):
            raise ValueError(f"invalid file name {new_name!r}")
        for instance in entry.objects:
            parent = instance.parent
            if parent is not None and parent.get_by_name_and_type(new_name, instance.type) is not None:
                raise ValueError(f"{parent.full_path} already contains {new_name!r}")

        old_path = obj.full_path
        moved = [
            path for path in self.registry.paths()
            if path == old_path or (obj.is_directory() and path.startswith(old_path))
        ]
        detached = {path: self.registry.remove_path(path) for path in moved}
        for instance in entry.objects:
            instance.name = new_name
        new_path = obj.full_path
        for path, moved_entry in detached.items():
            self.registry.add_path(new_path + path[len(old_path):], moved_entry)

    def delete_replicated_object(self, obj: FileSystemObject) -> None:
        entry = self.registry.get_entry(obj)
        if entry is None:
            return
        path = obj.full_path
        for server in list(entry.servers):
            server.fs_manager.remove_directory_child(path)
        self.registry.remove_path(path)

    # -- propagation --------------------------------------------------

    def propagate_replica_resize(
        self,
        file: FsFile,
        origin: "ServerNode",
        picker: "MetricPathPicker",
        mode: "SimulationMode",
        sim_logger: "SimulatorLogger",
        time: int,
    ) -> None:
        """Schedule replication of a freshly uploaded ``file`` to its other replicas."""
        from ..simulation.tasks import PutSimulationTask

        origin_storage = origin.fs_manager.get_fs_object_mount_device(file)
        if origin_storage is None:
            return
        dummy_task = PutSimulationTask(file)
        for replica in self.get_replica_targets(file):
            if replica.server is origin:
                continue
            try:
                path = picker.select_path(origin, dummy_task, time, replica.server, mode)
            except (FsObjectNotFound, NotMounted, NoPathAvailable) as exc:
                sim_logger.error(f"Unable to replicate file due to an exception: {exc}", time)
                raise ReplicationError(
                    f"Unable to replicate file {file} from server {origin} to server {replica.server}: {exc}"
                ) from exc
            replica.storage.operation_manager.add_replication_operation(
                [file],
                origin_storage,
                path.current_link_bandwidth,
                self._replication_callback(file, origin, replica, sim_logger),
            )

    @staticmethod
    def _replication_callback(
        file: FsFile,
        origin: "ServerNode",
        replica: ReplicaTarget,
        sim_logger: "SimulatorLogger",
    ) -> OperationCallback:
        def started(time: int) -> None:
            sim_logger.replication_started(file, origin, replica.server, time)

        def finished(time: int) -> None:
            replica_file = replica.server.root.get_child_object(file.full_path)
            if isinstance(replica_file, FsFile):
                replica_file.size = file.size
            sim_logger.replication_finished(file, origin, replica.server, time)

        return OperationCallback(on_started=started, on_finished=finished)
