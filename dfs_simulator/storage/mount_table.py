"""Per-server mount table: which filesystem object lives on which device.

Only direct mounts are stored. Everything below a mounted directory inherits
its device until it gets an entry of its own, and a device's used size is the
sum of the mount sizes of the objects mounted on it directly.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple, Union

from ..errors import NotEnoughSpaceLeft
from ..units import SizeLike, as_bytes, format_size
from .devices import ServerStorage
from .filesystem import PATH_SEPARATOR, FileSystemObject, FsDirectory, FsFile

if TYPE_CHECKING:  # pragma: no cover
    from ..model.nodes import ServerNode
    from .registry import ObjectRegistry

logger = logging.getLogger(__name__)


class AddChildResult(Enum):
    ADDED = "added"
    MERGED = "merged"
    REFUSED = "refused"


class ServerFileSystemManager:
    def __init__(self, server: "ServerNode", registry: Optional["ObjectRegistry"] = None) -> None:
        self.server = server
        self.registry = registry
        self._entries: Dict[FileSystemObject, ServerStorage] = {}
        self._mounted: Dict[ServerStorage, List[FileSystemObject]] = {}
        self._changes = 0
        self._path_index: Dict[str, ServerStorage] = {}
        self._path_index_version: Optional[Tuple[int, int]] = None

    @property
    def root(self) -> FsDirectory:
        return self.server.root

    def entries(self) -> List[Tuple[FileSystemObject, ServerStorage]]:
        return list(self._entries.items())

    # -- tree structure -----------------------------------------------

    def add_directory_child(self, parent: FsDirectory, child: FileSystemObject) -> AddChildResult:
        parent_storage = self.get_fs_object_mount_device(parent)
        child_storage = self.get_fs_object_mount_entry(child)
        existing = parent.get_child_object(child.relative_path)

        if parent_storage is not None and child_storage is None:
            removable = existing.mount_size if existing is not None else 0
            unused = self.storage_unused_size(parent_storage)
            if unused + removable - child.mount_size < 0:
                raise NotEnoughSpaceLeft(
                    f"Storage {parent_storage.id} has only {format_size(unused)} available "
                    f"but {format_size(child.mount_size)} is required"
                )

        if existing is None:
            self._attach(parent, child)
            return AddChildResult.ADDED
        if isinstance(child, FsFile) and isinstance(existing, FsFile):
            self.remove_directory_child(existing)
            self._attach(parent, child)
            return AddChildResult.ADDED
        if isinstance(child, FsDirectory) and isinstance(existing, FsDirectory):
            self._merge(existing, child)
            # callers keep using the merged-away directory for its full path
            child.parent = parent
            return AddChildResult.MERGED
        return AddChildResult.REFUSED

    def _merge(self, existing: FsDirectory, incoming: FsDirectory) -> None:
        for obj in incoming.children:
            incoming.detach_child(obj)
            current = existing.get_child_object(obj.relative_path)
            if current is None:
                self._attach(existing, obj)
            elif isinstance(obj, FsDirectory) and isinstance(current, FsDirectory):
                self._merge(current, obj)
            else:
                self.remove_directory_child(current)
                self._attach(existing, obj)

    def _attach(self, parent: FsDirectory, child: FileSystemObject) -> None:
        parent.attach_child(child)
        self._register(child)
        child.on_mount_device_changed(self.get_fs_object_mount_device(child))
        self._changes += 1

    def _register(self, obj: FileSystemObject) -> None:
        if self.registry is None:
            return
        self.registry.add_entry(obj, self.server)
        if isinstance(obj, FsDirectory):
            for descendant in obj.walk():
                self.registry.add_entry(descendant, self.server)

    def _deregister(self, obj: FileSystemObject) -> None:
        if self.registry is None:
            return
        if isinstance(obj, FsDirectory):
            for descendant in obj.walk():
                self.registry.remove_entry(descendant, self.server)
        self.registry.remove_entry(obj, self.server)

    def register_tree(self) -> None:
        """Register the root and every descendant; used when the server joins a topology."""
        self._register(self.root)

    def remove_directory_child(self, child: Union[FileSystemObject, str]) -> None:
        if isinstance(child, str):
            found = self.root.get_child_object(child)
            if found is None:
                return
            child = found
        self._deregister(child)
        if isinstance(child, FsDirectory):
            for descendant in child.walk():
                self._unmount(descendant)
        self._unmount(child)
        if child.parent is not None:
            child.parent.detach_child(child)
        self._changes += 1

    def resolve(self, path: str, create: bool = False) -> Optional[FileSystemObject]:
        """Look ``path`` up on this server; created objects are attached through the table."""
        return self.root.get_child_object(path, create, attach=self._attach_created)

    def _attach_created(self, parent: FsDirectory, obj: FileSystemObject) -> None:
        self.add_directory_child(parent, obj)

    # -- mount resolution ---------------------------------------------

    def get_fs_object_mount_entry(self, obj: FileSystemObject) -> Optional[ServerStorage]:
        return self._entries.get(obj)

    def get_fs_object_mount_device(self, obj: FileSystemObject) -> Optional[ServerStorage]:
        current: Optional[FileSystemObject] = obj
        while current is not None:
            storage = self._entries.get(current)
            if storage is not None:
                return storage
            current = current.parent
        return None

    def get_fs_object_mount_device_by_name(self, obj: FileSystemObject) -> Optional[ServerStorage]:
        """Mount device of whatever sits at ``obj``'s full path on this server.

        Walks the path prefixes (``/a/b/c``, ``/a/b/``, ``/a/``, ``/``) so
        instances from other servers and detached upload directories resolve
        the same way as this server's own objects.
        """
        index = self._current_path_index()
        if not index:
            return None
        for path in _path_prefixes(obj.full_path):
            storage = index.get(path)
            if storage is not None:
                return storage
        return None

    def _current_path_index(self) -> Dict[str, ServerStorage]:
        version = (self._changes, self.root.layout_version)
        if self._path_index_version != version:
            self._path_index = {obj.full_path: storage for obj, storage in self._entries.items()}
            self._path_index_version = version
        return self._path_index

    def get_mountable_hierarchy(self, root: FsDirectory) -> List[FileSystemObject]:
        mountable: List[FileSystemObject] = [root]
        for obj in root.children:
            if obj in self._entries:
                continue
            if isinstance(obj, FsDirectory):
                mountable.extend(self.get_mountable_hierarchy(obj))
            else:
                mountable.append(obj)
        return mountable

    # -- mounting -----------------------------------------------------

    def mount(self, storage: ServerStorage, obj: FileSystemObject) -> None:
        unused = self.storage_unused_size(storage) + self._held_on(storage, obj)
        if unused - obj.mount_size < 0:
            raise NotEnoughSpaceLeft(
                f"Storage {storage.id} has only {format_size(unused)} available "
                f"but {format_size(obj.mount_size)} is required"
            )
        self.force_mount(storage, obj)

    def force_mount(self, storage: ServerStorage, obj: FileSystemObject) -> None:
        unused = self.storage_unused_size(storage) + self._held_on(storage, obj)
        over = obj.mount_size - unused
        if over > 0:
            logger.debug("Growing %s by %d B to fit %s", storage.id, over, obj.full_path)
            self.resize_storage(storage, over)
        self._unmount(obj)
        self._mount(storage, obj)

    def unmount(self, obj: FileSystemObject) -> None:
        self._unmount(obj)

    def _held_on(self, storage: ServerStorage, obj: FileSystemObject) -> int:
        return obj.mount_size if self._entries.get(obj) is storage else 0

    def _mount(self, storage: ServerStorage, obj: FileSystemObject) -> None:
        self._entries[obj] = storage
        self._mounted.setdefault(storage, []).append(obj)
        obj.inherited_mount_device = False
        obj.on_mount_device_changed(storage)
        self._changes += 1

    def _unmount(self, obj: FileSystemObject) -> None:
        storage = self._entries.pop(obj, None)
        if storage is None:
            return
        mounted = self._mounted.get(storage)
        if mounted is not None and obj in mounted:
            mounted.remove(obj)
        obj.inherited_mount_device = True
        obj.on_mount_device_changed(self.get_fs_object_mount_device(obj))
        self._changes += 1

    # -- storage accounting -------------------------------------------

    def get_object_list_size(self, objects: Iterable[FileSystemObject]) -> int:
        return sum(obj.size for obj in objects if isinstance(obj, FsFile))

    def is_storage_used(self, storage: ServerStorage) -> bool:
        return bool(self._mounted.get(storage))

    def storage_used_size(self, storage: ServerStorage) -> int:
        return sum(obj.mount_size for obj in self._mounted.get(storage, ()))

    def storage_unused_size(self, storage: ServerStorage) -> int:
        return storage.size - self.storage_used_size(storage)

    def remove_storage(self, storage: ServerStorage) -> None:
        for obj in self._mounted.pop(storage, []):
            self._entries.pop(obj, None)
            obj.inherited_mount_device = True
            obj.on_mount_device_changed(self.get_fs_object_mount_device(obj))
        self._changes += 1

    def can_file_fit_storage(self, file: FsFile, new_size: SizeLike) -> bool:
        new_bytes = as_bytes(new_size)
        if new_bytes <= file.size:
            return True
        storage = self.get_fs_object_mount_device(file)
        return storage is None or self.storage_unused_size(storage) >= new_bytes - file.size

    def resize_storage(self, storage: ServerStorage, increment: SizeLike) -> None:
        storage.size += as_bytes(increment)

    def resize_storage_to_fit(self, file: FsFile, new_size: SizeLike) -> None:
        new_bytes = as_bytes(new_size)
        if new_bytes <= file.size:
            return
        storage = self.get_fs_object_mount_device(file)
        if storage is None:
            return
        missing = (new_bytes - file.size) - self.storage_unused_size(storage)
        if missing > 0:
            self.resize_storage(storage, missing)

    def get_storage_mounted_files(self, storage: ServerStorage) -> List[FsFile]:
        files: List[FsFile] = []
        for obj in self._mounted.get(storage, ()):
            if isinstance(obj, FsFile):
                files.append(obj)
            else:
                self._collect_sharing_files(obj, files)
        return files

    def _collect_sharing_files(self, directory: FsDirectory, files: List[FsFile]) -> None:
        for obj in directory.children:
            if obj in self._entries:
                continue
            if isinstance(obj, FsFile):
                files.append(obj)
            else:
                self._collect_sharing_files(obj, files)


def _path_prefixes(path: str) -> List[str]:
    prefixes = [path]
    end = len(path) - 1 if path.endswith(PATH_SEPARATOR) else len(path)
    while True:
        end = path.rfind(PATH_SEPARATOR, 0, end)
        if end < 0:
            break
        prefixes.append(path[:end + 1])
    return prefixes
