"""Hierarchical filesystem tree hosted by each server.

Directories own their children through a plain list; children keep a
back-reference to their parent for path reconstruction and mount-chain
resolution. Directory aggregates (total size and mount size) are cached and
invalidated up the ancestor chain whenever a child set, a file size or an
inheritance flag changes.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import TYPE_CHECKING, Callable, Iterator, List, Optional

from ..units import SizeLike, as_bytes

if TYPE_CHECKING:  # pragma: no cover
    from .devices import ServerStorage

PATH_SEPARATOR = "/"
ROOT_NAME = PATH_SEPARATOR

AttachCallback = Callable[["FsDirectory", "FileSystemObject"], None]


class FsObjectType(Enum):
    DIRECTORY = auto()
    FILE = auto()


class FileSystemObject:
    """Common state of files and directories."""

    type: FsObjectType

    def __init__(self, name: str, parent: Optional["FsDirectory"] = None) -> None:
        self._name = name
        self._parent = parent
        self._inherited_mount_device = True
        self._mount_device: Optional["ServerStorage"] = None
        self.migrating = False
        # bumped on the tree root for every rename or re-parenting below it
        self._layout_version = 0

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        if value != self._name:
            self._name = value
            self._touch_layout()

    @property
    def parent(self) -> Optional["FsDirectory"]:
        return self._parent

    @parent.setter
    def parent(self, value: Optional["FsDirectory"]) -> None:
        if value is not self._parent:
            self._touch_layout()
            self._parent = value
            self._touch_layout()

    @property
    def inherited_mount_device(self) -> bool:
        return self._inherited_mount_device

    @inherited_mount_device.setter
    def inherited_mount_device(self, value: bool) -> None:
        if value != self._inherited_mount_device:
            self._inherited_mount_device = value
            if self._parent is not None:
                self._parent.invalidate_sizes()

    @property
    def mount_device(self) -> Optional["ServerStorage"]:
        return self._mount_device

    @property
    def mount_device_id(self) -> str:
        """Storage id, bracketed when the device is inherited from an ancestor."""
        if self._mount_device is None:
            return ""
        if self._inherited_mount_device:
            return f"[{self._mount_device.id}]"
        return self._mount_device.id

    @property
    def layout_version(self) -> int:
        """Rename and re-parenting count of the tree this object roots."""
        return self._layout_version

    def _touch_layout(self) -> None:
        top: FileSystemObject = self
        while top._parent is not None:
            top = top._parent
        top._layout_version += 1

    def on_mount_device_changed(self, storage: Optional["ServerStorage"]) -> None:
        self._mount_device = storage

    @property
    def size(self) -> int:
        raise NotImplementedError

    @property
    def mount_size(self) -> int:
        raise NotImplementedError

    @property
    def full_path(self) -> str:
        raise NotImplementedError

    @property
    def relative_path(self) -> str:
        raise NotImplementedError

    def is_directory(self) -> bool:
        return self.type is FsObjectType.DIRECTORY

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.full_path!r})"

    def __str__(self) -> str:
        return self.full_path


class FsFile(FileSystemObject):
    type = FsObjectType.FILE

    NAME_MIN_LENGTH = 1
    NAME_MAX_LENGTH = 20

    def __init__(self, name: str, size: SizeLike = 0, parent: Optional["FsDirectory"] = None) -> None:
        if not (self.NAME_MIN_LENGTH <= len(name) <= self.NAME_MAX_LENGTH):
            raise ValueError(
                f"file name must be {self.NAME_MIN_LENGTH}-{self.NAME_MAX_LENGTH} characters long: {name!r}"
            )
        if PATH_SEPARATOR in name:
            raise ValueError(f"file name cannot contain {PATH_SEPARATOR!r}: {name!r}")
        super().__init__(name, parent)
        size_bytes = as_bytes(size)
        if size_bytes < 0:
            raise ValueError("file size must be non-negative")
        self._size = size_bytes
        self.access_count = 0

    @property
    def size(self) -> int:
        return self._size

    @size.setter
    def size(self, value: SizeLike) -> None:
        size_bytes = as_bytes(value)
        if size_bytes < 0:
            raise ValueError("file size must be non-negative")
        if size_bytes != self._size:
            self._size = size_bytes
            if self._parent is not None:
                self._parent.invalidate_sizes()

    @property
    def mount_size(self) -> int:
        return self._size

    def increment_access_counter(self) -> None:
        self.access_count += 1

    @property
    def full_path(self) -> str:
        if self._parent is None:
            return self._name
        return self._parent.full_path + self._name

    @property
    def relative_path(self) -> str:
        return self._name


class FsDirectory(FileSystemObject):
    type = FsObjectType.DIRECTORY

    def __init__(self, name: str, parent: Optional["FsDirectory"] = None) -> None:
        super().__init__(name, parent)
        self._children: List[FileSystemObject] = []
        self._total_size: Optional[int] = None
        self._mount_size: Optional[int] = None

    @property
    def children(self) -> List[FileSystemObject]:
        """Read-only view; mutate through ``attach_child``/``detach_child``."""
        return list(self._children)

    def __iter__(self) -> Iterator[FileSystemObject]:
        return iter(list(self._children))

    def __len__(self) -> int:
        return len(self._children)

    def attach_child(self, child: FileSystemObject) -> None:
        self._children.append(child)
        child.parent = self
        self.invalidate_sizes()

    def detach_child(self, child: FileSystemObject) -> None:
        if child in self._children:
            self._children.remove(child)
            self.invalidate_sizes()

    def get_by_name_and_type(self, name: str, object_type: FsObjectType) -> Optional[FileSystemObject]:
        for child in self._children:
            if child.name == name and child.type is object_type:
                return child
        return None

    def invalidate_sizes(self) -> None:
        directory: Optional[FsDirectory] = self
        while directory is not None:
            directory._total_size = None
            directory._mount_size = None
            directory = directory.parent

    @property
    def size(self) -> int:
        if self._total_size is None:
            self._total_size = sum(child.size for child in self._children)
        return self._total_size

    @property
    def total_size(self) -> int:
        return self.size

    @property
    def mount_size(self) -> int:
        if self._mount_size is None:
            self._mount_size = sum(
                child.mount_size for child in self._children if child.inherited_mount_device
            )
        return self._mount_size

    def on_mount_device_changed(self, storage: Optional["ServerStorage"]) -> None:
        super().on_mount_device_changed(storage)
        for child in self._children:
            if child.inherited_mount_device:
                child.on_mount_device_changed(storage)

    @property
    def full_path(self) -> str:
        if self._parent is not None:
            return self._parent.full_path + self._name + PATH_SEPARATOR
        if self._name == ROOT_NAME:
            return ROOT_NAME
        return self._name + PATH_SEPARATOR

    @property
    def relative_path(self) -> str:
        return self._name + PATH_SEPARATOR

    def walk(self) -> Iterator[FileSystemObject]:
        """Yield every descendant, depth first."""
        for child in list(self._children):
            yield child
            if isinstance(child, FsDirectory):
                yield from child.walk()

    def files(self) -> Iterator["FsFile"]:
        for obj in self.walk():
            if isinstance(obj, FsFile):
                yield obj

    def get_child_object(
        self,
        path: str,
        create: bool = False,
        attach: Optional[AttachCallback] = None,
    ) -> Optional[FileSystemObject]:
        """Resolve ``path`` below this directory.

        A trailing separator selects a directory, a leading one is only
        accepted on the root. With ``create`` set, missing directories and
        files (size 0) are created and handed to ``attach`` (defaults to a
        plain ``attach_child``).
        """
        if self._parent is None and path == self._name:
            return self
        if len(path) > 1 and path.endswith(PATH_SEPARATOR):
            return self._resolve(path[:-1], True, create, attach)
        return self._resolve(path, False, create, attach)

    def _resolve(
        self,
        path: str,
        is_directory: bool,
        create: bool,
        attach: Optional[AttachCallback],
    ) -> Optional[FileSystemObject]:
        if path.startswith(PATH_SEPARATOR):
            if self._name != ROOT_NAME:
                return None
            path = path[1:]
        if not path:
            return self if is_directory else None

        if PATH_SEPARATOR in path:
            head, rest = path.split(PATH_SEPARATOR, 1)
            directory = self.get_by_name_and_type(head, FsObjectType.DIRECTORY)
            if directory is None and create:
                directory = FsDirectory(head, self)
                self._attach_created(directory, attach)
            if not isinstance(directory, FsDirectory):
                return None
            if is_directory:
                rest += PATH_SEPARATOR
            return directory.get_child_object(rest, create, attach)

        wanted = FsObjectType.DIRECTORY if is_directory else FsObjectType.FILE
        found = self.get_by_name_and_type(path, wanted)
        if found is None and create:
            found = FsDirectory(path, self) if is_directory else FsFile(path, 0, self)
            self._attach_created(found, attach)
        return found

    def _attach_created(self, obj: FileSystemObject, attach: Optional[AttachCallback]) -> None:
        if attach is None:
            self.attach_child(obj)
        else:
            attach(self, obj)


def split_path(path: str) -> tuple:
    """Split ``/a/b/c`` into (``/a/b``, ``c``); the parent of a root entry is ``/``."""
    if path.endswith(PATH_SEPARATOR):
        raise ValueError(f"path names a directory: {path!r}")
    index = path.rfind(PATH_SEPARATOR)
    parent, name = path[:index], path[index + 1:]
    return (parent or ROOT_NAME), name
