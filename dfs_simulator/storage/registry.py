"""Topology-wide index of which servers host which filesystem paths."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Tuple, Union

from .filesystem import FileSystemObject, FsFile

if TYPE_CHECKING:  # pragma: no cover
    from ..model.nodes import ServerNode


@dataclass
class RegistryEntry:
    """Servers and object instances registered under one full path.

    Both lists are appended together, so ``servers[i]`` hosts ``objects[i]``.
    """

    servers: List["ServerNode"] = field(default_factory=list)
    objects: List[FileSystemObject] = field(default_factory=list)

    def pairs(self) -> Iterator[Tuple["ServerNode", FileSystemObject]]:
        return zip(self.servers, self.objects)

    def is_empty(self) -> bool:
        return not self.servers or not self.objects


class ObjectRegistry:
    def __init__(self) -> None:
        self._entries: Dict[str, RegistryEntry] = {}

    def add_entry(self, obj: FileSystemObject, server: "ServerNode") -> None:
        entry = self._entries.setdefault(obj.full_path, RegistryEntry())
        entry.servers.append(server)
        entry.objects.append(obj)

    def remove_entry(self, obj: FileSystemObject, server: "ServerNode") -> None:
        path = obj.full_path
        entry = self._entries.get(path)
        if entry is None:
            return
        for index, (host, instance) in enumerate(entry.pairs()):
            if host is server and instance is obj:
                del entry.servers[index]
                del entry.objects[index]
                break
        if entry.is_empty():
            del self._entries[path]

    def remove_path(self, path: str) -> Optional[RegistryEntry]:
        return self._entries.pop(path, None)

    def add_path(self, path: str, entry: RegistryEntry) -> None:
        self._entries[path] = entry

    def get_entry(self, target: Union[str, FileSystemObject]) -> Optional[RegistryEntry]:
        path = target if isinstance(target, str) else target.full_path
        return self._entries.get(path)

    def get_entry_mounted_node_list(self, target: Union[str, FileSystemObject]) -> List["ServerNode"]:
        """Servers registered for the path, de-duplicated in registration order."""
        entry = self.get_entry(target)
        if entry is None:
            return []
        nodes: List["ServerNode"] = []
        for server in entry.servers:
            if server not in nodes:
                nodes.append(server)
        return nodes

    def paths(self) -> List[str]:
        return list(self._entries)

    def reset_access_counters(self) -> None:
        for entry in self._entries.values():
            for obj in entry.objects:
                if isinstance(obj, FsFile):
                    obj.access_count = 0

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)
