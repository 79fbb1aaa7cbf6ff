"""Exception hierarchy shared by the capacity model, routing and the simulator."""

from __future__ import annotations


class DfsSimulatorError(Exception):
    """Base class for every error raised by the simulator package."""


class NotEnoughSpaceLeft(DfsSimulatorError):
    """Raised when a storage device cannot hold the requested mount size."""


class NotEnoughSpaceLeftReplica(NotEnoughSpaceLeft):
    """Raised when one or more replicas cannot be resized to match an upload."""


class NotMounted(DfsSimulatorError):
    """Raised when a filesystem object exists but has no storage device."""


class FsObjectNotFound(DfsSimulatorError):
    """Raised when a path does not resolve on any server."""


class NoPathAvailable(DfsSimulatorError):
    """Raised when no reachable server satisfies the task target."""


class NoNeighboursAvailable(DfsSimulatorError):
    """Raised when the originating client has no links to any server."""


class ReplicationError(DfsSimulatorError):
    """Raised when replica propagation finds the topology inconsistent."""


class LabelError(DfsSimulatorError):
    """Raised on duplicate or invalid node identifiers."""


class InvalidPersistedState(DfsSimulatorError):
    """Raised when an exported state tree is malformed or cannot be applied."""
