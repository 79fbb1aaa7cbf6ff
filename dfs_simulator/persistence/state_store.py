from __future__ import annotations

import json
import logging
import os
from typing import Optional

from ..errors import InvalidPersistedState
from ..model.topology import Topology
from .codec import topology_from_dict, topology_to_dict

logger = logging.getLogger(__name__)


class TopologyStateStore:
    """A topology snapshot kept on disk as one JSON element tree.

    Writes go to a sibling ``.tmp`` file first and are moved into place, so a
    reader never sees half a snapshot.
    """

    DEFAULT_FILENAME = "dfs_simulator_state.json"

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = os.path.abspath(os.path.expanduser(path or self.DEFAULT_FILENAME))

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def save(self, topology: Topology) -> None:
        document = topology_to_dict(topology)
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        staged = self.path + ".tmp"
        with open(staged, "w", encoding="utf-8") as handle:
            json.dump(document, handle, indent=2, sort_keys=True)
        os.replace(staged, self.path)
        logger.info("Saved topology with %d node(s) to %s", len(topology.nodes), self.path)

    def load(self, strict: bool = True) -> Optional[Topology]:
        """Restore the saved topology, or None when nothing was saved yet.

        A snapshot that is not valid JSON or not a valid element tree raises
        InvalidPersistedState.
        """
        if not self.exists():
            return None
        with open(self.path, "r", encoding="utf-8") as handle:
            try:
                document = json.load(handle)
            except json.JSONDecodeError as exc:
                raise InvalidPersistedState(f"Snapshot {self.path} is not valid JSON: {exc}") from exc
        return topology_from_dict(document, strict)
