"""Preset combinations of routing metric, dynamic re-routing and tier planning."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from ..hierarchy.planner import HierarchicalPlanner, LRUCascadeMigrationPlanner
from ..routing.metrics import (
    DistanceMetric,
    GraphMetric,
    HierarchicalThroughputMetric,
    LinkBandwidthLatencyMetric,
    LinkBandwidthMetric,
    PathThroughputLatencyMetric,
    PathThroughputMetric,
)

DEFAULT_RECALCULATION_INTERVAL_MS = 10000


class SimulationMode(Enum):
    SHORTEST = ("Shortest", DistanceMetric())
    LINK_BANDWIDTH = ("Link BW", LinkBandwidthMetric())
    LINK_BANDWIDTH_LATENCY = ("Link BW (min. latency)", LinkBandwidthLatencyMetric())
    PATH_THROUGHPUT = ("Max. throughput", PathThroughputMetric())
    PATH_THROUGHPUT_AND_LATENCY = ("Min. transfer time", PathThroughputLatencyMetric())
    DYNAMIC_PATH_THROUGHPUT_AND_LATENCY = (
        "Min. transfer time (dynamic)",
        PathThroughputLatencyMetric(),
        DEFAULT_RECALCULATION_INTERVAL_MS,
    )
    HIERARCHICAL_DYNAMIC_PATH_THROUGHPUT_AND_LATENCY = (
        "Hierarchical",
        PathThroughputLatencyMetric(),
        DEFAULT_RECALCULATION_INTERVAL_MS,
        LRUCascadeMigrationPlanner(),
    )
    HIERARCHICAL_DYNAMIC_PATH_THROUGHPUT_LATENCY_ADVANCED = (
        "Hierarchical (advanced)",
        HierarchicalThroughputMetric(),
        DEFAULT_RECALCULATION_INTERVAL_MS,
        LRUCascadeMigrationPlanner(),
    )

    def __init__(
        self,
        label: str,
        metric: GraphMetric,
        recalculation_interval_ms: int = -1,
        planner: Optional[HierarchicalPlanner] = None,
    ) -> None:
        self.label = label
        self.metric = metric
        self.recalculation_interval_ms = recalculation_interval_ms
        self.planner = planner

    @property
    def dynamic_routing(self) -> bool:
        return self.recalculation_interval_ms >= 0

    @property
    def hierarchical(self) -> bool:
        return self.planner is not None

    @classmethod
    def from_name(cls, name: str) -> "SimulationMode":
        """Look a mode up by member name (case-insensitive) or by label."""
        for mode in cls:
            if mode.name == name.upper() or mode.label == name:
                return mode
        raise KeyError(f"unknown simulation mode {name!r}")

    def __str__(self) -> str:
        return self.label
