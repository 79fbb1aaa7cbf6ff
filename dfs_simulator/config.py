"""Configuration primitives for the simulator engine, HTTP service and CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


@dataclass
class EngineConfig:
    time_resolution_ms: int = 500
    recalculation_interval_ms: Optional[int] = None
    default_mode: str = "SHORTEST"


@dataclass
class ApiConfig:
    title: str = "DFS Simulator"
    version: str = "0.1.0"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "[%(asctime)s] %(levelname)s %(message)s"


@dataclass
class StateConfig:
    snapshot_path: Optional[str] = field(
        default_factory=lambda: str(Path.home() / ".dfs_simulator" / "topology_state.json")
    )


@dataclass
class SimulatorConfig:
    engine: EngineConfig
    api: ApiConfig
    logging: LoggingConfig
    state: StateConfig

    @staticmethod
    def default() -> "SimulatorConfig":
        return SimulatorConfig(
            engine=EngineConfig(),
            api=ApiConfig(),
            logging=LoggingConfig(),
            state=StateConfig(),
        )

    @staticmethod
    def from_env() -> "SimulatorConfig":
        """Defaults overlaid with ``DFS_SIM_*`` environment variables."""
        config = SimulatorConfig.default()
        recalc = os.environ.get("DFS_SIM_RECALC_INTERVAL_MS")
        if recalc:
            config.engine.recalculation_interval_ms = int(recalc)
        config.engine.default_mode = os.environ.get("DFS_SIM_DEFAULT_MODE", config.engine.default_mode)
        config.logging.level = os.environ.get("DFS_SIM_LOG_LEVEL", config.logging.level).upper()
        origins = os.environ.get("DFS_SIM_CORS_ORIGINS")
        if origins:
            config.api.cors_origins = [origin.strip() for origin in origins.split(",") if origin.strip()]
        config.state.snapshot_path = os.environ.get("DFS_SIM_STATE_PATH", config.state.snapshot_path)
        return config
