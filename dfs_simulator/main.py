from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import SimulatorConfig
from .errors import InvalidPersistedState
from .persistence.state_store import TopologyStateStore
from .scenarios import SCENARIOS, DemoResult, run_scenario
from .simulation.engine import TimeSliceSimulator
from .simulation.loggers import StringSimulatorLogger
from .simulation.modes import SimulationMode

logger = logging.getLogger(__name__)


def _print_results(results: List[dict]) -> None:
    if not results:
        print("  No tasks recorded.")
        return
    for result in results:
        task = result.get("task", {})
        print(
            "  - {type} {path} | {label} | {size} B | {time} ms | {speed} B/s".format(
                type=task.get("type"),
                path=task.get("path"),
                label=result.get("label"),
                size=task.get("size", 0),
                time=result.get("total_time_ms", 0),
                speed=result.get("average_speed_bps", 0),
            )
        )
        for path in result.get("paths", []):
            print(f"      route {path['route']} ({path['latency_ms']} ms) at {path['selected_at_ms']} ms")


def _print_summary(summary: dict) -> None:
    print(f"\n=== Scenario: {summary.get('scenario')} [{summary.get('mode')}] ===")
    if summary.get("events"):
        print("  Sample events:")
        for line in summary["events"]:
            print(f"    {line}")
    aggregates = summary.get("summary", {})
    print("  Tasks:")
    _print_results(aggregates.get("results", []))
    print(
        "  Totals: {elapsed} ms, {down} B down, {up} B up, {speed} B/s average".format(
            elapsed=aggregates.get("total_elapsed_time_ms", 0),
            down=aggregates.get("total_downloaded_bytes", 0),
            up=aggregates.get("total_uploaded_bytes", 0),
            speed=aggregates.get("total_average_speed_bps", 0),
        )
    )
    if "placement" in summary:
        print(f"  Placement: {summary['placement']}")


def _run_topology_file(path: str, client_id: Optional[str], mode: SimulationMode, config: SimulatorConfig, limit: int) -> DemoResult:
    topology = TopologyStateStore(path).load()
    if topology is None:
        raise FileNotFoundError(f"No readable topology at {path}")
    if client_id is None:
        if not topology.clients:
            raise KeyError(f"topology {path} has no client node")
        client = topology.clients[0]
    else:
        client = topology.get_client(client_id)
    simulator = TimeSliceSimulator(
        topology,
        client,
        mode,
        recalculation_interval_ms=config.engine.recalculation_interval_ms,
        time_resolution_ms=config.engine.time_resolution_ms,
    )
    sim_logger = StringSimulatorLogger()
    result = simulator.run(sim_logger)
    return DemoResult(scenario=path, mode=mode.label, events=sim_logger.messages[:limit], summary=result.to_dict())


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Distributed file system simulator")
    parser.add_argument(
        "--scenario",
        choices=["all", *SCENARIOS.keys()],
        default="download",
        help="Name of the built-in scenario to execute",
    )
    parser.add_argument("--topology", help="Simulate a saved topology JSON file instead of a scenario")
    parser.add_argument("--client", help="Client node whose plan is simulated (defaults to the first client)")
    parser.add_argument("--mode", help="Simulation mode name or label, used with --topology")
    parser.add_argument(
        "--max-events",
        type=int,
        default=25,
        help="Maximum number of events to capture per run",
    )
    parser.add_argument("--list", action="store_true", help="List scenarios and simulation modes and exit")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit raw JSON summaries instead of formatted text",
    )
    parser.add_argument("--log-level", help="Override the DFS_SIM_LOG_LEVEL logging level")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    config = SimulatorConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, (args.log_level or config.logging.level).upper(), logging.INFO),
        format=config.logging.format,
    )

    if args.list:
        print("Available scenarios:")
        for name in SCENARIOS:
            print(f"  - {name}")
        print("Simulation modes:")
        for mode in SimulationMode:
            print(f"  - {mode.name} ({mode.label})")
        return 0

    summaries = []
    if args.topology:
        try:
            mode = SimulationMode.from_name(args.mode or config.engine.default_mode)
            summaries.append(_run_topology_file(args.topology, args.client, mode, config, args.max_events))
        except (KeyError, FileNotFoundError, InvalidPersistedState) as exc:
            logger.error("Cannot simulate %s: %s", args.topology, exc)
            return 1
    else:
        scenario_names = list(SCENARIOS.keys()) if args.scenario == "all" else [args.scenario]
        for name in scenario_names:
            summaries.append(run_scenario(name, event_limit=args.max_events))

    if args.json:
        print(json.dumps(summaries, indent=2))
        return 0

    for summary in summaries:
        _print_summary(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
