"""Built-in demo topologies exercising routing, capacity, replication and tiering."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .model.connection import LineConnectionCharacteristic
from .model.nodes import ClientNode, ServerNode
from .model.topology import Topology
from .simulation.engine import TimeSliceSimulator
from .simulation.loggers import EventSimulatorLogger
from .simulation.modes import SimulationMode
from .simulation.results import SimulationResult
from .simulation.tasks import GetSimulationTask, PutSimulationTask
from .storage.devices import ServerStorage
from .storage.filesystem import FsDirectory, FsFile, split_path
from .units import ByteSize, ByteSpeed, SizeUnit, SpeedUnit

MB = 1000 * 1000


class DemoResult(dict):
    """Typed dict wrapper for scenario summaries."""


@dataclass
class ScenarioSetup:
    topology: Topology
    client: ClientNode
    mode: SimulationMode
    recalculation_interval_ms: Optional[int] = None

    def simulator(self) -> TimeSliceSimulator:
        return TimeSliceSimulator(
            self.topology,
            self.client,
            self.mode,
            recalculation_interval_ms=self.recalculation_interval_ms,
        )


def _make_event_logger(event_log: List[str], limit: int) -> Callable[[Dict[str, object]], None]:
    def _logger(event: Dict[str, object]) -> None:
        if len(event_log) >= limit:
            return
        event_type = event.get("type", "unknown")
        timestamp = event.get("time", 0)
        details = {k: v for k, v in event.items() if k not in {"type", "time"}}
        event_log.append(f"[{timestamp} ms] {event_type} {details}")

    return _logger


def add_file(server: ServerNode, path: str, size: int) -> FsFile:
    """Create ``path`` on ``server`` through its mount table, creating parent directories."""
    parent_path, name = split_path(path)
    directory = server.fs_manager.resolve(parent_path if parent_path.endswith("/") else parent_path + "/", create=True)
    if not isinstance(directory, FsDirectory):
        raise ValueError(f"{parent_path} is not a directory on {server}")
    file = FsFile(name, size)
    server.fs_manager.add_directory_child(directory, file)
    return file


def _server_with_root_storage(topology: Topology, node_id: str, capacity, speed) -> ServerStorage:
    server = topology.add_server(node_id)
    storage = topology.add_storage(server, capacity, speed)
    server.fs_manager.mount(storage, server.root)
    return storage


def build_simple_download() -> ScenarioSetup:
    topology = Topology()
    client = topology.add_client("client")
    _server_with_root_storage(topology, "server", ByteSize.of(10, SizeUnit.MB), ByteSpeed.of(1, SpeedUnit.MBPS))
    file = add_file(topology.get_server("server"), "/data/movie.bin", MB)
    topology.connect(client, "server", ByteSpeed.of(1, SpeedUnit.MBPS), 0)
    client.simulation_plan.add(GetSimulationTask(file))
    return ScenarioSetup(topology, client, SimulationMode.SHORTEST)


def build_upload_rejection() -> ScenarioSetup:
    topology = Topology()
    client = topology.add_client("client")
    _server_with_root_storage(topology, "server", 100, MB)
    topology.connect(client, "server", MB, 5)
    client.simulation_plan.add(PutSimulationTask.upload("/upload.bin", 200))
    return ScenarioSetup(topology, client, SimulationMode.SHORTEST)


def build_dynamic_reroute() -> ScenarioSetup:
    """The direct link collapses two seconds into every 20 s period; a slower relay stays flat."""
    topology = Topology()
    client = topology.add_client("client")
    _server_with_root_storage(topology, "origin", 100 * MB, 100 * MB)
    file = add_file(topology.get_server("origin"), "/video.bin", 10 * MB)
    topology.add_server("relay")

    collapsing = LineConnectionCharacteristic(period_ms=20000)
    collapsing.set_y_values([1.0] * 3 + [0.0] * (LineConnectionCharacteristic.NUM_POINTS - 3))
    topology.connect(client, "origin", MB, 10, collapsing)
    topology.connect(client, "relay", MB, 30)
    topology.connect("relay", "origin", MB, 30)

    client.simulation_plan.add(GetSimulationTask(file))
    return ScenarioSetup(topology, client, SimulationMode.DYNAMIC_PATH_THROUGHPUT_AND_LATENCY, 500)


def build_lru_cascade() -> ScenarioSetup:
    """A full fast tier holding a cold file while a hot file waits on the slow tier."""
    topology = Topology()
    client = topology.add_client("client")
    server = topology.add_server("server")
    fast = topology.add_storage(server, 100, 10000, "fast")
    slow = topology.add_storage(server, 1000, 1000, "slow")

    cold = add_file(server, "/cold.bin", 100)
    hot = add_file(server, "/hot.bin", 100)
    bulk = add_file(server, "/bulk.bin", 900)
    server.fs_manager.mount(fast, cold)
    server.fs_manager.mount(slow, hot)
    server.fs_manager.mount(slow, bulk)

    topology.connect(client, server, 1000, 5)
    client.simulation_plan.add(GetSimulationTask(hot))
    return ScenarioSetup(topology, client, SimulationMode.HIERARCHICAL_DYNAMIC_PATH_THROUGHPUT_AND_LATENCY)


def build_replicated_upload() -> ScenarioSetup:
    topology = Topology()
    client = topology.add_client("client")
    for node_id in ("primary", "mirror"):
        _server_with_root_storage(topology, node_id, 10 * MB, 10 * MB)
        add_file(topology.get_server(node_id), "/shared/report.txt", 100)
    topology.connect(client, "primary", MB, 5)
    topology.connect(client, "mirror", MB, 50)
    topology.connect("primary", "mirror", 10 * MB, 2)
    client.simulation_plan.add(PutSimulationTask.upload("/shared/report.txt", 2 * MB))
    return ScenarioSetup(topology, client, SimulationMode.PATH_THROUGHPUT_AND_LATENCY)


def _run(name: str, setup: ScenarioSetup, event_limit: int) -> DemoResult:
    events: List[str] = []
    sim_logger = EventSimulatorLogger()
    sim_logger.register_observer(_make_event_logger(events, event_limit))
    result: SimulationResult = setup.simulator().run(sim_logger)
    return DemoResult(scenario=name, mode=setup.mode.label, events=events, summary=result.to_dict())


def run_simple_download_demo(event_limit: int = 25) -> DemoResult:
    return _run("simple-download", build_simple_download(), event_limit)


def run_upload_rejection_demo(event_limit: int = 25) -> DemoResult:
    return _run("upload-rejection", build_upload_rejection(), event_limit)


def run_dynamic_reroute_demo(event_limit: int = 25) -> DemoResult:
    return _run("dynamic-reroute", build_dynamic_reroute(), event_limit)


def run_lru_cascade_demo(event_limit: int = 25) -> DemoResult:
    setup = build_lru_cascade()
    summary = _run("lru-cascade", setup, event_limit)
    server = setup.topology.get_server("server")
    summary["placement"] = {
        obj.full_path: storage.id for obj, storage in server.fs_manager.entries()
    }
    return summary


def run_replicated_upload_demo(event_limit: int = 25) -> DemoResult:
    return _run("replicated-upload", build_replicated_upload(), event_limit)


SCENARIOS = {
    "download": run_simple_download_demo,
    "upload": run_upload_rejection_demo,
    "reroute": run_dynamic_reroute_demo,
    "tiering": run_lru_cascade_demo,
    "replication": run_replicated_upload_demo,
}


def run_scenario(name: str, *, event_limit: int = 25) -> DemoResult:
    if name not in SCENARIOS:
        raise ValueError(f"Unknown scenario '{name}'")
    return SCENARIOS[name](event_limit=event_limit)


def run_all_scenarios(event_limit: int = 25) -> List[DemoResult]:
    return [runner(event_limit=event_limit) for runner in SCENARIOS.values()]
