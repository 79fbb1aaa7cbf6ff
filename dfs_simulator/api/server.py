"""FastAPI service running simulations over posted topologies."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ..config import SimulatorConfig
from ..errors import InvalidPersistedState
from ..persistence.codec import GET_TASK, PUT_TASK, restore_task, topology_from_dict, topology_to_dict
from ..persistence.element import StateElement
from ..persistence.state_store import TopologyStateStore
from ..scenarios import SCENARIOS, run_scenario
from ..simulation.engine import TimeSliceSimulator
from ..simulation.loggers import StringSimulatorLogger
from ..simulation.modes import SimulationMode

config = SimulatorConfig.from_env()
state_store = TopologyStateStore(config.state.snapshot_path)
logger = logging.getLogger(__name__)
_run_lock = threading.Lock()

app = FastAPI(title=config.api.title, version=config.api.version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins or ["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class TaskRequest(BaseModel):
    type: str = Field(pattern="^(GET|PUT)$")
    path: str
    size: Optional[int] = Field(default=None, ge=0)


class SimulationRequest(BaseModel):
    topology: dict[str, Any]
    client: str
    mode: Optional[str] = None
    recalculation_interval_ms: Optional[int] = Field(default=None, ge=0)
    tasks: Optional[list[TaskRequest]] = None
    save_snapshot: bool = False


def _resolve_mode(name: Optional[str]) -> SimulationMode:
    try:
        return SimulationMode.from_name(name or config.engine.default_mode)
    except KeyError as exc:
        raise HTTPException(status_code=422, detail=f"Unknown simulation mode '{name}'") from exc


def _task_element(task: TaskRequest) -> StateElement:
    if task.type == "GET":
        return StateElement(GET_TASK).add_attribute("path", task.path)
    if task.size is None:
        raise HTTPException(status_code=422, detail=f"Upload of {task.path} needs a size")
    return StateElement(PUT_TASK).add_attribute("path", task.path).add_attribute("size", task.size)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/modes")
def list_modes() -> list[dict[str, Any]]:
    return [
        {
            "name": mode.name,
            "label": mode.label,
            "dynamic_routing": mode.dynamic_routing,
            "hierarchical": mode.hierarchical,
            "recalculation_interval_ms": mode.recalculation_interval_ms,
        }
        for mode in SimulationMode
    ]


@app.post("/simulations")
def run_simulation(payload: SimulationRequest) -> dict[str, Any]:
    mode = _resolve_mode(payload.mode)
    with _run_lock:
        try:
            topology = topology_from_dict(payload.topology)
        except InvalidPersistedState as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        try:
            client = topology.get_client(payload.client)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Client {payload.client} not found") from exc

        if payload.tasks is not None:
            client.simulation_plan.clear()
            for task in payload.tasks:
                try:
                    client.simulation_plan.add(restore_task(topology, _task_element(task)))
                except InvalidPersistedState as exc:
                    raise HTTPException(status_code=422, detail=str(exc)) from exc

        if payload.save_snapshot:
            state_store.save(topology)

        recalc = payload.recalculation_interval_ms
        if recalc is None:
            recalc = config.engine.recalculation_interval_ms
        simulator = TimeSliceSimulator(
            topology,
            client,
            mode,
            recalculation_interval_ms=recalc,
            time_resolution_ms=config.engine.time_resolution_ms,
        )
        sim_logger = StringSimulatorLogger()
        result = simulator.run(sim_logger)

    logger.info("Simulated %d task(s) for client %s in mode %s", len(result.results), payload.client, mode.name)
    body = result.to_dict()
    body["log"] = list(sim_logger.messages)
    return body


@app.get("/snapshot")
def get_snapshot() -> dict[str, Any]:
    try:
        topology = state_store.load()
    except InvalidPersistedState as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if topology is None:
        raise HTTPException(status_code=404, detail="No topology snapshot saved")
    return topology_to_dict(topology)


@app.get("/scenarios")
def list_scenarios() -> list[str]:
    return list(SCENARIOS.keys())


@app.post("/scenarios/{name}")
def run_named_scenario(name: str, event_limit: int = 25) -> dict[str, Any]:
    if name not in SCENARIOS:
        raise HTTPException(status_code=404, detail=f"Unknown scenario '{name}'")
    with _run_lock:
        return run_scenario(name, event_limit=event_limit)
