"""Time-slice simulator of data movement in a distributed file system."""

from .config import SimulatorConfig  # noqa: F401
from .model.topology import Topology  # noqa: F401
from .simulation.engine import TimeSliceSimulator  # noqa: F401
from .simulation.modes import SimulationMode  # noqa: F401
