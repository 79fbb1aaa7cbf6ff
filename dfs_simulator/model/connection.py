"""Directional links between nodes and their time-varying bandwidth profile."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List, Optional

from ..units import SpeedLike, as_bps

if TYPE_CHECKING:  # pragma: no cover
    from .nodes import ModelNode

BANDWIDTH_MAX = 10 * 1000 ** 3
LATENCY_MIN = 0
LATENCY_MAX = 100000


@dataclass
class CharacteristicPoint:
    x: float
    y: float


class LineConnectionCharacteristic:
    """Piecewise-linear bandwidth modifier repeating every ``period_ms``.

    Points are spread evenly over the period in x order; the modifier between
    two neighbouring points is their linear interpolation, wrapping from the
    last point back to the first.
    """

    NUM_POINTS = 21
    Y_LOWER_BOUND = 0.01
    Y_UPPER_BOUND = 1.0
    X_LOWER_BOUND = 0.0
    X_UPPER_BOUND = 1.0
    DEFAULT_PERIOD_MS = 60 * 1000

    def __init__(
        self,
        points: Optional[Iterable[CharacteristicPoint]] = None,
        period_ms: int = DEFAULT_PERIOD_MS,
    ) -> None:
        self.period_ms = period_ms
        self.points: List[CharacteristicPoint] = []
        if points is None:
            self.points = self._default_points()
        else:
            self.set_points(points)

    @classmethod
    def _default_points(cls) -> List[CharacteristicPoint]:
        step = (cls.X_UPPER_BOUND - cls.X_LOWER_BOUND) / (cls.NUM_POINTS - 1)
        return [CharacteristicPoint(cls.X_LOWER_BOUND + i * step, cls.Y_UPPER_BOUND) for i in range(cls.NUM_POINTS)]

    def set_points(self, points: Iterable[CharacteristicPoint]) -> None:
        ordered = sorted(points, key=lambda point: point.x)
        for point in ordered:
            if point.y < 0:
                raise ValueError("characteristic point y must be non-negative")
        self.points = ordered

    def set_y_values(self, values: Iterable[float]) -> None:
        values = list(values)
        if len(values) != len(self.points):
            raise ValueError(f"expected {len(self.points)} values, got {len(values)}")
        for point, y in zip(self.points, values):
            if y < 0:
                raise ValueError("characteristic point y must be non-negative")
            point.y = y

    @property
    def step_ms(self) -> int:
        count = len(self.points)
        step = 0
        if count > 1:
            step = self.period_ms // (count - 1) + (0 if self.period_ms % (count - 1) == 0 else 1)
        elif count == 1:
            step = self.period_ms
        if step <= 0:
            raise ValueError("characteristic interval step must be positive")
        return step

    def modifier_at(self, time: int) -> float:
        step = self.step_ms
        last = len(self.points) - 1
        if time != self.period_ms:
            p1 = (time % self.period_ms) // step
        else:
            p1 = last
        p1 = min(p1, last)
        p2 = p1 + 1 if p1 + 1 <= last else 0
        weight = (time % step) / step
        return self.points[p1].y * (1 - weight) + self.points[p2].y * weight

    def average_modifier(self, time: int, interval: int) -> float:
        if interval == 0:
            return self.modifier_at(time)
        step = self.step_ms
        total = 0.0
        count = 0
        moment = time
        while moment < time + interval:
            total += (self.modifier_at(moment) + self.modifier_at(moment + step)) / 2
            moment += step
            count += 1
        return total / count


class NodeConnection:
    def __init__(
        self,
        origin: "ModelNode",
        neighbour: "ModelNode",
        bandwidth: SpeedLike,
        latency: int,
        characteristic: Optional[LineConnectionCharacteristic] = None,
    ) -> None:
        bandwidth_bps = as_bps(bandwidth)
        if not (0 <= bandwidth_bps <= BANDWIDTH_MAX):
            raise ValueError(f"bandwidth must be within 0..{BANDWIDTH_MAX} B/s")
        if not (LATENCY_MIN <= latency <= LATENCY_MAX):
            raise ValueError(f"latency must be within {LATENCY_MIN}..{LATENCY_MAX} ms")
        self.origin = origin
        self.neighbour = neighbour
        self.bandwidth = bandwidth_bps
        self.latency = latency
        self.characteristic = characteristic or LineConnectionCharacteristic()

    def average_bandwidth(self, time: int, interval: int = 0) -> int:
        return int(self.bandwidth * self.characteristic.average_modifier(time, interval))

    def __repr__(self) -> str:
        return f"NodeConnection({self.origin.node_id}->{self.neighbour.node_id}, {self.bandwidth} B/s, {self.latency} ms)"
