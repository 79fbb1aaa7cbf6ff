"""Byte size and byte speed quantities used as the simulator's unit of account."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Union


class SizeUnit(Enum):
    B = ("B", 1)
    KB = ("kB", 1000)
    MB = ("mB", 1000 * 1000)
    GB = ("gB", 1000 * 1000 * 1000)

    @property
    def label(self) -> str:
        return self.value[0]

    @property
    def multiplier(self) -> int:
        return self.value[1]


class SpeedUnit(Enum):
    BPS = ("B/s", 1)
    KBPS = ("kB/s", 1000)
    MBPS = ("mB/s", 1000 * 1000)
    GBPS = ("gB/s", 1000 * 1000 * 1000)

    @property
    def label(self) -> str:
        return self.value[0]

    @property
    def multiplier(self) -> int:
        return self.value[1]


def _human_readable(value: int, suffix: str, si: bool = True) -> str:
    base = 1000 if si else 1024
    if value < base:
        return f"{value} {suffix}"
    exp = int(math.log(value) / math.log(base))
    prefix = ("kmgTPE" if si else "KMGTPE")[exp - 1] + ("" if si else "i")
    return f"{value / math.pow(base, exp):.1f} {prefix}{suffix}"


@dataclass(frozen=True)
class ByteSize:
    bytes: int = 0

    @staticmethod
    def of(value: float, unit: SizeUnit = SizeUnit.B) -> "ByteSize":
        return ByteSize(int(value * unit.multiplier))

    @property
    def kilo_bytes(self) -> float:
        return self.bytes / SizeUnit.KB.multiplier

    @property
    def mega_bytes(self) -> float:
        return self.bytes / SizeUnit.MB.multiplier

    @property
    def giga_bytes(self) -> float:
        return self.bytes / SizeUnit.GB.multiplier

    def nominal_unit(self, si: bool = True) -> SizeUnit:
        base = 1000 if si else 1024
        if self.bytes < base:
            return SizeUnit.B
        if self.bytes < base * base:
            return SizeUnit.KB
        if self.bytes < base * base * base:
            return SizeUnit.MB
        return SizeUnit.GB

    def human_readable(self, si: bool = True) -> str:
        return _human_readable(self.bytes, "B", si)

    def __str__(self) -> str:
        return self.human_readable()


@dataclass(frozen=True)
class ByteSpeed:
    bps: int = 0

    @staticmethod
    def of(value: float, unit: SpeedUnit = SpeedUnit.BPS) -> "ByteSpeed":
        return ByteSpeed(int(value * unit.multiplier))

    @property
    def kilo_bps(self) -> float:
        return self.bps / SpeedUnit.KBPS.multiplier

    @property
    def mega_bps(self) -> float:
        return self.bps / SpeedUnit.MBPS.multiplier

    @property
    def giga_bps(self) -> float:
        return self.bps / SpeedUnit.GBPS.multiplier

    def nominal_unit(self) -> SpeedUnit:
        if self.bps < 1000:
            return SpeedUnit.BPS
        if self.bps < 1000 ** 2:
            return SpeedUnit.KBPS
        if self.bps < 1000 ** 3:
            return SpeedUnit.MBPS
        return SpeedUnit.GBPS

    def human_readable(self) -> str:
        return _human_readable(self.bps, "B/s")

    def __str__(self) -> str:
        return self.human_readable()


SizeLike = Union[int, ByteSize]
SpeedLike = Union[int, float, ByteSpeed]


def as_bytes(value: SizeLike) -> int:
    if isinstance(value, ByteSize):
        return value.bytes
    return int(value)


def as_bps(value: SpeedLike) -> int:
    if isinstance(value, ByteSpeed):
        return value.bps
    return int(value)


def format_size(value: SizeLike) -> str:
    return ByteSize(as_bytes(value)).human_readable()


def format_speed(value: SpeedLike) -> str:
    return ByteSpeed(as_bps(value)).human_readable()
