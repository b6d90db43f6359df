"""Hardware configuration: IO points and motion axes.

Only the shape is enforced here. Business rules (non-empty names,
positive speeds) are checked by :mod:`mdksys.validation` right before a
project is persisted, so half-edited entries can live in memory.
"""

from __future__ import annotations

from enum import Enum

from .base import ConfigModel


class IOType(str, Enum):
    DI = "DI"            # Digital input
    DO = "DO"            # Digital output
    AI = "AI"            # Analog input
    AO = "AO"            # Analog output
    SIGNAL = "SIGNAL"    # Internal signal, no physical terminal


class AxisType(str, Enum):
    X = "X"
    Y = "Y"
    Z = "Z"
    A = "A"
    B = "B"
    C = "C"


class IOConfig(ConfigModel):
    """A single IO point wired to the controller."""

    id: str
    name: str
    type: IOType
    address: str
    description: str = ""
    enabled: bool = True


class AxisConfig(ConfigModel):
    """A motion axis with its kinematic limits."""

    id: str
    name: str
    type: AxisType
    max_speed: float
    acceleration: float
    deceleration: float
    home_position: float = 0.0
    soft_limit_min: float = 0.0
    soft_limit_max: float = 0.0
    enabled: bool = True
