"""Physical stations on the machine layout."""

from __future__ import annotations

from .base import ConfigModel


class Position(ConfigModel):
    x: float = 0.0
    y: float = 0.0


class StationConfig(ConfigModel):
    """A station and the hardware it uses.

    *io_configs* and *axis_configs* are weak references: ids into the
    project's IO / axis collections. Deleting the target leaves the id
    dangling here; the dangling id is pruned when the project is
    flattened for storage.
    """

    id: str
    name: str
    position: Position = Position()
    io_configs: list[str] = []
    axis_configs: list[str] = []
    description: str = ""
    enabled: bool = True
