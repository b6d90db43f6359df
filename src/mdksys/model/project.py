"""Top-level ProjectConfig aggregate."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from .base import ConfigModel, generate_id, utc_now
from .hardware import AxisConfig, IOConfig
from .station import StationConfig
from .task import TaskConfig

DEFAULT_PROJECT_NAME = "New Project"
DEFAULT_VERSION = "1.0.0"


class ProjectConfig(ConfigModel):
    """One automation project: the unit of loading, saving and export."""

    id: str = Field(default_factory=generate_id)
    name: str = DEFAULT_PROJECT_NAME
    description: str = ""
    version: str = DEFAULT_VERSION
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    io_configs: list[IOConfig] = []
    axis_configs: list[AxisConfig] = []
    station_configs: list[StationConfig] = []
    task_configs: list[TaskConfig] = []

    def touch(self, **changes: Any) -> ProjectConfig:
        """Copy with *changes* applied and ``updated_at`` stamped now."""
        return self.model_copy(update={**changes, "updated_at": utc_now()})


def new_project(name: str = DEFAULT_PROJECT_NAME) -> ProjectConfig:
    """A fresh, empty project with its own id and timestamps."""
    now = utc_now()
    return ProjectConfig(name=name, created_at=now, updated_at=now)
