"""Normalized row shapes exchanged with the backing store.

Field names are the column names of the backing tables. A
:class:`ProjectRows` bundle is both the payload of a save transaction and
the result of a detail read.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class ProjectRow(BaseModel):
    id: str
    user_id: str
    name: str
    description: str | None = None
    version: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class IORow(BaseModel):
    id: str
    project_id: str
    name: str
    type: str
    address: str
    description: str | None = None
    enabled: bool = True


class AxisRow(BaseModel):
    id: str
    project_id: str
    name: str
    type: str
    max_speed: float
    acceleration: float
    deceleration: float
    home_position: float = 0.0
    soft_limit_min: float = 0.0
    soft_limit_max: float = 0.0
    enabled: bool = True


class StationRow(BaseModel):
    id: str
    project_id: str
    name: str
    position_x: float
    position_y: float
    description: str | None = None
    enabled: bool = True


class StationIORow(BaseModel):
    """Join row: one station uses one IO point."""

    station_id: str
    io_config_id: str


class StationAxisRow(BaseModel):
    """Join row: one station uses one axis."""

    station_id: str
    axis_config_id: str


class TaskRow(BaseModel):
    id: str
    project_id: str
    station_id: str | None = None
    name: str
    priority: int = 0
    enabled: bool = True


class StepRow(BaseModel):
    """One task step. *sequence_order* is its position in the task."""

    id: str
    task_id: str
    sequence_order: int
    type: str
    parameters: dict[str, Any] = {}
    description: str | None = None


class ProjectRows(BaseModel):
    """Everything stored for one project, flattened."""

    project: ProjectRow
    io_rows: list[IORow] = []
    axis_rows: list[AxisRow] = []
    station_rows: list[StationRow] = []
    station_io_rows: list[StationIORow] = []
    station_axis_rows: list[StationAxisRow] = []
    task_rows: list[TaskRow] = []
    step_rows: list[StepRow] = []
