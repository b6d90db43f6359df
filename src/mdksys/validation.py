"""Pre-persistence checks for the project graph.

Every function is pure and fails fast: the first broken rule raises
:class:`~mdksys.errors.ValidationError` naming the field. Nothing here
touches the network or the store.
"""

from __future__ import annotations

import math

from mdksys.errors import (
    PROJECT_NAME_REQUIRED,
    PROJECT_NAME_TOO_LONG,
    ValidationError,
)
from mdksys.model.hardware import AxisConfig, AxisType, IOConfig, IOType
from mdksys.model.project import ProjectConfig
from mdksys.model.station import StationConfig
from mdksys.model.steps import StepType
from mdksys.model.task import TaskConfig

MAX_PROJECT_NAME_LENGTH = 100

_IO_TYPES = frozenset(t.value for t in IOType)
_AXIS_TYPES = frozenset(t.value for t in AxisType)
_STEP_TYPES = frozenset(t.value for t in StepType)


def _blank(value: object) -> bool:
    return not isinstance(value, str) or not value.strip()


def _tag(value: object) -> object:
    return value.value if isinstance(value, (IOType, AxisType, StepType)) else value


def validate_project_name(name: str) -> None:
    if _blank(name):
        raise ValidationError(PROJECT_NAME_REQUIRED, "name")
    if len(name) > MAX_PROJECT_NAME_LENGTH:
        raise ValidationError(PROJECT_NAME_TOO_LONG, "name")


def validate_io_config(config: IOConfig) -> None:
    if _blank(config.name):
        raise ValidationError("IO name must not be empty", "name")
    if _blank(config.address):
        raise ValidationError("IO address must not be empty", "address")
    if _tag(config.type) not in _IO_TYPES:
        raise ValidationError(f"Invalid IO type {config.type!r}", "type")


def validate_axis_config(config: AxisConfig) -> None:
    if _blank(config.name):
        raise ValidationError("Axis name must not be empty", "name")
    if _tag(config.type) not in _AXIS_TYPES:
        raise ValidationError(f"Invalid axis type {config.type!r}", "type")
    for field, label in (
        ("max_speed", "Max speed"),
        ("acceleration", "Acceleration"),
        ("deceleration", "Deceleration"),
    ):
        value = getattr(config, field)
        if not value > 0:
            raise ValidationError(f"{label} must be greater than 0", field)
    if config.soft_limit_min > config.soft_limit_max:
        raise ValidationError(
            f"Soft limit min ({config.soft_limit_min}) must be <= "
            f"soft limit max ({config.soft_limit_max})",
            "soft_limit_min",
        )


def validate_station_config(config: StationConfig) -> None:
    if _blank(config.name):
        raise ValidationError("Station name must not be empty", "name")
    if math.isnan(config.position.x) or math.isnan(config.position.y):
        raise ValidationError("Station position must be a valid number", "position")


def validate_task_config(config: TaskConfig) -> None:
    if _blank(config.name):
        raise ValidationError("Task name must not be empty", "name")
    if config.priority < 0:
        raise ValidationError("Task priority must not be negative", "priority")
    for index, step in enumerate(config.sequence):
        if _tag(step.type) not in _STEP_TYPES:
            raise ValidationError(
                f"Step {index} has unsupported type {step.type!r}",
                f"sequence[{index}].type",
            )


def validate_project(project: ProjectConfig) -> None:
    """Check the whole aggregate, stopping at the first violation."""
    validate_project_name(project.name)
    for io in project.io_configs:
        validate_io_config(io)
    for axis in project.axis_configs:
        validate_axis_config(axis)
    for station in project.station_configs:
        validate_station_config(station)
    for task in project.task_configs:
        validate_task_config(task)
