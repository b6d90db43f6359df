"""Flatten / reconstitute between the project graph and normalized rows.

Write path (:func:`flatten`)::

    StationConfig  -> StationRow + StationIORow* + StationAxisRow*
    TaskConfig     -> TaskRow + StepRow* (sequence_order = position)

Read path (:func:`reconstitute`) is the inverse. The backing store gives
no ordering guarantee, so steps are always re-sorted by
``sequence_order``. Weak references that do not resolve are dropped in
both directions rather than raised.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass

from mdksys.model.hardware import AxisConfig, IOConfig
from mdksys.model.project import ProjectConfig
from mdksys.model.station import Position, StationConfig
from mdksys.model.steps import make_step, step_parameters
from mdksys.model.task import TaskConfig

from ._rows import (
    AxisRow,
    IORow,
    ProjectRow,
    ProjectRows,
    StationAxisRow,
    StationIORow,
    StationRow,
    StepRow,
    TaskRow,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reference index
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DanglingReference:
    """A weak reference whose target is not in the project."""

    owner_kind: str     # "station" or "task"
    owner_id: str
    target_kind: str    # "io", "axis" or "station"
    target_id: str


class ProjectIndex:
    """Id lookup over one project's collections."""

    def __init__(self, project: ProjectConfig) -> None:
        self.io_ids = frozenset(io.id for io in project.io_configs)
        self.axis_ids = frozenset(axis.id for axis in project.axis_configs)
        self.station_ids = frozenset(st.id for st in project.station_configs)
        self._project = project

    def dangling_references(self) -> list[DanglingReference]:
        """Every station / task reference that points at nothing."""
        found: list[DanglingReference] = []
        for station in self._project.station_configs:
            for io_id in station.io_configs:
                if io_id not in self.io_ids:
                    found.append(DanglingReference("station", station.id, "io", io_id))
            for axis_id in station.axis_configs:
                if axis_id not in self.axis_ids:
                    found.append(DanglingReference("station", station.id, "axis", axis_id))
        for task in self._project.task_configs:
            if task.station_id and task.station_id not in self.station_ids:
                found.append(DanglingReference("task", task.id, "station", task.station_id))
        return found


def _unique(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def _tag(value: object) -> str:
    return getattr(value, "value", value)


# ---------------------------------------------------------------------------
# Flatten
# ---------------------------------------------------------------------------

def flatten(project: ProjectConfig, owner_id: str) -> ProjectRows:
    """Turn *project* into the row set of one save transaction."""
    index = ProjectIndex(project)
    pid = project.id

    io_rows = [
        IORow(
            id=io.id,
            project_id=pid,
            name=io.name,
            type=_tag(io.type),
            address=io.address,
            description=io.description or None,
            enabled=io.enabled,
        )
        for io in project.io_configs
    ]

    axis_rows = [
        AxisRow(
            id=axis.id,
            project_id=pid,
            name=axis.name,
            type=_tag(axis.type),
            max_speed=axis.max_speed,
            acceleration=axis.acceleration,
            deceleration=axis.deceleration,
            home_position=axis.home_position,
            soft_limit_min=axis.soft_limit_min,
            soft_limit_max=axis.soft_limit_max,
            enabled=axis.enabled,
        )
        for axis in project.axis_configs
    ]

    station_rows: list[StationRow] = []
    station_io_rows: list[StationIORow] = []
    station_axis_rows: list[StationAxisRow] = []
    for station in project.station_configs:
        station_rows.append(StationRow(
            id=station.id,
            project_id=pid,
            name=station.name,
            position_x=station.position.x,
            position_y=station.position.y,
            description=station.description or None,
            enabled=station.enabled,
        ))
        for io_id in _unique(station.io_configs):
            if io_id not in index.io_ids:
                logger.debug("Pruning dangling IO %s from station %s", io_id, station.id)
                continue
            station_io_rows.append(StationIORow(station_id=station.id, io_config_id=io_id))
        for axis_id in _unique(station.axis_configs):
            if axis_id not in index.axis_ids:
                logger.debug("Pruning dangling axis %s from station %s", axis_id, station.id)
                continue
            station_axis_rows.append(
                StationAxisRow(station_id=station.id, axis_config_id=axis_id)
            )

    task_rows: list[TaskRow] = []
    step_rows: list[StepRow] = []
    for task in project.task_configs:
        station_id = task.station_id or None
        if station_id is not None and station_id not in index.station_ids:
            logger.debug("Unassigning task %s from missing station %s", task.id, station_id)
            station_id = None
        task_rows.append(TaskRow(
            id=task.id,
            project_id=pid,
            station_id=station_id,
            name=task.name,
            priority=task.priority,
            enabled=task.enabled,
        ))
        for order, step in enumerate(task.sequence):
            step_rows.append(StepRow(
                id=step.id,
                task_id=task.id,
                sequence_order=order,
                type=_tag(step.type),
                parameters=step_parameters(step),
                description=step.description or None,
            ))

    return ProjectRows(
        project=ProjectRow(
            id=pid,
            user_id=owner_id,
            name=project.name,
            description=project.description or None,
            version=project.version,
            created_at=project.created_at,
            updated_at=project.updated_at,
        ),
        io_rows=io_rows,
        axis_rows=axis_rows,
        station_rows=station_rows,
        station_io_rows=station_io_rows,
        station_axis_rows=station_axis_rows,
        task_rows=task_rows,
        step_rows=step_rows,
    )


# ---------------------------------------------------------------------------
# Reconstitute
# ---------------------------------------------------------------------------

def reconstitute(rows: ProjectRows) -> ProjectConfig:
    """Rebuild the nested project from its stored rows."""
    io_configs = [
        IOConfig(
            id=row.id,
            name=row.name,
            type=row.type,
            address=row.address,
            description=row.description or "",
            enabled=row.enabled,
        )
        for row in rows.io_rows
    ]
    axis_configs = [
        AxisConfig(
            id=row.id,
            name=row.name,
            type=row.type,
            max_speed=row.max_speed,
            acceleration=row.acceleration,
            deceleration=row.deceleration,
            home_position=row.home_position,
            soft_limit_min=row.soft_limit_min,
            soft_limit_max=row.soft_limit_max,
            enabled=row.enabled,
        )
        for row in rows.axis_rows
    ]

    io_ids = {io.id for io in io_configs}
    axis_ids = {axis.id for axis in axis_configs}
    station_ids = {row.id for row in rows.station_rows}

    station_io: dict[str, list[str]] = defaultdict(list)
    for link in rows.station_io_rows:
        if link.station_id in station_ids and link.io_config_id in io_ids:
            station_io[link.station_id].append(link.io_config_id)
    station_axis: dict[str, list[str]] = defaultdict(list)
    for link in rows.station_axis_rows:
        if link.station_id in station_ids and link.axis_config_id in axis_ids:
            station_axis[link.station_id].append(link.axis_config_id)

    station_configs = [
        StationConfig(
            id=row.id,
            name=row.name,
            position=Position(x=row.position_x, y=row.position_y),
            io_configs=station_io.get(row.id, []),
            axis_configs=station_axis.get(row.id, []),
            description=row.description or "",
            enabled=row.enabled,
        )
        for row in rows.station_rows
    ]

    task_ids = {row.id for row in rows.task_rows}
    steps_by_task: dict[str, list[StepRow]] = defaultdict(list)
    for step_row in sorted(rows.step_rows, key=lambda r: r.sequence_order):
        if step_row.task_id in task_ids:
            steps_by_task[step_row.task_id].append(step_row)

    task_configs = [
        TaskConfig(
            id=row.id,
            name=row.name,
            station_id=row.station_id or "",
            sequence=[
                make_step(
                    s.type,
                    s.parameters,
                    id=s.id,
                    description=s.description or "",
                )
                for s in steps_by_task.get(row.id, [])
            ],
            priority=row.priority,
            enabled=row.enabled,
        )
        for row in rows.task_rows
    ]

    project = rows.project
    extra = {}
    if project.created_at is not None:
        extra["created_at"] = project.created_at
    if project.updated_at is not None:
        extra["updated_at"] = project.updated_at
    return ProjectConfig(
        id=project.id,
        name=project.name,
        description=project.description or "",
        version=project.version,
        io_configs=io_configs,
        axis_configs=axis_configs,
        station_configs=station_configs,
        task_configs=task_configs,
        **extra,
    )
