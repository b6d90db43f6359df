"""Shared test helpers for the mdksys test suite."""

import asyncio

from mdksys.errors import BackendError
from mdksys.model.hardware import AxisConfig, AxisType, IOConfig, IOType
from mdksys.model.project import ProjectConfig
from mdksys.model.station import Position, StationConfig
from mdksys.model.steps import IOStep, MoveStep, WaitStep
from mdksys.model.task import TaskConfig
from mdksys.persistence import ProjectGateway, RetryPolicy, User


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def make_io(id="io1", name="X1", type=IOType.DI, address="0.0", **kwargs):
    return IOConfig(id=id, name=name, type=type, address=address, **kwargs)


def make_axis(id="ax1", name="Axis X", type=AxisType.X, **kwargs):
    kwargs.setdefault("max_speed", 500.0)
    kwargs.setdefault("acceleration", 1000.0)
    kwargs.setdefault("deceleration", 1000.0)
    kwargs.setdefault("soft_limit_min", -10.0)
    kwargs.setdefault("soft_limit_max", 300.0)
    return AxisConfig(id=id, name=name, type=type, **kwargs)


def make_station(id="st1", name="Load", io_configs=(), axis_configs=(), **kwargs):
    kwargs.setdefault("position", Position(x=100, y=100))
    return StationConfig(
        id=id,
        name=name,
        io_configs=list(io_configs),
        axis_configs=list(axis_configs),
        **kwargs,
    )


def make_task(id="t1", name="Pick", station_id="", sequence=None, **kwargs):
    if sequence is None:
        sequence = [
            MoveStep(id=f"{id}-s0", parameters={"axisId": "ax1", "position": 120.5}),
            IOStep(id=f"{id}-s1", parameters={"ioId": "io1", "value": True}),
            WaitStep(id=f"{id}-s2", parameters={"durationMs": 250}),
        ]
    return TaskConfig(id=id, name=name, station_id=station_id, sequence=sequence, **kwargs)


def make_project(**kwargs):
    """A small valid project: one IO, one axis, one station using both, one task."""
    kwargs.setdefault("id", "p1")
    kwargs.setdefault("name", "Cell 1")
    kwargs.setdefault("io_configs", [make_io()])
    kwargs.setdefault("axis_configs", [make_axis()])
    kwargs.setdefault("station_configs", [make_station(io_configs=["io1"], axis_configs=["ax1"])])
    kwargs.setdefault("task_configs", [make_task(station_id="st1")])
    return ProjectConfig(**kwargs)


def comparable(project):
    """Dump without timestamps, for structural equality."""
    return project.model_dump(exclude={"created_at", "updated_at"})


USER = User(id="user-1", email="engineer@example.com")


class FakeBackend:
    """In-memory ProjectBackend with failure injection.

    ``failures[op]`` is a list of exceptions raised, one per call, before
    *op* starts succeeding. ``calls[op]`` counts every call.
    """

    def __init__(self, user=USER, shuffle_steps=False):
        self.user = user
        self.rows = {}
        self.failures = {}
        self.calls = {}
        self.shuffle_steps = shuffle_steps
        self.gate = None
        self.disposed = False

    def fail(self, op, *errors):
        self.failures.setdefault(op, []).extend(errors)

    async def _enter(self, op):
        self.calls[op] = self.calls.get(op, 0) + 1
        if self.gate is not None:
            await self.gate.wait()
        pending = self.failures.get(op)
        if pending:
            raise pending.pop(0)

    async def current_user(self):
        await self._enter("current_user")
        return self.user

    async def ping(self):
        await self._enter("ping")

    async def list_projects(self, owner_id):
        await self._enter("list_projects")
        heads = [r.project for r in self.rows.values() if r.project.user_id == owner_id]
        return sorted(heads, key=lambda p: p.updated_at, reverse=True)

    async def get_project_owner(self, project_id):
        await self._enter("get_project_owner")
        rows = self.rows.get(project_id)
        return rows.project.user_id if rows else None

    async def get_project_detail(self, project_id):
        await self._enter("get_project_detail")
        rows = self.rows.get(project_id)
        if rows is None:
            return None
        rows = rows.model_copy(deep=True)
        if self.shuffle_steps:
            rows.step_rows = list(reversed(rows.step_rows))
        return rows

    async def save_project_transaction(self, rows):
        await self._enter("save_project_transaction")
        existing = self.rows.get(rows.project.id)
        if existing is not None and existing.project.user_id != rows.project.user_id:
            raise BackendError("Invalid owner", code="42501")
        stored = rows.model_copy(deep=True)
        if existing is not None:
            stored.project.created_at = existing.project.created_at
        self.rows[rows.project.id] = stored

    async def delete_project(self, project_id, owner_id):
        await self._enter("delete_project")
        rows = self.rows.get(project_id)
        if rows is not None and rows.project.user_id == owner_id:
            del self.rows[project_id]

    async def dispose(self):
        self.disposed = True


def make_gateway(backend=None, max_attempts=3):
    """Gateway over *backend* whose retries do not actually sleep."""
    sleeps = []

    async def sleep(delay):
        sleeps.append(delay)

    gateway = ProjectGateway(
        backend if backend is not None else FakeBackend(),
        RetryPolicy(max_attempts=max_attempts, base_delay=1.0, sleep=sleep),
    )
    gateway.sleeps = sleeps
    return gateway
