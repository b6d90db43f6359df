"""SQLAlchemy implementation of :class:`ProjectBackend`.

Eight tables mirror the row models in :mod:`._rows`. Child tables hang
off ``projects`` with ``ON DELETE CASCADE``, so deleting a project takes
its join rows and steps with it. A save is one transaction: upsert the
project row, then replace every child row.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from mdksys.errors import (
    CHECK_VIOLATION,
    FOREIGN_KEY_VIOLATION,
    UNIQUE_VIOLATION,
    BackendError,
)

from ._backend import User
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

INSUFFICIENT_PRIVILEGE = "42501"


class Base(DeclarativeBase):
    pass


class ProjectTable(Base):
    __tablename__ = "projects"
    id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(sa.Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    description: Mapped[str | None] = mapped_column(sa.Text)
    version: Mapped[str] = mapped_column(sa.Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)

    __table_args__ = (
        sa.CheckConstraint("length(trim(name)) > 0", name="ck_projects_name"),
    )


class IOTable(Base):
    __tablename__ = "io_configs"
    id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    project_id: Mapped[str] = mapped_column(
        sa.Text, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    type: Mapped[str] = mapped_column(sa.Text, nullable=False)
    address: Mapped[str] = mapped_column(sa.Text, nullable=False)
    description: Mapped[str | None] = mapped_column(sa.Text)
    enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)

    __table_args__ = (
        sa.CheckConstraint("type IN ('DI', 'DO', 'AI', 'AO', 'SIGNAL')", name="ck_io_type"),
    )


class AxisTable(Base):
    __tablename__ = "axis_configs"
    id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    project_id: Mapped[str] = mapped_column(
        sa.Text, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    type: Mapped[str] = mapped_column(sa.Text, nullable=False)
    max_speed: Mapped[float] = mapped_column(sa.Float, nullable=False)
    acceleration: Mapped[float] = mapped_column(sa.Float, nullable=False)
    deceleration: Mapped[float] = mapped_column(sa.Float, nullable=False)
    home_position: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    soft_limit_min: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    soft_limit_max: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)

    __table_args__ = (
        sa.CheckConstraint("type IN ('X', 'Y', 'Z', 'A', 'B', 'C')", name="ck_axis_type"),
        sa.CheckConstraint(
            "max_speed > 0 AND acceleration > 0 AND deceleration > 0",
            name="ck_axis_kinematics",
        ),
    )


class StationTable(Base):
    __tablename__ = "station_configs"
    id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    project_id: Mapped[str] = mapped_column(
        sa.Text, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    position_x: Mapped[float] = mapped_column(sa.Float, nullable=False)
    position_y: Mapped[float] = mapped_column(sa.Float, nullable=False)
    description: Mapped[str | None] = mapped_column(sa.Text)
    enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)


class StationIOTable(Base):
    __tablename__ = "station_io_configs"
    station_id: Mapped[str] = mapped_column(
        sa.Text, sa.ForeignKey("station_configs.id", ondelete="CASCADE"), primary_key=True,
    )
    io_config_id: Mapped[str] = mapped_column(
        sa.Text, sa.ForeignKey("io_configs.id", ondelete="CASCADE"), primary_key=True,
    )


class StationAxisTable(Base):
    __tablename__ = "station_axis_configs"
    station_id: Mapped[str] = mapped_column(
        sa.Text, sa.ForeignKey("station_configs.id", ondelete="CASCADE"), primary_key=True,
    )
    axis_config_id: Mapped[str] = mapped_column(
        sa.Text, sa.ForeignKey("axis_configs.id", ondelete="CASCADE"), primary_key=True,
    )


class TaskTable(Base):
    __tablename__ = "task_configs"
    id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    project_id: Mapped[str] = mapped_column(
        sa.Text, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    station_id: Mapped[str | None] = mapped_column(
        sa.Text, sa.ForeignKey("station_configs.id", ondelete="SET NULL"),
    )
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    priority: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)

    __table_args__ = (
        sa.CheckConstraint("priority >= 0", name="ck_task_priority"),
    )


class StepTable(Base):
    __tablename__ = "task_steps"
    id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    task_id: Mapped[str] = mapped_column(
        sa.Text, sa.ForeignKey("task_configs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    sequence_order: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    type: Mapped[str] = mapped_column(sa.Text, nullable=False)
    parameters: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    description: Mapped[str | None] = mapped_column(sa.Text)


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

_MESSAGE_CODES = (
    ("unique constraint", UNIQUE_VIOLATION),
    ("duplicate key", UNIQUE_VIOLATION),
    ("foreign key constraint", FOREIGN_KEY_VIOLATION),
    ("check constraint", CHECK_VIOLATION),
)


def _sqlstate(exc: SQLAlchemyError) -> str | None:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return str(code)
    message = str(orig if orig is not None else exc).lower()
    for marker, mapped in _MESSAGE_CODES:
        if marker in message:
            return mapped
    return None


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Re-raise driver errors as :class:`BackendError` with a code."""
    try:
        yield
    except IntegrityError as exc:
        raise BackendError(
            str(exc.orig), code=_sqlstate(exc), details={"operation": operation},
        ) from exc
    except SQLAlchemyError as exc:
        raise BackendError(
            str(exc), code=_sqlstate(exc), details={"operation": operation},
        ) from exc


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _columns(obj: Any, model: type) -> dict[str, Any]:
    return {name: getattr(obj, name) for name in model.model_fields}


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------

class SqlProjectBackend:
    """Project storage on any SQLAlchemy async engine.

    *user_provider* answers "who is signed in"; session handling lives
    outside this package.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        user_provider: Callable[[], User | None] = lambda: None,
    ) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        self._user_provider = user_provider

    @classmethod
    def from_url(
        cls,
        url: str,
        user_provider: Callable[[], User | None] = lambda: None,
    ) -> SqlProjectBackend:
        kwargs: dict[str, Any] = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url:
                # One shared connection, or every session sees an empty database
                kwargs["poolclass"] = StaticPool
        else:
            kwargs["pool_pre_ping"] = True
        engine = create_async_engine(url, **kwargs)
        if url.startswith("sqlite"):
            event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return cls(engine, user_provider)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()

    # -----------------------------------------------------------------------
    # ProjectBackend
    # -----------------------------------------------------------------------

    async def current_user(self) -> User | None:
        return self._user_provider()

    async def ping(self) -> None:
        with _translate_errors("ping"):
            async with self._sessions() as session:
                await session.execute(sa.select(ProjectTable.id).limit(1))

    async def list_projects(self, owner_id: str) -> list[ProjectRow]:
        with _translate_errors("list_projects"):
            async with self._sessions() as session:
                result = await session.scalars(
                    sa.select(ProjectTable)
                    .where(ProjectTable.user_id == owner_id)
                    .order_by(ProjectTable.updated_at.desc())
                )
                return [self._project_row(p) for p in result]

    async def get_project_owner(self, project_id: str) -> str | None:
        with _translate_errors("get_project_owner"):
            async with self._sessions() as session:
                return await session.scalar(
                    sa.select(ProjectTable.user_id).where(ProjectTable.id == project_id)
                )

    async def get_project_detail(self, project_id: str) -> ProjectRows | None:
        with _translate_errors("get_project_detail"):
            async with self._sessions() as session:
                project = await session.get(ProjectTable, project_id)
                if project is None:
                    return None

                async def _rows(table: type, model: type, *criteria: Any) -> list:
                    result = await session.scalars(sa.select(table).where(*criteria))
                    return [model(**_columns(obj, model)) for obj in result]

                stations = await _rows(
                    StationTable, StationRow, StationTable.project_id == project_id,
                )
                tasks = await _rows(TaskTable, TaskRow, TaskTable.project_id == project_id)
                station_ids = [s.id for s in stations]
                task_ids = [t.id for t in tasks]

                steps: list[StepRow] = []
                if task_ids:
                    result = await session.scalars(
                        sa.select(StepTable)
                        .where(StepTable.task_id.in_(task_ids))
                        .order_by(StepTable.sequence_order)
                    )
                    steps = [StepRow(**_columns(obj, StepRow)) for obj in result]

                return ProjectRows(
                    project=self._project_row(project),
                    io_rows=await _rows(IOTable, IORow, IOTable.project_id == project_id),
                    axis_rows=await _rows(AxisTable, AxisRow, AxisTable.project_id == project_id),
                    station_rows=stations,
                    station_io_rows=await _rows(
                        StationIOTable, StationIORow, StationIOTable.station_id.in_(station_ids),
                    ) if station_ids else [],
                    station_axis_rows=await _rows(
                        StationAxisTable, StationAxisRow,
                        StationAxisTable.station_id.in_(station_ids),
                    ) if station_ids else [],
                    task_rows=tasks,
                    step_rows=steps,
                )

    async def save_project_transaction(self, rows: ProjectRows) -> None:
        head = rows.project
        pid = head.id
        now = datetime.now(timezone.utc)
        with _translate_errors("save_project_transaction"):
            async with self._sessions() as session, session.begin():
                existing = await session.get(ProjectTable, pid)
                if existing is None:
                    session.add(ProjectTable(
                        id=pid,
                        user_id=head.user_id,
                        name=head.name,
                        description=head.description,
                        version=head.version,
                        created_at=head.created_at or now,
                        updated_at=head.updated_at or now,
                    ))
                else:
                    if existing.user_id != head.user_id:
                        raise BackendError(
                            f"Invalid owner for project {pid}", code=INSUFFICIENT_PRIVILEGE,
                        )
                    existing.name = head.name
                    existing.description = head.description
                    existing.version = head.version
                    existing.updated_at = head.updated_at or now
                await session.flush()

                task_ids = sa.select(TaskTable.id).where(TaskTable.project_id == pid)
                station_ids = sa.select(StationTable.id).where(StationTable.project_id == pid)
                await session.execute(sa.delete(StepTable).where(StepTable.task_id.in_(task_ids)))
                await session.execute(sa.delete(TaskTable).where(TaskTable.project_id == pid))
                await session.execute(
                    sa.delete(StationIOTable).where(StationIOTable.station_id.in_(station_ids))
                )
                await session.execute(
                    sa.delete(StationAxisTable).where(StationAxisTable.station_id.in_(station_ids))
                )
                await session.execute(sa.delete(StationTable).where(StationTable.project_id == pid))
                await session.execute(sa.delete(IOTable).where(IOTable.project_id == pid))
                await session.execute(sa.delete(AxisTable).where(AxisTable.project_id == pid))

                for table, batch in (
                    (IOTable, rows.io_rows),
                    (AxisTable, rows.axis_rows),
                    (StationTable, rows.station_rows),
                    (StationIOTable, rows.station_io_rows),
                    (StationAxisTable, rows.station_axis_rows),
                    (TaskTable, rows.task_rows),
                    (StepTable, rows.step_rows),
                ):
                    if batch:
                        await session.execute(
                            sa.insert(table), [row.model_dump() for row in batch],
                        )
        logger.debug("Wrote project %s (%d tasks)", pid, len(rows.task_rows))

    async def delete_project(self, project_id: str, owner_id: str) -> None:
        with _translate_errors("delete_project"):
            async with self._sessions() as session, session.begin():
                await session.execute(
                    sa.delete(ProjectTable).where(
                        ProjectTable.id == project_id,
                        ProjectTable.user_id == owner_id,
                    )
                )

    @staticmethod
    def _project_row(project: ProjectTable) -> ProjectRow:
        return ProjectRow(
            id=project.id,
            user_id=project.user_id,
            name=project.name,
            description=project.description,
            version=project.version,
            created_at=_aware(project.created_at),
            updated_at=_aware(project.updated_at),
        )


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
