"""The project store: the one authoritative in-memory project.

Collection edits are synchronous and local; they stamp ``updated_at`` and
never touch the network. Persistence happens only through the async
operations, which are guarded against re-entry by ``is_loading`` /
``is_saving`` and never raise: failures land in :attr:`ProjectStore.error`.
List refreshes and deletes carry their own flags (``is_refreshing``,
``is_deleting``) so a background refresh never blocks a project load.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, TypeVar

from pydantic import BaseModel

from mdksys.errors import (
    DATABASE_UNREACHABLE,
    PROJECT_CREATED,
    PROJECT_DELETE_FAILED,
    PROJECT_NOT_FOUND,
    PROJECT_SAVED,
    describe_error,
)
from mdksys.model.hardware import AxisConfig, IOConfig
from mdksys.model.project import DEFAULT_PROJECT_NAME, ProjectConfig, new_project
from mdksys.model.station import StationConfig
from mdksys.model.task import TaskConfig
from mdksys.persistence import DanglingReference, ProjectGateway, ProjectIndex
from mdksys.validation import validate_project_name

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseModel)


def _merge(item: E, changes: dict[str, Any]) -> E:
    """*item* with *changes* applied, re-checked against the model's types."""
    unknown = set(changes) - set(type(item).model_fields)
    if unknown:
        raise TypeError(f"Unknown field(s): {', '.join(sorted(unknown))}")
    return type(item).model_validate({**dict(item), **changes})


def _replace(items: list[E], item_id: str, changes: dict[str, Any]) -> list[E]:
    return [_merge(item, changes) if item.id == item_id else item for item in items]


def _without(items: list[E], item_id: str) -> list[E]:
    return [item for item in items if item.id != item_id]


class ProjectStore:
    """Holds the current project, the user's project list and UI status.

    Parameters
    ----------
    gateway : ProjectGateway
        Persistence for load / save / delete.
    success_clear_delay : float
        Seconds before a success message clears itself (default 3).
    """

    def __init__(
        self,
        gateway: ProjectGateway,
        *,
        success_clear_delay: float = 3.0,
    ) -> None:
        self._gateway = gateway
        self._success_clear_delay = success_clear_delay

        self.project: ProjectConfig = new_project()
        self.projects: list[ProjectConfig] = []
        self.current_project_id: str | None = None
        self.is_loading = False
        self.is_saving = False
        self.is_refreshing = False
        self.is_deleting = False
        self.error: str | None = None
        self.success: str | None = None
        self.is_online = True

        # Offline support: tracked but not replayed
        self.optimistic_updates: set[str] = set()
        self.pending_changes: dict[str, Any] = {}

        self._success_timer: asyncio.TimerHandle | None = None
        self._background: set[asyncio.Task] = set()

    # -----------------------------------------------------------------------
    # Status helpers
    # -----------------------------------------------------------------------

    def clear_error(self) -> None:
        self.error = None

    def clear_success(self) -> None:
        self.success = None

    def _fail(self, operation: str, exc: BaseException) -> None:
        self.error = describe_error(exc)
        self.success = None
        logger.error("%s failed: %s", operation, exc)

    def _announce(self, message: str) -> None:
        self.success = message
        self.error = None
        if self._success_timer is not None:
            self._success_timer.cancel()
        loop = asyncio.get_running_loop()
        self._success_timer = loop.call_later(
            self._success_clear_delay, self._expire_success, message,
        )

    def _expire_success(self, message: str) -> None:
        self._success_timer = None
        if self.success == message:
            self.success = None

    def _refresh_list_in_background(self) -> None:
        task = asyncio.get_running_loop().create_task(self.load_projects())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # -----------------------------------------------------------------------
    # Whole-project edits
    # -----------------------------------------------------------------------

    def update_project(self, **changes: Any) -> None:
        """Change top-level fields (name, description, version...)."""
        self.project = _merge(self.project, changes).touch()
        self.error = None
        self.success = None

    def set_project(self, project: ProjectConfig) -> None:
        self.project = project
        self.current_project_id = project.id
        self.error = None
        self.success = None

    def dangling_references(self) -> list[DanglingReference]:
        """Weak references in the current project that point at nothing."""
        return ProjectIndex(self.project).dangling_references()

    # -----------------------------------------------------------------------
    # Collection edits
    # -----------------------------------------------------------------------

    def add_io_config(self, config: IOConfig) -> None:
        self.project = self.project.touch(io_configs=[*self.project.io_configs, config])

    def update_io_config(self, config_id: str, **changes: Any) -> None:
        self.project = self.project.touch(
            io_configs=_replace(self.project.io_configs, config_id, changes),
        )

    def delete_io_config(self, config_id: str) -> None:
        self.project = self.project.touch(
            io_configs=_without(self.project.io_configs, config_id),
        )

    def add_axis_config(self, config: AxisConfig) -> None:
        self.project = self.project.touch(axis_configs=[*self.project.axis_configs, config])

    def update_axis_config(self, config_id: str, **changes: Any) -> None:
        self.project = self.project.touch(
            axis_configs=_replace(self.project.axis_configs, config_id, changes),
        )

    def delete_axis_config(self, config_id: str) -> None:
        self.project = self.project.touch(
            axis_configs=_without(self.project.axis_configs, config_id),
        )

    def add_station_config(self, config: StationConfig) -> None:
        self.project = self.project.touch(
            station_configs=[*self.project.station_configs, config],
        )

    def update_station_config(self, config_id: str, **changes: Any) -> None:
        self.project = self.project.touch(
            station_configs=_replace(self.project.station_configs, config_id, changes),
        )

    def delete_station_config(self, config_id: str) -> None:
        self.project = self.project.touch(
            station_configs=_without(self.project.station_configs, config_id),
        )

    def add_task_config(self, config: TaskConfig) -> None:
        self.project = self.project.touch(task_configs=[*self.project.task_configs, config])

    def update_task_config(self, config_id: str, **changes: Any) -> None:
        self.project = self.project.touch(
            task_configs=_replace(self.project.task_configs, config_id, changes),
        )

    def delete_task_config(self, config_id: str) -> None:
        self.project = self.project.touch(
            task_configs=_without(self.project.task_configs, config_id),
        )
        self.error = None
        self.success = None

    # -----------------------------------------------------------------------
    # Persistence
    # -----------------------------------------------------------------------

    async def load_project(self, project_id: str) -> None:
        if self.is_loading:
            return
        self.is_loading = True
        self.error = None
        self.success = None
        try:
            project = await self._gateway.get(project_id)
            if project is None:
                self.error = PROJECT_NOT_FOUND
            else:
                self.project = project
                self.current_project_id = project_id
        except Exception as exc:
            self._fail("load_project", exc)
        finally:
            self.is_loading = False

    async def save_project(self) -> None:
        if self.is_saving:
            return
        self.is_saving = True
        self.error = None
        try:
            validate_project_name(self.project.name)
            saved = await self._gateway.save(self.project)
        except Exception as exc:
            self._fail("save_project", exc)
            return
        finally:
            self.is_saving = False
        self.project = saved
        self.current_project_id = saved.id
        self._announce(PROJECT_SAVED)
        self._refresh_list_in_background()

    async def create_new_project(self, name: str = DEFAULT_PROJECT_NAME) -> None:
        """Save a fresh, empty project named *name* and make it current."""
        if self.is_loading:
            return
        self.is_loading = True
        self.error = None
        try:
            validate_project_name(name)
            saved = await self._gateway.save(new_project(name.strip()))
        except Exception as exc:
            self._fail("create_new_project", exc)
            return
        finally:
            self.is_loading = False
        self.project = saved
        self.current_project_id = saved.id
        self._announce(PROJECT_CREATED)
        self._refresh_list_in_background()

    async def delete_project(self, project_id: str) -> None:
        self.is_deleting = True
        self.error = None
        try:
            deleted = await self._gateway.delete(project_id)
        except Exception as exc:
            self._fail("delete_project", exc)
            return
        finally:
            self.is_deleting = False
        if not deleted:
            self.error = PROJECT_DELETE_FAILED
            return
        if project_id in (self.current_project_id, self.project.id):
            self.project = new_project()
            self.current_project_id = None
        self.projects = [p for p in self.projects if p.id != project_id]

    async def load_projects(self) -> None:
        self.is_refreshing = True
        self.error = None
        try:
            self.projects = await self._gateway.list()
        except Exception as exc:
            self._fail("load_projects", exc)
        finally:
            self.is_refreshing = False

    async def check_health(self) -> None:
        """Probe the backend; an outage shows up as ``is_online = False``."""
        status = await self._gateway.health_check()
        if status.healthy:
            self.is_online = True
            self.error = None
        else:
            self.is_online = False
            detail = status.details.get("error") or "unknown error"
            self.error = f"{DATABASE_UNREACHABLE} ({detail})"

    # -----------------------------------------------------------------------
    # Teardown
    # -----------------------------------------------------------------------

    async def aclose(self) -> None:
        """Cancel the success timer and background refreshes, then close the backend."""
        if self._success_timer is not None:
            self._success_timer.cancel()
            self._success_timer = None
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._gateway.aclose()
