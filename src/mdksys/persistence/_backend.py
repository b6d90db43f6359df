"""The boundary between the gateway and the relational backing service."""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from ._rows import ProjectRow, ProjectRows


class User(BaseModel):
    id: str
    email: str = ""


class HealthState(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthStatus(BaseModel):
    status: HealthState
    details: dict[str, Any] = {}

    @property
    def healthy(self) -> bool:
        return self.status == HealthState.HEALTHY


@runtime_checkable
class ProjectBackend(Protocol):
    """Operations the gateway needs from the backing store.

    Failures are reported by raising; :class:`~mdksys.errors.BackendError`
    with an SQLSTATE-style ``code`` lets the retry policy classify them.
    """

    async def list_projects(self, owner_id: str) -> list[ProjectRow]:
        """Project rows owned by *owner_id*, most recently updated first."""
        ...

    async def get_project_detail(self, project_id: str) -> ProjectRows | None:
        ...

    async def get_project_owner(self, project_id: str) -> str | None:
        """Owner id of *project_id*, or None when there is no such project."""
        ...

    async def save_project_transaction(self, rows: ProjectRows) -> None:
        """Write the project and all its child rows atomically."""
        ...

    async def delete_project(self, project_id: str, owner_id: str) -> None:
        ...

    async def current_user(self) -> User | None:
        ...

    async def ping(self) -> None:
        """Cheapest possible read; raises when the store is unreachable."""
        ...

    async def dispose(self) -> None:
        """Release connections. The backend is unusable afterwards."""
        ...
