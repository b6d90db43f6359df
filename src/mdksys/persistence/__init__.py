"""mdksys persistence: moving projects in and out of the backing store.

Entry point::

    from mdksys.persistence import ProjectGateway, SqlProjectBackend

    backend = SqlProjectBackend.from_url(url, user_provider=session_user)
    await backend.create_all()
    gateway = ProjectGateway(backend)
    saved = await gateway.save(project)
"""

from __future__ import annotations

from ._backend import HealthState, HealthStatus, ProjectBackend, User
from ._gateway import ProjectGateway
from ._materialize import DanglingReference, ProjectIndex, flatten, reconstitute
from ._retry import RetryPolicy, is_retryable
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
from ._sql import SqlProjectBackend

__all__ = [
    "AxisRow",
    "DanglingReference",
    "HealthState",
    "HealthStatus",
    "IORow",
    "ProjectBackend",
    "ProjectGateway",
    "ProjectIndex",
    "ProjectRow",
    "ProjectRows",
    "RetryPolicy",
    "SqlProjectBackend",
    "StationAxisRow",
    "StationIORow",
    "StationRow",
    "StepRow",
    "TaskRow",
    "User",
    "flatten",
    "is_retryable",
    "reconstitute",
]
