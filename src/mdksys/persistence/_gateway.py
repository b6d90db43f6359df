"""Persistence gateway: validated, retried access to the backing store."""

from __future__ import annotations

import logging
import time

from mdksys.errors import NOT_SIGNED_IN, TransactionError, ValidationError
from mdksys.model.base import utc_now
from mdksys.model.project import ProjectConfig
from mdksys.validation import validate_project

from ._backend import HealthState, HealthStatus, ProjectBackend, User
from ._materialize import flatten, reconstitute
from ._retry import RetryPolicy

logger = logging.getLogger(__name__)


class ProjectGateway:
    """Reads and writes whole projects against a :class:`ProjectBackend`.

    Parameters
    ----------
    backend : ProjectBackend
        The relational service.
    retry_policy : RetryPolicy
        Wraps every network operation (default: 3 attempts, 1s base
        delay).
    """

    def __init__(
        self,
        backend: ProjectBackend,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._backend = backend
        self._retry = retry_policy or RetryPolicy()

    # -----------------------------------------------------------------------
    # Identity
    # -----------------------------------------------------------------------

    async def current_user(self) -> User | None:
        return await self._retry.run("current_user", self._backend.current_user)

    async def _require_user(self) -> str:
        user = await self._backend.current_user()
        if user is None:
            raise ValidationError(NOT_SIGNED_IN, "user")
        return user.id

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def list(self) -> list[ProjectConfig]:
        """All projects of the signed-in user, most recently updated first."""

        async def _list() -> list[ProjectConfig]:
            owner_id = await self._require_user()
            projects: list[ProjectConfig] = []
            for row in await self._backend.list_projects(owner_id):
                detail = await self._backend.get_project_detail(row.id)
                if detail is not None:
                    projects.append(reconstitute(detail))
            return projects

        return await self._retry.run("list", _list)

    async def get(self, project_id: str) -> ProjectConfig | None:
        """The full project, or None when it does not exist."""

        async def _get() -> ProjectConfig | None:
            detail = await self._backend.get_project_detail(project_id)
            return reconstitute(detail) if detail is not None else None

        return await self._retry.run("get", _get)

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    async def save(self, project: ProjectConfig) -> ProjectConfig:
        """Persist *project* and return the copy the store now holds.

        Validation runs first and never reaches the network. The write is
        a single backend transaction; the result is re-read so the caller
        adopts the server's view, timestamps included.
        """
        validate_project(project)

        async def _save() -> ProjectConfig:
            owner_id = await self._require_user()
            rows = flatten(project.model_copy(update={"updated_at": utc_now()}), owner_id)
            await self._backend.save_project_transaction(rows)
            detail = await self._backend.get_project_detail(project.id)
            if detail is None:
                raise TransactionError(
                    f"Project {project.id} missing right after save", "save",
                )
            return reconstitute(detail)

        saved = await self._retry.run("save", _save)
        logger.info("Saved project %s (%s)", saved.id, saved.name)
        return saved

    async def delete(self, project_id: str) -> bool:
        """Delete a project owned by the signed-in user.

        Returns False when the project does not exist. Deleting someone
        else's project raises :class:`ValidationError`. Child rows go
        with the project through the store's cascading deletes.
        """

        async def _delete() -> bool:
            owner_id = await self._require_user()
            actual_owner = await self._backend.get_project_owner(project_id)
            if actual_owner is None:
                return False
            if actual_owner != owner_id:
                raise ValidationError("Not allowed to delete this project", "user")
            await self._backend.delete_project(project_id, owner_id)
            return True

        deleted = await self._retry.run("delete", _delete)
        if deleted:
            logger.info("Deleted project %s", project_id)
        else:
            logger.info("Project %s not found, nothing deleted", project_id)
        return deleted

    # -----------------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------------

    async def health_check(self) -> HealthStatus:
        """Time one cheap read. Never raises."""
        started = time.perf_counter()
        try:
            await self._backend.ping()
        except Exception as exc:
            elapsed = (time.perf_counter() - started) * 1000
            logger.warning("Health check failed: %s", exc)
            return HealthStatus(
                status=HealthState.UNHEALTHY,
                details={"error": str(exc) or type(exc).__name__, "response_time_ms": elapsed},
            )
        elapsed = (time.perf_counter() - started) * 1000
        return HealthStatus(
            status=HealthState.HEALTHY,
            details={"response_time_ms": elapsed, "timestamp": utc_now().isoformat()},
        )

    async def aclose(self) -> None:
        await self._backend.dispose()
