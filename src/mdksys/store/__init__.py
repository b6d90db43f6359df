"""mdksys store: the single in-memory copy of the open project.

Entry point::

    from mdksys.store import create_store

    store = await create_store(settings, user_provider=session_user)
    store.add_io_config(IOConfig(id=generate_id(), name="X1", type="DI", address="0.0"))
    await store.save_project()
"""

from __future__ import annotations

from collections.abc import Callable

from mdksys.persistence import ProjectGateway, RetryPolicy, SqlProjectBackend, User
from mdksys.settings import Settings

from ._store import ProjectStore


async def create_store(
    settings: Settings | None = None,
    *,
    user_provider: Callable[[], User | None] = lambda: None,
) -> ProjectStore:
    """Wire an SQL backend, a gateway and a store from *settings*.

    Tables are created if missing.
    """
    if settings is None:
        settings = Settings.from_env()
    backend = SqlProjectBackend.from_url(settings.database_url, user_provider)
    await backend.create_all()
    gateway = ProjectGateway(
        backend,
        RetryPolicy(
            max_attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay,
        ),
    )
    return ProjectStore(gateway, success_clear_delay=settings.success_clear_seconds)


__all__ = ["ProjectStore", "create_store"]
