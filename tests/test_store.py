"""Tests for ProjectStore."""

import asyncio

import pytest
from pydantic import ValidationError

from conftest import (
    FakeBackend,
    make_axis,
    make_gateway,
    make_io,
    make_project,
    make_station,
    make_task,
    run,
)

from mdksys.errors import (
    DATABASE_UNREACHABLE,
    PROJECT_CREATED,
    PROJECT_DELETE_FAILED,
    PROJECT_NAME_REQUIRED,
    PROJECT_NOT_FOUND,
    PROJECT_SAVED,
    BackendError,
)
from mdksys.model.project import DEFAULT_PROJECT_NAME
from mdksys.model.station import Position
from mdksys.persistence import flatten
from mdksys.settings import Settings
from mdksys.store import ProjectStore, create_store


def make_store(backend=None, success_clear_delay=3.0):
    backend = backend if backend is not None else FakeBackend()
    store = ProjectStore(make_gateway(backend), success_clear_delay=success_clear_delay)
    return store, backend


# ---------------------------------------------------------------------------
# Local edits
# ---------------------------------------------------------------------------

class TestEdits:
    def test_starts_with_default_project(self):
        store, _ = make_store()
        assert store.project.name == DEFAULT_PROJECT_NAME
        assert store.current_project_id is None
        assert store.is_online

    def test_add_update_delete_io(self):
        store, _ = make_store()
        store.add_io_config(make_io())
        store.update_io_config("io1", name="X9")
        assert store.project.io_configs[0].name == "X9"
        store.delete_io_config("io1")
        assert store.project.io_configs == []

    def test_update_revalidates_types(self):
        store, _ = make_store()
        store.add_io_config(make_io())
        with pytest.raises(ValidationError):
            store.update_io_config("io1", type="NOPE")
        assert store.project.io_configs[0].type.value == "DI"

    def test_update_rejects_unknown_field(self):
        store, _ = make_store()
        store.add_axis_config(make_axis())
        with pytest.raises(TypeError):
            store.update_axis_config("ax1", colour="red")

    def test_update_missing_id_is_noop(self):
        store, _ = make_store()
        store.add_station_config(make_station())
        store.update_station_config("nope", name="Other")
        assert store.project.station_configs[0].name == "Load"

    def test_every_edit_stamps_updated_at(self):
        store, _ = make_store()
        stamps = [store.project.updated_at]
        store.add_axis_config(make_axis())
        stamps.append(store.project.updated_at)
        store.update_axis_config("ax1", max_speed=900)
        stamps.append(store.project.updated_at)
        store.add_station_config(make_station(axis_configs=["ax1"]))
        stamps.append(store.project.updated_at)
        store.update_station_config("st1", position=Position(x=5, y=6))
        stamps.append(store.project.updated_at)
        store.add_task_config(make_task(station_id="st1"))
        stamps.append(store.project.updated_at)
        store.update_task_config("t1", priority=4)
        stamps.append(store.project.updated_at)
        store.delete_axis_config("ax1")
        stamps.append(store.project.updated_at)
        assert stamps == sorted(stamps)
        assert store.project.task_configs[0].priority == 4
        assert store.project.axis_configs == []

    def test_delete_keeps_dangling_references(self):
        store, _ = make_store()
        store.set_project(make_project())
        store.delete_io_config("io1")
        store.delete_station_config("st1")
        assert store.project.station_configs == []
        assert store.project.task_configs[0].station_id == "st1"
        [dangling] = store.dangling_references()
        assert (dangling.owner_kind, dangling.target_id) == ("task", "st1")

    def test_delete_task_clears_status(self):
        store, _ = make_store()
        store.set_project(make_project())
        store.error = "boom"
        store.success = "yay"
        store.delete_task_config("t1")
        assert store.project.task_configs == []
        assert store.error is None
        assert store.success is None

    def test_update_project(self):
        store, _ = make_store()
        before = store.project.updated_at
        store.update_project(name="Cell 7", description="press line")
        assert store.project.name == "Cell 7"
        assert store.project.updated_at >= before

    def test_set_project(self):
        store, _ = make_store()
        store.set_project(make_project())
        assert store.current_project_id == "p1"

    def test_offline_bookkeeping_starts_empty(self):
        store, _ = make_store()
        assert store.optimistic_updates == set()
        assert store.pending_changes == {}


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------

class TestSave:
    def test_save_adopts_result(self):
        async def scenario():
            store, backend = make_store()
            store.set_project(make_project())
            await store.save_project()
            await store.aclose()
            return store, backend

        store, backend = run(scenario())
        assert store.success == PROJECT_SAVED
        assert store.error is None
        assert store.is_saving is False
        assert store.current_project_id == "p1"
        assert "p1" in backend.rows
        assert backend.disposed

    def test_save_refreshes_list(self):
        async def scenario():
            store, _ = make_store()
            store.set_project(make_project())
            await store.save_project()
            await asyncio.gather(*store._background)
            return store

        store = run(scenario())
        assert [p.id for p in store.projects] == ["p1"]

    def test_blank_name_never_reaches_backend(self):
        async def scenario():
            store, backend = make_store()
            store.update_project(name="  ")
            await store.save_project()
            return store, backend

        store, backend = run(scenario())
        assert store.error == PROJECT_NAME_REQUIRED
        assert backend.calls == {}
        assert store.is_saving is False

    def test_second_save_while_saving_is_dropped(self):
        async def scenario():
            backend = FakeBackend()
            backend.gate = asyncio.Event()
            store, _ = make_store(backend)
            store.set_project(make_project())
            first = asyncio.create_task(store.save_project())
            await asyncio.sleep(0)
            assert store.is_saving
            await store.save_project()
            backend.gate.set()
            await first
            await store.aclose()
            return backend

        backend = run(scenario())
        assert backend.calls["save_project_transaction"] == 1

    def test_second_load_while_loading_is_dropped(self):
        async def scenario():
            backend = FakeBackend()
            backend.rows["p1"] = flatten(make_project(), "user-1")
            backend.gate = asyncio.Event()
            store, _ = make_store(backend)
            first = asyncio.create_task(store.load_project("p1"))
            await asyncio.sleep(0)
            assert store.is_loading
            await store.load_project("p1")
            backend.gate.set()
            await first
            return store, backend

        store, backend = run(scenario())
        assert backend.calls["get_project_detail"] == 1
        assert store.project.id == "p1"
        assert store.is_loading is False

    def test_load_during_background_refresh_still_runs(self):
        async def scenario():
            backend = FakeBackend()
            backend.rows["p1"] = flatten(make_project(), "user-1")
            store, _ = make_store(backend)
            store.set_project(make_project(id="other"))
            await store.save_project()
            backend.gate = asyncio.Event()
            await asyncio.sleep(0)
            assert store.is_refreshing
            assert not store.is_loading
            load = asyncio.create_task(store.load_project("p1"))
            await asyncio.sleep(0)
            backend.gate.set()
            await load
            await asyncio.gather(*store._background)
            return store

        store = run(scenario())
        assert store.project.id == "p1"
        assert store.current_project_id == "p1"
        assert store.error is None
        assert store.is_loading is False
        assert store.is_refreshing is False

    def test_backend_failure_lands_in_error(self):
        async def scenario():
            backend = FakeBackend()
            backend.fail("save_project_transaction", BackendError("dup", code="23505"))
            store, _ = make_store(backend)
            store.set_project(make_project())
            await store.save_project()
            return store

        store = run(scenario())
        assert store.error == "A record with the same identifier already exists."
        assert store.success is None
        assert store.is_saving is False

    def test_success_clears_itself(self):
        async def scenario():
            store, _ = make_store(success_clear_delay=0.01)
            store.set_project(make_project())
            await store.save_project()
            assert store.success == PROJECT_SAVED
            await asyncio.sleep(0.05)
            await store.aclose()
            return store

        assert run(scenario()).success is None

    def test_create_new_project(self):
        async def scenario():
            store, backend = make_store()
            await store.create_new_project("  Line 4 ")
            await store.aclose()
            return store, backend

        store, backend = run(scenario())
        assert store.project.name == "Line 4"
        assert store.success == PROJECT_CREATED
        assert store.current_project_id in backend.rows
        assert store.project.io_configs == []

    def test_create_new_project_blank_name(self):
        async def scenario():
            store, backend = make_store()
            await store.create_new_project("")
            return store, backend

        store, backend = run(scenario())
        assert store.error == PROJECT_NAME_REQUIRED
        assert backend.calls == {}


# ---------------------------------------------------------------------------
# Load / delete
# ---------------------------------------------------------------------------

class TestLoadDelete:
    def test_load_project(self):
        backend = FakeBackend()
        backend.rows["p1"] = flatten(make_project(), "user-1")
        store, _ = make_store(backend)
        run(store.load_project("p1"))
        assert store.project.id == "p1"
        assert store.current_project_id == "p1"
        assert store.is_loading is False

    def test_load_missing_project(self):
        store, _ = make_store()
        original = store.project
        run(store.load_project("nope"))
        assert store.error == PROJECT_NOT_FOUND
        assert store.project is original

    def test_load_failure_after_retries(self):
        backend = FakeBackend()
        backend.fail(
            "get_project_detail",
            ConnectionError("a"), ConnectionError("b"), ConnectionError("c"),
        )
        store, _ = make_store(backend)
        run(store.load_project("p1"))
        assert store.error == "Operation failed, please try again."
        assert store.is_loading is False

    def test_delete_current_resets(self):
        backend = FakeBackend()
        backend.rows["p1"] = flatten(make_project(), "user-1")
        store, _ = make_store(backend)
        run(store.load_project("p1"))
        run(store.load_projects())
        run(store.delete_project("p1"))
        assert store.current_project_id is None
        assert store.project.id != "p1"
        assert store.project.name == DEFAULT_PROJECT_NAME
        assert store.projects == []

    def test_delete_other_keeps_current(self):
        backend = FakeBackend()
        backend.rows["p1"] = flatten(make_project(), "user-1")
        backend.rows["p2"] = flatten(make_project(id="p2"), "user-1")
        store, _ = make_store(backend)
        run(store.load_project("p1"))
        run(store.delete_project("p2"))
        assert store.current_project_id == "p1"

    def test_delete_missing(self):
        store, _ = make_store()
        run(store.delete_project("nope"))
        assert store.error == PROJECT_DELETE_FAILED

    def test_load_projects_unauthenticated(self):
        store, _ = make_store(FakeBackend(user=None))
        run(store.load_projects())
        assert store.error == "You must be signed in."
        assert store.projects == []


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:
    def test_offline(self):
        backend = FakeBackend()
        backend.fail("ping", ConnectionError("refused"))
        store, _ = make_store(backend)
        run(store.check_health())
        assert store.is_online is False
        assert store.error == f"{DATABASE_UNREACHABLE} (refused)"

    def test_back_online(self):
        store, _ = make_store()
        store.is_online = False
        run(store.check_health())
        assert store.is_online is True
        assert store.error is None


def test_create_store_on_sqlite():
    async def scenario():
        store = await create_store(
            Settings(database_url="sqlite+aiosqlite:///:memory:"),
            user_provider=lambda: None,
        )
        await store.save_project()
        await store.aclose()
        return store

    store = run(scenario())
    assert store.error == "You must be signed in."
