"""
Tests for the SQLite remote store.

Run with: pytest tests/test_sqlite_store.py -v
"""
import threading

import pytest

from adapters.base import RemoteStoreError
from adapters.sqlite import SqliteRemoteStore


@pytest.fixture
def store(tmp_path):
    s = SqliteRemoteStore.from_url(
        db_url=f"sqlite:///{tmp_path / 'db' / 'obs.db'}",
        blob_dir=str(tmp_path / "blobs"),
        public_base_url="http://testserver/blobs/",
    )
    yield s
    s.engine.dispose()


async def _project(store, name="Line 4"):
    return await store.create_project(name, "", "hash")


def _entry(pid, rid, **fields):
    base = {
        "id": rid,
        "project_id": pid,
        "srno": "",
        "part_name": "",
        "op_number": "",
        "observation": "",
        "before_photo_url": None,
        "after_photo_url": None,
        "action_plan": "",
        "responsibility": "",
        "remarks": "",
        "status": "pending",
    }
    base.update(fields)
    return base


class TestEntries:

    @pytest.mark.asyncio
    async def test_upsert_then_select(self, store):
        p = await _project(store)
        await store.upsert_rows([_entry(p["id"], "r1", srno="1", part_name="Pump")])
        rows = await store.select_rows(p["id"])
        assert len(rows) == 1
        assert rows[0]["part_name"] == "Pump"
        assert rows[0]["created_at"]

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, store):
        p = await _project(store)
        row = _entry(p["id"], "r1", srno="1")
        await store.upsert_rows([row])
        await store.upsert_rows([row])
        assert len(await store.select_rows(p["id"])) == 1

    @pytest.mark.asyncio
    async def test_upsert_updates_and_keeps_created_at(self, store):
        p = await _project(store)
        await store.upsert_rows([_entry(p["id"], "r1", remarks="a")])
        first = (await store.select_rows(p["id"]))[0]

        await store.upsert_rows([_entry(p["id"], "r1", remarks="b")])
        second = (await store.select_rows(p["id"]))[0]

        assert second["remarks"] == "b"
        assert second["created_at"] == first["created_at"]

    @pytest.mark.asyncio
    async def test_upsert_never_moves_entry_between_projects(self, store):
        p1 = await _project(store, "A")
        p2 = await _project(store, "B")
        await store.upsert_rows([_entry(p1["id"], "r1", remarks="original")])

        await store.upsert_rows([_entry(p2["id"], "r1", remarks="hijacked")])

        rows = await store.select_rows(p1["id"])
        assert [(r["id"], r["remarks"]) for r in rows] == [("r1", "original")]
        assert await store.select_rows(p2["id"]) == []

    @pytest.mark.asyncio
    async def test_select_newest_first_and_scoped(self, store):
        p1 = await _project(store, "A")
        p2 = await _project(store, "B")
        await store.upsert_rows([_entry(p1["id"], "old")])
        await store.upsert_rows([_entry(p1["id"], "new")])
        await store.upsert_rows([_entry(p2["id"], "elsewhere")])

        assert [r["id"] for r in await store.select_rows(p1["id"])] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, store):
        p = await _project(store)
        good = _entry(p["id"], "ok")
        bad = _entry("missing-project", "bad")
        with pytest.raises(RemoteStoreError):
            await store.upsert_rows([good, bad])
        assert await store.select_rows(p["id"]) == []

    @pytest.mark.asyncio
    async def test_unknown_conflict_key(self, store):
        with pytest.raises(RemoteStoreError) as exc:
            await store.upsert_rows([{"id": "x"}], on_conflict="srno")
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_row(self, store):
        p = await _project(store)
        await store.upsert_rows([_entry(p["id"], "r1")])
        await store.delete_row("r1")
        await store.delete_row("r1")
        assert await store.select_rows(p["id"]) == []


class TestProjects:

    @pytest.mark.asyncio
    async def test_crud(self, store):
        p = await store.create_project("Line 4", "desc", "hash")
        assert (await store.get_project(p["id"]))["name"] == "Line 4"

        updated = await store.update_project(p["id"], {"password_hash": "new", "id": "ignored"})
        assert updated["password_hash"] == "new"
        assert updated["id"] == p["id"]

        listed = await store.list_projects()
        assert [x["id"] for x in listed] == [p["id"]]

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get_project("nope") is None

    @pytest.mark.asyncio
    async def test_update_missing(self, store):
        with pytest.raises(RemoteStoreError) as exc:
            await store.update_project("nope", {"name": "x"})
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_cascades(self, store):
        p = await _project(store)
        await store.upsert_rows([_entry(p["id"], "r1")])
        await store.delete_project(p["id"])
        assert await store.get_project(p["id"]) is None
        assert await store.select_rows(p["id"]) == []


class TestBlobs:

    @pytest.mark.asyncio
    async def test_upload(self, store, tmp_path):
        url = await store.upload_blob(b"jpeg-bytes", "p1/before/123.jpg", "image/jpeg")
        assert url == "http://testserver/blobs/p1/before/123.jpg"
        assert (tmp_path / "blobs" / "p1" / "before" / "123.jpg").read_bytes() == b"jpeg-bytes"

    @pytest.mark.asyncio
    async def test_rejects_traversal(self, store):
        with pytest.raises(RemoteStoreError):
            await store.upload_blob(b"x", "../escape.jpg")


class TestPing:

    @pytest.mark.asyncio
    async def test_ping(self, store):
        await store.ping()


class TestOffLoop:
    """Database work runs in worker threads, not on the event loop thread."""

    @pytest.mark.asyncio
    async def test_operations_run_in_threadpool(self, store, monkeypatch):
        loop_thread = threading.get_ident()
        seen = []
        real_select = SqliteRemoteStore._select_rows
        real_upsert = SqliteRemoteStore._upsert_rows

        def recording_select(self, *args):
            seen.append(threading.get_ident())
            return real_select(self, *args)

        def recording_upsert(self, *args):
            seen.append(threading.get_ident())
            return real_upsert(self, *args)

        monkeypatch.setattr(SqliteRemoteStore, "_select_rows", recording_select)
        monkeypatch.setattr(SqliteRemoteStore, "_upsert_rows", recording_upsert)

        p = await _project(store)
        await store.upsert_rows([_entry(p["id"], "r1")])
        await store.select_rows(p["id"])

        assert len(seen) == 2
        assert loop_thread not in seen
