"""Tests for the squad-lite document store."""

import tempfile
from datetime import datetime, timedelta

import pytest

from squad_lite.config import SquadConfig
from squad_lite.exceptions import DuplicateKeyError, RecordValidationError, StoreError
from squad_lite.store import FileCollection, InMemoryCollection, Store, matches
from squad_lite.store.base import get_path, set_path, sort_documents
from squad_lite.types import Agent, AgentType, Task, TaskStatus


class TestQueryHelpers:
    """Tests for filter and sort helpers."""

    def test_dotted_paths(self):
        doc = {"lifecycle": {"createdAt": 1}}
        assert get_path(doc, "lifecycle.createdAt") == 1
        assert get_path(doc, "lifecycle.killedAt", None) is None

        set_path(doc, "costs.runtimeSeconds", 5)
        assert doc["costs"] == {"runtimeSeconds": 5}

    def test_equality_and_operators(self):
        doc = {"status": "idle", "agentId": "a1", "readAt": None}

        assert matches(doc, {"status": "idle"})
        assert matches(doc, {"status": AgentType.DIRECTOR}) is False
        assert matches(doc, {"status": {"$in": ["idle", "working"]}})
        assert matches(doc, {"agentId": {"$ne": "a1"}}) is False
        assert matches(doc, {"readAt": None})

    def test_missing_field_equals_none(self):
        assert matches({"a": 1}, {"b": None})
        assert matches({"a": 1}, {"b": 2}) is False

    def test_unknown_operator(self):
        with pytest.raises(StoreError):
            matches({"a": 1}, {"a": {"$gt": 0}})

    def test_multi_key_sort(self):
        docs = [
            {"id": 1, "t": 1, "s": 0},
            {"id": 2, "t": 2, "s": 0},
            {"id": 3, "t": 2, "s": 1},
        ]
        result = sort_documents(docs, [("t", -1), ("s", -1)])
        assert [d["id"] for d in result] == [3, 2, 1]


class TestInMemoryCollection:
    """Tests for the raw in-memory backend."""

    @pytest.mark.asyncio
    async def test_insert_and_find(self):
        col = InMemoryCollection("things", "id")
        await col.insert_one({"id": "a", "n": 2})
        await col.insert_one({"id": "b", "n": 1})

        assert await col.count() == 2
        found = await col.find(sort=[("n", 1)])
        assert [d["id"] for d in found] == ["b", "a"]
        assert (await col.find(limit=1))[0]["id"] in ("a", "b")

    @pytest.mark.asyncio
    async def test_duplicate_key(self):
        col = InMemoryCollection("things", "id")
        await col.insert_one({"id": "a"})

        with pytest.raises(DuplicateKeyError):
            await col.insert_one({"id": "a"})

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self):
        col = InMemoryCollection("things", "id")
        await col.insert_one({"id": "a", "tags": ["x"]})

        doc = await col.find_one({"id": "a"})
        doc["tags"].append("y")

        assert (await col.find_one({"id": "a"}))["tags"] == ["x"]

    @pytest.mark.asyncio
    async def test_update_one_and_upsert(self):
        col = InMemoryCollection("things", "id")

        assert await col.update_one({"id": "a"}, {"n": 1}) is False
        assert await col.update_one({"id": "a"}, {"n": 1}, upsert=True) is True
        assert (await col.find_one({"id": "a"}))["n"] == 1

        await col.update_one({"id": "a"}, {"meta.flag": True})
        assert (await col.find_one({"id": "a"}))["meta"] == {"flag": True}

    @pytest.mark.asyncio
    async def test_update_many_validates_before_writing(self):
        col = InMemoryCollection("things", "id")
        await col.insert_one({"id": "a", "n": 1})
        await col.insert_one({"id": "b", "n": 2})

        def validate(doc):
            if doc["id"] == "b":
                raise ValueError("bad")
            return doc

        with pytest.raises(ValueError):
            await col.update_many({}, {"n": 9}, validate=validate)

        assert sorted(d["n"] for d in await col.find()) == [1, 2]


class TestFileCollection:
    """Tests for the JSON file backend."""

    @pytest.mark.asyncio
    async def test_persists_across_instances(self):
        with tempfile.TemporaryDirectory() as tmp:
            now = datetime.now()
            col = FileCollection("things", "id", tmp)
            await col.insert_one({"id": "a/1", "at": now})

            reopened = FileCollection("things", "id", tmp)
            doc = await reopened.find_one({"id": "a/1"})

            assert doc["at"] == now

    @pytest.mark.asyncio
    async def test_clear(self):
        with tempfile.TemporaryDirectory() as tmp:
            col = FileCollection("things", "id", tmp)
            await col.insert_one({"id": "a"})
            await col.delete_all()
            assert await col.count() == 0


class TestStore:
    """Tests for typed record collections."""

    @pytest.mark.asyncio
    async def test_round_trip_uses_camel_case(self):
        store = Store.in_memory()
        task = await store.tasks.insert(Task(title="T", description="D"))

        raw = await store.tasks.backend.find_one({"taskId": task.task_id})
        assert raw["status"] == "pending"
        assert "parentTaskId" in raw

        loaded = await store.tasks.find_one({"taskId": task.task_id})
        assert loaded == task

    @pytest.mark.asyncio
    async def test_rejects_invalid_update(self):
        store = Store.in_memory()
        task = await store.tasks.insert(Task(title="T", description="D"))

        # A result is only allowed on a terminal task
        with pytest.raises(RecordValidationError) as exc_info:
            await store.tasks.update_one({"taskId": task.task_id}, {"result": "early"})

        assert exc_info.value.collection == "tasks"
        assert (await store.tasks.find_one({"taskId": task.task_id})).result is None

    @pytest.mark.asyncio
    async def test_rejects_bad_enum(self):
        store = Store.in_memory()
        task = await store.tasks.insert(Task(title="T", description="D"))

        with pytest.raises(RecordValidationError):
            await store.tasks.update_one({"taskId": task.task_id}, {"status": "done"})

    @pytest.mark.asyncio
    async def test_agent_parent_rules(self):
        store = Store.in_memory()

        with pytest.raises(RecordValidationError):
            store.agents.validate_document({"type": "specialist"})
        with pytest.raises(RecordValidationError):
            store.agents.validate_document({"type": "director", "parentId": "x"})

        doc = store.agents.validate_document({"type": "specialist", "parentId": "d1"})
        assert doc["status"] == "idle"
        assert doc["sandboxStatus"] == "none"

    @pytest.mark.asyncio
    async def test_sort_by_created_at(self):
        store = Store.in_memory()
        base = datetime.now()
        for i in range(3):
            await store.tasks.insert(
                Task(title=f"T{i}", description="", created_at=base + timedelta(seconds=i))
            )

        newest = await store.tasks.find(sort=[("createdAt", -1)], limit=2)
        assert [t.title for t in newest] == ["T2", "T1"]

    @pytest.mark.asyncio
    async def test_filter_by_enum(self):
        store = Store.in_memory()
        await store.agents.insert(Agent(type=AgentType.DIRECTOR))

        assert await store.agents.count({"type": AgentType.DIRECTOR}) == 1
        assert await store.tasks.count({"status": TaskStatus.PENDING}) == 0

    def test_from_config(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = Store.from_config(SquadConfig(store_backend="file", store_path=tmp))
            assert isinstance(store.agents.backend, FileCollection)

        assert isinstance(Store.from_config(SquadConfig()).agents.backend, InMemoryCollection)
        assert [c.name for c in Store.in_memory().collections()] == [
            "agents",
            "messages",
            "checkpoints",
            "tasks",
            "sandbox_tracking",
        ]
