"""Tests for the JSON file store and its memory-only degradation."""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from order_portal.store.base import DuplicateRecordError
from order_portal.store.json_store import JsonFileStore, StoreState


class TestBootstrap:
    async def test_memory_store_is_seeded(self, memory_store):
        products = await memory_store.find("products")
        assert [p["id"] for p in products] == ["1", "2", "3", "4", "5"]
        assert await memory_store.count("users") == 2
        assert memory_store.active_backend == "memory"

    async def test_missing_file_is_created_with_seed(self, tmp_path: Path):
        path = tmp_path / "nested" / "dir" / "db.json"
        store = JsonFileStore(path)

        assert await store.count("products") == 5
        assert path.exists()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert len(data["products"]) == 5
        assert store.active_backend == "json"

    async def test_custom_seed(self):
        store = JsonFileStore(seed={"users": [{"id": "u1", "name": "Only"}]})
        assert await store.count("users") == 1
        assert await store.count("products") == 0


class TestReadWrite:
    async def test_insert_assigns_id_and_timestamps(self, memory_store, clock):
        record = await memory_store.insert("orders", {"orderNumber": "X-1"})

        assert record["id"]
        assert record["createdAt"] == clock.now
        assert record["updatedAt"] == clock.now

    async def test_insert_keeps_given_created_at(self, memory_store):
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        record = await memory_store.insert("orders", {"orderNumber": "X-1", "createdAt": created})
        assert record["createdAt"] == created

    async def test_duplicate_order_number_rejected(self, memory_store):
        await memory_store.insert("orders", {"orderNumber": "X-1"})
        with pytest.raises(DuplicateRecordError) as exc_info:
            await memory_store.insert("orders", {"orderNumber": "X-1"})
        assert exc_info.value.context["field"] == "orderNumber"
        assert await memory_store.count("orders") == 1

    async def test_duplicate_id_rejected(self, memory_store):
        with pytest.raises(DuplicateRecordError):
            await memory_store.insert("products", {"id": "1"})

    async def test_update_sets_fields_and_appends(self, memory_store, clock):
        record = await memory_store.insert(
            "orders", {"orderNumber": "X-1", "history": [{"action": "created"}]}
        )
        clock.advance(minutes=5)

        updated = await memory_store.update(
            "orders",
            record["id"],
            {"status": "received", "id": "ignored"},
            push={"history": {"action": "received"}},
        )

        assert updated["id"] == record["id"]
        assert updated["status"] == "received"
        assert [h["action"] for h in updated["history"]] == ["created", "received"]
        assert updated["updatedAt"] == clock.now

    async def test_update_skipped_when_match_fails(self, memory_store, clock):
        record = await memory_store.insert(
            "orders", {"orderNumber": "X-1", "status": "received", "history": []}
        )
        clock.advance(minutes=5)

        updated = await memory_store.update(
            "orders",
            record["id"],
            {"items": []},
            push={"history": {"action": "updated"}},
            match={"status": "new"},
        )

        assert updated is None
        stored = await memory_store.get("orders", record["id"])
        assert "items" not in stored
        assert stored["history"] == []
        assert stored["updatedAt"] == record["updatedAt"]

    async def test_update_applied_when_match_holds(self, memory_store, clock):
        record = await memory_store.insert(
            "orders", {"orderNumber": "X-1", "status": "new", "editDeadline": clock.now}
        )

        updated = await memory_store.update(
            "orders",
            record["id"],
            {"message": "hi"},
            match={"status": "new", "editDeadline": {"$gte": clock.now}},
        )

        assert updated["message"] == "hi"

    async def test_update_unknown_record_returns_none(self, memory_store):
        assert await memory_store.update("orders", "missing", {"status": "x"}) is None

    async def test_get_unknown_record_returns_none(self, memory_store):
        assert await memory_store.get("orders", "missing") is None


class TestIsolation:
    async def test_results_are_copies(self, memory_store):
        product = await memory_store.get("products", "1")
        product["name"]["en"] = "Changed"
        found = await memory_store.find("products", {"id": "1"})
        found[0]["isAvailable"] = False

        fresh = await memory_store.get("products", "1")
        assert fresh["name"]["en"] == "Almond Milk"
        assert fresh["isAvailable"] is True

    async def test_inserted_input_is_not_shared(self, memory_store):
        items = [{"product": "1", "quantity": 2}]
        record = await memory_store.insert("orders", {"orderNumber": "X-1", "items": items})
        items.append({"product": "2", "quantity": 1})

        stored = await memory_store.get("orders", record["id"])
        assert len(stored["items"]) == 1

    async def test_independent_stores_do_not_share_state(self):
        first = JsonFileStore()
        second = JsonFileStore()
        await first.insert("orders", {"orderNumber": "X-1"})
        assert await second.count("orders") == 0


class TestPersistence:
    async def test_datetimes_round_trip_through_file(self, tmp_path: Path):
        path = tmp_path / "db.json"
        created = datetime(2025, 3, 10, 9, 30, tzinfo=timezone.utc)
        await JsonFileStore(path).insert("orders", {"orderNumber": "X-1", "createdAt": created})

        reopened = JsonFileStore(path)
        orders = await reopened.find("orders")
        assert orders[0]["createdAt"] == created
        assert orders[0]["createdAt"].tzinfo is not None

    async def test_unicode_names_survive(self, tmp_path: Path):
        path = tmp_path / "db.json"
        await JsonFileStore(path).count("products")
        assert "حليب اللوز" in path.read_text(encoding="utf-8")

    def test_state_rejects_non_object_document(self):
        with pytest.raises(ValueError):
            StoreState.loads("[1, 2, 3]")


class TestDegradation:
    async def test_unwritable_directory_switches_to_memory(self, tmp_path: Path):
        store = JsonFileStore(tmp_path / "db.json")

        with patch.object(Path, "mkdir", side_effect=PermissionError("read-only")):
            assert await store.count("products") == 5

        assert store.memory_only
        assert store.active_backend == "memory"
        record = await store.insert("orders", {"orderNumber": "X-1"})
        assert await store.get("orders", record["id"]) is not None

    async def test_write_failure_keeps_the_pending_change(self, tmp_path: Path):
        store = JsonFileStore(tmp_path / "db.json")
        await store.count("orders")

        with patch.object(JsonFileStore, "_write_file", side_effect=OSError("disk full")):
            record = await store.insert("orders", {"orderNumber": "X-1"})

        assert store.memory_only
        assert (await store.get("orders", record["id"]))["orderNumber"] == "X-1"

    async def test_corrupt_file_switches_to_memory(self, tmp_path: Path):
        path = tmp_path / "db.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileStore(path)

        assert await store.count("products") == 5
        assert store.memory_only


class TestConcurrency:
    async def test_concurrent_inserts_are_not_lost(self, memory_store):
        await asyncio.gather(
            *(memory_store.insert("orders", {"orderNumber": f"X-{i}"}) for i in range(20))
        )
        assert await memory_store.count("orders") == 20
