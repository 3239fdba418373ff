"""Tests for the JSON document store's filters and update operators."""

from __future__ import annotations

import json

import pytest

from frogtask import config, storage
from frogtask.errors import StorageError


@pytest.fixture
def doc_id() -> str:
    storage.insert_account(
        {
            "id": "doc",
            "balance": 10,
            "inventory": {"hat_cap": 2},
            "tags": ["a", "b"],
            "nested": {"level": 1},
        }
    )
    return "doc"


class TestFilters:
    @pytest.mark.parametrize(
        ("match", "expected"),
        [
            ({"balance": 10}, True),
            ({"balance": {"$gte": 10}}, True),
            ({"balance": {"$gt": 10}}, False),
            ({"balance": {"$lt": 11, "$gte": 5}}, True),
            ({"inventory.hat_cap": {"$gte": 3}}, False),
            ({"inventory.missing": {"$gte": 0}}, False),
            ({"inventory.missing": {"$exists": False}}, True),
            ({"inventory.missing": None}, True),
            ({"tags": "a"}, True),
            ({"tags": {"$ne": "c"}}, True),
            ({"tags": {"$ne": "a"}}, False),
            ({"nested.level": {"$in": [1, 2]}}, True),
            ({"nested.level": {"$nin": [1, 2]}}, False),
        ],
    )
    def test_matches(self, match, expected) -> None:
        document = {"balance": 10, "inventory": {"hat_cap": 2}, "tags": ["a", "b"], "nested": {"level": 1}}
        assert storage.matches(document, match) is expected

    def test_unknown_operator(self) -> None:
        with pytest.raises(ValueError):
            storage.matches({"balance": 1}, {"balance": {"$regex": "1"}})


class TestUpdates:
    def test_failed_precondition_leaves_document_alone(self, doc_id) -> None:
        result = storage.update_account(doc_id, {"$inc": {"balance": -20}}, {"balance": {"$gte": 20}})

        assert result == storage.UpdateResult(found=True, modified=False)
        stored = storage.find_account(doc_id)
        assert stored["balance"] == 10
        assert stored["revision"] == 0

    def test_unknown_document(self) -> None:
        assert storage.update_account("ghost", {"$set": {"x": 1}}) == storage.UpdateResult(found=False, modified=False)

    def test_operators_and_revision(self, doc_id) -> None:
        result = storage.update_account(
            doc_id,
            {
                "$inc": {"balance": -4, "inventory.scarf_red": 1},
                "$set": {"nested.level": 2, "fresh.path": "yes"},
                "$unset": {"inventory.hat_cap": ""},
                "$addToSet": {"tags": {"$each": ["b", "c"]}},
            },
        )

        assert result.modified
        stored = storage.find_account(doc_id)
        assert stored["balance"] == 6
        assert stored["inventory"] == {"scarf_red": 1}
        assert stored["nested"] == {"level": 2}
        assert stored["fresh"] == {"path": "yes"}
        assert stored["tags"] == ["a", "b", "c"]
        assert stored["revision"] == 1

    def test_push_slice_and_pull(self, doc_id) -> None:
        storage.update_account(doc_id, {"$push": {"tags": {"$each": ["c", "d", "e"], "$slice": -3}}})
        assert storage.find_account(doc_id)["tags"] == ["c", "d", "e"]

        storage.update_account(doc_id, {"$pull": {"tags": {"$in": ["c", "e"]}}})
        assert storage.find_account(doc_id)["tags"] == ["d"]

    def test_iter_accounts_filters(self, doc_id) -> None:
        storage.insert_account({"id": "other", "balance": 0})

        ids = [doc["id"] for doc in storage.iter_accounts({"balance": {"$gt": 0}})]

        assert ids == ["doc"]


class TestFiles:
    def test_corrupt_file_reads_as_empty(self, isolated_store) -> None:
        config.DB_FILES["accounts"].write_text("{not json")
        assert storage.find_account("anything") is None

    def test_unreadable_path_is_a_storage_error(self, isolated_store, monkeypatch) -> None:
        directory = isolated_store / "as_dir.json"
        directory.mkdir()
        monkeypatch.setitem(config.DB_FILES, "accounts", directory)

        with pytest.raises(StorageError):
            storage.find_account("anything")

    def test_tasks_collection(self) -> None:
        storage.insert_task({"id": "t1", "account_id": "acc", "title": "water plants"})
        assert storage.list_tasks({"account_id": "acc"})[0]["title"] == "water plants"
        assert json.loads(config.DB_FILES["tasks"].read_text())[0]["id"] == "t1"

    def test_failed_write_keeps_previous_contents(self, doc_id, monkeypatch) -> None:
        def half_written(documents, handle, **kwargs) -> None:
            handle.write("[{")
            raise OSError("disk full")

        monkeypatch.setattr(storage.json, "dump", half_written)

        with pytest.raises(StorageError):
            storage.update_account(doc_id, {"$inc": {"balance": 5}})

        assert storage.find_account(doc_id)["balance"] == 10
        assert not (config.DB_FILES["accounts"].parent / "accounts.json.tmp").exists()
