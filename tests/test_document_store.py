from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from mediahub.core.config import StoreConfig
from mediahub.core.mongo_migrations import apply_mongo_migrations
from mediahub.storage.query import apply_update, exclude_fields, get_path, matches
from mediahub.storage.store import (
    SUBSCRIPTIONS,
    USERS,
    DuplicateRecord,
    JsonDocumentStore,
    open_document_store,
)


def test_matches_supports_used_operators() -> None:
    doc = {"title": "Cooking Pasta", "views": 3, "tags": ["food", "italian"], "owner": {"name": "al"}}

    assert matches(doc, {"views": 3, "tags": "food"})
    assert matches(doc, {"owner.name": {"$in": ["al", "bo"]}})
    assert matches(doc, {"$or": [{"views": 99}, {"title": {"$regex": "pasta", "$options": "i"}}]})
    assert not matches(doc, {"title": {"$regex": "pasta"}})
    with pytest.raises(ValueError):
        matches(doc, {"views": {"$gt": 1}})
    with pytest.raises(ValueError):
        matches(doc, {"$and": [{"views": 3}]})


def test_get_path_collects_through_arrays() -> None:
    row = {"subscribers": [{"subscriber": "a"}, {"subscriber": "b"}, {"other": 1}]}

    assert get_path(row, "subscribers.subscriber") == ["a", "b"]
    assert get_path(row, "absent.path") is None


def test_apply_update_operators() -> None:
    doc = {"views": 1, "history": ["v1"], "refresh_token": "t"}

    updated = apply_update(
        doc,
        {"$inc": {"views": 1}, "$addToSet": {"history": "v1"}, "$unset": {"refresh_token": ""}},
    )

    assert updated == {"views": 2, "history": ["v1"]}
    assert doc["views"] == 1
    assert apply_update(updated, {"$addToSet": {"history": "v2"}})["history"] == ["v1", "v2"]
    with pytest.raises(ValueError):
        apply_update(updated, {"$pull": {"history": "v1"}})


def test_exclude_fields_only_supports_exclusion() -> None:
    assert exclude_fields({"a": 1, "b": 2}, {"b": 0}) == {"a": 1}
    with pytest.raises(ValueError):
        exclude_fields({"a": 1}, {"a": 1})


def test_json_store_enforces_unique_keys(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path)
    store.insert_one(USERS, {"_id": "1", "username": "alice", "email": "a@x.io"})

    with pytest.raises(DuplicateRecord):
        store.insert_one(USERS, {"_id": "2", "username": "alice", "email": "b@x.io"})
    store.insert_one(USERS, {"_id": "3", "username": "bob", "email": "b@x.io"})
    with pytest.raises(DuplicateRecord):
        store.update_one(USERS, {"_id": "3"}, {"$set": {"email": "a@x.io"}})

    store.insert_one(SUBSCRIPTIONS, {"_id": "s1", "subscriber": "3", "channel": "1"})
    with pytest.raises(DuplicateRecord):
        store.insert_one(SUBSCRIPTIONS, {"_id": "s2", "subscriber": "3", "channel": "1"})


def test_json_store_update_returns_document_after_change(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path)
    store.insert_one(USERS, {"_id": "1", "username": "alice", "password_hash": "h"})

    updated = store.update_one(
        USERS, {"_id": "1"}, {"$set": {"full_name": "Alice"}}, {"password_hash": 0}
    )

    assert updated == {"_id": "1", "username": "alice", "full_name": "Alice"}
    assert store.update_one(USERS, {"_id": "404"}, {"$set": {"x": 1}}) is None
    assert store.find_one(USERS, {"_id": "1"})["password_hash"] == "h"


def test_json_store_persists_across_instances_and_deletes(tmp_path: Path) -> None:
    JsonDocumentStore(tmp_path).insert_one(USERS, {"_id": "1", "username": "alice"})
    reopened = JsonDocumentStore(tmp_path)

    assert reopened.find_one(USERS, {"username": "alice"}) is not None
    assert reopened.delete_one(USERS, {"_id": "1"}) is True
    assert reopened.delete_one(USERS, {"_id": "1"}) is False


def test_open_document_store_without_uri_uses_json_fallback(tmp_path: Path) -> None:
    store = open_document_store(
        StoreConfig(mongo_uri="", mongo_db="mediahub", fallback_dir="store"), tmp_path
    )

    assert isinstance(store, JsonDocumentStore)
    assert (tmp_path / "store").is_dir()


@dataclass
class _Collection:
    docs: list[dict[str, Any]] = field(default_factory=list)
    indexes: list[tuple[Any, dict[str, Any]]] = field(default_factory=list)

    def create_index(self, keys: Any, **kwargs: Any) -> None:
        self.indexes.append((keys, kwargs))

    def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        return next((doc for doc in self.docs if matches(doc, query)), None)

    def insert_one(self, doc: dict[str, Any]) -> None:
        self.docs.append(doc)


@dataclass
class _Database:
    collections: dict[str, _Collection] = field(default_factory=dict)

    def __getitem__(self, name: str) -> _Collection:
        return self.collections.setdefault(name, _Collection())


def test_mongo_migrations_create_unique_indexes_once() -> None:
    db = _Database()

    first = apply_mongo_migrations(db)
    second = apply_mongo_migrations(db)

    assert first == [
        "0001_user_identity_indexes",
        "0002_video_listing_indexes",
        "0003_subscription_edges",
    ]
    assert second == []
    assert ("username", {"unique": True}) in db["users"].indexes
    assert ("email", {"unique": True}) in db["users"].indexes
