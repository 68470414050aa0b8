"""Document store with MongoDB primary and local JSON-file fallback."""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from threading import RLock
from typing import Any, Protocol

import pymongo
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from mediahub.aggregation.stages import Stage, evaluate, render_mongo
from mediahub.core.config import StoreConfig
from mediahub.core.mongo_migrations import apply_mongo_migrations
from mediahub.storage.query import apply_update, exclude_fields, get_path, matches

LOGGER = logging.getLogger(__name__)

USERS = "users"
VIDEOS = "videos"
SUBSCRIPTIONS = "subscriptions"

# Mirrors the unique indexes created by the MongoDB migrations.
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    USERS: [("username",), ("email",)],
    SUBSCRIPTIONS: [("subscriber", "channel")],
}


class DuplicateRecord(Exception):
    """Insert or update would violate a unique key."""


class DocumentStore(Protocol):
    """Storage operations used by repositories and pipeline execution."""

    def find_one(
        self,
        collection: str,
        query: dict[str, Any],
        projection: dict[str, int] | None = None,
    ) -> dict[str, Any] | None:
        """Return the first matching document."""

    def insert_one(self, collection: str, doc: dict[str, Any]) -> dict[str, Any]:
        """Insert a document that already carries its ``_id``."""

    def update_one(
        self,
        collection: str,
        query: dict[str, Any],
        update: dict[str, Any],
        projection: dict[str, int] | None = None,
    ) -> dict[str, Any] | None:
        """Atomically update one document and return it after the update."""

    def delete_one(self, collection: str, query: dict[str, Any]) -> bool:
        """Delete one document, returning whether anything was removed."""

    def aggregate(self, collection: str, stages: list[Stage]) -> list[dict[str, Any]]:
        """Execute a pipeline of tagged stages."""


class MongoDocumentStore:
    """pymongo-backed store; pipelines are rendered to native aggregation."""

    def __init__(self, db: Any) -> None:
        self._db = db

    def find_one(
        self,
        collection: str,
        query: dict[str, Any],
        projection: dict[str, int] | None = None,
    ) -> dict[str, Any] | None:
        return self._db[collection].find_one(query, projection)

    def insert_one(self, collection: str, doc: dict[str, Any]) -> dict[str, Any]:
        try:
            self._db[collection].insert_one(dict(doc))
        except DuplicateKeyError as exc:
            raise DuplicateRecord(str(exc)) from exc
        return doc

    def update_one(
        self,
        collection: str,
        query: dict[str, Any],
        update: dict[str, Any],
        projection: dict[str, int] | None = None,
    ) -> dict[str, Any] | None:
        try:
            return self._db[collection].find_one_and_update(
                query,
                update,
                projection=projection,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as exc:
            raise DuplicateRecord(str(exc)) from exc

    def delete_one(self, collection: str, query: dict[str, Any]) -> bool:
        return self._db[collection].delete_one(query).deleted_count > 0

    def aggregate(self, collection: str, stages: list[Stage]) -> list[dict[str, Any]]:
        return list(self._db[collection].aggregate(render_mongo(stages)))


class JsonDocumentStore:
    """File-backed store used when MongoDB is not configured.

    Each collection lives in one JSON list file. Every read-modify-write runs
    under a single process-local lock, which gives the per-document atomicity
    the handlers rely on within one process.
    """

    def __init__(self, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = RLock()

    def _path(self, collection: str) -> Path:
        return self._root / f"{collection}.json"

    def _read(self, collection: str) -> list[dict[str, Any]]:
        path = self._path(collection)
        if not path.exists():
            return []
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            LOGGER.exception("Failed reading fallback collection: %s", path)
            return []
        return payload if isinstance(payload, list) else []

    def _write(self, collection: str, rows: list[dict[str, Any]]) -> None:
        path = self._path(collection)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(rows, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(path)

    def _snapshot(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._read(collection))

    def _assert_unique(
        self, collection: str, rows: list[dict[str, Any]], candidate: dict[str, Any]
    ) -> None:
        for key_fields in UNIQUE_KEYS.get(collection, []):
            key = tuple(get_path(candidate, field) for field in key_fields)
            if any(value is None for value in key):
                continue
            for row in rows:
                if row.get("_id") == candidate.get("_id"):
                    continue
                if tuple(get_path(row, field) for field in key_fields) == key:
                    raise DuplicateRecord(
                        f"duplicate key {dict(zip(key_fields, key))} in {collection}"
                    )

    def find_one(
        self,
        collection: str,
        query: dict[str, Any],
        projection: dict[str, int] | None = None,
    ) -> dict[str, Any] | None:
        for row in self._snapshot(collection):
            if matches(row, query):
                return exclude_fields(row, projection)
        return None

    def insert_one(self, collection: str, doc: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            rows = self._read(collection)
            if any(row.get("_id") == doc.get("_id") for row in rows):
                raise DuplicateRecord(f"duplicate _id in {collection}")
            self._assert_unique(collection, rows, doc)
            rows.append(copy.deepcopy(doc))
            self._write(collection, rows)
        return doc

    def update_one(
        self,
        collection: str,
        query: dict[str, Any],
        update: dict[str, Any],
        projection: dict[str, int] | None = None,
    ) -> dict[str, Any] | None:
        with self._lock:
            rows = self._read(collection)
            for index, row in enumerate(rows):
                if not matches(row, query):
                    continue
                updated = apply_update(row, update)
                self._assert_unique(collection, rows, updated)
                rows[index] = updated
                self._write(collection, rows)
                return exclude_fields(copy.deepcopy(updated), projection)
        return None

    def delete_one(self, collection: str, query: dict[str, Any]) -> bool:
        with self._lock:
            rows = self._read(collection)
            for index, row in enumerate(rows):
                if matches(row, query):
                    del rows[index]
                    self._write(collection, rows)
                    return True
        return False

    def aggregate(self, collection: str, stages: list[Stage]) -> list[dict[str, Any]]:
        return evaluate(stages, self._snapshot(collection), self._snapshot)


def open_document_store(config: StoreConfig, app_root: Path) -> DocumentStore:
    """Connect to MongoDB when configured, otherwise use the JSON fallback."""
    fallback_root = app_root / config.fallback_dir
    if not config.mongo_uri:
        LOGGER.warning("MONGODB_URI is not set. Using local JSON document store.")
        return JsonDocumentStore(fallback_root)

    try:
        client: Any = pymongo.MongoClient(config.mongo_uri, serverSelectionTimeoutMS=3000)
        client.admin.command("ping")
        db = client[config.mongo_db]
        apply_mongo_migrations(db)
    except PyMongoError:
        LOGGER.exception("MongoDB connection failed. Falling back to local JSON store.")
        return JsonDocumentStore(fallback_root)

    LOGGER.info("Document store using MongoDB: db=%s", config.mongo_db)
    return MongoDocumentStore(db)
