"""Versioned MongoDB index migrations for the media collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

import pymongo

from mediahub.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], None]


def _migration_0001_user_identity_indexes(db: Any) -> None:
    db["users"].create_index("username", unique=True)
    db["users"].create_index("email", unique=True)


def _migration_0002_video_listing_indexes(db: Any) -> None:
    db["videos"].create_index([("owner", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)])
    db["videos"].create_index([("is_published", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)])


def _migration_0003_subscription_edges(db: Any) -> None:
    db["subscriptions"].create_index(
        [("subscriber", pymongo.ASCENDING), ("channel", pymongo.ASCENDING)],
        unique=True,
    )
    db["subscriptions"].create_index("channel")


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("0001_user_identity_indexes", _migration_0001_user_identity_indexes),
    ("0002_video_listing_indexes", _migration_0002_video_listing_indexes),
    ("0003_subscription_edges", _migration_0003_subscription_edges),
]


def apply_mongo_migrations(db: Any) -> list[str]:
    """Apply pending migrations to ``db`` and return the ids that ran."""
    migration_collection = db["schema_migrations"]
    migration_collection.create_index("migration_id", unique=True)

    applied: list[str] = []
    for migration_id, migration_fn in MIGRATIONS:
        if migration_collection.find_one({"migration_id": migration_id}):
            continue
        migration_fn(db)
        migration_collection.insert_one(
            {
                "migration_id": migration_id,
                "applied_at": datetime.now(timezone.utc),
                "correlation_id": CORRELATION_ID_CTX.get(),
            }
        )
        applied.append(migration_id)
        LOGGER.info("Applied MongoDB migration %s", migration_id)
    return applied
