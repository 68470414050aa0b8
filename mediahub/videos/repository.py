"""Repository for video documents."""

from __future__ import annotations

from typing import Any

from mediahub.aggregation.stages import Stage
from mediahub.storage.ids import new_object_id, now_iso
from mediahub.storage.store import VIDEOS, DocumentStore
from mediahub.videos.models import VideoRecord


class VideoRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def get(self, video_id: str) -> VideoRecord | None:
        doc = self._store.find_one(VIDEOS, {"_id": video_id})
        return VideoRecord.model_validate(doc) if doc else None

    def create(
        self,
        *,
        owner: str,
        title: str,
        description: str,
        video_file: str,
        thumbnail: str,
        duration: float | None,
    ) -> VideoRecord:
        now = now_iso()
        doc = {
            "_id": new_object_id(),
            "owner": owner,
            "title": title,
            "description": description,
            "video_file": video_file,
            "thumbnail": thumbnail,
            "duration": duration or 0,
            "views": 0,
            "is_published": True,
            "created_at": now,
            "updated_at": now,
        }
        self._store.insert_one(VIDEOS, doc)
        return VideoRecord.model_validate(doc)

    def update_fields(self, video_id: str, fields: dict[str, Any]) -> VideoRecord | None:
        doc = self._store.update_one(
            VIDEOS, {"_id": video_id}, {"$set": {**fields, "updated_at": now_iso()}}
        )
        return VideoRecord.model_validate(doc) if doc else None

    def set_published(
        self, video_id: str, *, current: bool, published: bool
    ) -> VideoRecord | None:
        """Flip visibility only if it still has the value the caller read."""
        doc = self._store.update_one(
            VIDEOS,
            {"_id": video_id, "is_published": current},
            {"$set": {"is_published": published, "updated_at": now_iso()}},
        )
        return VideoRecord.model_validate(doc) if doc else None

    def delete(self, video_id: str) -> bool:
        return self._store.delete_one(VIDEOS, {"_id": video_id})

    def increment_views(self, video_id: str) -> bool:
        return self._store.update_one(VIDEOS, {"_id": video_id}, {"$inc": {"views": 1}}) is not None

    def aggregate(self, stages: list[Stage]) -> list[dict[str, Any]]:
        return self._store.aggregate(VIDEOS, stages)
