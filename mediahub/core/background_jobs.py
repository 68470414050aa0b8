"""Fire-and-forget work submitted by request handlers.

Handlers call ``schedule_*`` and return immediately; the task queue worker
runs the matching coroutine later and retries it on failure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from mediahub.core.task_queue import TaskQueue
from mediahub.media.store import MediaStore

LOGGER = logging.getLogger(__name__)

TASK_VIDEO_VIEW = "video_view"
TASK_WATCH_HISTORY_APPEND = "watch_history_append"
TASK_MEDIA_CLEANUP = "media_cleanup"


class ViewCounter(Protocol):
    def increment_views(self, video_id: str) -> bool:
        """Atomically add one to a video's view count."""


class WatchHistoryWriter(Protocol):
    def append_watch_history(self, user_id: str, video_id: str) -> bool:
        """Add a video to a user's watch history without duplicates."""


class BackgroundJobs:
    """Submits and executes view-tracking and orphan-media cleanup tasks.

    A view and its watch-history append are separate tasks so that retrying
    a failed append never repeats the non-idempotent view increment.
    """

    def __init__(
        self,
        queue: TaskQueue,
        *,
        videos: ViewCounter,
        users: WatchHistoryWriter,
        media: MediaStore,
    ) -> None:
        self._queue = queue
        self._videos = videos
        self._users = users
        self._media = media

    def register(self) -> None:
        self._queue.register_handler(TASK_VIDEO_VIEW, self.process_video_view)
        self._queue.register_handler(
            TASK_WATCH_HISTORY_APPEND, self.process_watch_history_append
        )
        self._queue.register_handler(TASK_MEDIA_CLEANUP, self.process_media_cleanup)

    def schedule_view(self, video_id: str, viewer_id: str | None) -> str:
        """Queue a view increment, plus a watch-history append for signed-in viewers."""
        task_id = self._queue.submit(task_type=TASK_VIDEO_VIEW, payload={"video_id": video_id})
        if viewer_id:
            self._queue.submit(
                task_type=TASK_WATCH_HISTORY_APPEND,
                payload={"user_id": viewer_id, "video_id": video_id},
                idempotency_key=f"{TASK_WATCH_HISTORY_APPEND}:{viewer_id}:{video_id}",
            )
        return task_id

    def schedule_media_cleanup(self, url: str, kind: str) -> str | None:
        if not url:
            return None
        return self._queue.submit(
            task_type=TASK_MEDIA_CLEANUP,
            payload={"url": url, "kind": kind},
            idempotency_key=f"{TASK_MEDIA_CLEANUP}:{url}",
        )

    async def process_video_view(self, payload: dict[str, Any]) -> dict[str, Any]:
        video_id = str(payload.get("video_id") or "")
        counted = await asyncio.to_thread(self._videos.increment_views, video_id)
        if not counted:
            LOGGER.info("View skipped for missing video", extra={"video_id": video_id})
        return {"counted": counted}

    async def process_watch_history_append(self, payload: dict[str, Any]) -> dict[str, Any]:
        user_id = str(payload.get("user_id") or "")
        video_id = str(payload.get("video_id") or "")
        recorded = await asyncio.to_thread(
            self._users.append_watch_history, user_id, video_id
        )
        return {"recorded": recorded}

    async def process_media_cleanup(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = str(payload.get("url") or "")
        kind = str(payload.get("kind") or "")
        removed = await asyncio.to_thread(self._media.delete, url, kind)
        LOGGER.info(
            "Orphaned media cleanup finished: removed=%s", removed, extra={"media_url": url}
        )
        return {"removed": removed}
