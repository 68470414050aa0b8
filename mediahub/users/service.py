"""Profile, channel statistics and watch history for user accounts."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import UploadFile

from mediahub.aggregation.pipelines import (
    build_channel_profile_pipeline,
    build_watch_history_pipeline,
    single_channel,
)
from mediahub.api.errors import ApiValidationError, Conflict, NotFound
from mediahub.core.background_jobs import BackgroundJobs
from mediahub.media.staging import MediaIngest
from mediahub.media.store import MEDIA_KIND_IMAGE
from mediahub.storage.store import USERS, DocumentStore
from mediahub.users.models import PublicUser
from mediahub.users.repository import (
    UserRepository,
    normalize_email,
    normalize_username,
)
from mediahub.videos.models import WatchedVideo
from mediahub.videos.repository import VideoRepository

LOGGER = logging.getLogger(__name__)

IMAGE_FIELDS = ("avatar", "cover_image")


class UserService:
    def __init__(
        self,
        *,
        store: DocumentStore,
        users: UserRepository,
        videos: VideoRepository,
        ingest: MediaIngest,
        jobs: BackgroundJobs,
    ) -> None:
        self._store = store
        self._users = users
        self._videos = videos
        self._ingest = ingest
        self._jobs = jobs

    def update_details(
        self,
        viewer: PublicUser,
        *,
        username: str | None = None,
        email: str | None = None,
        full_name: str | None = None,
    ) -> PublicUser:
        """Change username, email and/or full name; at least one of the first two."""
        fields: dict[str, Any] = {}
        if normalize_username(username):
            fields["username"] = normalize_username(username)
        if normalize_email(email):
            fields["email"] = normalize_email(email)
        if not fields:
            raise ApiValidationError("username or email is required")
        if (full_name or "").strip():
            fields["full_name"] = (full_name or "").strip()

        existing = self._users.find_by_identity(
            username=fields.get("username"), email=fields.get("email")
        )
        if existing is not None and existing.id != viewer.id:
            raise Conflict("Username or email is already taken")

        updated = self._users.update_fields(viewer.id, fields)
        if updated is None:
            raise NotFound("User not found")
        return updated

    def replace_image(
        self, viewer: PublicUser, field: str, upload: UploadFile | None
    ) -> PublicUser:
        """Upload a new avatar or cover image and retire the previous one."""
        if field not in IMAGE_FIELDS:
            raise ValueError(f"Unsupported image field: {field}")
        if upload is None or not upload.filename:
            raise ApiValidationError(f"{field} file is missing")

        stored = self._ingest.ingest({field: (upload, MEDIA_KIND_IMAGE)})
        previous = str(getattr(viewer, field) or "")
        updated = self._users.update_fields(viewer.id, {field: stored[field].url})
        if updated is None:
            self._jobs.schedule_media_cleanup(stored[field].url, MEDIA_KIND_IMAGE)
            raise NotFound("User not found")
        if previous and previous != stored[field].url:
            self._jobs.schedule_media_cleanup(previous, MEDIA_KIND_IMAGE)
        return updated

    def channel_profile(self, username: str, viewer: PublicUser | None) -> dict[str, Any]:
        stages = build_channel_profile_pipeline(username, viewer.id if viewer else None)
        channel = single_channel(self._store.aggregate(USERS, stages), username)
        return {"id": channel["_id"], **{k: v for k, v in channel.items() if k != "_id"}}

    def watch_history(self, viewer: PublicUser) -> list[WatchedVideo]:
        # Re-read so appends made by view tasks since authentication are included.
        fresh = self._users.get_public(viewer.id) or viewer
        if not fresh.watch_history:
            return []
        stages = build_watch_history_pipeline(fresh.id, fresh.watch_history)
        return [WatchedVideo.model_validate(row) for row in self._videos.aggregate(stages)]
