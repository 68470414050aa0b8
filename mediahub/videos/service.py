"""Video listing, playback and owner-only mutations."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import UploadFile

from mediahub.aggregation.pipelines import build_video_listing_pipeline, page_from_facet
from mediahub.api.errors import ApiValidationError, Forbidden, NotFound
from mediahub.core.background_jobs import BackgroundJobs
from mediahub.media.staging import MediaIngest
from mediahub.media.store import MEDIA_KIND_IMAGE, MEDIA_KIND_VIDEO
from mediahub.storage.ids import ensure_object_id
from mediahub.users.models import PublicUser
from mediahub.videos.models import VideoRecord
from mediahub.videos.repository import VideoRepository

LOGGER = logging.getLogger(__name__)


class VideoService:
    def __init__(
        self,
        *,
        videos: VideoRepository,
        ingest: MediaIngest,
        jobs: BackgroundJobs,
    ) -> None:
        self._videos = videos
        self._ingest = ingest
        self._jobs = jobs

    def list_videos(
        self,
        viewer: PublicUser | None,
        *,
        page: int = 1,
        limit: int = 10,
        query: str | None = None,
        sort_by: str | None = None,
        sort_type: str | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        stages = build_video_listing_pipeline(
            viewer_id=viewer.id if viewer else None,
            owner_id=user_id,
            query=query,
            sort_by=sort_by,
            sort_type=sort_type,
            page=page,
            limit=limit,
        )
        result = page_from_facet(self._videos.aggregate(stages), page=page, limit=limit)
        result["docs"] = [
            VideoRecord.model_validate(doc).model_dump() for doc in result["docs"]
        ]
        return result

    def get_video(self, video_id: str, viewer: PublicUser | None) -> VideoRecord:
        """Return a video; reads by anyone but the owner count as a view."""
        video = self._load(video_id)
        is_owner = viewer is not None and viewer.id == video.owner
        if not video.is_published and not is_owner:
            raise Forbidden("This video is not published")
        if not is_owner:
            self._jobs.schedule_view(video.id, viewer.id if viewer else None)
        return video

    def publish(
        self,
        viewer: PublicUser,
        *,
        title: str | None,
        description: str | None,
        video_file: UploadFile | None,
        thumbnail: UploadFile | None,
    ) -> VideoRecord:
        if not (title or "").strip():
            raise ApiValidationError("title is required")
        missing = [
            name
            for name, upload in (("video_file", video_file), ("thumbnail", thumbnail))
            if upload is None or not upload.filename
        ]
        if missing:
            raise ApiValidationError(
                "Video file and thumbnail are required",
                errors=[{"field": name, "message": "file is missing"} for name in missing],
            )

        stored = self._ingest.ingest(
            {
                "video_file": (video_file, MEDIA_KIND_VIDEO),
                "thumbnail": (thumbnail, MEDIA_KIND_IMAGE),
            }
        )
        try:
            video = self._videos.create(
                owner=viewer.id,
                title=(title or "").strip(),
                description=(description or "").strip(),
                video_file=stored["video_file"].url,
                thumbnail=stored["thumbnail"].url,
                duration=stored["video_file"].duration_seconds,
            )
        except Exception:
            self._jobs.schedule_media_cleanup(stored["video_file"].url, MEDIA_KIND_VIDEO)
            self._jobs.schedule_media_cleanup(stored["thumbnail"].url, MEDIA_KIND_IMAGE)
            raise
        LOGGER.info("Video published", extra={"user_id": viewer.id, "video_id": video.id})
        return video

    def update(
        self,
        viewer: PublicUser,
        video_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        thumbnail: UploadFile | None = None,
    ) -> VideoRecord:
        video = self._owned(video_id, viewer)
        fields: dict[str, Any] = {}
        if (title or "").strip():
            fields["title"] = (title or "").strip()
        if description is not None:
            fields["description"] = description.strip()
        if thumbnail is not None and thumbnail.filename:
            stored = self._ingest.ingest({"thumbnail": (thumbnail, MEDIA_KIND_IMAGE)})
            fields["thumbnail"] = stored["thumbnail"].url
        if not fields:
            raise ApiValidationError("Nothing to update")

        updated = self._videos.update_fields(video.id, fields)
        if updated is None:
            # Deleted while the new thumbnail was uploading.
            self._jobs.schedule_media_cleanup(fields.get("thumbnail", ""), MEDIA_KIND_IMAGE)
            raise NotFound("Video not found")
        if "thumbnail" in fields and video.thumbnail != updated.thumbnail:
            self._jobs.schedule_media_cleanup(video.thumbnail, MEDIA_KIND_IMAGE)
        return updated

    def delete(self, viewer: PublicUser, video_id: str) -> None:
        """Delete the record, then retire its media in the background."""
        video = self._owned(video_id, viewer)
        if not self._videos.delete(video.id):
            raise NotFound("Video not found")
        self._jobs.schedule_media_cleanup(video.video_file, MEDIA_KIND_VIDEO)
        self._jobs.schedule_media_cleanup(video.thumbnail, MEDIA_KIND_IMAGE)
        LOGGER.info("Video deleted", extra={"user_id": viewer.id, "video_id": video.id})

    def toggle_publish(self, viewer: PublicUser, video_id: str) -> VideoRecord:
        video = self._owned(video_id, viewer)
        updated = self._videos.set_published(
            video.id, current=video.is_published, published=not video.is_published
        )
        if updated is None:
            # Changed underneath us; report the state that is actually stored.
            return self._load(video.id)
        return updated

    def _load(self, video_id: str) -> VideoRecord:
        video = self._videos.get(ensure_object_id(video_id, label="video id"))
        if video is None:
            raise NotFound("Video not found")
        return video

    def _owned(self, video_id: str, viewer: PublicUser) -> VideoRecord:
        video = self._load(video_id)
        if video.owner != viewer.id:
            raise Forbidden("Only the owner can modify this video")
        return video
