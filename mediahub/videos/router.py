"""Video API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile

from mediahub.api.contracts import ApiErrorResponse, ApiResponse, VideoPageResponse
from mediahub.auth.gate import AuthGate
from mediahub.users.models import PublicUser
from mediahub.videos.service import VideoService

TITLE_FIELD = Form(default=None)
DESCRIPTION_FIELD = Form(default=None)
VIDEO_FILE = File(default=None)
THUMBNAIL_FILE = File(default=None)


def create_videos_router(service: VideoService, gate: AuthGate) -> APIRouter:
    router = APIRouter(tags=["videos"])
    not_found = {
        400: {"model": ApiErrorResponse},
        403: {"model": ApiErrorResponse},
        404: {"model": ApiErrorResponse},
    }

    @router.get(
        "/api/v1/videos",
        response_model=ApiResponse,
        responses={400: {"model": ApiErrorResponse}},
    )
    def list_videos(
        page: int = 1,
        limit: int = 10,
        query: str | None = None,
        sort_by: str | None = None,
        sort_type: str | None = None,
        user_id: str | None = None,
        viewer: PublicUser | None = Depends(gate.optional_viewer),
    ) -> ApiResponse:
        result = service.list_videos(
            viewer,
            page=page,
            limit=limit,
            query=query,
            sort_by=sort_by,
            sort_type=sort_type,
            user_id=user_id,
        )
        return ApiResponse(
            data=VideoPageResponse(**result).model_dump(), message="Videos fetched"
        )

    @router.post(
        "/api/v1/videos/publish",
        response_model=ApiResponse,
        status_code=201,
        responses={400: {"model": ApiErrorResponse}, 401: {"model": ApiErrorResponse}},
    )
    def publish_video(
        title: str | None = TITLE_FIELD,
        description: str | None = DESCRIPTION_FIELD,
        video_file: UploadFile | None = VIDEO_FILE,
        thumbnail: UploadFile | None = THUMBNAIL_FILE,
        viewer: PublicUser = Depends(gate.require_viewer),
    ) -> ApiResponse:
        video = service.publish(
            viewer,
            title=title,
            description=description,
            video_file=video_file,
            thumbnail=thumbnail,
        )
        return ApiResponse(status_code=201, data=video.model_dump(), message="Video published")

    @router.get("/api/v1/videos/{video_id}", response_model=ApiResponse, responses=not_found)
    def get_video(
        video_id: str, viewer: PublicUser | None = Depends(gate.optional_viewer)
    ) -> ApiResponse:
        video = service.get_video(video_id, viewer)
        return ApiResponse(data=video.model_dump(), message="Video fetched")

    @router.patch("/api/v1/videos/{video_id}", response_model=ApiResponse, responses=not_found)
    def update_video(
        video_id: str,
        title: str | None = TITLE_FIELD,
        description: str | None = DESCRIPTION_FIELD,
        thumbnail: UploadFile | None = THUMBNAIL_FILE,
        viewer: PublicUser = Depends(gate.require_viewer),
    ) -> ApiResponse:
        video = service.update(
            viewer, video_id, title=title, description=description, thumbnail=thumbnail
        )
        return ApiResponse(data=video.model_dump(), message="Video updated")

    @router.delete("/api/v1/videos/{video_id}", response_model=ApiResponse, responses=not_found)
    def delete_video(
        video_id: str, viewer: PublicUser = Depends(gate.require_viewer)
    ) -> ApiResponse:
        service.delete(viewer, video_id)
        return ApiResponse(data={}, message="Video deleted")

    @router.patch(
        "/api/v1/videos/toggle/publish/{video_id}",
        response_model=ApiResponse,
        responses=not_found,
    )
    def toggle_publish(
        video_id: str, viewer: PublicUser = Depends(gate.require_viewer)
    ) -> ApiResponse:
        video = service.toggle_publish(viewer, video_id)
        return ApiResponse(data=video.model_dump(), message="Publish status toggled")

    return router
