"""User profile and channel API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from mediahub.api.contracts import ApiErrorResponse, ApiResponse, ChannelProfileResponse
from mediahub.auth.gate import AuthGate
from mediahub.users.models import PublicUser, UpdateDetailsRequest
from mediahub.users.service import UserService

AVATAR_FILE = File(default=None)
COVER_IMAGE_FILE = File(default=None)


def create_users_router(service: UserService, gate: AuthGate) -> APIRouter:
    router = APIRouter(tags=["users"])
    unauthorized = {401: {"model": ApiErrorResponse}}

    @router.get("/api/v1/users/current-user", response_model=ApiResponse, responses=unauthorized)
    def current_user(viewer: PublicUser = Depends(gate.require_viewer)) -> ApiResponse:
        return ApiResponse(data=viewer.model_dump(), message="Current user fetched")

    @router.patch(
        "/api/v1/users/update-details",
        response_model=ApiResponse,
        responses={400: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def update_details(
        req: UpdateDetailsRequest, viewer: PublicUser = Depends(gate.require_viewer)
    ) -> ApiResponse:
        user = service.update_details(
            viewer, username=req.username, email=req.email, full_name=req.full_name
        )
        return ApiResponse(data=user.model_dump(), message="Account details updated")

    @router.patch("/api/v1/users/avatar", response_model=ApiResponse, responses=unauthorized)
    def update_avatar(
        avatar: UploadFile | None = AVATAR_FILE,
        viewer: PublicUser = Depends(gate.require_viewer),
    ) -> ApiResponse:
        user = service.replace_image(viewer, "avatar", avatar)
        return ApiResponse(data=user.model_dump(), message="Avatar updated")

    @router.patch(
        "/api/v1/users/cover-image", response_model=ApiResponse, responses=unauthorized
    )
    def update_cover_image(
        cover_image: UploadFile | None = COVER_IMAGE_FILE,
        viewer: PublicUser = Depends(gate.require_viewer),
    ) -> ApiResponse:
        user = service.replace_image(viewer, "cover_image", cover_image)
        return ApiResponse(data=user.model_dump(), message="Cover image updated")

    @router.get(
        "/api/v1/users/channel/{username}",
        response_model=ApiResponse,
        responses={404: {"model": ApiErrorResponse}},
    )
    def channel_profile(
        username: str, viewer: PublicUser | None = Depends(gate.optional_viewer)
    ) -> ApiResponse:
        channel = ChannelProfileResponse(**service.channel_profile(username, viewer))
        return ApiResponse(data=channel.model_dump(), message="Channel fetched")

    @router.get("/api/v1/users/history", response_model=ApiResponse, responses=unauthorized)
    def watch_history(viewer: PublicUser = Depends(gate.require_viewer)) -> ApiResponse:
        history = service.watch_history(viewer)
        return ApiResponse(
            data=[video.model_dump() for video in history],
            message="Watch history fetched",
        )

    return router
