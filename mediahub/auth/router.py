"""Authentication API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile

from mediahub.api.contracts import ApiErrorResponse, ApiResponse
from mediahub.auth.gate import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, AuthGate
from mediahub.auth.models import AuthSession
from mediahub.auth.service import AuthService
from mediahub.core.config import SecurityConfig
from mediahub.users.models import ChangePasswordRequest, LoginRequest, PublicUser, RefreshRequest

USERNAME_FIELD = Form(default=None)
EMAIL_FIELD = Form(default=None)
FULL_NAME_FIELD = Form(default=None)
PASSWORD_FIELD = Form(default=None)
AVATAR_FILE = File(default=None)
COVER_IMAGE_FILE = File(default=None)


class SessionCookies:
    """Writes and clears the two session cookies with one set of attributes."""

    def __init__(self, security: SecurityConfig, *, access_ttl: int, refresh_ttl: int) -> None:
        self._secure = security.cookie_secure
        self._samesite = security.cookie_samesite
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl

    def attach(self, response: Response, session: AuthSession) -> None:
        for name, value, max_age in (
            (ACCESS_TOKEN_COOKIE, session.access_token, self._access_ttl),
            (REFRESH_TOKEN_COOKIE, session.refresh_token, self._refresh_ttl),
        ):
            response.set_cookie(
                name,
                value,
                max_age=max_age,
                httponly=True,
                secure=self._secure,
                samesite=self._samesite,  # type: ignore[arg-type]
            )

    def clear(self, response: Response) -> None:
        for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
            response.delete_cookie(
                name,
                httponly=True,
                secure=self._secure,
                samesite=self._samesite,  # type: ignore[arg-type]
            )


def _session_payload(session: AuthSession) -> dict:
    return {
        "user": session.user.model_dump(),
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
    }


def create_auth_router(
    service: AuthService, gate: AuthGate, cookies: SessionCookies
) -> APIRouter:
    """Build register/login/logout/refresh/change-password endpoints."""
    router = APIRouter(tags=["auth"])
    unauthorized = {401: {"model": ApiErrorResponse}}

    @router.post(
        "/api/v1/users/register",
        response_model=ApiResponse,
        status_code=201,
        responses={400: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def register(
        username: str | None = USERNAME_FIELD,
        email: str | None = EMAIL_FIELD,
        full_name: str | None = FULL_NAME_FIELD,
        password: str | None = PASSWORD_FIELD,
        avatar: UploadFile | None = AVATAR_FILE,
        cover_image: UploadFile | None = COVER_IMAGE_FILE,
    ) -> ApiResponse:
        user = service.register(
            username=username,
            email=email,
            full_name=full_name,
            password=password,
            avatar=avatar,
            cover_image=cover_image,
        )
        return ApiResponse(
            status_code=201, data=user.model_dump(), message="User registered successfully"
        )

    @router.post("/api/v1/users/login", response_model=ApiResponse, responses=unauthorized)
    def login(req: LoginRequest, response: Response) -> ApiResponse:
        session = service.login(username=req.username, email=req.email, password=req.password)
        cookies.attach(response, session)
        return ApiResponse(data=_session_payload(session), message="User logged in successfully")

    @router.post("/api/v1/users/logout", response_model=ApiResponse, responses=unauthorized)
    def logout(
        response: Response, viewer: PublicUser = Depends(gate.require_viewer)
    ) -> ApiResponse:
        service.logout(viewer.id)
        cookies.clear(response)
        return ApiResponse(data={}, message="User logged out")

    @router.post(
        "/api/v1/users/refresh-token", response_model=ApiResponse, responses=unauthorized
    )
    def refresh_token(
        request: Request, response: Response, req: RefreshRequest | None = None
    ) -> ApiResponse:
        token = request.cookies.get(REFRESH_TOKEN_COOKIE) or (req.refresh_token if req else None)
        session = service.refresh(token)
        cookies.attach(response, session)
        return ApiResponse(data=_session_payload(session), message="Access token refreshed")

    @router.post(
        "/api/v1/users/change-password",
        response_model=ApiResponse,
        responses={400: {"model": ApiErrorResponse}, **unauthorized},
    )
    def change_password(
        req: ChangePasswordRequest, viewer: PublicUser = Depends(gate.require_viewer)
    ) -> ApiResponse:
        service.change_password(
            viewer.id,
            old_password=req.old_password,
            new_password=req.new_password,
            confirm_password=req.confirm_password,
        )
        return ApiResponse(data={}, message="Password changed successfully")

    return router
