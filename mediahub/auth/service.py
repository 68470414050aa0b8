"""Account and session service: register, login, refresh, logout, password change."""

from __future__ import annotations

import logging

from fastapi import UploadFile

from mediahub.api.errors import (
    ApiValidationError,
    Conflict,
    InvalidCredential,
    MissingCredential,
    StaleToken,
    Unauthenticated,
)
from mediahub.auth.credentials import CredentialStore
from mediahub.auth.models import AuthSession
from mediahub.auth.tokens import TokenService
from mediahub.core.background_jobs import BackgroundJobs
from mediahub.core.security import hash_password, verify_password
from mediahub.media.staging import MediaIngest
from mediahub.media.store import MEDIA_KIND_IMAGE
from mediahub.users.models import PublicUser
from mediahub.users.repository import UserRepository

LOGGER = logging.getLogger(__name__)

INVALID_LOGIN_MESSAGE = "Invalid user credentials"


def _require_text(**fields: str | None) -> None:
    blank = [name for name, value in fields.items() if not (value or "").strip()]
    if blank:
        raise ApiValidationError(
            "All fields are required",
            errors=[{"field": name, "message": "must not be blank"} for name in blank],
        )


class AuthService:
    """Owns the session lifecycle.

    Every login and refresh overwrites the refresh token persisted on the
    user, so at most one refresh token can mint new sessions at a time.
    """

    def __init__(
        self,
        *,
        users: UserRepository,
        credentials: CredentialStore,
        tokens: TokenService,
        ingest: MediaIngest,
        jobs: BackgroundJobs,
    ) -> None:
        self._users = users
        self._credentials = credentials
        self._tokens = tokens
        self._ingest = ingest
        self._jobs = jobs

    def register(
        self,
        *,
        username: str | None,
        email: str | None,
        full_name: str | None,
        password: str | None,
        avatar: UploadFile | None = None,
        cover_image: UploadFile | None = None,
    ) -> PublicUser:
        _require_text(
            username=username, email=email, full_name=full_name, password=password
        )
        if self._users.find_by_identity(username=username, email=email) is not None:
            raise Conflict("User with email or username already exists")

        stored = self._ingest.ingest(
            {
                "avatar": (avatar, MEDIA_KIND_IMAGE),
                "cover_image": (cover_image, MEDIA_KIND_IMAGE),
            }
        )
        try:
            user = self._users.create(
                username=username or "",
                email=email or "",
                full_name=full_name or "",
                password_hash=hash_password(password or ""),
                avatar=stored["avatar"].url if "avatar" in stored else "",
                cover_image=stored["cover_image"].url if "cover_image" in stored else "",
            )
        except Conflict:
            # Lost a race on the unique index; the uploads now belong to nobody.
            for media in stored.values():
                self._jobs.schedule_media_cleanup(media.url, MEDIA_KIND_IMAGE)
            raise
        LOGGER.info("User registered", extra={"user_id": user.id})
        return user

    def login(
        self, *, username: str | None, email: str | None, password: str
    ) -> AuthSession:
        if not (username or "").strip() and not (email or "").strip():
            raise ApiValidationError("username or email is required")
        record = self._users.find_by_identity(username=username, email=email)
        if record is None or not verify_password(password, record.password_hash):
            raise Unauthenticated(INVALID_LOGIN_MESSAGE)
        session = self._issue_session(record.to_public())
        LOGGER.info("User logged in", extra={"user_id": record.id})
        return session

    def refresh(self, refresh_token: str | None) -> AuthSession:
        token = (refresh_token or "").strip()
        if not token:
            raise MissingCredential("Refresh token is missing")
        user_id = self._tokens.verify(token, "refresh")
        user = self._users.get_public(user_id)
        if user is None:
            raise InvalidCredential("Invalid refresh token")
        return self._issue_session(user, replacing=token)

    def logout(self, user_id: str) -> None:
        self._credentials.clear_refresh_token(user_id)
        LOGGER.info("User logged out", extra={"user_id": user_id})

    def change_password(
        self,
        user_id: str,
        *,
        old_password: str,
        new_password: str,
        confirm_password: str,
    ) -> None:
        if not new_password.strip():
            raise ApiValidationError("New password must not be blank")
        if new_password != confirm_password:
            raise ApiValidationError("New password and confirmation do not match")
        current_hash = self._credentials.get_password_hash(user_id)
        if not current_hash or not verify_password(old_password, current_hash):
            raise Unauthenticated("Invalid old password")
        self._credentials.set_password_hash(user_id, hash_password(new_password))
        LOGGER.info("Password changed", extra={"user_id": user_id})

    def _issue_session(self, user: PublicUser, *, replacing: str | None = None) -> AuthSession:
        access_token = self._tokens.issue_access_token(user)
        refresh_token = self._tokens.issue_refresh_token(user.id)
        if replacing is None:
            self._credentials.set_refresh_token(user.id, refresh_token)
        elif not self._credentials.rotate_refresh_token(user.id, replacing, refresh_token):
            # Another request rotated this token between verify and write.
            raise StaleToken("Refresh token is no longer valid")
        return AuthSession(user=user, access_token=access_token, refresh_token=refresh_token)
