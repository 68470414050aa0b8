"""Request authentication gate with mandatory and optional variants."""

from __future__ import annotations

import logging
from typing import Protocol, cast

from fastapi import Request

from mediahub.api.errors import (
    ApiError,
    ExpiredToken,
    InvalidCredential,
    MissingCredential,
)
from mediahub.auth.tokens import TokenService
from mediahub.users.models import PublicUser

LOGGER = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"


class ViewerLookup(Protocol):
    def get_public(self, user_id: str) -> PublicUser | None:
        """Load a user without credential fields."""


def _extract_bearer_token(authorization: str) -> str:
    """Extract bearer token from authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def extract_access_token(request: Request) -> str:
    """Prefer the access-token cookie, fall back to the bearer header."""
    cookie_token = (request.cookies.get(ACCESS_TOKEN_COOKIE) or "").strip()
    if cookie_token:
        return cookie_token
    return _extract_bearer_token(request.headers.get("authorization", ""))


class AuthGate:
    """Resolves the viewer for a request.

    ``require_viewer`` and ``optional_viewer`` are meant to be used as FastAPI
    dependencies. The optional variant treats every authentication failure as
    an anonymous request so public endpoints can personalise for signed-in
    viewers without demanding a sign-in.
    """

    def __init__(self, tokens: TokenService, users: ViewerLookup) -> None:
        self._tokens = tokens
        self._users = users

    def resolve(self, request: Request, *, mandatory: bool) -> PublicUser | None:
        token = extract_access_token(request)
        if not token:
            if mandatory:
                raise MissingCredential("Access token is missing")
            return None

        try:
            viewer = self._authenticate(token)
        except ApiError as exc:
            if mandatory:
                raise
            LOGGER.debug("Ignoring unusable access token on optional-auth route: %s", exc.message)
            return None

        request.state.viewer = viewer
        return viewer

    def require_viewer(self, request: Request) -> PublicUser:
        return cast(PublicUser, self.resolve(request, mandatory=True))

    def optional_viewer(self, request: Request) -> PublicUser | None:
        return self.resolve(request, mandatory=False)

    def _authenticate(self, token: str) -> PublicUser:
        try:
            user_id = self._tokens.verify(token, "access")
        except ExpiredToken as exc:
            raise InvalidCredential(
                "Access token expired", error_code=exc.error_code
            ) from exc
        except ApiError as exc:
            raise InvalidCredential("Invalid access token") from exc

        viewer = self._users.get_public(user_id)
        if viewer is None:
            raise InvalidCredential("Invalid access token")
        return viewer
