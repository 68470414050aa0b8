"""Access/refresh token minting and verification."""

from __future__ import annotations

import hmac
import time
import uuid
from typing import Any, Literal, Protocol

from mediahub.api.errors import ExpiredToken, InvalidToken, StaleToken
from mediahub.core.config import AuthConfig
from mediahub.core.security import (
    TokenExpiredError,
    TokenError,
    build_signed_token,
    decode_signed_token,
)
from mediahub.users.models import PublicUser

TokenKind = Literal["access", "refresh"]


class RefreshTokenLookup(Protocol):
    def get_refresh_token(self, user_id: str) -> str | None:
        """Return the refresh token currently persisted for the user."""


class TokenService:
    """Signs and verifies the two session credentials.

    Minting is pure. Only refresh verification reads storage, to reject any
    refresh token other than the single one persisted for the user.
    """

    def __init__(self, config: AuthConfig, credentials: RefreshTokenLookup) -> None:
        self._config = config
        self._credentials = credentials

    @property
    def access_token_ttl_seconds(self) -> int:
        return self._config.access_token_ttl_seconds

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self._config.refresh_token_ttl_seconds

    def issue_access_token(self, user: PublicUser) -> str:
        return self._sign(
            user.id,
            "access",
            self._config.access_token_ttl_seconds,
            {"username": user.username, "email": user.email},
        )

    def issue_refresh_token(self, user_id: str) -> str:
        return self._sign(user_id, "refresh", self._config.refresh_token_ttl_seconds, {})

    def verify(self, token: str, expected_kind: TokenKind) -> str:
        """Validate ``token`` and return the user id it is bound to."""
        try:
            payload = decode_signed_token(token, self._config.secret_key)
        except TokenExpiredError as exc:
            raise ExpiredToken(f"{expected_kind.capitalize()} token expired") from exc
        except TokenError as exc:
            raise InvalidToken(f"Invalid {expected_kind} token") from exc

        if str(payload.get("iss") or "") != self._config.issuer:
            raise InvalidToken("Invalid token issuer")
        if str(payload.get("type") or "") != expected_kind:
            raise InvalidToken("Invalid token type")
        user_id = str(payload.get("sub") or "")
        if not user_id:
            raise InvalidToken(f"Invalid {expected_kind} token")

        if expected_kind == "refresh":
            persisted = self._credentials.get_refresh_token(user_id)
            if not persisted or not hmac.compare_digest(
                persisted.encode("utf-8"), token.encode("utf-8")
            ):
                raise StaleToken("Refresh token is no longer valid")
        return user_id

    def _sign(
        self, user_id: str, kind: TokenKind, ttl_seconds: int, claims: dict[str, Any]
    ) -> str:
        now_ts = int(time.time())
        payload = {
            **claims,
            "iss": self._config.issuer,
            "sub": user_id,
            "type": kind,
            "iat": now_ts,
            "exp": now_ts + ttl_seconds,
            "jti": uuid.uuid4().hex,
        }
        return build_signed_token(payload, self._config.secret_key)
