from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import pytest
from starlette.requests import Request

from config_factory import auth_config
from mediahub.api.errors import ApiErrorCode, InvalidCredential, MissingCredential
from mediahub.auth.gate import ACCESS_TOKEN_COOKIE, AuthGate, extract_access_token
from mediahub.auth.tokens import TokenService
from mediahub.core.security import build_signed_token
from mediahub.users.models import PublicUser

USER = PublicUser(id="65f0a1b2c3d4e5f6a7b8c9d0", username="alice", email="alice@example.com")


@dataclass
class _Users:
    known: dict[str, PublicUser]

    def get_public(self, user_id: str) -> PublicUser | None:
        return self.known.get(user_id)


@dataclass
class _NoRefreshTokens:
    def get_refresh_token(self, user_id: str) -> str | None:
        return None


def _request(headers: list[tuple[bytes, bytes]] | None = None) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "method": "GET",
        "path": "/api/v1/users/current-user",
        "query_string": b"",
        "headers": headers or [],
    }
    return Request(scope)


def _build_gate() -> tuple[AuthGate, TokenService]:
    tokens = TokenService(auth_config(), _NoRefreshTokens())
    return AuthGate(tokens, _Users(known={USER.id: USER})), tokens


def test_cookie_token_wins_over_bearer_header() -> None:
    request = _request(
        [
            (b"cookie", f"{ACCESS_TOKEN_COOKIE}=from-cookie".encode()),
            (b"authorization", b"Bearer from-header"),
        ]
    )

    assert extract_access_token(request) == "from-cookie"
    assert extract_access_token(_request([(b"authorization", b"Bearer abc")])) == "abc"
    assert extract_access_token(_request([(b"authorization", b"Basic abc")])) == ""


def test_require_viewer_attaches_user() -> None:
    gate, tokens = _build_gate()
    token = tokens.issue_access_token(USER)
    request = _request([(b"authorization", f"Bearer {token}".encode())])

    viewer = gate.require_viewer(request)

    assert viewer.id == USER.id
    assert request.state.viewer.username == "alice"


def test_require_viewer_without_token_is_missing_credential() -> None:
    gate, _ = _build_gate()

    with pytest.raises(MissingCredential):
        gate.require_viewer(_request())


def test_require_viewer_reports_expiry_distinctly() -> None:
    gate, _ = _build_gate()
    config = auth_config()
    expired = build_signed_token(
        {"iss": config.issuer, "sub": USER.id, "type": "access", "exp": int(time.time()) - 5},
        config.secret_key,
    )

    with pytest.raises(InvalidCredential) as exc_info:
        gate.require_viewer(_request([(b"authorization", f"Bearer {expired}".encode())]))

    assert exc_info.value.error_code == ApiErrorCode.AUTH_TOKEN_EXPIRED
    assert "expired" in exc_info.value.message


def test_unknown_user_is_invalid_for_mandatory_and_anonymous_for_optional() -> None:
    gate, tokens = _build_gate()
    ghost = PublicUser(id="65f0a1b2c3d4e5f6a7b8c9d1", username="ghost", email="g@example.com")
    request = _request([(b"authorization", f"Bearer {tokens.issue_access_token(ghost)}".encode())])

    with pytest.raises(InvalidCredential):
        gate.require_viewer(request)
    assert gate.optional_viewer(request) is None


def test_optional_viewer_ignores_garbage_and_absence() -> None:
    gate, _ = _build_gate()

    assert gate.optional_viewer(_request()) is None
    assert gate.optional_viewer(_request([(b"authorization", b"Bearer garbage")])) is None
