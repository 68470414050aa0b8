"""Pydantic models for session issuance."""

from __future__ import annotations

from pydantic import BaseModel

from mediahub.users.models import PublicUser


class AuthSession(BaseModel):
    """Freshly minted token pair and the user it is bound to."""

    user: PublicUser
    access_token: str
    refresh_token: str
