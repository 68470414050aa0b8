"""Pydantic models for user accounts."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

SECRET_FIELDS_PROJECTION = {"password_hash": 0, "refresh_token": 0}


class PublicUser(BaseModel):
    """User payload safe to return to clients; carries no credentials."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    username: str
    email: str
    full_name: str = ""
    avatar: str = ""
    cover_image: str = ""
    watch_history: list[str] = Field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


class UserRecord(PublicUser):
    """Persisted user including the credential fields."""

    password_hash: str
    refresh_token: str | None = None

    def to_public(self) -> PublicUser:
        return PublicUser.model_validate(
            self.model_dump(exclude={"password_hash", "refresh_token"})
        )


class LoginRequest(BaseModel):
    """Login by username or email."""

    username: str | None = None
    email: str | None = None
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    """Refresh payload for clients that do not keep cookies."""

    refresh_token: str | None = Field(
        default=None, validation_alias=AliasChoices("refresh_token", "refreshToken")
    )


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(min_length=1)
    new_password: str
    confirm_password: str


class UpdateDetailsRequest(BaseModel):
    username: str | None = None
    email: str | None = None
    full_name: str | None = None
