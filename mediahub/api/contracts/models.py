"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ApiResponse(BaseModel):
    """Success envelope shared by every handler."""

    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(default=200, serialization_alias="statusCode")
    data: Any = None
    message: str = "Success"
    success: bool = True


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(serialization_alias="statusCode")
    message: str = Field(description="Human-readable error message")
    error_code: str = Field(description="Machine-readable error code")
    errors: list[Any] = Field(default_factory=list)
    success: bool = False


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class ChannelProfileResponse(BaseModel):
    """Public channel card with subscription statistics."""

    id: str
    username: str
    full_name: str = ""
    avatar: str = ""
    cover_image: str = ""
    subscriber_count: int = 0
    subscribed_count: int = 0
    is_subscribed: bool = False


class VideoPageResponse(BaseModel):
    """One page of the video listing."""

    docs: list[dict[str, Any]] = Field(default_factory=list)
    total_docs: int = 0
    limit: int
    page: int
    total_pages: int = 0
    has_prev_page: bool = False
    has_next_page: bool = False
