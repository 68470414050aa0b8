"""Public API response contracts."""

from mediahub.api.contracts.models import (
    ApiErrorResponse,
    ApiResponse,
    ChannelProfileResponse,
    HealthResponse,
    VideoPageResponse,
)

__all__ = [
    "ApiErrorResponse",
    "ApiResponse",
    "ChannelProfileResponse",
    "HealthResponse",
    "VideoPageResponse",
]
