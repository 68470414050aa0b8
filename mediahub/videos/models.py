"""Pydantic models for videos."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class VideoRecord(BaseModel):
    """Persisted video document."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    owner: str
    title: str
    description: str = ""
    video_file: str
    thumbnail: str
    duration: float = 0
    views: int = 0
    is_published: bool = True
    created_at: str = ""
    updated_at: str = ""


class OwnerSummary(BaseModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    username: str
    avatar: str = ""


class WatchedVideo(BaseModel):
    """Watch-history entry: the video with its owner resolved."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    title: str
    description: str = ""
    video_file: str
    thumbnail: str
    duration: float = 0
    views: int = 0
    is_published: bool = True
    created_at: str = ""
    owner: OwnerSummary | None = None
