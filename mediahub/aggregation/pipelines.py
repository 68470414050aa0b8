"""Per-request pipeline builders for video listing and channel statistics."""

from __future__ import annotations

import math
from typing import Any, Sequence

from mediahub.aggregation.stages import (
    ArrangeByReference,
    FirstElement,
    Lookup,
    Match,
    Membership,
    Paginate,
    Project,
    Size,
    Sort,
    Stage,
    TextSearch,
)
from mediahub.api.errors import ApiValidationError, NotFound, Unauthenticated
from mediahub.storage.ids import ensure_object_id

SORTABLE_VIDEO_FIELDS = ("created_at", "updated_at", "views", "duration", "title")
DEFAULT_SORT = ("created_at", -1)
SEARCH_FIELDS = ("title", "description")
MAX_PAGE_SIZE = 100

CHANNEL_PUBLIC_FIELDS = ("username", "full_name", "avatar", "cover_image")
OWNER_SUMMARY_FIELDS = ("username", "avatar")


def build_video_listing_pipeline(
    *,
    viewer_id: str | None,
    owner_id: str | None = None,
    query: str | None = None,
    sort_by: str | None = None,
    sort_type: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> list[Stage]:
    """Build filter, visibility, search, sort and paginate stages, in that order.

    Unpublished videos are only visible when the listing is scoped to the
    viewer's own channel.
    """
    if page < 1:
        raise ApiValidationError("page must be at least 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ApiValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    stages: list[Stage] = []
    owner = (owner_id or "").strip()
    if owner:
        stages.append(Match({"owner": ensure_object_id(owner, label="user id")}))

    if not (owner and viewer_id and viewer_id == owner):
        stages.append(Match({"is_published": True}))

    term = (query or "").strip()
    if term:
        stages.append(TextSearch(term=term, fields=SEARCH_FIELDS))

    stages.append(Sort(keys=(_sort_key(sort_by, sort_type), ("_id", -1))))
    stages.append(Paginate(page=page, limit=limit))
    return stages


def _sort_key(sort_by: str | None, sort_type: str | None) -> tuple[str, int]:
    field = (sort_by or "").strip()
    if not field:
        return DEFAULT_SORT
    if field not in SORTABLE_VIDEO_FIELDS:
        raise ApiValidationError(
            f"sort_by must be one of: {', '.join(SORTABLE_VIDEO_FIELDS)}"
        )
    return field, -1 if (sort_type or "").strip().lower() == "desc" else 1


def page_from_facet(rows: list[dict[str, Any]], *, page: int, limit: int) -> dict[str, Any]:
    """Shape the single ``$facet`` row of a paginated pipeline."""
    facet = rows[0] if rows else {}
    metadata = facet.get("metadata") or []
    total = int(metadata[0].get("total", 0)) if metadata else 0
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "docs": list(facet.get("docs") or []),
        "total_docs": total,
        "limit": limit,
        "page": page,
        "total_pages": total_pages,
        "has_prev_page": page > 1,
        "has_next_page": page < total_pages,
    }


def build_channel_profile_pipeline(username: str, viewer_id: str | None) -> list[Stage]:
    """Build the subscriber statistics pipeline for one channel."""
    normalized = (username or "").strip().lower()
    if not normalized:
        raise ApiValidationError("username is required")
    return [
        Match({"username": normalized}),
        Lookup(
            from_collection="subscriptions",
            local_field="_id",
            foreign_field="channel",
            as_field="subscribers",
        ),
        Lookup(
            from_collection="subscriptions",
            local_field="_id",
            foreign_field="subscriber",
            as_field="subscribed_to",
        ),
        Size(array_field="subscribers", as_field="subscriber_count"),
        Size(array_field="subscribed_to", as_field="subscribed_count"),
        Membership(
            array_field="subscribers.subscriber",
            value=viewer_id,
            as_field="is_subscribed",
        ),
        Project(
            fields=(
                *CHANNEL_PUBLIC_FIELDS,
                "subscriber_count",
                "subscribed_count",
                "is_subscribed",
            )
        ),
    ]


def single_channel(rows: list[dict[str, Any]], username: str) -> dict[str, Any]:
    if not rows:
        raise NotFound(f"Channel not found: {username}")
    return rows[0]


def build_watch_history_pipeline(
    viewer_id: str | None, watch_history: Sequence[str]
) -> list[Stage]:
    """Resolve watched video ids into videos with a minimal owner summary."""
    if not viewer_id:
        raise Unauthenticated("Sign in to view watch history")
    order = tuple(str(video_id) for video_id in watch_history)
    return [
        Match({"_id": {"$in": list(order)}}),
        Lookup(
            from_collection="users",
            local_field="owner",
            foreign_field="_id",
            as_field="owner",
            pipeline=(Project(fields=OWNER_SUMMARY_FIELDS),),
        ),
        FirstElement(field="owner"),
        ArrangeByReference(field="_id", order=order),
    ]
