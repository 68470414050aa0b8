from __future__ import annotations

from pathlib import Path

import pytest

from mediahub.aggregation.pipelines import (
    build_channel_profile_pipeline,
    build_video_listing_pipeline,
    build_watch_history_pipeline,
    page_from_facet,
    single_channel,
)
from mediahub.aggregation.stages import (
    ArrangeByReference,
    Match,
    Membership,
    Paginate,
    Sort,
    TextSearch,
    render_mongo,
)
from mediahub.api.errors import (
    ApiValidationError,
    InvalidIdentifier,
    NotFound,
    Unauthenticated,
)
from mediahub.storage.store import SUBSCRIPTIONS, USERS, VIDEOS, JsonDocumentStore

ALICE = "65f0a1b2c3d4e5f6a7b8c9d0"
BOB = "65f0a1b2c3d4e5f6a7b8c9d1"
CAROL = "65f0a1b2c3d4e5f6a7b8c9d2"


def _video(video_id: str, owner: str, title: str, *, published: bool = True, created: str, views: int = 0) -> dict:
    return {
        "_id": video_id,
        "owner": owner,
        "title": title,
        "description": f"about {title}",
        "video_file": f"/media/video/{video_id}.mp4",
        "thumbnail": f"/media/image/{video_id}.png",
        "duration": 12.5,
        "views": views,
        "is_published": published,
        "created_at": created,
        "updated_at": created,
    }


def _seed(tmp_path: Path) -> JsonDocumentStore:
    store = JsonDocumentStore(tmp_path / "store")
    for user_id, name in ((ALICE, "alice"), (BOB, "bob"), (CAROL, "carol")):
        store.insert_one(
            USERS,
            {
                "_id": user_id,
                "username": name,
                "email": f"{name}@example.com",
                "full_name": name.title(),
                "password_hash": "secret-hash",
                "refresh_token": "secret-token",
                "avatar": f"/media/image/{name}.png",
                "cover_image": "",
                "watch_history": [],
            },
        )
    store.insert_one(VIDEOS, _video("a" * 24, ALICE, "Cooking pasta", created="2024-01-01T00:00:00+00:00", views=5))
    store.insert_one(VIDEOS, _video("b" * 24, ALICE, "Draft (secret)", published=False, created="2024-01-02T00:00:00+00:00"))
    store.insert_one(VIDEOS, _video("c" * 24, BOB, "Pasta 2.0", created="2024-01-03T00:00:00+00:00", views=1))
    store.insert_one(SUBSCRIPTIONS, {"_id": "d" * 24, "subscriber": BOB, "channel": ALICE})
    store.insert_one(SUBSCRIPTIONS, {"_id": "e" * 24, "subscriber": CAROL, "channel": ALICE})
    store.insert_one(SUBSCRIPTIONS, {"_id": "f" * 24, "subscriber": ALICE, "channel": BOB})
    return store


def _listing(store: JsonDocumentStore, **kwargs) -> dict:
    page = kwargs.get("page", 1)
    limit = kwargs.get("limit", 10)
    stages = build_video_listing_pipeline(**kwargs)
    return page_from_facet(store.aggregate(VIDEOS, stages), page=page, limit=limit)


def test_listing_stages_are_built_in_fixed_order() -> None:
    stages = build_video_listing_pipeline(
        viewer_id=None, owner_id=ALICE, query="pasta", sort_by="views", sort_type="desc", page=2, limit=5
    )

    assert [type(stage) for stage in stages] == [Match, Match, TextSearch, Sort, Paginate]
    assert stages[0] == Match({"owner": ALICE})
    assert stages[1] == Match({"is_published": True})
    assert stages[3] == Sort(keys=(("views", -1), ("_id", -1)))
    assert render_mongo(stages)[-1]["$facet"]["docs"] == [{"$skip": 5}, {"$limit": 5}]


def test_listing_defaults_to_newest_first_and_ascending_when_requested() -> None:
    default = build_video_listing_pipeline(viewer_id=None)
    ascending = build_video_listing_pipeline(viewer_id=None, sort_by="title")

    assert default[-2] == Sort(keys=(("created_at", -1), ("_id", -1)))
    assert ascending[-2] == Sort(keys=(("title", 1), ("_id", -1)))


def test_listing_owner_scope_skips_visibility_filter_for_owner() -> None:
    stages = build_video_listing_pipeline(viewer_id=ALICE, owner_id=ALICE)

    assert Match({"is_published": True}) not in stages


def test_listing_rejects_bad_parameters() -> None:
    with pytest.raises(InvalidIdentifier):
        build_video_listing_pipeline(viewer_id=None, owner_id="not-an-id")
    with pytest.raises(ApiValidationError):
        build_video_listing_pipeline(viewer_id=None, sort_by="password_hash")
    with pytest.raises(ApiValidationError):
        build_video_listing_pipeline(viewer_id=None, page=0)
    with pytest.raises(ApiValidationError):
        build_video_listing_pipeline(viewer_id=None, limit=101)


def test_text_search_escapes_regex_metacharacters() -> None:
    rendered = TextSearch(term="2.0 (x)", fields=("title", "description")).to_mongo()[0]

    clause = rendered["$match"]["$or"][0]["title"]
    assert clause == {"$regex": r"2\.0\ \(x\)", "$options": "i"}


def test_anonymous_listing_hides_unpublished_while_owner_listing_shows_them(tmp_path: Path) -> None:
    store = _seed(tmp_path)

    anonymous = _listing(store, viewer_id=None, owner_id=ALICE)
    owner = _listing(store, viewer_id=ALICE, owner_id=ALICE)
    other = _listing(store, viewer_id=BOB, owner_id=ALICE)

    assert [doc["title"] for doc in anonymous["docs"]] == ["Cooking pasta"]
    assert {doc["title"] for doc in owner["docs"]} == {"Cooking pasta", "Draft (secret)"}
    assert [doc["title"] for doc in other["docs"]] == ["Cooking pasta"]


def test_listing_search_sort_and_pagination(tmp_path: Path) -> None:
    store = _seed(tmp_path)

    found = _listing(store, viewer_id=None, query="PASTA", sort_by="views", sort_type="desc", limit=1)

    assert found["total_docs"] == 2
    assert found["total_pages"] == 2
    assert found["has_next_page"] is True
    assert found["has_prev_page"] is False
    assert [doc["title"] for doc in found["docs"]] == ["Cooking pasta"]

    second = _listing(store, viewer_id=None, query="pasta", sort_by="views", sort_type="desc", page=2, limit=1)
    assert [doc["title"] for doc in second["docs"]] == ["Pasta 2.0"]
    assert second["has_next_page"] is False


def test_listing_without_matches_is_an_empty_page(tmp_path: Path) -> None:
    store = _seed(tmp_path)

    empty = _listing(store, viewer_id=None, query="nothing like this")

    assert empty["docs"] == []
    assert empty["total_docs"] == 0
    assert empty["total_pages"] == 0


def test_channel_profile_counts_and_subscription_flag(tmp_path: Path) -> None:
    store = _seed(tmp_path)

    def profile(viewer_id: str | None) -> dict:
        rows = store.aggregate(USERS, build_channel_profile_pipeline("Alice", viewer_id))
        return single_channel(rows, "Alice")

    anonymous = profile(None)
    assert anonymous["subscriber_count"] == 2
    assert anonymous["subscribed_count"] == 1
    assert anonymous["is_subscribed"] is False
    assert "password_hash" not in anonymous
    assert "refresh_token" not in anonymous
    assert "email" not in anonymous

    assert profile(BOB)["is_subscribed"] is True
    assert profile(ALICE)["is_subscribed"] is False


def test_channel_profile_renders_literal_false_for_anonymous() -> None:
    rendered = render_mongo(build_channel_profile_pipeline("alice", None))

    assert {"$addFields": {"is_subscribed": {"$literal": False}}} in rendered
    assert Membership(array_field="subscribers.subscriber", value=BOB, as_field="x").to_mongo() == [
        {"$addFields": {"x": {"$in": [BOB, {"$ifNull": ["$subscribers.subscriber", []]}]}}}
    ]


def test_channel_profile_errors(tmp_path: Path) -> None:
    store = _seed(tmp_path)

    with pytest.raises(ApiValidationError):
        build_channel_profile_pipeline("  ", None)
    with pytest.raises(NotFound):
        single_channel(store.aggregate(USERS, build_channel_profile_pipeline("nobody", None)), "nobody")


def test_watch_history_keeps_stored_order_and_resolves_owner(tmp_path: Path) -> None:
    store = _seed(tmp_path)
    history = ["c" * 24, "deadbeef" * 3, "a" * 24]

    rows = store.aggregate(VIDEOS, build_watch_history_pipeline(CAROL, history))

    assert [row["_id"] for row in rows] == ["c" * 24, "a" * 24]
    assert rows[0]["owner"] == {"_id": BOB, "username": "bob", "avatar": "/media/image/bob.png"}


def test_watch_history_renders_rank_stages_and_requires_viewer() -> None:
    stages = build_watch_history_pipeline(CAROL, ["c" * 24])

    assert isinstance(stages[-1], ArrangeByReference)
    assert render_mongo(stages)[-2] == {"$sort": {"_arrange_rank": 1}}
    with pytest.raises(Unauthenticated):
        build_watch_history_pipeline(None, [])
