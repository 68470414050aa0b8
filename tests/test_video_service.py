from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from mediahub.api.errors import (
    ApiValidationError,
    Forbidden,
    InvalidIdentifier,
    NotFound,
)
from mediahub.users.models import PublicUser
from service_stack import ServiceStack, build_stack, upload


def _user(stack: ServiceStack, name: str) -> PublicUser:
    return stack.auth.register(
        username=name, email=f"{name}@example.com", full_name=name.title(), password="pw"
    )


def _publish(stack: ServiceStack, owner: PublicUser, title: str = "Holiday"):
    return stack.video_service.publish(
        owner,
        title=title,
        description="a trip",
        video_file=upload("clip.mp4", b"not really a video"),
        thumbnail=upload("thumb.png", b"png"),
    )


def _drain(stack: ServiceStack) -> int:
    return asyncio.run(stack.queue.run_pending())


def test_publish_uploads_media_and_starts_published(tmp_path: Path) -> None:
    stack = build_stack(tmp_path)
    alice = _user(stack, "alice")

    video = _publish(stack, alice)

    assert video.owner == alice.id
    assert video.is_published is True
    assert video.views == 0
    assert video.video_file.startswith("/media/video/")
    assert video.thumbnail.startswith("/media/image/")
    assert list((tmp_path / "staging").iterdir()) == []


def test_publish_requires_title_and_both_files(tmp_path: Path) -> None:
    stack = build_stack(tmp_path)
    alice = _user(stack, "alice")

    with pytest.raises(ApiValidationError):
        stack.video_service.publish(
            alice, title=" ", description="", video_file=upload("a.mp4"), thumbnail=upload("a.png")
        )
    with pytest.raises(ApiValidationError) as exc_info:
        stack.video_service.publish(
            alice, title="t", description="", video_file=upload("a.mp4"), thumbnail=None
        )
    assert exc_info.value.errors == [{"field": "thumbnail", "message": "file is missing"}]


def test_reads_by_another_user_count_views_and_record_history_once(tmp_path: Path) -> None:
    stack = build_stack(tmp_path)
    alice = _user(stack, "alice")
    bob = _user(stack, "bob")
    video = _publish(stack, alice)

    stack.video_service.get_video(video.id, bob)
    stack.video_service.get_video(video.id, bob)
    assert _drain(stack) == 3

    assert stack.videos.get(video.id).views == 2
    assert stack.users.get_public(bob.id).watch_history == [video.id]
    history = stack.user_service.watch_history(bob)
    assert [item.id for item in history] == [video.id]
    assert history[0].owner is not None
    assert history[0].owner.username == "alice"


def test_owner_reads_do_not_count_and_anonymous_reads_do(tmp_path: Path) -> None:
    stack = build_stack(tmp_path)
    alice = _user(stack, "alice")
    video = _publish(stack, alice)

    stack.video_service.get_video(video.id, alice)
    stack.video_service.get_video(video.id, None)
    _drain(stack)

    assert stack.videos.get(video.id).views == 1
    assert stack.users.get_public(alice.id).watch_history == []


def test_unpublished_video_is_owner_only(tmp_path: Path) -> None:
    stack = build_stack(tmp_path)
    alice = _user(stack, "alice")
    bob = _user(stack, "bob")
    video = _publish(stack, alice)

    toggled = stack.video_service.toggle_publish(alice, video.id)

    assert toggled.is_published is False
    assert stack.video_service.get_video(video.id, alice).id == video.id
    with pytest.raises(Forbidden):
        stack.video_service.get_video(video.id, bob)
    with pytest.raises(Forbidden):
        stack.video_service.get_video(video.id, None)
    assert stack.video_service.toggle_publish(alice, video.id).is_published is True


def test_deleting_someone_elses_video_is_forbidden_and_leaves_it_untouched(tmp_path: Path) -> None:
    stack = build_stack(tmp_path)
    alice = _user(stack, "alice")
    bob = _user(stack, "bob")
    video = _publish(stack, alice)

    with pytest.raises(Forbidden):
        stack.video_service.delete(bob, video.id)

    assert _drain(stack) == 0
    assert stack.videos.get(video.id) == video
    assert (tmp_path / "media" / video.video_file.removeprefix("/media/")).exists()
    assert (tmp_path / "media" / video.thumbnail.removeprefix("/media/")).exists()


def test_owner_delete_removes_record_then_media_in_background(tmp_path: Path) -> None:
    stack = build_stack(tmp_path)
    alice = _user(stack, "alice")
    video = _publish(stack, alice)
    video_path = tmp_path / "media" / video.video_file.removeprefix("/media/")

    stack.video_service.delete(alice, video.id)

    assert stack.videos.get(video.id) is None
    assert video_path.exists()
    assert _drain(stack) == 2
    assert not video_path.exists()
    with pytest.raises(NotFound):
        stack.video_service.delete(alice, video.id)


def test_update_replaces_thumbnail_and_retires_old_one(tmp_path: Path) -> None:
    stack = build_stack(tmp_path)
    alice = _user(stack, "alice")
    bob = _user(stack, "bob")
    video = _publish(stack, alice)
    old_thumb = tmp_path / "media" / video.thumbnail.removeprefix("/media/")

    with pytest.raises(Forbidden):
        stack.video_service.update(bob, video.id, title="mine now")
    with pytest.raises(ApiValidationError):
        stack.video_service.update(alice, video.id)

    updated = stack.video_service.update(
        alice, video.id, title="Renamed", thumbnail=upload("new.png", b"new")
    )
    _drain(stack)

    assert updated.title == "Renamed"
    assert updated.description == "a trip"
    assert updated.thumbnail != video.thumbnail
    assert not old_thumb.exists()


def test_malformed_and_unknown_ids(tmp_path: Path) -> None:
    stack = build_stack(tmp_path)

    with pytest.raises(InvalidIdentifier):
        stack.video_service.get_video("nope", None)
    with pytest.raises(NotFound):
        stack.video_service.get_video("65f0a1b2c3d4e5f6a7b8c9d0", None)


def test_listing_scoped_to_owner(tmp_path: Path) -> None:
    stack = build_stack(tmp_path)
    alice = _user(stack, "alice")
    bob = _user(stack, "bob")
    first = _publish(stack, alice, "First")
    _publish(stack, alice, "Second")
    _publish(stack, bob, "Bob's")
    stack.video_service.toggle_publish(alice, first.id)

    public = stack.video_service.list_videos(None, user_id=alice.id)
    own = stack.video_service.list_videos(alice, user_id=alice.id)
    everything = stack.video_service.list_videos(None, sort_by="title")

    assert [doc["title"] for doc in public["docs"]] == ["Second"]
    assert {doc["title"] for doc in own["docs"]} == {"First", "Second"}
    assert [doc["title"] for doc in everything["docs"]] == ["Bob's", "Second"]


def _stored_files(tmp_path: Path) -> list[Path]:
    return [path for path in (tmp_path / "media").rglob("*") if path.is_file()]


def test_publish_retires_uploads_when_record_cannot_be_saved(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    stack = build_stack(tmp_path)
    alice = _user(stack, "alice")

    def refuse(**fields):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(stack.videos, "create", refuse)
    with pytest.raises(RuntimeError):
        _publish(stack, alice)

    assert len(_stored_files(tmp_path)) == 2
    assert _drain(stack) == 2
    assert _stored_files(tmp_path) == []


def test_update_retires_new_thumbnail_when_video_vanished(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    stack = build_stack(tmp_path)
    alice = _user(stack, "alice")
    video = _publish(stack, alice)
    monkeypatch.setattr(stack.videos, "update_fields", lambda video_id, fields: None)

    with pytest.raises(NotFound):
        stack.video_service.update(alice, video.id, thumbnail=upload("new.png", b"new"))

    assert len(_stored_files(tmp_path)) == 3
    _drain(stack)
    remaining = _stored_files(tmp_path)
    assert len(remaining) == 2
    assert (tmp_path / "media" / video.thumbnail.removeprefix("/media/")) in remaining
