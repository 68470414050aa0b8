"""Repository for user account documents."""

from __future__ import annotations

from typing import Any

from mediahub.api.errors import Conflict
from mediahub.storage.ids import new_object_id, now_iso
from mediahub.storage.store import USERS, DocumentStore, DuplicateRecord
from mediahub.users.models import SECRET_FIELDS_PROJECTION, PublicUser, UserRecord


def normalize_username(value: str | None) -> str:
    return (value or "").strip().lower()


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


class UserRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def get_public(self, user_id: str) -> PublicUser | None:
        doc = self._store.find_one(USERS, {"_id": user_id}, SECRET_FIELDS_PROJECTION)
        return PublicUser.model_validate(doc) if doc else None

    def find_by_identity(
        self, *, username: str | None = None, email: str | None = None
    ) -> UserRecord | None:
        """Find a user matching the username or the email, whichever is given."""
        clauses: list[dict[str, Any]] = []
        if normalize_username(username):
            clauses.append({"username": normalize_username(username)})
        if normalize_email(email):
            clauses.append({"email": normalize_email(email)})
        if not clauses:
            return None
        doc = self._store.find_one(USERS, {"$or": clauses})
        return UserRecord.model_validate(doc) if doc else None

    def create(
        self,
        *,
        username: str,
        email: str,
        full_name: str,
        password_hash: str,
        avatar: str = "",
        cover_image: str = "",
    ) -> PublicUser:
        now = now_iso()
        doc = {
            "_id": new_object_id(),
            "username": normalize_username(username),
            "email": normalize_email(email),
            "full_name": full_name.strip(),
            "password_hash": password_hash,
            "avatar": avatar,
            "cover_image": cover_image,
            "watch_history": [],
            "created_at": now,
            "updated_at": now,
        }
        try:
            self._store.insert_one(USERS, doc)
        except DuplicateRecord as exc:
            raise Conflict("A user with this username or email already exists") from exc
        return UserRecord.model_validate(doc).to_public()

    def update_fields(self, user_id: str, fields: dict[str, Any]) -> PublicUser | None:
        try:
            doc = self._store.update_one(
                USERS,
                {"_id": user_id},
                {"$set": {**fields, "updated_at": now_iso()}},
                SECRET_FIELDS_PROJECTION,
            )
        except DuplicateRecord as exc:
            raise Conflict("Username or email is already taken") from exc
        return PublicUser.model_validate(doc) if doc else None

    def append_watch_history(self, user_id: str, video_id: str) -> bool:
        """Add ``video_id`` to the watch history unless it is already there."""
        doc = self._store.update_one(
            USERS, {"_id": user_id}, {"$addToSet": {"watch_history": video_id}}
        )
        return doc is not None
