"""Accessor for the credential fields persisted on a user record."""

from __future__ import annotations

from mediahub.storage.ids import now_iso
from mediahub.storage.store import USERS, DocumentStore


class CredentialStore:
    """Reads and writes ``password_hash`` and ``refresh_token``.

    Writes are single-field updates. They never re-hash the password or
    re-validate the rest of the record, so rotating a token costs one store
    round-trip.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def get_password_hash(self, user_id: str) -> str | None:
        doc = self._store.find_one(USERS, {"_id": user_id})
        return str(doc["password_hash"]) if doc and doc.get("password_hash") else None

    def set_password_hash(self, user_id: str, password_hash: str) -> bool:
        updated = self._store.update_one(
            USERS,
            {"_id": user_id},
            {"$set": {"password_hash": password_hash, "updated_at": now_iso()}},
        )
        return updated is not None

    def get_refresh_token(self, user_id: str) -> str | None:
        doc = self._store.find_one(USERS, {"_id": user_id})
        return str(doc["refresh_token"]) if doc and doc.get("refresh_token") else None

    def set_refresh_token(self, user_id: str, refresh_token: str) -> bool:
        """Overwrite the active refresh token, revoking whichever was there."""
        updated = self._store.update_one(
            USERS, {"_id": user_id}, {"$set": {"refresh_token": refresh_token}}
        )
        return updated is not None

    def rotate_refresh_token(self, user_id: str, presented: str, replacement: str) -> bool:
        """Swap ``presented`` for ``replacement`` only if it is still the stored token."""
        updated = self._store.update_one(
            USERS,
            {"_id": user_id, "refresh_token": presented},
            {"$set": {"refresh_token": replacement}},
        )
        return updated is not None

    def clear_refresh_token(self, user_id: str) -> None:
        self._store.update_one(USERS, {"_id": user_id}, {"$unset": {"refresh_token": ""}})
