"""Local staging of multipart uploads before they go to the object store."""

from __future__ import annotations

import logging
import shutil
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Mapping

from fastapi import UploadFile

from mediahub.api.errors import ApiError, ApiErrorCode
from mediahub.media.store import MediaStore, UploadedMedia

LOGGER = logging.getLogger(__name__)


@contextmanager
def staged_uploads(
    staging_dir: Path,
    uploads: Mapping[str, UploadFile | None],
    *,
    max_bytes: int,
) -> Iterator[dict[str, Path]]:
    """Write uploads to temp files and remove them however the block exits.

    Yields a mapping of form field name to staged path; fields without a file
    are left out.
    """
    staging_dir.mkdir(parents=True, exist_ok=True)
    staged: dict[str, Path] = {}
    try:
        for field, upload in uploads.items():
            if upload is None or not upload.filename:
                continue
            path = staging_dir / f"{uuid.uuid4().hex}{Path(upload.filename).suffix.lower()}"
            staged[field] = path
            with path.open("wb") as fh:
                shutil.copyfileobj(upload.file, fh)
            if path.stat().st_size > max_bytes:
                raise ApiError(
                    f"Uploaded file exceeds configured limit ({max_bytes} bytes).",
                    status_code=413,
                    error_code=ApiErrorCode.REQUEST_TOO_LARGE,
                )
        yield staged
    finally:
        for path in staged.values():
            try:
                path.unlink(missing_ok=True)
            except OSError:
                LOGGER.warning("Failed to remove staged upload %s", path, exc_info=True)


class MediaIngest:
    """Stage multipart files locally, push them to the object store, clean up.

    When one upload in a batch fails, the files already pushed are handed to
    ``discard`` so they do not stay orphaned in the object store.
    """

    def __init__(
        self,
        store: MediaStore,
        *,
        staging_dir: Path,
        max_bytes: int,
        discard: Callable[[str, str], object],
    ) -> None:
        self._store = store
        self._discard = discard
        self._staging_dir = staging_dir
        self._max_bytes = max_bytes

    def ingest(
        self, uploads: Mapping[str, tuple[UploadFile | None, str]]
    ) -> dict[str, UploadedMedia]:
        """Upload each ``field -> (file, kind)``; missing files are skipped."""
        stored: dict[str, UploadedMedia] = {}
        try:
            with staged_uploads(
                self._staging_dir,
                {field: upload for field, (upload, _) in uploads.items()},
                max_bytes=self._max_bytes,
            ) as staged:
                for field, path in staged.items():
                    stored[field] = self._store.upload(path, uploads[field][1])
        except Exception:
            for field, media in stored.items():
                self._discard(media.url, uploads[field][1])
            raise
        return stored
