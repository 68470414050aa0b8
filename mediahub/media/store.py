"""Object store clients for avatars, cover images, thumbnails and videos."""

from __future__ import annotations

import logging
import mimetypes
import shutil
import subprocess
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from mediahub.api.errors import UpstreamFailure
from mediahub.core.config import MediaConfig

LOGGER = logging.getLogger(__name__)

MEDIA_KIND_IMAGE = "image"
MEDIA_KIND_VIDEO = "video"


@dataclass(frozen=True)
class UploadedMedia:
    """Durable location of an uploaded file."""

    url: str
    public_id: str
    duration_seconds: float | None = None


class MediaStore(Protocol):
    def upload(self, local_path: Path, kind: str) -> UploadedMedia:
        """Store a local file and return its durable URL."""

    def delete(self, url: str, kind: str) -> bool:
        """Remove a stored file; returns whether anything was removed."""


def probe_duration(path: Path) -> float | None:
    """Read media duration in seconds with ffprobe, if it is installed."""
    cmd = [
        "ffprobe",
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(path),
    ]
    try:
        out = subprocess.check_output(  # noqa: S603
            cmd, stderr=subprocess.STDOUT, text=True, timeout=30
        )
    except FileNotFoundError:
        LOGGER.warning("ffprobe is not installed; video duration left unset")
        return None
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired):
        LOGGER.warning("ffprobe could not read %s", path.name, exc_info=True)
        return None
    try:
        return round(float(out.strip()), 3)
    except ValueError:
        return None


def _object_key(kind: str, local_path: Path) -> str:
    return f"{kind}/{uuid.uuid4().hex}{local_path.suffix.lower()}"


class LocalMediaStore:
    """Stores media on local disk; files are served by the app under ``public_base_url``."""

    def __init__(self, root: Path, public_base_url: str) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)
        self._public_base_url = public_base_url.rstrip("/")

    def upload(self, local_path: Path, kind: str) -> UploadedMedia:
        key = _object_key(kind, local_path)
        target = self._root / key
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(local_path, target)
        except OSError as exc:
            raise UpstreamFailure("Failed to store uploaded media") from exc
        duration = probe_duration(target) if kind == MEDIA_KIND_VIDEO else None
        LOGGER.info("Stored media locally", extra={"media_url": key})
        return UploadedMedia(
            url=f"{self._public_base_url}/{key}",
            public_id=key,
            duration_seconds=duration,
        )

    def delete(self, url: str, kind: str) -> bool:
        prefix = f"{self._public_base_url}/"
        if not url.startswith(prefix):
            LOGGER.warning("Media URL outside local store", extra={"media_url": url})
            return False
        target = (self._root / url[len(prefix) :]).resolve()
        if self._root.resolve() not in target.parents:
            LOGGER.warning("Refusing to delete path outside media root", extra={"media_url": url})
            return False
        if not target.exists():
            return False
        target.unlink()
        return True


class S3MediaStore:
    """Stores media in an S3 bucket with public object URLs."""

    def __init__(self, bucket: str, region: str, client: Any | None = None) -> None:
        if not bucket:
            raise ValueError("S3_BUCKET is required for the s3 media backend")
        self._bucket = bucket
        self._region = region
        self._client = client or boto3.client("s3", region_name=region)

    def _url_for(self, key: str) -> str:
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

    def upload(self, local_path: Path, kind: str) -> UploadedMedia:
        key = _object_key(kind, local_path)
        content_type = mimetypes.guess_type(local_path.name)[0] or "application/octet-stream"
        try:
            self._client.upload_file(
                str(local_path),
                self._bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError) as exc:
            LOGGER.error("S3 upload failed for %s", key, exc_info=True)
            raise UpstreamFailure("Failed to upload media") from exc
        duration = probe_duration(local_path) if kind == MEDIA_KIND_VIDEO else None
        LOGGER.info("Uploaded media to S3", extra={"media_url": key})
        return UploadedMedia(url=self._url_for(key), public_id=key, duration_seconds=duration)

    def delete(self, url: str, kind: str) -> bool:
        parsed = urlparse(url)
        if parsed.netloc != f"{self._bucket}.s3.{self._region}.amazonaws.com":
            LOGGER.warning("Media URL outside bucket", extra={"media_url": url})
            return False
        key = parsed.path.lstrip("/")
        if not key:
            return False
        self._client.delete_object(Bucket=self._bucket, Key=key)
        return True


def open_media_store(config: MediaConfig, app_root: Path) -> MediaStore:
    if config.backend == "s3":
        return S3MediaStore(config.s3_bucket, config.s3_region)
    return LocalMediaStore(app_root / config.local_dir, config.public_base_url)
