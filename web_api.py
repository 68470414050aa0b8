from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from mediahub.api.contracts import HealthResponse
from mediahub.api.http_setup import register_exception_handlers, register_http_middleware
from mediahub.auth.credentials import CredentialStore
from mediahub.auth.gate import AuthGate
from mediahub.auth.router import SessionCookies, create_auth_router
from mediahub.auth.service import AuthService
from mediahub.auth.tokens import TokenService
from mediahub.core.background_jobs import BackgroundJobs
from mediahub.core.config import AppConfig
from mediahub.core.logging import setup_logging
from mediahub.core.task_queue import QueueSettings, TaskQueue
from mediahub.media.staging import MediaIngest
from mediahub.media.store import LocalMediaStore, open_media_store
from mediahub.storage.store import open_document_store
from mediahub.users.repository import UserRepository
from mediahub.users.router import create_users_router
from mediahub.users.service import UserService
from mediahub.videos.repository import VideoRepository
from mediahub.videos.router import create_videos_router
from mediahub.videos.service import VideoService

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level)
LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent


def create_app(config: AppConfig | None = None, app_root: Path | None = None) -> FastAPI:
    config = config or APP_CONFIG
    root = app_root or APP_ROOT

    store = open_document_store(config.store, root)
    media_store = open_media_store(config.media, root)
    state_db_path = (root / config.queue.sqlite_path).resolve()
    state_db_path.parent.mkdir(parents=True, exist_ok=True)
    task_queue = TaskQueue(
        QueueSettings(
            database_path=state_db_path,
            default_ttl_seconds=config.queue.default_ttl_seconds,
            default_max_retries=config.queue.default_max_retries,
            default_retry_delay_seconds=config.queue.default_retry_delay_seconds,
        )
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await task_queue.start()
        try:
            yield
        finally:
            await task_queue.stop()
            task_queue.close()

    app = FastAPI(title="MediaHub API", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    if isinstance(media_store, LocalMediaStore) and config.media.public_base_url.startswith("/"):
        app.mount(
            config.media.public_base_url,
            StaticFiles(directory=str(root / config.media.local_dir)),
            name="media",
        )

    users = UserRepository(store)
    videos = VideoRepository(store)
    credentials = CredentialStore(store)
    tokens = TokenService(config.auth, credentials)
    gate = AuthGate(tokens, users)
    jobs = BackgroundJobs(task_queue, videos=videos, users=users, media=media_store)
    jobs.register()
    ingest = MediaIngest(
        media_store,
        staging_dir=root / config.media.staging_dir,
        max_bytes=config.security.upload_max_bytes,
        discard=jobs.schedule_media_cleanup,
    )

    auth_service = AuthService(
        users=users, credentials=credentials, tokens=tokens, ingest=ingest, jobs=jobs
    )
    cookies = SessionCookies(
        config.security,
        access_ttl=tokens.access_token_ttl_seconds,
        refresh_ttl=tokens.refresh_token_ttl_seconds,
    )
    app.include_router(create_auth_router(auth_service, gate, cookies))
    app.include_router(
        create_users_router(
            UserService(store=store, users=users, videos=videos, ingest=ingest, jobs=jobs),
            gate,
        )
    )
    app.include_router(
        create_videos_router(VideoService(videos=videos, ingest=ingest, jobs=jobs), gate)
    )

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    app.state.store = store
    app.state.task_queue = task_queue
    app.state.media_store = media_store
    return app


app = create_app()
