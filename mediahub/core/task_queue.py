"""Durable background task queue for fire-and-forget work.

View counting, watch-history appends and orphaned media deletion must never
hold up a response. Handlers submit them here; a worker loop started with the
application executes them with retry, dead-letter and TTL bookkeeping kept in
SQLite so pending work survives a restart. Failures are logged and recorded on
the task row, never raised back to the submitting request.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Awaitable, Callable

from mediahub.core.migrations import apply_migrations

LOGGER = logging.getLogger(__name__)

TaskHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

TASK_STATUS_QUEUED = "queued"
TASK_STATUS_RUNNING = "running"
TASK_STATUS_RETRYING = "retrying"
TASK_STATUS_COMPLETED = "completed"
TASK_STATUS_DEAD_LETTER = "dead_letter"


@dataclass(frozen=True)
class QueueSettings:
    """Queue runtime settings."""

    database_path: Path
    default_ttl_seconds: int = 24 * 60 * 60
    default_max_retries: int = 3
    default_retry_delay_seconds: int = 5
    worker_poll_interval_seconds: float = 0.5


class TaskQueue:
    """SQLite-backed task queue that survives process restarts."""

    def __init__(self, settings: QueueSettings) -> None:
        self._settings = settings
        apply_migrations(settings.database_path)
        self._connection = sqlite3.connect(
            str(settings.database_path),
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = Lock()
        self._handlers: dict[str, TaskHandler] = {}
        self._worker_task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    def register_handler(self, task_type: str, handler: TaskHandler) -> None:
        """Register async task handler by task type."""
        normalized_type = task_type.strip().lower()
        if not normalized_type:
            raise ValueError("task_type is required")
        self._handlers[normalized_type] = handler

    async def start(self) -> None:
        """Start background worker loop if not already running."""
        if self._worker_task and not self._worker_task.done():
            return
        self._stop_event.clear()
        self._worker_task = asyncio.create_task(self._worker_loop())

    async def stop(self) -> None:
        """Stop background worker loop gracefully."""
        self._stop_event.set()
        if self._worker_task:
            await self._worker_task
            self._worker_task = None

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def submit(
        self,
        *,
        task_type: str,
        payload: dict[str, Any],
        idempotency_key: str = "",
        max_retries: int | None = None,
        retry_delay_seconds: int | None = None,
    ) -> str:
        """Enqueue task and return its id; a repeated idempotency key is a no-op."""
        task_kind = task_type.strip().lower()
        if not task_kind:
            raise ValueError("task_type is required")

        now = int(time.time())
        retries = max(
            0,
            int(
                self._settings.default_max_retries
                if max_retries is None
                else max_retries
            ),
        )
        retry_delay = max(
            1,
            int(retry_delay_seconds or self._settings.default_retry_delay_seconds),
        )
        dedupe_key = idempotency_key.strip() or None

        with self._lock:
            cursor = self._connection.cursor()
            self._purge_expired_tasks(cursor, now)

            if dedupe_key:
                existing = cursor.execute(
                    "SELECT task_id FROM task_queue WHERE idempotency_key = ? LIMIT 1",
                    (dedupe_key,),
                ).fetchone()
                if existing:
                    self._connection.commit()
                    return str(existing["task_id"])

            task_id = uuid.uuid4().hex
            cursor.execute(
                """
                INSERT INTO task_queue(
                  task_id, task_type, payload_json, status, attempts,
                  max_retries, retry_delay_seconds, available_at,
                  created_at, updated_at, expires_at, idempotency_key
                )
                VALUES (?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id,
                    task_kind,
                    json.dumps(payload, ensure_ascii=False),
                    TASK_STATUS_QUEUED,
                    retries,
                    retry_delay,
                    now,
                    now,
                    now,
                    now + self._settings.default_ttl_seconds,
                    dedupe_key,
                ),
            )
            self._connection.commit()
        LOGGER.debug("task_submitted", extra={"task_id": task_id})
        return task_id

    def get(self, task_id: str) -> dict[str, Any] | None:
        """Return serialized task state by id when available."""
        with self._lock:
            row = self._connection.execute(
                "SELECT * FROM task_queue WHERE task_id = ?",
                (task_id,),
            ).fetchone()
        if row is None:
            return None

        result: dict[str, Any] | None = None
        if row["result_json"]:
            decoded = json.loads(str(row["result_json"]))
            result = decoded if isinstance(decoded, dict) else None

        return {
            "task_id": str(row["task_id"]),
            "task_type": str(row["task_type"]),
            "status": str(row["status"]),
            "attempts": int(row["attempts"]),
            "max_retries": int(row["max_retries"]),
            "result": result,
            "error": str(row["last_error"] or ""),
            "dead_letter_reason": str(row["dead_letter_reason"] or ""),
        }

    async def run_pending(self) -> int:
        """Execute every task that is currently due and return how many ran."""
        processed = 0
        while await self._process_next_due_task():
            processed += 1
        return processed

    async def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            processed = await self._process_next_due_task()
            if not processed:
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=self._settings.worker_poll_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue

    async def _process_next_due_task(self) -> bool:
        """Claim and process one due queued/retrying task."""
        now = int(time.time())
        with self._lock:
            cursor = self._connection.cursor()
            row = cursor.execute(
                """
                SELECT *
                FROM task_queue
                WHERE status IN (?, ?)
                  AND available_at <= ?
                ORDER BY available_at ASC, created_at ASC
                LIMIT 1
                """,
                (TASK_STATUS_QUEUED, TASK_STATUS_RETRYING, now),
            ).fetchone()
            if row is None:
                return False
            cursor.execute(
                "UPDATE task_queue SET status = ?, attempts = ?, updated_at = ? WHERE task_id = ?",
                (TASK_STATUS_RUNNING, int(row["attempts"]) + 1, now, str(row["task_id"])),
            )
            self._connection.commit()

        task_id = str(row["task_id"])
        task_type = str(row["task_type"])
        handler = self._handlers.get(task_type)
        if handler is None:
            LOGGER.error(
                "No handler registered for task_type=%s", task_type,
                extra={"task_id": task_id},
            )
            self._mark_dead_letter(
                task_id,
                error_message=f"No handler registered for task_type={task_type}",
                reason="handler_not_found",
            )
            return True

        payload = json.loads(str(row["payload_json"]))
        try:
            result = await handler(payload if isinstance(payload, dict) else {})
        except Exception as exc:
            LOGGER.warning(
                "Background task %s failed", task_type,
                exc_info=True,
                extra={"task_id": task_id},
            )
            self._mark_retry_or_dead_letter(task_id, str(exc) or exc.__class__.__name__)
            return True

        self._mark_completed(task_id, result)
        return True

    def _mark_completed(self, task_id: str, result: dict[str, Any]) -> None:
        with self._lock:
            self._connection.execute(
                """
                UPDATE task_queue
                SET status = ?, result_json = ?, last_error = '',
                    dead_letter_reason = '', updated_at = ?
                WHERE task_id = ?
                """,
                (
                    TASK_STATUS_COMPLETED,
                    json.dumps(result, ensure_ascii=False),
                    int(time.time()),
                    task_id,
                ),
            )
            self._connection.commit()

    def _mark_retry_or_dead_letter(self, task_id: str, error_message: str) -> None:
        """Schedule a linear-backoff retry, or dead-letter once retries run out."""
        now = int(time.time())
        with self._lock:
            cursor = self._connection.cursor()
            row = cursor.execute(
                "SELECT attempts, max_retries, retry_delay_seconds FROM task_queue WHERE task_id = ?",
                (task_id,),
            ).fetchone()
            if row is None:
                return
            attempts = int(row["attempts"])
            if attempts <= int(row["max_retries"]):
                cursor.execute(
                    """
                    UPDATE task_queue
                    SET status = ?, available_at = ?, updated_at = ?, last_error = ?
                    WHERE task_id = ?
                    """,
                    (
                        TASK_STATUS_RETRYING,
                        now + int(row["retry_delay_seconds"]) * attempts,
                        now,
                        error_message,
                        task_id,
                    ),
                )
                self._connection.commit()
                return
        LOGGER.error("Background task exhausted retries", extra={"task_id": task_id})
        self._mark_dead_letter(
            task_id, error_message=error_message, reason="max_retries_exceeded"
        )

    def _mark_dead_letter(self, task_id: str, *, error_message: str, reason: str) -> None:
        with self._lock:
            self._connection.execute(
                """
                UPDATE task_queue
                SET status = ?, updated_at = ?, last_error = ?, dead_letter_reason = ?
                WHERE task_id = ?
                """,
                (TASK_STATUS_DEAD_LETTER, int(time.time()), error_message, reason, task_id),
            )
            self._connection.commit()

    @staticmethod
    def _purge_expired_tasks(cursor: sqlite3.Cursor, now: int) -> None:
        cursor.execute(
            "DELETE FROM task_queue WHERE expires_at <= ? AND status IN (?, ?)",
            (now, TASK_STATUS_COMPLETED, TASK_STATUS_DEAD_LETTER),
        )
