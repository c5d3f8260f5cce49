from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import text

from xlate_core.constants import TASK_LEASE_SECONDS
from xlate_core.db.schema import initialize_database

TASK_QUEUED = "queued"
TASK_RUNNING = "running"
TASK_DONE = "done"
TASK_FAILED = "failed"

TASK_KIND_COURSE_JOB = "course_job"
TASK_KIND_BATCH = "translate_batch"

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QueuedTask:
    """A claimed unit of work.

    ``job_id`` is the course job id for course steps and the request id for
    ad-hoc item batches, whose items travel in ``payload``.
    """

    task_id: str
    job_id: str
    attempts: int = 0
    last_error: str | None = None
    kind: str = TASK_KIND_COURSE_JOB
    payload: dict[str, Any] | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _parse_payload(raw_value: object) -> dict[str, Any] | None:
    if not isinstance(raw_value, str) or not raw_value:
        return None
    try:
        parsed = json.loads(raw_value)
    except ValueError:
        logger.warning("Discarding unreadable task payload")
        return None
    return parsed if isinstance(parsed, dict) else None


class WorkQueue(ABC):
    """Schedules orchestrator steps and ad-hoc item batches."""

    @abstractmethod
    def enqueue(
        self,
        job_id: str,
        *,
        kind: str = TASK_KIND_COURSE_JOB,
        payload: dict[str, Any] | None = None,
    ) -> str:
        """Queue one task for ``job_id`` and return the task id."""

    @abstractmethod
    def claim_next(self) -> QueuedTask | None:
        """Take the oldest available task, counting it as one attempt."""

    @abstractmethod
    def mark_done(self, task_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def mark_failed(self, task_id: str, error: str, *, retry: bool) -> None:
        """Record a failed attempt; ``retry`` puts the task back in the queue."""


class InMemoryWorkQueue(WorkQueue):
    def __init__(self) -> None:
        self._pending: deque[QueuedTask] = deque()
        self._running: dict[str, QueuedTask] = {}
        self.done: list[QueuedTask] = []
        self.failed: list[QueuedTask] = []

    def __len__(self) -> int:
        return len(self._pending)

    def enqueue(
        self,
        job_id: str,
        *,
        kind: str = TASK_KIND_COURSE_JOB,
        payload: dict[str, Any] | None = None,
    ) -> str:
        task = QueuedTask(task_id=str(uuid4()), job_id=job_id, kind=kind, payload=payload)
        self._pending.append(task)
        return task.task_id

    def pending_job_ids(self) -> list[str]:
        return [task.job_id for task in self._pending]

    def claim_next(self) -> QueuedTask | None:
        if not self._pending:
            return None
        task = self._pending.popleft()
        task.attempts += 1
        self._running[task.task_id] = task
        return task

    def mark_done(self, task_id: str) -> None:
        task = self._running.pop(task_id, None)
        if task is not None:
            self.done.append(task)

    def mark_failed(self, task_id: str, error: str, *, retry: bool) -> None:
        task = self._running.pop(task_id, None)
        if task is None:
            return
        task.last_error = error
        if retry:
            self._pending.append(task)
        else:
            self.failed.append(task)


class SqliteWorkQueue(WorkQueue):
    """Durable queue stored in the site database's ``xlate_task_queue`` table.

    A claimed task holds a lease of ``lease_seconds``. A worker that dies
    mid-task never releases it, so once the lease expires the task becomes
    claimable again and the new claim counts as another attempt.
    """

    def __init__(
        self,
        *,
        db_path: Path,
        lease_seconds: int = TASK_LEASE_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.db_path = Path(db_path)
        self.lease_seconds = lease_seconds
        self._clock = clock

    def _now_iso(self) -> str:
        return _iso(self._clock())

    def enqueue(
        self,
        job_id: str,
        *,
        kind: str = TASK_KIND_COURSE_JOB,
        payload: dict[str, Any] | None = None,
    ) -> str:
        task_id = str(uuid4())
        now = self._now_iso()
        engine = initialize_database(self.db_path)
        try:
            with engine.begin() as connection:
                next_seq = connection.execute(
                    text("SELECT COALESCE(MAX(seq), 0) + 1 FROM xlate_task_queue")
                ).scalar_one()
                connection.execute(
                    text(
                        """
                        INSERT INTO xlate_task_queue(
                            id, job_id, kind, payload_json, status, attempts,
                            last_error, seq, created_at, updated_at, claimed_at
                        ) VALUES (
                            :id, :job_id, :kind, :payload_json, :status, 0,
                            NULL, :seq, :now, :now, NULL
                        )
                        """
                    ),
                    {
                        "id": task_id,
                        "job_id": job_id,
                        "kind": kind,
                        "payload_json": json.dumps(payload, ensure_ascii=False) if payload is not None else None,
                        "status": TASK_QUEUED,
                        "seq": int(next_seq),
                        "now": now,
                    },
                )
        finally:
            engine.dispose()
        return task_id

    def claim_next(self) -> QueuedTask | None:
        now = self._clock()
        lease_cutoff = _iso(now - timedelta(seconds=self.lease_seconds))
        engine = initialize_database(self.db_path)
        try:
            with engine.begin() as connection:
                row = connection.execute(
                    text(
                        """
                        SELECT id, job_id, kind, payload_json, status, attempts, last_error
                        FROM xlate_task_queue
                        WHERE status = :queued
                           OR (status = :running AND COALESCE(claimed_at, updated_at) <= :cutoff)
                        ORDER BY seq
                        LIMIT 1
                        """
                    ),
                    {"queued": TASK_QUEUED, "running": TASK_RUNNING, "cutoff": lease_cutoff},
                ).mappings().first()
                if row is None:
                    return None

                if row["status"] == TASK_RUNNING:
                    logger.warning(
                        "Reclaiming task %s for %s after its lease expired (attempt %d)",
                        row["id"],
                        row["job_id"],
                        int(row["attempts"]),
                    )

                attempts = int(row["attempts"]) + 1
                claimed = connection.execute(
                    text(
                        """
                        UPDATE xlate_task_queue
                        SET status = :status, attempts = :attempts,
                            claimed_at = :now, updated_at = :now
                        WHERE id = :id AND attempts = :previous_attempts
                        """
                    ),
                    {
                        "status": TASK_RUNNING,
                        "attempts": attempts,
                        "now": _iso(now),
                        "id": row["id"],
                        "previous_attempts": int(row["attempts"]),
                    },
                )
                if claimed.rowcount != 1:
                    return None
        finally:
            engine.dispose()

        return QueuedTask(
            task_id=str(row["id"]),
            job_id=str(row["job_id"]),
            attempts=attempts,
            last_error=row["last_error"],
            kind=str(row["kind"] or TASK_KIND_COURSE_JOB),
            payload=_parse_payload(row["payload_json"]),
        )

    def _set_status(self, task_id: str, status: str, error: str | None = None) -> None:
        engine = initialize_database(self.db_path)
        try:
            with engine.begin() as connection:
                connection.execute(
                    text(
                        """
                        UPDATE xlate_task_queue
                        SET status = :status,
                            last_error = COALESCE(:error, last_error),
                            claimed_at = NULL,
                            updated_at = :now
                        WHERE id = :id
                        """
                    ),
                    {"status": status, "error": error, "now": self._now_iso(), "id": task_id},
                )
        finally:
            engine.dispose()

    def mark_done(self, task_id: str) -> None:
        self._set_status(task_id, TASK_DONE)

    def mark_failed(self, task_id: str, error: str, *, retry: bool) -> None:
        self._set_status(task_id, TASK_QUEUED if retry else TASK_FAILED, error)

    def count_by_status(self) -> dict[str, int]:
        engine = initialize_database(self.db_path)
        try:
            with engine.connect() as connection:
                rows = connection.execute(
                    text("SELECT status, COUNT(*) FROM xlate_task_queue GROUP BY status")
                ).all()
        finally:
            engine.dispose()
        return {str(row[0]): int(row[1]) for row in rows}
