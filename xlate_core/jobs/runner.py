from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from xlate_core.constants import TASK_MAX_ATTEMPTS
from xlate_core.jobs.batch_task import BatchTaskPayload, BatchTaskSummary, run_batch_task
from xlate_core.jobs.job_service import JobStepSummary, mark_job_failed, run_course_job_step
from xlate_core.jobs.queue import TASK_KIND_BATCH, TASK_KIND_COURSE_JOB, QueuedTask, WorkQueue
from xlate_core.llm.provider_base import TranslationProvider
from xlate_core.site.paths import site_db_path

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QueueRunSummary:
    executed: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    steps: list[JobStepSummary] = field(default_factory=list)
    batches: list[BatchTaskSummary] = field(default_factory=list)


def _give_up(
    *,
    site_path: Path,
    queue: WorkQueue,
    task: QueuedTask,
    error: str,
    job_missing: bool = False,
) -> None:
    queue.mark_failed(task.task_id, error, retry=False)
    logger.error("Task %s for %s exhausted retries: %s", task.task_id, task.job_id, error)
    if task.kind == TASK_KIND_COURSE_JOB and not job_missing:
        mark_job_failed(db_path=site_db_path(Path(site_path)), job_id=task.job_id, error=error)


def run_queued_tasks(
    *,
    site_path: Path,
    provider: TranslationProvider,
    queue: WorkQueue,
    max_tasks: int | None = None,
    max_attempts: int = TASK_MAX_ATTEMPTS,
) -> QueueRunSummary:
    """Drain the queue one task at a time.

    A task that raises is put back in the queue until it has been attempted
    ``max_attempts`` times, after which a course job is marked failed. Tasks
    reclaimed from a dead worker count the lost run as an attempt.
    """

    summary = QueueRunSummary()
    while max_tasks is None or summary.executed < max_tasks:
        task = queue.claim_next()
        if task is None:
            break

        summary.executed += 1
        if task.attempts > max_attempts:
            summary.failed += 1
            _give_up(
                site_path=site_path,
                queue=queue,
                task=task,
                error=task.last_error or "Worker stopped before the task finished",
            )
            continue

        try:
            if task.kind == TASK_KIND_BATCH:
                batch = run_batch_task(
                    site_path=site_path,
                    payload=BatchTaskPayload.from_mapping(task.payload or {"requestid": task.job_id}),
                    provider=provider,
                )
            else:
                step = run_course_job_step(
                    site_path=site_path,
                    job_id=task.job_id,
                    provider=provider,
                    queue=queue,
                )
        except Exception as exc:  # noqa: BLE001
            error = f"{type(exc).__name__}: {exc}"
            if task.attempts < max_attempts:
                queue.mark_failed(task.task_id, error, retry=True)
                summary.retried += 1
                logger.warning(
                    "Task %s for %s failed (attempt %d/%d): %s",
                    task.task_id,
                    task.job_id,
                    task.attempts,
                    max_attempts,
                    error,
                )
            else:
                summary.failed += 1
                _give_up(
                    site_path=site_path,
                    queue=queue,
                    task=task,
                    error=error,
                    job_missing=isinstance(exc, LookupError),
                )
            continue

        queue.mark_done(task.task_id)
        summary.succeeded += 1
        if task.kind == TASK_KIND_BATCH:
            summary.batches.append(batch)
        else:
            summary.steps.append(step)

    return summary
