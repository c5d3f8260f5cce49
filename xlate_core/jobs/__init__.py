"""Course jobs, ad-hoc item batches, work queues and progress reporting."""

from xlate_core.jobs.batch_task import (
    BatchTaskPayload,
    BatchTaskSummary,
    EnqueuedBatch,
    enqueue_batch_task,
    run_batch_task,
)
from xlate_core.jobs.job_service import (
    CourseJobOptions,
    EnqueuedJob,
    JobStatus,
    JobStepSummary,
    enqueue_course_job,
    mark_job_failed,
    run_course_job_step,
)
from xlate_core.jobs.missing_sweep import SweepSummary, sweep_missing_translations
from xlate_core.jobs.progress import ItemProgress, JobProgress, get_item_progress, get_job_progress
from xlate_core.jobs.queue import InMemoryWorkQueue, QueuedTask, SqliteWorkQueue, WorkQueue
from xlate_core.jobs.runner import QueueRunSummary, run_queued_tasks

__all__ = [
    "BatchTaskPayload",
    "BatchTaskSummary",
    "CourseJobOptions",
    "EnqueuedBatch",
    "EnqueuedJob",
    "InMemoryWorkQueue",
    "ItemProgress",
    "JobProgress",
    "JobStatus",
    "JobStepSummary",
    "QueueRunSummary",
    "QueuedTask",
    "SqliteWorkQueue",
    "SweepSummary",
    "WorkQueue",
    "enqueue_batch_task",
    "enqueue_course_job",
    "get_item_progress",
    "get_job_progress",
    "mark_job_failed",
    "run_batch_task",
    "run_course_job_step",
    "run_queued_tasks",
    "sweep_missing_translations",
]
