from __future__ import annotations

from sqlalchemy import Index
from sqlmodel import Field, SQLModel


class SchemaMeta(SQLModel, table=True):
    __tablename__ = "schema_meta"

    key: str = Field(primary_key=True)
    value: str


class TranslationKey(SQLModel, table=True):
    __tablename__ = "xlate_keys"
    __table_args__ = (
        Index("idx_xlate_keys_component_xkey", "component", "xkey", unique=True),
        Index("idx_xlate_keys_xkey", "xkey"),
    )

    id: int | None = Field(default=None, primary_key=True)
    component: str
    xkey: str
    source: str = Field(default="")
    ctime: str
    mtime: str


class Translation(SQLModel, table=True):
    __tablename__ = "xlate_translations"
    __table_args__ = (
        Index("idx_xlate_translations_key_lang", "key_id", "lang", unique=True),
    )

    id: int | None = Field(default=None, primary_key=True)
    key_id: int = Field(foreign_key="xlate_keys.id")
    lang: str
    text: str
    status: int = Field(default=1)
    reviewed: int = Field(default=0)
    mtime: str


class KeyCourseAssociation(SQLModel, table=True):
    __tablename__ = "xlate_key_course"
    __table_args__ = (
        Index("idx_xlate_key_course_key_course", "key_id", "course_id", unique=True),
        Index("idx_xlate_key_course_course", "course_id", "id"),
    )

    id: int | None = Field(default=None, primary_key=True)
    key_id: int = Field(foreign_key="xlate_keys.id")
    course_id: int
    context: str = Field(default="")
    mtime: str


class CourseConfig(SQLModel, table=True):
    __tablename__ = "xlate_course_config"

    course_id: int = Field(primary_key=True)
    source_lang: str
    target_langs_json: str = Field(default="[]")
    mtime: str


class CourseJob(SQLModel, table=True):
    __tablename__ = "xlate_course_jobs"
    __table_args__ = (Index("idx_xlate_course_jobs_course", "course_id", "ctime"),)

    id: str = Field(primary_key=True)
    course_id: int
    user_id: int = Field(default=0)
    status: str
    total: int = Field(default=0)
    processed: int = Field(default=0)
    batch_size: int
    options_json: str = Field(default="{}")
    last_id: int = Field(default=0)
    failed_languages_json: str = Field(default="{}")
    last_error: str | None = None
    ctime: str
    mtime: str


class TaskQueueEntry(SQLModel, table=True):
    __tablename__ = "xlate_task_queue"
    __table_args__ = (Index("idx_xlate_task_queue_status_seq", "status", "seq"),)

    id: str = Field(primary_key=True)
    job_id: str
    kind: str = Field(default="course_job")
    payload_json: str | None = None
    status: str
    attempts: int = Field(default=0)
    last_error: str | None = None
    seq: int
    created_at: str
    updated_at: str
    claimed_at: str | None = None


class TokenBatch(SQLModel, table=True):
    __tablename__ = "xlate_token_batches"

    id: int | None = Field(default=None, primary_key=True)
    timecreated: str
    lang: str
    batchsize: int = Field(default=0)
    model: str = Field(default="")
    input_tokens: int = Field(default=0)
    cached_input_tokens: int = Field(default=0)
    output_tokens: int = Field(default=0)
    total_tokens: int = Field(default=0)
    input_cost: float = Field(default=0.0)
    cached_input_cost: float = Field(default=0.0)
    output_cost: float = Field(default=0.0)
    total_cost: float = Field(default=0.0)
    response_ms: int = Field(default=0)
    job_id: str | None = None


class GlossaryEntry(SQLModel, table=True):
    __tablename__ = "xlate_glossary"
    __table_args__ = (
        Index(
            "idx_xlate_glossary_pair_source",
            "source_lang",
            "target_lang",
            "source_text",
            unique=True,
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    source_lang: str
    source_text: str
    target_lang: str
    target_text: str
    created_by: int = Field(default=0)
    ctime: str
    mtime: str


class BundleVersion(SQLModel, table=True):
    __tablename__ = "xlate_bundle_versions"

    lang: str = Field(primary_key=True)
    version: str
    mtime: str
