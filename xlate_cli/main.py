from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer

from xlate_core.glossary.glossary_store import save_glossary_translation
from xlate_core.jobs.batch_task import enqueue_batch_task
from xlate_core.jobs.job_service import CourseJobOptions, enqueue_course_job
from xlate_core.jobs.missing_sweep import sweep_missing_translations
from xlate_core.jobs.progress import get_item_progress, get_job_progress
from xlate_core.jobs.queue import SqliteWorkQueue
from xlate_core.jobs.runner import run_queued_tasks
from xlate_core.llm.policy import build_provider
from xlate_core.llm.usage import summarize_usage
from xlate_core.logging_setup import configure_logging
from xlate_core.site.config import read_config
from xlate_core.site.create_site import create_site, load_site_info
from xlate_core.site.paths import resolve_site_path, site_config_path, site_db_path
from xlate_core.site.secrets import OPENAI_API_KEY, SECRET_LABELS, mask_secret_value, set_secret
from xlate_core.store.courses import set_course_config
from xlate_core.store.keys import associate_keys_with_course

app = typer.Typer(help="xlate translation job CLI")

_ROOT_HELP = "Site directory. Defaults to ./xlate-site."


def _split_langs(value: str | None) -> list[str]:
    if not value:
        return []
    return [chunk.strip() for chunk in value.split(",") if chunk.strip()]


def _fail(exc: Exception) -> typer.Exit:
    typer.secho(str(exc), fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _prepare_site(root: Path | None, verbose: bool) -> Path:
    site_path = resolve_site_path(root)
    config_path = site_config_path(site_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Site does not exist: {site_path}")
    level = "DEBUG" if verbose else read_config(config_path).log_level
    configure_logging(level)
    return site_path


@app.command("init-site")
def init_site_command(
    name: str = typer.Argument(..., help="Human-readable site name."),
    source: str = typer.Option("en", "--source", help="Default source language."),
    languages: str | None = typer.Option(
        None,
        "--languages",
        help="Comma-separated enabled languages. The source is always included.",
    ),
    provider: str = typer.Option("openai", "--provider", help="Translation provider: openai or mock."),
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
) -> None:
    """Create a site folder with config.yml and the SQLite database."""

    try:
        created = create_site(
            name,
            root=root,
            source_language=source,
            enabled_languages=_split_langs(languages),
            provider=provider,
        )
    except (FileExistsError, ValueError) as exc:
        raise _fail(exc) from exc

    typer.echo(f"Site created: {created.name}")
    typer.echo(f"Path: {created.site_path}")
    typer.echo(f"Database: {created.db_path}")
    typer.echo(f"Config: {created.config_path}")


@app.command("site-info")
def site_info_command(
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
) -> None:
    """Show site configuration and DB schema details."""

    try:
        info = load_site_info(root)
    except (FileNotFoundError, ValueError) as exc:
        raise _fail(exc) from exc

    typer.echo(f"Site: {info.name}")
    typer.echo(f"Path: {info.site_path}")
    typer.echo(f"Source language: {info.source_language}")
    typer.echo(f"Enabled languages: {', '.join(info.enabled_languages)}")
    typer.echo(f"Provider: {info.provider}")
    typer.echo(f"Schema version: {info.schema_version}")


@app.command("set-secret")
def set_secret_command(
    value: str = typer.Option(..., "--value", prompt=True, hide_input=True, help="Secret value."),
    name: str = typer.Option(OPENAI_API_KEY, "--name", help="Secret name."),
) -> None:
    """Store a provider credential in the OS keyring."""

    try:
        set_secret(name, value)
    except (RuntimeError, ValueError) as exc:
        raise _fail(exc) from exc

    label = SECRET_LABELS.get(name, name)
    typer.echo(f"{label} stored: {mask_secret_value(value)}")


@app.command("set-course-languages")
def set_course_languages_command(
    course_id: int = typer.Argument(..., help="Course id."),
    source: str = typer.Option(..., "--source", help="Course source language."),
    targets: str = typer.Option(..., "--targets", help="Comma-separated target languages."),
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
    verbose: bool = typer.Option(False, "--verbose", help="Enable DEBUG logging."),
) -> None:
    """Configure the source and target languages of a course."""

    try:
        site_path = _prepare_site(root, verbose)
        config = set_course_config(
            db_path=site_db_path(site_path),
            course_id=course_id,
            source_lang=source,
            target_langs=_split_langs(targets),
        )
    except (FileNotFoundError, ValueError) as exc:
        raise _fail(exc) from exc

    _echo_json(asdict(config))


@app.command("associate-keys")
def associate_keys_command(
    course_id: int = typer.Argument(..., help="Course id."),
    keys_file: Path = typer.Argument(
        ...,
        help="JSON file with a list of {component, xkey, source} objects.",
        exists=True,
        dir_okay=False,
    ),
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
    verbose: bool = typer.Option(False, "--verbose", help="Enable DEBUG logging."),
) -> None:
    """Associate captured keys with a course, creating missing keys."""

    try:
        site_path = _prepare_site(root, verbose)
        entries = json.loads(keys_file.read_text(encoding="utf-8"))
        if not isinstance(entries, list):
            raise ValueError("Keys file must contain a JSON list")
        results = associate_keys_with_course(
            db_path=site_db_path(site_path),
            course_id=course_id,
            keys=[entry for entry in entries if isinstance(entry, dict)],
        )
    except (FileNotFoundError, ValueError) as exc:
        raise _fail(exc) from exc

    _echo_json([asdict(result) for result in results])


@app.command("glossary-add")
def glossary_add_command(
    source_lang: str = typer.Argument(..., help="Source language."),
    source_text: str = typer.Argument(..., help="Source term."),
    target_lang: str = typer.Argument(..., help="Target language."),
    target_text: str = typer.Argument(..., help="Preferred translation."),
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
    verbose: bool = typer.Option(False, "--verbose", help="Enable DEBUG logging."),
) -> None:
    """Add or update a glossary entry."""

    try:
        site_path = _prepare_site(root, verbose)
        entry_id = save_glossary_translation(
            db_path=site_db_path(site_path),
            source_lang=source_lang,
            source_text=source_text,
            target_lang=target_lang,
            target_text=target_text,
        )
    except (FileNotFoundError, ValueError) as exc:
        raise _fail(exc) from exc

    typer.echo(f"Glossary entry saved: {entry_id}")


@app.command("enqueue-course-job")
def enqueue_course_job_command(
    course_id: int = typer.Argument(..., help="Course id."),
    source: str | None = typer.Option(None, "--source", help="Source language override."),
    targets: str | None = typer.Option(None, "--targets", help="Comma-separated target languages."),
    batch_size: int = typer.Option(0, "--batch-size", min=0, help="Rows per step. 0 uses the site default."),
    user_id: int = typer.Option(0, "--user-id", help="Initiating user id."),
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
    verbose: bool = typer.Option(False, "--verbose", help="Enable DEBUG logging."),
) -> None:
    """Create a course translation job and queue its first step."""

    try:
        site_path = _prepare_site(root, verbose)
        enqueued = enqueue_course_job(
            site_path=site_path,
            course_id=course_id,
            queue=SqliteWorkQueue(db_path=site_db_path(site_path)),
            options=CourseJobOptions(
                source_lang=source or "",
                target_langs=_split_langs(targets),
                batch_size=batch_size,
            ),
            user_id=user_id,
        )
    except (FileNotFoundError, LookupError, ValueError) as exc:
        raise _fail(exc) from exc

    _echo_json(asdict(enqueued))


@app.command("translate-items")
def translate_items_command(
    items_file: Path = typer.Argument(
        ...,
        help="JSON file with a list of {id, source_text, component, key, courseid, context} objects.",
        exists=True,
        dir_okay=False,
    ),
    targets: str = typer.Option(..., "--targets", help="Comma-separated target languages."),
    source: str | None = typer.Option(None, "--source", help="Source language. Defaults to the site source."),
    request_id: str | None = typer.Option(None, "--request-id", help="Request id echoed by the provider."),
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
    verbose: bool = typer.Option(False, "--verbose", help="Enable DEBUG logging."),
) -> None:
    """Queue an ad-hoc batch of items for translation."""

    try:
        site_path = _prepare_site(root, verbose)
        entries = json.loads(items_file.read_text(encoding="utf-8"))
        if not isinstance(entries, list):
            raise ValueError("Items file must contain a JSON list")
        enqueued = enqueue_batch_task(
            queue=SqliteWorkQueue(db_path=site_db_path(site_path)),
            payload={
                "requestid": request_id,
                "sourcelang": source or read_config(site_config_path(site_path)).default_source_language,
                "targetlangs": _split_langs(targets),
                "items": entries,
            },
        )
    except (FileNotFoundError, ValueError) as exc:
        raise _fail(exc) from exc

    _echo_json(asdict(enqueued))


@app.command("run-tasks")
def run_tasks_command(
    max_tasks: int | None = typer.Option(None, "--max-tasks", min=1, help="Stop after this many steps."),
    provider: str | None = typer.Option(None, "--provider", help="Provider override: openai or mock."),
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
    verbose: bool = typer.Option(False, "--verbose", help="Enable DEBUG logging."),
) -> None:
    """Drain the site's task queue."""

    try:
        site_path = _prepare_site(root, verbose)
        summary = run_queued_tasks(
            site_path=site_path,
            provider=build_provider(site_path, provider_name=provider),
            queue=SqliteWorkQueue(db_path=site_db_path(site_path)),
            max_tasks=max_tasks,
        )
    except (FileNotFoundError, ValueError) as exc:
        raise _fail(exc) from exc

    typer.echo(
        f"Executed {summary.executed} tasks: {summary.succeeded} ok, "
        f"{summary.retried} retried, {summary.failed} failed"
    )


@app.command("job-progress")
def job_progress_command(
    job_id: str = typer.Argument(..., help="Course job id."),
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
) -> None:
    """Print a course job snapshot."""

    try:
        site_path = _prepare_site(root, False)
        progress = get_job_progress(db_path=site_db_path(site_path), job_id=job_id)
        if progress is None:
            raise LookupError(f"Course job not found: {job_id}")
    except (FileNotFoundError, LookupError) as exc:
        raise _fail(exc) from exc

    _echo_json(progress.to_dict())


@app.command("item-progress")
def item_progress_command(
    target_lang: str = typer.Argument(..., help="Target language."),
    item_ids: list[str] = typer.Argument(..., help="Bare keys or component:key ids."),
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
) -> None:
    """Report which items already have a translation."""

    try:
        site_path = _prepare_site(root, False)
        items = get_item_progress(
            db_path=site_db_path(site_path),
            target_lang=target_lang,
            item_ids=item_ids,
        )
    except FileNotFoundError as exc:
        raise _fail(exc) from exc

    _echo_json([item.to_dict() for item in items])


@app.command("sweep-missing")
def sweep_missing_command(
    provider: str | None = typer.Option(None, "--provider", help="Provider override: openai or mock."),
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
    verbose: bool = typer.Option(False, "--verbose", help="Enable DEBUG logging."),
) -> None:
    """Translate course keys that still lack a translation."""

    try:
        site_path = _prepare_site(root, verbose)
        summary = sweep_missing_translations(
            site_path=site_path,
            provider=build_provider(site_path, provider_name=provider),
        )
    except (FileNotFoundError, ValueError) as exc:
        raise _fail(exc) from exc

    _echo_json(asdict(summary))


@app.command("usage")
def usage_command(
    root: Path | None = typer.Option(None, "--root", help=_ROOT_HELP, file_okay=False),
) -> None:
    """Summarize logged token usage per model."""

    try:
        site_path = _prepare_site(root, False)
    except FileNotFoundError as exc:
        raise _fail(exc) from exc

    summaries = summarize_usage(db_path=site_db_path(site_path))
    if not summaries:
        typer.echo("No token usage recorded.")
        return
    for summary in summaries:
        typer.echo(
            f"{summary.model}: {summary.batches} batches, "
            f"{summary.input_tokens} in / {summary.output_tokens} out, "
            f"${summary.total_cost:.4f}"
        )


if __name__ == "__main__":
    app()
