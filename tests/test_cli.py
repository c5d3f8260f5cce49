from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

import xlate_core.site.secrets as secrets_module
from xlate_cli.main import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _detach_console_handler() -> object:
    yield
    logger = logging.getLogger("xlate_core")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


class _FakeKeyring:
    def __init__(self) -> None:
        self._store: dict[tuple[str, str], str] = {}

    def set_password(self, service: str, name: str, value: str) -> None:
        self._store[(service, name)] = value

    def get_password(self, service: str, name: str) -> str | None:
        return self._store.get((service, name))

    def delete_password(self, service: str, name: str) -> None:
        self._store.pop((service, name), None)


def _invoke(*args: str) -> object:
    result = runner.invoke(app, list(args))
    assert result.exit_code == 0, result.output
    return result


def _init_site(tmp_path: Path) -> str:
    root = str(tmp_path / "site")
    _invoke("init-site", "CLI Site", "--languages", "de,fr", "--provider", "mock", "--root", root)
    return root


def test_full_course_job_flow(tmp_path: Path) -> None:
    root = _init_site(tmp_path)
    keys_file = tmp_path / "keys.json"
    keys_file.write_text(
        json.dumps(
            [
                {"component": "region_main", "xkey": "abc123", "source": "Welcome"},
                {"component": "region_main", "xkey": "def456", "source": "Goodbye"},
                {"component": "region_main", "xkey": "ghi789", "source": "Course"},
            ]
        ),
        encoding="utf-8",
    )

    _invoke("set-course-languages", "12", "--source", "en", "--targets", "de", "--root", root)
    associated = json.loads(_invoke("associate-keys", "12", str(keys_file), "--root", root).output)
    assert [entry["status"] for entry in associated] == ["created_and_associated"] * 3

    glossary = _invoke("glossary-add", "en", "Course", "de", "Kurs", "--root", root)
    assert "Glossary entry saved" in glossary.output

    enqueued = json.loads(
        _invoke("enqueue-course-job", "12", "--batch-size", "2", "--root", root).output
    )
    assert set(enqueued) == {"job_id", "task_id"}

    ran = _invoke("run-tasks", "--root", root)
    assert "Executed 2 tasks: 2 ok, 0 retried, 0 failed" in ran.output

    progress = json.loads(_invoke("job-progress", enqueued["job_id"], "--root", root).output)
    assert progress["status"] == "complete"
    assert progress["processed"] == progress["total"] == 3

    items = json.loads(
        _invoke("item-progress", "de", "region_main:abc123", "def456", "missing", "--root", root).output
    )
    assert items == [
        {"id": "region_main:abc123", "translated": True, "translation": "[de] Welcome"},
        {"id": "def456", "translated": True, "translation": "[de] Goodbye"},
        {"id": "missing", "translated": False, "translation": None},
    ]

    usage = _invoke("usage", "--root", root)
    assert "No token usage recorded." in usage.output


def test_enqueue_for_unconfigured_course_fails(tmp_path: Path) -> None:
    root = _init_site(tmp_path)

    result = runner.invoke(app, ["enqueue-course-job", "77", "--root", root])

    assert result.exit_code == 1
    assert "no language configuration" in result.output


def test_commands_fail_cleanly_without_site(tmp_path: Path) -> None:
    result = runner.invoke(app, ["job-progress", "abc", "--root", str(tmp_path / "nowhere")])

    assert result.exit_code == 1
    assert "Site does not exist" in result.output


def test_init_site_twice_fails(tmp_path: Path) -> None:
    root = _init_site(tmp_path)

    result = runner.invoke(app, ["init-site", "Again", "--root", root])

    assert result.exit_code == 1
    assert "already initialized" in result.output


def test_sweep_missing_reports_disabled(tmp_path: Path) -> None:
    root = _init_site(tmp_path)

    summary = json.loads(_invoke("sweep-missing", "--root", root).output)

    assert summary["enabled"] is False
    assert summary["translated"] == 0


def test_set_secret_masks_output(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = _FakeKeyring()
    monkeypatch.setattr(secrets_module, "keyring", fake)

    result = _invoke("set-secret", "--value", "sk-1234567890")

    assert "sk-1*****7890" in result.output
    assert "sk-1234567890" not in result.output
    assert fake.get_password("xlate", "openai_api_key") == "sk-1234567890"


def test_translate_items_queues_a_batch_for_run_tasks(tmp_path: Path) -> None:
    root = _init_site(tmp_path)
    items_file = tmp_path / "items.json"
    items_file.write_text(
        json.dumps(
            [
                {"id": "region_a:abc", "source_text": "Apple", "component": "region_a", "key": "abc"},
                {"id": "region_b:abc", "source_text": "Banana", "component": "region_b", "key": "abc"},
            ]
        ),
        encoding="utf-8",
    )

    enqueued = json.loads(
        _invoke("translate-items", str(items_file), "--targets", "de", "--request-id", "rb_cli", "--root", root).output
    )
    assert enqueued["request_id"] == "rb_cli"

    ran = _invoke("run-tasks", "--root", root)
    assert "Executed 1 tasks: 1 ok, 0 retried, 0 failed" in ran.output

    items = json.loads(_invoke("item-progress", "de", "region_a:abc", "region_b:abc", "--root", root).output)
    assert [item["translation"] for item in items] == ["[de] Apple", "[de] Banana"]


def test_translate_items_rejects_empty_target_list(tmp_path: Path) -> None:
    root = _init_site(tmp_path)
    items_file = tmp_path / "items.json"
    items_file.write_text(json.dumps([{"id": "k1", "source_text": "Hi"}]), encoding="utf-8")

    result = runner.invoke(app, ["translate-items", str(items_file), "--targets", " , ", "--root", root])

    assert result.exit_code == 1
    assert "no target languages" in result.output
