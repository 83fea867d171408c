"""Tests for the command-line interface."""

from pathlib import Path

import orjson
import pytest
from typer.testing import CliRunner

from hybrid_kb.cli.main import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def offline_embeddings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HKB_EMBEDDING_PROVIDER", "hashed")


def invoke(*args: str):
    return runner.invoke(app, list(args))


def test_ingest_and_query_direct_text() -> None:
    result = invoke("ingest", "--text", "Blueprints group related routes together.", "--title", "Blueprints")
    assert result.exit_code == 0, result.output
    assert "direct-input" in result.stdout

    result = invoke("query", "blueprints", "--json")
    assert result.exit_code == 0, result.output
    payload = orjson.loads(result.stdout)
    assert payload[0]["url"] == "direct-input"
    assert payload[0]["title"] == "Blueprints"
    assert payload[0]["method"] == "hybrid"


def test_query_modes(tmp_path: Path) -> None:
    invoke("ingest", "--text", "Use groupby to aggregate DataFrame columns.", "--url", "pandas-groupby")

    keyword = invoke("query", "groupby", "--mode", "keyword", "--json")
    assert keyword.exit_code == 0, keyword.output
    assert [item["method"] for item in orjson.loads(keyword.stdout)] == ["keyword"]

    vector = invoke("query", "groupby", "--mode", "vector")
    assert vector.exit_code == 0, vector.output
    assert "[vector] pandas-groupby" in vector.stdout

    empty = invoke("query", "nothing-matches-this", "--mode", "keyword")
    assert "No results." in empty.stdout


def test_ingest_file_uses_file_uri(tmp_path: Path) -> None:
    doc = tmp_path / "notes.md"
    doc.write_text("# Notes\n\nAsyncio event loops schedule coroutines.", encoding="utf-8")

    result = invoke("ingest", "--file", str(doc), "--framework", "python")
    assert result.exit_code == 0, result.output

    listed = invoke("list", "--json")
    items = orjson.loads(listed.stdout)
    assert items[0]["url"] == doc.resolve().as_uri()
    assert items[0]["title"] == "notes"
    assert items[0]["framework"] == "python"


def test_ingest_requires_exactly_one_source(tmp_path: Path) -> None:
    assert invoke("ingest").exit_code == 2
    doc = tmp_path / "a.md"
    doc.write_text("x", encoding="utf-8")
    assert invoke("ingest", "--text", "x", "--file", str(doc)).exit_code == 2


def test_ingest_missing_file_fails(tmp_path: Path) -> None:
    result = invoke("ingest", "--file", str(tmp_path / "missing.md"))
    assert result.exit_code == 1
    assert "Cannot read" in result.output


def test_list_filters_by_framework() -> None:
    invoke("ingest", "--text", "Flask routing basics.", "--url", "flask", "--framework", "flask")
    invoke("ingest", "--text", "Django models basics.", "--url", "django", "--framework", "django")

    result = invoke("list", "--framework", "django")
    assert result.exit_code == 0
    assert "django" in result.stdout
    assert "\tflask" not in result.stdout


def test_delete_reports_not_found() -> None:
    invoke("ingest", "--text", "Temporary document content.", "--url", "temp")

    deleted = invoke("delete", "--url", "temp")
    assert deleted.exit_code == 0, deleted.output
    assert "Deleted document" in deleted.stdout

    again = invoke("delete", "--url", "temp")
    assert again.exit_code == 1
    assert "Not found" in again.output

    by_id = invoke("delete", "--id", "12345")
    assert by_id.exit_code == 1
    assert "Not found" in by_id.output

    assert invoke("delete").exit_code == 2


def test_status_reports_counts() -> None:
    invoke("ingest", "--text", "Status check document.")
    result = invoke("status")
    assert result.exit_code == 0, result.output
    assert "Documents:       1" in result.stdout
    assert "Vectors:         1" in result.stdout
    assert "API key:         missing" in result.stdout


def test_gemini_provider_without_key_fails_cleanly(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HKB_EMBEDDING_PROVIDER", "gemini")
    result = invoke("ingest", "--text", "needs an api key")
    assert result.exit_code == 1
    assert "API key not found" in result.output


def test_metrics_command() -> None:
    result = invoke("metrics")
    assert result.exit_code == 0
    assert "hkb_search_latency_seconds" in result.stdout


def test_invalid_configuration_fails_cleanly(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HKB_EMBEDDING_DIMENSION", "512")
    for args in (["status"], ["query", "anything"], ["list"]):
        result = invoke(*args)
        assert result.exit_code == 1
        assert "Error: invalid configuration" in result.output
        assert "Invalid dimension" in result.output
