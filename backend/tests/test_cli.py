"""CLI smoke tests."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from paperchat.cli.main import app

runner = CliRunner()


def test_reasoning_options_command() -> None:
    result = runner.invoke(app, ["reasoning-options", "deepseek-reasoner"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["provider"] == "deepseek"
    assert payload["supports_reasoning"] is True


def test_context_command_prints_full_document(tmp_path: Path, sample_text: str) -> None:
    doc = tmp_path / "notes.txt"
    doc.write_text(sample_text, encoding="utf-8")
    result = runner.invoke(app, ["context", str(doc), "What is BM25?"])
    assert result.exit_code == 0
    assert "Title: notes" in result.output
    assert '"mode": "full"' in result.output


def test_test_connection_without_endpoint_fails() -> None:
    result = runner.invoke(app, ["test-connection", "--profile", "secondary"])
    assert result.exit_code == 1
    assert "API URL is missing" in result.output


def test_unknown_profile_is_rejected() -> None:
    result = runner.invoke(app, ["test-connection", "--profile", "fifth"])
    assert result.exit_code == 2


def test_context_command_with_hashed_embeddings(tmp_path: Path, sample_text: str) -> None:
    doc = tmp_path / "notes.txt"
    doc.write_text(sample_text, encoding="utf-8")
    config = tmp_path / "config.yaml"
    config.write_text("retrieval:\n  force_full_context: false\n  chunk_size: 20\n  chunk_overlap: 5\n", encoding="utf-8")
    result = runner.invoke(
        app, ["context", str(doc), "paragraph two", "--hashed-embeddings", "--config", str(config)]
    )
    assert result.exit_code == 0
    assert "Excerpt" in result.output
    assert '"mode": "retrieval"' in result.output
    assert '"used_embeddings": true' in result.output
