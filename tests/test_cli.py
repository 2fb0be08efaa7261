from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from conftest import FakeChat, FakeEmbedder
from rtf_pipeline import cli


@pytest.fixture
def embedder(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> FakeEmbedder:
    monkeypatch.chdir(tmp_path)
    fake = FakeEmbedder(fail_on=("UNEMBEDDABLE",))
    monkeypatch.setattr(cli, "_make_embedder", lambda settings: fake)
    return fake


@pytest.fixture
def chat(monkeypatch: pytest.MonkeyPatch) -> FakeChat:
    fake = FakeChat(answer="Paris is the capital.")
    monkeypatch.setattr(cli, "_make_chat_client", lambda settings: fake)
    return fake


@pytest.fixture
def index_file(tmp_path: Path) -> Path:
    path = tmp_path / "index.json"
    payload = {
        "entries": [
            {"id": 0, "text": "France facts", "embedding": [1.0, 0.0, 0.0], "metadata": {"chunk_index": "0"}},
            {"id": 1, "text": "Cooking notes", "embedding": [0.0, 1.0, 0.0], "metadata": {"chunk_index": "1"}},
        ],
        "dimension": 3,
        "totalEntries": 2,
    }
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_index_builds_and_saves(tmp_path: Path, embedder: FakeEmbedder) -> None:
    doc = tmp_path / "doc.txt"
    doc.write_text("Sentence number one. " * 60, encoding="utf-8")
    out = tmp_path / "out" / "index.json"

    result = CliRunner().invoke(cli.main, ["index", str(doc), "--index-path", str(out), "--chunk-size", "300"])

    assert result.exit_code == 0, result.output
    assert "Total entries:" in result.output
    saved = json.loads(out.read_text(encoding="utf-8"))
    assert saved["totalEntries"] == len(saved["entries"]) == len(embedder.calls)
    assert saved["entries"][0]["metadata"]["source_file"] == str(doc)


def test_index_warns_about_placeholders(tmp_path: Path, embedder: FakeEmbedder) -> None:
    doc = tmp_path / "doc.txt"
    doc.write_text("Good paragraph text.\n\nUNEMBEDDABLE paragraph.\n\nAnother good one.", encoding="utf-8")

    result = CliRunner().invoke(
        cli.main,
        ["index", str(doc), "--index-path", "idx.json", "--strategy", "paragraph", "--min-chunk-size", "5"],
    )

    assert result.exit_code == 0, result.output
    assert "stored with zero vectors (chunks [1])" in result.output


def test_index_rejects_invalid_chunk_bounds(tmp_path: Path, embedder: FakeEmbedder) -> None:
    doc = tmp_path / "doc.txt"
    doc.write_text("text", encoding="utf-8")
    result = CliRunner().invoke(cli.main, ["index", str(doc), "--chunk-size", "50", "--overlap", "50"])
    assert result.exit_code != 0
    assert embedder.calls == []


def test_index_missing_document(embedder: FakeEmbedder) -> None:
    result = CliRunner().invoke(cli.main, ["index", "missing.rtf"])
    assert result.exit_code == 1
    assert "Document not found" in result.output


def test_stats(index_file: Path, embedder: FakeEmbedder) -> None:
    result = CliRunner().invoke(cli.main, ["stats", str(index_file)])
    assert result.exit_code == 0, result.output
    assert "Total entries: 2" in result.output
    assert "Dimension: 3" in result.output


def test_stats_on_missing_index(tmp_path: Path, embedder: FakeEmbedder) -> None:
    result = CliRunner().invoke(cli.main, ["stats", str(tmp_path / "nope.json")])
    assert result.exit_code == 1
    assert "Index file not found" in result.output


def test_search_prints_ranked_results(index_file: Path, embedder: FakeEmbedder) -> None:
    embedder.table["france"] = [1.0, 0.1, 0.0]
    result = CliRunner().invoke(cli.main, ["search", str(index_file), "france", "-k", "1"])

    assert result.exit_code == 0, result.output
    assert "1. Score:" in result.output
    assert "France facts" in result.output
    assert "Cooking notes" not in result.output


def test_search_below_threshold(index_file: Path, embedder: FakeEmbedder) -> None:
    embedder.table["france"] = [1.0, 1.0, 0.0]
    result = CliRunner().invoke(cli.main, ["search", str(index_file), "france", "--min-score", "0.9"])
    assert result.exit_code == 0, result.output
    assert "No results found" in result.output


def test_ask_answers_and_records_history(
    tmp_path: Path, index_file: Path, embedder: FakeEmbedder, chat: FakeChat
) -> None:
    embedder.table["capital of france?"] = [1.0, 0.0, 0.0]
    history = tmp_path / "history.json"

    result = CliRunner().invoke(
        cli.main, ["ask", str(index_file), "capital of france?", "-k", "1", "--history", str(history)]
    )

    assert result.exit_code == 0, result.output
    assert "Paris is the capital." in result.output
    assert "[Relevance: 1.0000]" in result.output
    assert "France facts" in chat.requests[0][0].content
    saved = json.loads(history.read_text(encoding="utf-8"))
    assert saved["turns"][0]["question"] == "capital of france?"


def test_ask_without_rag(index_file: Path, embedder: FakeEmbedder, chat: FakeChat) -> None:
    result = CliRunner().invoke(cli.main, ["ask", str(index_file), "hello", "--no-rag"])
    assert result.exit_code == 0, result.output
    assert "Sources: none" in result.output
    assert [m.role for m in chat.requests[0]] == ["user"]


def test_search_rejects_non_positive_top_k(index_file: Path, embedder: FakeEmbedder) -> None:
    result = CliRunner().invoke(cli.main, ["search", str(index_file), "france", "-k", "0"])
    assert result.exit_code == 2
    assert embedder.calls == []
