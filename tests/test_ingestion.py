"""Tests for the offline collection builder."""

from __future__ import annotations

from pathlib import Path

import pytest

from askdocs.config import Settings
from askdocs.embeddings.service import EmbeddingConfig, HashEmbeddingBackend
from askdocs.embeddings.store import VectorStore
from askdocs.ingestion.cli import build_index
from askdocs.ingestion.service import CollectionBuilder, IndexingConfig, IngestionError, split_words


def test_split_words_windows():
    assert split_words("a b c d e", 2) == ["a b", "c d", "e"]
    assert split_words("   ", 2) == []


def test_builder_chunks_and_numbers_records(tmp_path: Path):
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "b.md").write_text("one two three four five", encoding="utf-8")
    (docs / "a.txt").write_text("alpha  beta\n\ngamma", encoding="utf-8")
    (docs / "skip.docx").write_text("ignored", encoding="utf-8")

    builder = CollectionBuilder(
        HashEmbeddingBackend(EmbeddingConfig(dim=8)),
        IndexingConfig(chunk_size_words=2, batch_size=2),
    )
    records = builder.build(docs)

    assert [r.id for r in records] == ["a.txt#0", "a.txt#1", "b.md#0", "b.md#1", "b.md#2"]
    assert records[0].text == "alpha beta"
    assert records[4].chunk_index == 2
    assert all(len(r.embedding) == 8 for r in records)


def test_builder_missing_docs_dir(tmp_path: Path):
    with pytest.raises(IngestionError):
        CollectionBuilder(HashEmbeddingBackend()).build(tmp_path / "missing")


def test_build_index_output_loads_into_store(tmp_path: Path):
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "guide.txt").write_text("word " * 450, encoding="utf-8")
    out = tmp_path / "vectors.json"

    count = build_index(docs, out, settings=Settings(embedding_provider="hash", embedding_dim=16))

    assert count == 2
    store = VectorStore.load(out)
    assert len(store) == 2
    assert store.dimension == 16
    assert store.documents() == ["guide.txt"]
