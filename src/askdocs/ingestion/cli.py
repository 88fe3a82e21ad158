"""CLI for building the vector collection from a docs folder."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from askdocs.config import Settings, get_settings
from askdocs.embeddings.service import EmbeddingBackend, build_embedding_backend
from askdocs.errors import ProviderError
from askdocs.ingestion.service import CollectionBuilder, IndexingConfig, IngestionError, write_collection


def build_index(
    docs_dir: Path,
    out_path: Path,
    *,
    settings: Settings | None = None,
    backend: EmbeddingBackend | None = None,
) -> int:
    settings = settings or get_settings()
    builder = CollectionBuilder(
        backend or build_embedding_backend(settings),
        IndexingConfig(
            chunk_size_words=settings.chunk_size_words,
            batch_size=settings.embedding_batch_size,
            extensions=settings.index_extensions_tuple,
        ),
    )
    records = builder.build(docs_dir)
    return write_collection(records, out_path)


def parse_args(argv: Sequence[str], settings: Settings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chunk and embed documents into a vector collection.")
    parser.add_argument("--docs-dir", type=Path, default=settings.docs_dir, help="Folder with .txt/.md files")
    parser.add_argument("--out", type=Path, default=settings.vectors_path, help="Collection JSON to write")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    settings = get_settings()
    args = parse_args(sys.argv[1:] if argv is None else argv, settings)
    try:
        count = build_index(args.docs_dir, args.out, settings=settings)
    except (IngestionError, ProviderError) as exc:
        print(f"Indexing failed: {exc}", file=sys.stderr)
        return 1
    print(f"Saved {args.out} with {count} chunks")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
