"""Offline collection indexing."""

from .service import (
    CollectionBuilder,
    IndexingConfig,
    IngestionError,
    UnsupportedFileTypeError,
    record_to_json,
    split_words,
    write_collection,
)

__all__ = [
    "CollectionBuilder",
    "IndexingConfig",
    "IngestionError",
    "UnsupportedFileTypeError",
    "record_to_json",
    "split_words",
    "write_collection",
]
