from __future__ import annotations

from askdocs.config import get_settings


def test_retrieval_defaults():
    settings = get_settings({"environment": "test"})
    assert settings.top_k == 5
    assert settings.score_threshold == 0.20
    assert settings.fallback_count == 3
    assert settings.max_question_length == 2000
    assert settings.port == 3000


def test_extension_lists_accept_csv():
    settings = get_settings({"document_extensions": "txt, rst", "index_extensions": ""})
    assert settings.document_extensions_tuple == ("txt", "rst")
    assert settings.index_extensions_tuple == (".txt", ".md")
