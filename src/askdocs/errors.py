"""Exception hierarchy for askdocs."""


class AskDocsError(Exception):
    """Base exception for all askdocs errors."""


class StoreLoadError(AskDocsError):
    """The persisted vector collection is missing or malformed."""


class ClientInputError(AskDocsError):
    """The caller supplied a missing, empty or oversized question."""


class ProviderError(AskDocsError):
    """An external model provider call failed."""


class EmbeddingError(ProviderError):
    """Error generating embeddings."""


class GenerationError(ProviderError):
    """Error generating an answer."""
