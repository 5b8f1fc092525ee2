# trigram_search/services/errors.py
# Responsibility: Exception types raised by the search engine and its collaborators.


class SearchError(Exception):
    """Base class for all search engine errors."""


class ConfigurationError(SearchError):
    """
    A collaborator required by the selected tier is missing or the engine
    configuration is unusable (e.g. VECTOR tier without an embedding provider).
    """


class SearchCancelled(SearchError):
    """
    Raised when a cancellation token fires before an operation completes.
    No partial result accompanies it.
    """


class EmbeddingError(SearchError):
    """The embedding API rejected a request or returned an unusable payload."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code
