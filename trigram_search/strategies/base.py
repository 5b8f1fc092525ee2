# trigram_search/strategies/base.py
# Responsibility: Common contract and SQL helpers for all search strategies.

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

from trigram_search.services.cancellation import CancellationToken
from trigram_search.services.db import DataStore
from trigram_search.services.schemas import EngineConfig, SearchRequest, SearchResult


def escape_like(value: str) -> str:
    """Escapes LIKE wildcards so user input only ever matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SearchStrategy(ABC):
    """
    One backend search technique.

    Strategies are stateless apart from the store and the engine config, so
    an engine builds each one once and reuses it for every request.
    All SQL uses %s placeholders; identifiers come from validated config or
    validated filter keys only.
    """

    name = "base"

    def __init__(self, store: DataStore, config: EngineConfig):
        self.store = store
        self.config = config

    @abstractmethod
    async def search(self, query: str, request: SearchRequest,
                     cancellation: Optional[CancellationToken] = None) -> SearchResult:
        """
        Runs the search for an already-normalized `query`.

        `cancellation` overrides the request's own token; the engine passes
        its internal race token here.

        Raises:
            SearchCancelled: the token fired before the store answered.
        """

    def _token(self, request: SearchRequest, cancellation: Optional[CancellationToken]) -> Optional[CancellationToken]:
        return cancellation if cancellation is not None else request.cancellation

    def _where_clauses(self, request: SearchRequest) -> Tuple[List[str], List[Any]]:
        """
        Builds the equality filters plus the optional language constraint.

        Returns:
            Tuple[List[str], List[Any]]: SQL fragments and their parameters.
        """
        clauses: List[str] = []
        params: List[Any] = []

        # Dynamic SQL construction for filters
        for column, value in request.active_filters().items():
            clauses.append(f"{column} = %s")
            params.append(value)

        if self.config.language_column and request.language:
            clauses.append(f"{self.config.language_column} = %s")
            params.append(request.language)

        return clauses, params

    def _substring_match(self, query: str) -> Tuple[str, List[Any]]:
        """ILIKE across every search column, OR-ed together."""
        pattern = f"%{escape_like(query)}%"
        clause = " OR ".join(f"{column} ILIKE %s" for column in self.config.search_columns)
        return f"({clause})", [pattern] * len(self.config.search_columns)

    def _page_size(self, request: SearchRequest) -> int:
        return request.limit or self.config.default_limit

    def _window(self, request: SearchRequest) -> Tuple[str, List[Any]]:
        limit = self._page_size(request)
        return "LIMIT %s OFFSET %s", [limit, (request.page - 1) * limit]

    def _to_result(self, rows, request: SearchRequest) -> SearchResult:
        return SearchResult.from_rows(rows, request.page, self._page_size(request))
