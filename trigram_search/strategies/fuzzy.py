# trigram_search/strategies/fuzzy.py
# Responsibility: pg_trgm word-similarity strategies (typo tolerant matching).

from typing import Any, List, Optional, Tuple

from trigram_search.services.cancellation import CancellationToken
from trigram_search.services.db import DataStore
from trigram_search.services.schemas import SearchRequest, SearchResult
from trigram_search.services.threshold_calculator import ThresholdCalculator
from trigram_search.strategies.base import SearchStrategy, escape_like

# Transaction-local, so pooled connections never leak the setting
SET_THRESHOLD_SQL = "SELECT set_config('pg_trgm.word_similarity_threshold', %s, true)"


class FuzzyStrategy(SearchStrategy):
    """
    Keeps rows that either contain the query or clear the word-similarity
    cutoff on at least one column, best-scoring column first.

    The cutoff comes from ThresholdCalculator and is applied through the
    `<%` operator, which reads pg_trgm.word_similarity_threshold; the setting
    is scoped to a transaction wrapped around the query.
    """

    name = "fuzzy"

    def _match(self, query: str) -> Tuple[str, List[Any]]:
        # `%%` is a literal `%` once psycopg2 interpolates the parameters
        clauses = [f"({column} ILIKE %s OR %s <%% {column})" for column in self.config.search_columns]
        params: List[Any] = []
        for _ in self.config.search_columns:
            params.extend([f"%{escape_like(query)}%", query])
        return f"({' OR '.join(clauses)})", params

    def _statement(self, query: str, request: SearchRequest) -> Tuple[str, List[Any]]:
        columns = self.config.search_columns
        scores = ", ".join(f"word_similarity(%s, {column})" for column in columns)
        match, match_params = self._match(query)
        where, where_params = self._where_clauses(request)
        window, window_params = self._window(request)

        sql = f"""
            SELECT *,
                   GREATEST({scores}) AS relevance,
                   COUNT(*) OVER() AS total_count
            FROM {self.config.table_name}
            WHERE {' AND '.join([match] + where)}
            ORDER BY relevance DESC
            {window}
        """
        return sql, [query] * len(columns) + match_params + where_params + window_params

    async def search(self, query: str, request: SearchRequest,
                     cancellation: Optional[CancellationToken] = None) -> SearchResult:
        token = self._token(request, cancellation)
        threshold = ThresholdCalculator.calculate(query)
        sql, params = self._statement(query, request)

        async def body(tx: DataStore) -> SearchResult:
            await tx.execute(SET_THRESHOLD_SQL, [str(threshold)], token)
            rows = await tx.query(sql, params, token)
            return self._to_result(rows, request)

        return await self.store.transaction(body, token)


class NormalizedTrigramStrategy(FuzzyStrategy):
    """
    ADVANCED tier: same matching rules as FuzzyStrategy, but relevance is the
    mean word similarity over all search columns, so rows matching on several
    columns outrank rows matching on one.
    """

    name = "normalized_trigram"

    def _statement(self, query: str, request: SearchRequest) -> Tuple[str, List[Any]]:
        columns = self.config.search_columns
        scores = " + ".join(f"word_similarity(%s, {column})" for column in columns)
        match, match_params = self._match(query)
        where, where_params = self._where_clauses(request)
        window, window_params = self._window(request)

        sql = f"""
            WITH search_results AS (
                SELECT *,
                       ({scores}) / {len(columns)} AS relevance
                FROM {self.config.table_name}
                WHERE {' AND '.join([match] + where)}
            )
            SELECT *, COUNT(*) OVER() AS total_count
            FROM search_results
            ORDER BY relevance DESC
            {window}
        """
        return sql, [query] * len(columns) + match_params + where_params + window_params
