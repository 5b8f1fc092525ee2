from typing import Optional

from trigram_search.services.cancellation import CancellationToken, run_cancellable
from trigram_search.services.errors import ConfigurationError
from trigram_search.services.schemas import SearchRequest, SearchResult
from trigram_search.strategies.base import SearchStrategy


class VectorStrategy(SearchStrategy):
    """
    Semantic search via pgvector: nearest rows by cosine distance
    (`<=>`), reporting `1 - distance` as relevance.
    """

    name = "vector"

    async def search(self, query: str, request: SearchRequest,
                     cancellation: Optional[CancellationToken] = None) -> SearchResult:
        provider = self.config.embedding_provider
        if provider is None:
            raise ConfigurationError("An embedding provider is required for the VECTOR tier")

        token = self._token(request, cancellation)
        embedding = await run_cancellable(provider.generate_embedding(query), token)
        vector_literal = "[" + ",".join(str(float(x)) for x in embedding) + "]"

        where, where_params = self._where_clauses(request)
        window, window_params = self._window(request)
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        column = self.config.embedding_column

        sql = f"""
            SELECT *,
                   (1 - ({column} <=> %s::vector)) AS relevance,
                   COUNT(*) OVER() AS total_count
            FROM {self.config.table_name}
            {where_sql}
            ORDER BY {column} <=> %s::vector
            {window}
        """
        params = [vector_literal] + where_params + [vector_literal] + window_params

        rows = await self.store.query(sql, params, token)
        return self._to_result(rows, request)
