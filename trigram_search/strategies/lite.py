from typing import Optional

from trigram_search.services.cancellation import CancellationToken
from trigram_search.services.schemas import SearchRequest, SearchResult
from trigram_search.strategies.base import SearchStrategy


class LiteStrategy(SearchStrategy):
    """
    Case-insensitive substring scan across all search columns.
    Needs no indexes; used for the LITE tier and as the standard branch of
    the hybrid race.
    """

    name = "lite"

    async def search(self, query: str, request: SearchRequest,
                     cancellation: Optional[CancellationToken] = None) -> SearchResult:
        where, params = self._where_clauses(request)
        match, match_params = self._substring_match(query)
        where.append(match)
        params.extend(match_params)

        window, window_params = self._window(request)
        params.extend(window_params)

        sql = f"""
            SELECT *, COUNT(*) OVER() AS total_count
            FROM {self.config.table_name}
            WHERE {' AND '.join(where)}
            ORDER BY {self.config.id_column} ASC
            {window}
        """

        rows = await self.store.query(sql, params, self._token(request, cancellation))
        return self._to_result(rows, request)
