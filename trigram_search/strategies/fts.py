from typing import Optional

from trigram_search.services.cancellation import CancellationToken
from trigram_search.services.schemas import SearchRequest, SearchResult
from trigram_search.strategies.base import SearchStrategy

# Request language code -> PostgreSQL text search configuration
TEXT_SEARCH_CONFIGS = {
    "ar": "arabic",
    "da": "danish",
    "de": "german",
    "en": "english",
    "es": "spanish",
    "fi": "finnish",
    "fr": "french",
    "hu": "hungarian",
    "id": "indonesian",
    "it": "italian",
    "nl": "dutch",
    "no": "norwegian",
    "pt": "portuguese",
    "ro": "romanian",
    "ru": "russian",
    "sv": "swedish",
    "tr": "turkish",
}

# ts_rank_cd normalization: 32 scales the rank into rank / (rank + 1)
RANK_NORMALIZATION = 32


def text_search_config(language: str) -> str:
    """Maps a language code (or a config name such as "english") to a regconfig."""
    language = (language or "").lower()
    if language in TEXT_SEARCH_CONFIGS.values():
        return language
    return TEXT_SEARCH_CONFIGS.get(language, "simple")


class FullTextStrategy(SearchStrategy):
    """
    PostgreSQL full-text search with websearch_to_tsquery.

    Uses the precomputed tsvector column when one is configured ("turbo
    mode"); otherwise builds the document vector on the fly from the search
    columns, which works without setup but cannot use an index.
    """

    name = "fts"

    async def search(self, query: str, request: SearchRequest,
                     cancellation: Optional[CancellationToken] = None) -> SearchResult:
        regconfig = text_search_config(request.language)
        tsquery = f"websearch_to_tsquery('{regconfig}', %s)"

        if self.config.fts_column:
            document = self.config.fts_column
        else:
            document = " || ".join(
                f"to_tsvector('{regconfig}', coalesce({column}, ''))" for column in self.config.search_columns
            )

        where, where_params = self._where_clauses(request)
        window, window_params = self._window(request)
        filters = "".join(f" AND {clause}" for clause in where)

        sql = f"""
            WITH search_results AS (
                SELECT *,
                       ts_rank_cd({document}, {tsquery}, {RANK_NORMALIZATION}) AS relevance
                FROM {self.config.table_name}
                WHERE ({document}) @@ {tsquery}{filters}
            )
            SELECT *, COUNT(*) OVER() AS total_count
            FROM search_results
            ORDER BY relevance DESC
            {window}
        """
        params = [query, query] + where_params + window_params

        rows = await self.store.query(sql, params, self._token(request, cancellation))
        return self._to_result(rows, request)
