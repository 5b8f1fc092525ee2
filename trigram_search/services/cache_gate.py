# trigram_search/services/cache_gate.py
# Responsibility: Read-before / write-after caching policy around a search.

import hashlib
import json
import logging
from typing import Any, Dict, Optional

from trigram_search.services.cancellation import CancellationToken, run_cancellable
from trigram_search.services.redis_cache import CacheProvider
from trigram_search.services.schemas import SearchResult

logger = logging.getLogger(__name__)


class CacheGate:
    """
    Wraps a CacheProvider with the engine's caching policy: results are
    looked up before any strategy runs and written back only when they hold
    at least one match. Empty results are never cached, so a query that has
    no matches today is retried on every call instead of waiting out a TTL.
    """

    def __init__(self, provider: CacheProvider, default_ttl: Optional[int] = None, prefix: str = "ss"):
        self.provider = provider
        self.default_ttl = default_ttl
        self.prefix = prefix

    def build_key(self, table: str, query: str, language: str, page: int, limit: int,
                  filters: Dict[str, Any]) -> str:
        """
        Generates a deterministic cache key from every request dimension
        that affects the result set.

        Key Format: "{prefix}:{table}:{sha256_hash}"
        The hash is derived from a sorted JSON representation of the params,
        so filter insertion order does not split the cache.

        Args:
            table (str): Table the engine searches.
            query (str): Normalized query.
            language (str): Requested language code.
            page (int): Page number.
            limit (int): Page size.
            filters (dict): Equality filters.

        Returns:
            str: The cache key.
        """
        payload = {
            "q": query,
            "lang": language,
            "p": page,
            "l": limit,
            "f": filters,
        }
        # sort_keys=True is critical for deterministic hashing of dictionaries
        serialized_payload = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
        hash_digest = hashlib.sha256(serialized_payload.encode('utf-8')).hexdigest()

        return f"{self.prefix}:{table}:{hash_digest}"

    async def lookup(self, key: str, cancellation: Optional[CancellationToken] = None) -> Optional[SearchResult]:
        cached = await run_cancellable(self.provider.get(key), cancellation)
        if cached is None:
            return None
        logger.debug("Cache hit for %s", key)
        return SearchResult.model_validate(cached)

    async def store(self, key: str, result: SearchResult, ttl: Optional[int] = None,
                    cancellation: Optional[CancellationToken] = None) -> bool:
        """
        Stores `result` unless it is empty.

        Returns:
            bool: True if the result was written.
        """
        if result.pagination.total <= 0:
            return False
        await run_cancellable(
            self.provider.set(key, result.model_dump(mode="json"), ttl or self.default_ttl),
            cancellation,
        )
        return True
