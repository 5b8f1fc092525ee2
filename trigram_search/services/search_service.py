# trigram_search/services/search_service.py
# Responsibility: Orchestrates a search (Validation -> Cache -> Tier routing / Hybrid race -> Fallbacks -> Cache write).

import asyncio
import logging
from functools import lru_cache
from typing import Any, Dict, Optional, Set, Type

from trigram_search.config.settings import settings
from trigram_search.services.cache_gate import CacheGate
from trigram_search.services.cancellation import CancellationToken
from trigram_search.services.db import DataStore, PostgresDataStore
from trigram_search.services.embeddings import build_embedding_provider
from trigram_search.services.errors import ConfigurationError, SearchCancelled
from trigram_search.services.query_normalizer import QueryNormalizer
from trigram_search.services.redis_cache import RedisCacheProvider
from trigram_search.services.schemas import (
    EngineConfig,
    SearchMetadata,
    SearchRequest,
    SearchResult,
    SearchTier,
)
from trigram_search.strategies.base import SearchStrategy
from trigram_search.strategies.fts import FullTextStrategy
from trigram_search.strategies.fuzzy import FuzzyStrategy, NormalizedTrigramStrategy
from trigram_search.strategies.lite import LiteStrategy
from trigram_search.strategies.vector import VectorStrategy

logger = logging.getLogger(__name__)

# Tiers served by exactly one strategy; STANDARD runs the hybrid pipeline instead
TIER_STRATEGIES: Dict[SearchTier, Type[SearchStrategy]] = {
    SearchTier.LITE: LiteStrategy,
    SearchTier.ADVANCED: NormalizedTrigramStrategy,
    SearchTier.VECTOR: VectorStrategy,
}

# Race losers still unwinding; held so they are not garbage collected mid-flight
_abandoned: Set["asyncio.Future[Any]"] = set()


def _abandon(task: "asyncio.Future[Any]") -> None:
    """
    Lets a losing race branch finish on its own and drops its outcome,
    including the SearchCancelled it raises once its token fires.
    """

    def consume(finished: "asyncio.Future[Any]") -> None:
        _abandoned.discard(finished)
        if finished.cancelled():
            return
        error = finished.exception()
        if error is not None and not isinstance(error, SearchCancelled):
            logger.debug("Discarded failure from losing search branch: %r", error)

    _abandoned.add(task)
    task.add_done_callback(consume)


class TrigramSearchEngine:
    """
    Main service class for handling search operations.

    Turns one free-text request into the strategy (or raced pair of
    strategies) configured for its tier, then falls back through fuzzy
    matching and keyboard-layout correction until something matches.
    Holds no per-request state; one engine serves concurrent searches.
    """

    def __init__(self, store: DataStore, config: EngineConfig):
        if config.tier is SearchTier.VECTOR and config.embedding_provider is None:
            raise ConfigurationError("An embedding provider is required for the VECTOR tier")

        self.store = store
        self.config = config
        self.cache: Optional[CacheGate] = None
        if config.cache_provider is not None:
            self.cache = CacheGate(config.cache_provider, config.default_ttl, config.cache_prefix)

        self.full_text = FullTextStrategy(store, config)
        self.standard = LiteStrategy(store, config)
        self.fuzzy = FuzzyStrategy(store, config)
        tier_strategy = TIER_STRATEGIES.get(config.tier)
        self.tier_strategy: Optional[SearchStrategy] = tier_strategy(store, config) if tier_strategy else None

    async def search(self, request: Optional[SearchRequest] = None, **fields: Any) -> SearchResult:
        """
        Executes a search with full pipeline processing.

        Accepts either a SearchRequest or its fields as keyword arguments
        (query, language, page, limit, filters, cancellation).

        Returns:
            SearchResult: possibly empty. Rejected input and caller
            cancellation both yield an empty result rather than an error.

        Raises:
            ConfigurationError: a collaborator the tier needs is missing.
            Exception: data-store and cache failures propagate unchanged.
        """
        if request is None:
            request = SearchRequest(**fields)
        if request.limit is None:
            request = request.model_copy(update={"limit": self.config.default_limit})

        # 1. Validation
        validation = QueryNormalizer.validate(request.query)
        if not validation.valid:
            logger.debug("Rejected query %r: %s", request.query, validation.reason.value)
            return SearchResult.empty(request.page, request.limit)

        # 2. Normalization
        normalized = QueryNormalizer.normalize(request.query)

        try:
            return await self._execute(normalized, request)
        except SearchCancelled:
            if request.cancellation is not None and request.cancellation.cancelled:
                logger.debug("Search for %r cancelled by caller", normalized)
                return SearchResult.empty(request.page, request.limit)
            raise

    async def _execute(self, normalized: str, request: SearchRequest) -> SearchResult:
        token = request.cancellation

        # 3. Cache Lookup
        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.build_key(
                self.config.table_name, normalized, request.language,
                request.page, request.limit, request.active_filters(),
            )
            cached = await self.cache.lookup(cache_key, token)
            if cached is not None:
                return cached

        # 4. Tier routing
        if self.tier_strategy is not None:
            logger.debug("Routing %r to %s strategy", normalized, self.tier_strategy.name)
            result = await self.tier_strategy.search(normalized, request)
        else:
            # 5. Hybrid race, then 6./7. fallbacks
            result = await self._hybrid_search(normalized, request)
            result = await self._fuzzy_fallback(normalized, request, result)
            result = await self._layout_fallback(normalized, request, result)

        # 8. Cache Storage (hits only)
        if self.cache is not None:
            await self.cache.store(cache_key, result, cancellation=token)

        return result

    async def _hybrid_search(self, normalized: str, request: SearchRequest) -> SearchResult:
        """
        Races full-text search against the standard substring search.

        Both start together under one internal token derived from the
        caller's. Full-text is awaited first; if it finds anything the
        standard branch is cancelled and its outcome discarded, otherwise the
        already-running standard search supplies the result.
        """
        race_token = request.cancellation.child() if request.cancellation else CancellationToken()

        full_text = asyncio.ensure_future(self.full_text.search(normalized, request, race_token))
        standard = asyncio.ensure_future(self.standard.search(normalized, request, race_token))

        try:
            try:
                result = await full_text
            except BaseException:
                race_token.cancel()
                _abandon(standard)
                raise

            if result.total > 0:
                logger.debug("Full-text fast-track won for %r (%d hits)", normalized, result.total)
                race_token.cancel()
                _abandon(standard)
                return result

            return await standard
        finally:
            # The caller's token may outlive many searches
            race_token.detach()

    async def _fuzzy_fallback(self, normalized: str, request: SearchRequest,
                              result: SearchResult) -> SearchResult:
        if result.total > 0:
            return result

        fuzzy_result = await self.fuzzy.search(normalized, request)
        if fuzzy_result.total > 0:
            logger.info("Fuzzy fallback matched %r (%d hits)", normalized, fuzzy_result.total)
            return fuzzy_result
        return result

    async def _layout_fallback(self, normalized: str, request: SearchRequest,
                               result: SearchResult) -> SearchResult:
        """
        Retries a Latin-only query typed while the user meant the Russian
        layout, e.g. "vjkbndf" -> "молитва". Only for language "ru".
        """
        if result.total > 0 or request.language != "ru" or not QueryNormalizer.is_latin_layout(normalized):
            return result

        corrected = QueryNormalizer.convert_layout(normalized)
        if corrected == normalized:
            return result

        corrected_result = await self.fuzzy.search(corrected, request)
        if corrected_result.total == 0:
            return result

        logger.info("Layout fallback matched %r as %r", normalized, corrected)
        metadata = corrected_result.metadata or SearchMetadata()
        return corrected_result.model_copy(
            update={"metadata": metadata.model_copy(update={"corrected_from": normalized})}
        )


def build_engine_config(**overrides: Any) -> EngineConfig:
    """Builds an EngineConfig from settings; keyword overrides win."""
    engine = settings.ENGINE
    values: Dict[str, Any] = {
        "table_name": engine.TABLE_NAME,
        "search_columns": engine.SEARCH_COLUMNS,
        "language_column": engine.LANGUAGE_COLUMN,
        "id_column": engine.ID_COLUMN,
        "fts_column": engine.FTS_COLUMN,
        "embedding_column": engine.EMBEDDING_COLUMN,
        "default_limit": engine.DEFAULT_LIMIT,
        "tier": SearchTier(engine.TIER.upper()),
        "default_ttl": settings.REDIS.TTL_SECONDS,
        "cache_prefix": settings.REDIS.KEY_PREFIX,
    }
    values.update(overrides)
    return EngineConfig(**values)


@lru_cache()
def get_search_engine() -> TrigramSearchEngine:
    """Dependency injection provider for TrigramSearchEngine."""
    cache_provider = RedisCacheProvider() if settings.REDIS.ENABLED else None
    embedding_provider = build_embedding_provider(
        settings.EMBEDDING.PROVIDER, settings.EMBEDDING.API_KEY, settings.EMBEDDING.MODEL
    )
    config = build_engine_config(cache_provider=cache_provider, embedding_provider=embedding_provider)
    return TrigramSearchEngine(PostgresDataStore(), config)
