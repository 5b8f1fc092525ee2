import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from trigram_search.services.cancellation import CancellationToken
from trigram_search.services.errors import ConfigurationError, SearchCancelled
from trigram_search.services.schemas import EngineConfig, SearchRequest
from trigram_search.strategies.base import escape_like
from trigram_search.strategies.fts import FullTextStrategy, text_search_config
from trigram_search.strategies.fuzzy import SET_THRESHOLD_SQL, FuzzyStrategy, NormalizedTrigramStrategy
from trigram_search.strategies.lite import LiteStrategy
from trigram_search.strategies.vector import VectorStrategy


@pytest.fixture
def config():
    return EngineConfig(
        table_name="translations",
        search_columns=["text", "title"],
        language_column="language_code",
    )


@pytest.mark.asyncio
async def test_lite_strategy_sql_and_pagination(config, fake_store_factory, make_rows):
    store = fake_store_factory({"lite": make_rows(21, 22, total=25)})
    request = SearchRequest(query="prayer", language="en", page=3, limit=10, filters={"grade": "sahih", "book": None})

    result = await LiteStrategy(store, config).search("prayer", request)

    # 1. Assert the statement
    kind, sql, params = store.calls[0]
    assert kind == "lite"
    assert "text ILIKE %s OR title ILIKE %s" in sql
    assert "ORDER BY id ASC" in sql
    assert "grade = %s" in sql
    assert "book" not in sql  # None filters are dropped
    assert params == ["sahih", "en", "%prayer%", "%prayer%", 10, 20]

    # 2. Assert the mapping into a paginated result
    assert [row["id"] for row in result.data] == [21, 22]
    assert "total_count" not in result.data[0]
    assert result.pagination.total == 25
    assert result.pagination.total_pages == 3
    assert result.pagination.has_next is False
    assert result.pagination.has_prev is True


@pytest.mark.asyncio
async def test_lite_strategy_escapes_like_wildcards(fake_store_factory):
    config = EngineConfig(table_name="t", search_columns=["body"])
    store = fake_store_factory()
    request = SearchRequest(query="100%_off")

    result = await LiteStrategy(store, config).search("100%_off", request)

    assert store.calls[0][2][0] == "%100\\%\\_off%"
    assert result.data == []
    assert result.pagination.total == 0
    assert escape_like("a\\b") == "a\\\\b"


@pytest.mark.asyncio
async def test_fuzzy_strategy_sets_threshold_inside_transaction(config, fake_store_factory, make_rows):
    store = fake_store_factory({"fuzzy": make_rows(7)})
    request = SearchRequest(query="paryer", language="en", limit=5)

    result = await FuzzyStrategy(store, config).search("paryer", request)

    assert store.transactions == 1
    assert store.kinds() == ["set_threshold", "fuzzy"]

    # 1. Threshold for a six-letter word
    _, set_sql, set_params = store.calls[0]
    assert set_sql == SET_THRESHOLD_SQL
    assert set_params == ["0.5"]

    # 2. Best-column similarity, literal `<%` escaped for psycopg2
    _, sql, params = store.calls[1]
    assert "GREATEST(word_similarity(%s, text), word_similarity(%s, title))" in sql
    assert "%s <%% text" in sql
    assert "ORDER BY relevance DESC" in sql
    assert params == [
        "paryer", "paryer",              # relevance
        "%paryer%", "paryer",            # text column match
        "%paryer%", "paryer",            # title column match
        "en",                            # language
        5, 0,                            # window
    ]
    assert result.pagination.total == 1


@pytest.mark.asyncio
async def test_normalized_trigram_strategy_averages_columns(config, fake_store_factory, make_rows):
    store = fake_store_factory({"normalized_trigram": make_rows(1, 2)})
    request = SearchRequest(query="some longer query", language="en")

    result = await NormalizedTrigramStrategy(store, config).search("some longer query", request)

    assert store.kinds() == ["set_threshold", "normalized_trigram"]
    assert store.calls[0][2] == ["0.4"]
    sql = store.calls[1][1]
    assert "(word_similarity(%s, text) + word_similarity(%s, title)) / 2" in sql
    assert "WITH search_results AS" in sql
    assert result.pagination.total == 2


@pytest.mark.asyncio
async def test_fts_strategy_builds_vector_on_the_fly(config, fake_store_factory, make_rows):
    store = fake_store_factory({"fts": make_rows(3)})
    request = SearchRequest(query="molitva", language="ru", filters={"grade": "sahih"})

    await FullTextStrategy(store, config).search("molitva", request)

    _, sql, params = store.calls[0]
    assert "websearch_to_tsquery('russian', %s)" in sql
    assert "to_tsvector('russian', coalesce(text, '')) || to_tsvector('russian', coalesce(title, ''))" in sql
    assert "ts_rank_cd(" in sql
    assert "AND grade = %s AND language_code = %s" in sql
    assert params == ["molitva", "molitva", "sahih", "ru", 20, 0]


@pytest.mark.asyncio
async def test_fts_strategy_uses_precomputed_column(fake_store_factory):
    config = EngineConfig(table_name="translations", search_columns=["text"], fts_column="search_tsv")
    store = fake_store_factory()

    await FullTextStrategy(store, config).search("prayer", SearchRequest(query="prayer"))

    sql = store.calls[0][1]
    assert "(search_tsv) @@ websearch_to_tsquery('english', %s)" in sql
    assert "to_tsvector" not in sql


def test_text_search_config_mapping():
    assert text_search_config("en") == "english"
    assert text_search_config("RU") == "russian"
    assert text_search_config("english") == "english"
    assert text_search_config("xx") == "simple"
    assert text_search_config("") == "simple"


@pytest.mark.asyncio
async def test_vector_strategy_orders_by_distance(config, fake_store_factory, make_rows):
    provider = MagicMock()
    provider.generate_embedding = AsyncMock(return_value=[0.1, 0.2, 0.3])
    vector_config = config.model_copy(update={"embedding_provider": provider})
    store = fake_store_factory({"vector": make_rows(9)})

    result = await VectorStrategy(store, vector_config).search("prayer", SearchRequest(query="prayer", language="en"))

    provider.generate_embedding.assert_awaited_once_with("prayer")
    _, sql, params = store.calls[0]
    assert "(1 - (embedding <=> %s::vector)) AS relevance" in sql
    assert "ORDER BY embedding <=> %s::vector" in sql
    assert params == ["[0.1,0.2,0.3]", "en", "[0.1,0.2,0.3]", 20, 0]
    assert result.pagination.total == 1


@pytest.mark.asyncio
async def test_vector_strategy_requires_provider(config, fake_store_factory):
    store = fake_store_factory()
    with pytest.raises(ConfigurationError):
        await VectorStrategy(store, config).search("prayer", SearchRequest(query="prayer"))
    assert store.calls == []


@pytest.mark.asyncio
async def test_strategy_honors_cancellation(config, fake_store_factory, make_rows):
    store = fake_store_factory({"lite": make_rows(1)}, delays={"lite": 5})
    token = CancellationToken()
    request = SearchRequest(query="prayer", cancellation=token)

    asyncio.get_running_loop().call_later(0.01, token.cancel)

    with pytest.raises(SearchCancelled):
        await LiteStrategy(store, config).search("prayer", request)


def test_invalid_identifiers_rejected():
    with pytest.raises(ValueError):
        EngineConfig(table_name="translations; DROP TABLE x", search_columns=["text"])
    with pytest.raises(ValueError):
        EngineConfig(table_name="translations", search_columns=[])
    with pytest.raises(ValueError):
        SearchRequest(query="prayer", filters={"grade = 1 OR 1": "x"})
