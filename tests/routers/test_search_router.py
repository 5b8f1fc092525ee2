from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from trigram_search.config.settings import settings
from trigram_search.main import app
from trigram_search.services.errors import ConfigurationError
from trigram_search.services.search_service import TrigramSearchEngine, get_search_engine


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_search_endpoint_returns_camel_case_page(client, engine_config, fake_store_factory, make_rows):
    store = fake_store_factory({"fts": make_rows(1, 2, total=12)})
    app.dependency_overrides[get_search_engine] = lambda: TrigramSearchEngine(store, engine_config)

    response = client.get("/search", params={"q": "Prayer", "limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert [row["id"] for row in body["data"]] == [1, 2]
    assert body["pagination"] == {
        "page": 1, "limit": 2, "total": 12, "totalPages": 6, "hasNext": True, "hasPrev": False,
    }


def test_search_endpoint_empty_query_returns_empty_page(client, engine_config, fake_store_factory):
    store = fake_store_factory()
    app.dependency_overrides[get_search_engine] = lambda: TrigramSearchEngine(store, engine_config)

    response = client.get("/search", params={"q": "a"})

    assert response.status_code == 200
    assert response.json()["pagination"]["total"] == 0
    assert store.calls == []


def test_search_endpoint_filters(client, engine_config, fake_store_factory, monkeypatch):
    store = fake_store_factory()
    app.dependency_overrides[get_search_engine] = lambda: TrigramSearchEngine(store, engine_config)
    monkeypatch.setattr(settings.ENGINE, "FILTER_COLUMNS", ["grade"])

    # 1. Unknown filter columns are rejected
    response = client.get("/search", params={"q": "prayer", "author": "x"})
    assert response.status_code == 400

    # 2. Allowed filters reach the generated SQL as parameters
    response = client.get("/search", params={"q": "prayer", "grade": "sahih"})
    assert response.status_code == 200
    fts_params = next(params for kind, _, params in store.calls if kind == "fts")
    assert "sahih" in fts_params


def test_search_endpoint_error_mapping(client):
    engine = MagicMock()
    app.dependency_overrides[get_search_engine] = lambda: engine

    engine.search = AsyncMock(side_effect=ConfigurationError("no embedding provider"))
    assert client.get("/search", params={"q": "prayer"}).status_code == 503

    engine.search = AsyncMock(side_effect=RuntimeError("db down"))
    assert client.get("/search", params={"q": "prayer"}).status_code == 500


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["tier"] == settings.ENGINE.TIER.upper()
