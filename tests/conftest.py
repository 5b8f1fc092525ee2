"""Shared fixtures: an in-memory data store that answers by strategy."""

import asyncio

import pytest

from trigram_search.services.cancellation import run_cancellable
from trigram_search.services.db import DataStore
from trigram_search.services.schemas import EngineConfig


class FakeDataStore(DataStore):
    """
    Records every statement and answers it from `responses`, keyed by the
    kind of statement (see `classify`). A response may be a list of rows,
    a callable taking the params and returning rows, or an exception to raise.
    `delays` holds per-kind latencies in seconds; cancellation is honored
    while a delayed response is pending.
    """

    def __init__(self, responses=None, delays=None):
        self.responses = responses or {}
        self.delays = delays or {}
        self.calls = []
        self.transactions = 0

    @staticmethod
    def classify(statement: str) -> str:
        if "set_config" in statement:
            return "set_threshold"
        if "websearch_to_tsquery" in statement:
            return "fts"
        if "<=>" in statement:
            return "vector"
        if "word_similarity" in statement:
            return "normalized_trigram" if "WITH search_results" in statement else "fuzzy"
        return "lite"

    def kinds(self):
        return [kind for kind, _, _ in self.calls]

    async def _respond(self, kind, params):
        delay = self.delays.get(kind, 0)
        if delay:
            await asyncio.sleep(delay)
        response = self.responses.get(kind, [])
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(params)
        return [dict(row) for row in response]

    async def query(self, statement, params=None, cancellation=None):
        kind = self.classify(statement)
        self.calls.append((kind, statement, list(params or [])))
        return await run_cancellable(self._respond(kind, params), cancellation)

    async def execute(self, statement, params=None, cancellation=None):
        kind = self.classify(statement)
        self.calls.append((kind, statement, list(params or [])))
        await run_cancellable(self._respond(kind, params), cancellation)

    async def transaction(self, body, cancellation=None):
        self.transactions += 1
        return await body(self)


@pytest.fixture
def make_rows():
    """Builds rows the way the database returns them, total_count included."""

    def build(*ids, total=None):
        count = total if total is not None else len(ids)
        return [{"id": i, "text": f"row {i}", "total_count": count} for i in ids]

    return build


@pytest.fixture
def fake_store_factory():
    return FakeDataStore


@pytest.fixture
def engine_config():
    return EngineConfig(table_name="translations", search_columns=["text"], default_limit=10)
