# trigram_search/services/schemas.py
# Responsibility: Data model shared by the engine, its strategies and the API layer.

import math
import re
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from trigram_search.services.cancellation import CancellationToken

# Plain or schema-qualified SQL identifier, e.g. "text" or "public.translations"
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

FilterValue = Union[str, int, float, bool, None]


def validate_identifier(name: str) -> str:
    if not IDENTIFIER_PATTERN.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


class SearchTier(str, Enum):
    LITE = "LITE"            # plain ILIKE scan, no indexes required
    STANDARD = "STANDARD"    # hybrid: FTS raced against trigram search
    ADVANCED = "ADVANCED"    # normalized trigram relevance
    VECTOR = "VECTOR"        # semantic search via pgvector


class ValidationReason(str, Enum):
    EMPTY = "empty"
    TOO_SHORT = "too_short"
    NO_VALID_CHARS = "no_valid_chars"


class ValidationResult(BaseModel):
    valid: bool
    reason: Optional[ValidationReason] = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Pagination(_CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class SearchMetadata(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    # Original query when the hits were found for a layout-corrected one
    corrected_from: Optional[str] = None


class SearchResult(_CamelModel):
    """
    A page of search hits plus pagination info.

    `metadata` is only set when the engine annotated the result, e.g. after
    a keyboard-layout correction.
    """

    data: List[Dict[str, Any]] = Field(default_factory=list)
    pagination: Pagination
    metadata: Optional[SearchMetadata] = None

    @model_validator(mode="after")
    def _empty_total_means_no_data(self) -> "SearchResult":
        if self.pagination.total == 0 and self.data:
            raise ValueError("A result with total == 0 cannot carry data")
        return self

    @property
    def total(self) -> int:
        return self.pagination.total

    @classmethod
    def empty(cls, page: int = 1, limit: int = 20) -> "SearchResult":
        return cls(data=[], pagination=Pagination.build(page, limit, 0))

    @classmethod
    def from_rows(cls, rows: List[Dict[str, Any]], page: int, limit: int) -> "SearchResult":
        """
        Maps rows carrying a `total_count` window column into a result.
        The column itself is stripped from the returned records.
        """
        total = int(rows[0]["total_count"]) if rows else 0
        data = [{k: v for k, v in row.items() if k != "total_count"} for row in rows]
        if total == 0:
            data = []
        return cls(data=data, pagination=Pagination.build(page, limit, total))


class SearchRequest(BaseModel):
    """
    One search call. Immutable: fallbacks never rewrite the request, they
    pass a different normalized query alongside it.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    query: Optional[str] = ""
    language: str = "en"
    page: int = Field(1, ge=1)
    # None means the engine's configured default page size
    limit: Optional[int] = Field(None, gt=0)
    filters: Mapping[str, FilterValue] = Field(default_factory=dict, validate_default=True)
    cancellation: Optional[CancellationToken] = None

    @field_validator("filters")
    @classmethod
    def _filter_keys_are_identifiers(cls, value: Mapping[str, FilterValue]) -> Mapping[str, FilterValue]:
        for key in value:
            validate_identifier(key)
        return MappingProxyType(dict(value))

    def active_filters(self) -> Dict[str, FilterValue]:
        """Filters that constrain the query; None and "" values are ignored."""
        return {k: v for k, v in self.filters.items() if v is not None and v != ""}


class EngineConfig(BaseModel):
    """
    Immutable engine configuration, validated once at construction.

    Defaults: id_column="id", default_limit=20, tier=STANDARD,
    embedding_column="embedding", cache_prefix="ss". When default_ttl is
    None the cache provider's own default applies.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    table_name: str
    search_columns: Tuple[str, ...] = Field(..., min_length=1)
    language_column: Optional[str] = None
    id_column: str = "id"
    fts_column: Optional[str] = None
    embedding_column: str = "embedding"
    default_limit: int = Field(20, gt=0)
    tier: SearchTier = SearchTier.STANDARD
    # Typed as Any to keep this module free of collaborator imports;
    # EmbeddingProvider / CacheProvider instances are expected.
    embedding_provider: Optional[Any] = None
    cache_provider: Optional[Any] = None
    default_ttl: Optional[int] = Field(None, gt=0)
    cache_prefix: str = "ss"

    @field_validator("table_name", "id_column", "embedding_column")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        return validate_identifier(value)

    @field_validator("language_column", "fts_column")
    @classmethod
    def _check_optional_identifier(cls, value: Optional[str]) -> Optional[str]:
        return validate_identifier(value) if value is not None else None

    @field_validator("search_columns")
    @classmethod
    def _check_columns(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(validate_identifier(column) for column in value)
