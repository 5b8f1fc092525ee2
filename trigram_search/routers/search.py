# trigram_search/routers/search.py
# Responsibility: Handles search API endpoints. Validates input and formats output.

import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from trigram_search.config.settings import settings
from trigram_search.services.errors import ConfigurationError
from trigram_search.services.schemas import SearchResult
from trigram_search.services.search_service import TrigramSearchEngine, get_search_engine

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/search",
    tags=["Search"]
)

# Query parameters that are not filters
RESERVED_PARAMS = {"q", "language", "page", "limit"}


def extract_filters(request: Request) -> Dict[str, str]:
    """
    Collects equality filters from the remaining query parameters.
    Only columns listed in settings.ENGINE.FILTER_COLUMNS are accepted.
    """
    filters = {}
    for key, value in request.query_params.items():
        if key in RESERVED_PARAMS:
            continue
        if key not in settings.ENGINE.FILTER_COLUMNS:
            raise HTTPException(status_code=400, detail=f"Unsupported filter: {key}")
        filters[key] = value
    return filters


# --- Endpoints ---
@router.get("", response_model=SearchResult, response_model_by_alias=True)
async def search_endpoint(
    q: str = Query("", description="Search query string"),
    language: str = Query("en", description="Language code, e.g. 'en' or 'ru'"),
    page: int = Query(1, ge=1, description="Page number (1-based)"),
    limit: int = Query(settings.ENGINE.DEFAULT_LIMIT, ge=1, le=settings.ENGINE.MAX_LIMIT, description="Page size"),
    filters: Dict[str, str] = Depends(extract_filters),
    engine: TrigramSearchEngine = Depends(get_search_engine)
):
    """
    Search API endpoint.
    Receives query parameters, calls the engine, and returns one page of hits.
    Invalid queries (empty, one character, no letters) return an empty page.
    """
    try:
        return await engine.search(query=q, language=language, page=page, limit=limit, filters=filters)
    except ConfigurationError as e:
        logger.error("Search engine misconfigured: %s", e)
        raise HTTPException(status_code=503, detail="Search is not configured for this tier")
    except Exception:
        logger.exception("Search failed for query %r", q)
        raise HTTPException(status_code=500, detail="Internal server error during search")
