"""
movies.py - Title search with similar titles, and mood search
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Query, Request

from cinematch.api import deps
from cinematch.core.errors import CineMatchError
from cinematch.services.mood import MoodSearchService
from cinematch.services.similarity import SimilarTitlesService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/search")
async def search_similar(
    request: Request,
    query: str = Query(..., min_length=1, description="Title to search for"),
    type: str = Query("movie", description="movie, tv, series or anime"),
) -> Dict[str, Any]:
    """Titles most similar to the best match for `query`, scored 0-1."""
    service = SimilarTitlesService(deps.catalog(request), deps.scheduler(request), deps.sleep(request))
    try:
        results = await service.find_similar(query, type)
    except CineMatchError as e:
        raise deps.to_http_error(e)
    return {"results": [r.to_dict() for r in results], "count": len(results), "scoreScale": "weighted"}


@router.get("/mood-search")
async def mood_search(
    request: Request,
    mood: str = Query(None, description="scary, nostalgic, relaxed, excited, happy, sad, angry or inspired"),
    type: str = Query("movie"),
):
    service = MoodSearchService(deps.catalog(request), deps.scheduler(request), deps.sleep(request))
    try:
        entries = await service.search(mood, type)
    except CineMatchError as e:
        raise deps.to_http_error(e)
    return [e.to_dict() for e in entries]
