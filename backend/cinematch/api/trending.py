"""
trending.py - Regional trending movies and TV
"""
from fastapi import APIRouter, Query, Request

from cinematch.api import deps
from cinematch.core.errors import CineMatchError
from cinematch.services.trending import TrendingRanker

router = APIRouter()


@router.get("/movies")
async def trending_movies(request: Request, region: str = Query(None, description="Region code, e.g. IN, US")):
    ranker = TrendingRanker(deps.catalog(request), deps.scheduler(request), deps.sleep(request))
    try:
        ranked = await ranker.talk_of_the_town(region)
    except CineMatchError as e:
        raise deps.to_http_error(e)
    return [c.to_dict() for c in ranked]


@router.get("/tv")
async def trending_tv(request: Request, region: str = Query(None)):
    ranker = TrendingRanker(deps.catalog(request), deps.scheduler(request), deps.sleep(request))
    try:
        ranked = await ranker.trending_tv(region)
    except CineMatchError as e:
        raise deps.to_http_error(e)
    return [c.to_dict() for c in ranked]
