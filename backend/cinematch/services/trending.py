"""
trending.py

Regional trending rankers.

Movies ("talk of the town"): daily trending + upcoming + now playing, scored so
that upcoming releases outrank fresh ones, fresh ones outrank old titles that
are still viral, and every other old title is dropped.

TV: origin-country discovery (with trending/popular fallbacks) scored by a
blend of recency, popularity and vote-weighted rating.
"""
import asyncio
import logging
import math
from datetime import date
from typing import Dict, List, Optional, Sequence

from cinematch.core import metrics
from cinematch.core.config import settings
from cinematch.core.errors import SearchFailed, UpstreamUnavailable
from cinematch.models import CatalogEntry, TrendingCandidate
from cinematch.services.rate_limit import IntervalScheduler, Sleep, with_catalog_retry
from cinematch.utils.timezone import days_between, utc_today

logger = logging.getLogger(__name__)

MAX_RESULTS = 20

FRESH_WINDOW_DAYS = 90
HIGH_VOTE_COUNT = 1000
HIGH_VOTE_BONUS = 50

TV_RECENCY_DAYS = 1095
TV_LOOKBACK_YEARS = 3
TV_MIN_VOTES = 3

STATUS_UPCOMING = "upcoming"
STATUS_FRESH = "fresh"
STATUS_VIRAL_OLD = "viral_old"
STATUS_DEAD = "dead"
STATUS_TRENDING = "trending"

SOURCE_TRENDING = "trending"

# Plain discovery for regions without a curated policy
MOVIE_REGION_CONFIG: Dict[str, Dict[str, str]] = {
    "US": {"with_original_language": "en", "region": "US"},
    "GB": {"with_original_language": "en", "region": "GB"},
    "JP": {"with_original_language": "ja", "region": "JP"},
    "KR": {"with_original_language": "ko", "region": "KR"},
}
TV_REGION_CONFIG: Dict[str, Dict[str, str]] = {
    "US": {"with_origin_country": "US", "with_original_language": "en"},
    "GB": {"with_origin_country": "GB", "with_original_language": "en"},
    "JP": {"with_origin_country": "JP", "with_original_language": "ja"},
    "KR": {"with_origin_country": "KR", "with_original_language": "ko"},
}
MOVIE_RELEASE_FLOOR = "2020-01-01"
TV_AIR_FLOOR = "2018-01-01"


def score_movie(entry: CatalogEntry, today: date) -> TrendingCandidate:
    """Talk-of-the-town score. A missing release date counts as a long-past release."""
    days_diff = days_between(entry.release_date, today)
    popularity = entry.popularity or 0.0

    if days_diff is not None and days_diff > 0:
        score, status = 1000 + popularity / 10, STATUS_UPCOMING
    elif days_diff is not None and days_diff > -FRESH_WINDOW_DAYS:
        score, status = 500 + popularity / 5 + 100 / (abs(days_diff) + 1), STATUS_FRESH
    elif entry.source == SOURCE_TRENDING:
        score, status = 100 + popularity / 20, STATUS_VIRAL_OLD
    else:
        score, status = 0.0, STATUS_DEAD

    if entry.vote_count > HIGH_VOTE_COUNT:
        score += HIGH_VOTE_BONUS
    return TrendingCandidate(entry=entry, score=score, status=status, days_diff=days_diff)


def score_tv(entry: CatalogEntry, today: date) -> TrendingCandidate:
    days_since_air = days_between(today, entry.release_date)
    if days_since_air is None:
        recency = 0.0
    else:
        recency = max(0.0, 1 - days_since_air / TV_RECENCY_DAYS)
    popularity_norm = (entry.popularity or 0.0) / 100
    rating_quality = (entry.rating or 0.0) * math.log10(entry.vote_count + 1)
    score = 30 * recency + 40 * popularity_norm + 30 * rating_quality
    return TrendingCandidate(entry=entry, score=score, status=STATUS_TRENDING, days_diff=days_since_air)


def rank_movies(entries: Sequence[CatalogEntry], today: date, limit: int = MAX_RESULTS) -> List[TrendingCandidate]:
    scored = [score_movie(e, today) for e in entries]
    alive = [c for c in scored if c.status != STATUS_DEAD]
    alive.sort(key=lambda c: c.score, reverse=True)
    return alive[:limit]


def rank_tv(entries: Sequence[CatalogEntry], today: date, limit: int = MAX_RESULTS) -> List[TrendingCandidate]:
    scored = [score_tv(e, today) for e in entries]
    scored.sort(key=lambda c: c.score, reverse=True)
    return scored[:limit]


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year - years, day=28)


class TrendingRanker:
    def __init__(
        self,
        catalog,
        scheduler: Optional[IntervalScheduler] = None,
        sleep: Sleep = asyncio.sleep,
        languages: Optional[Sequence[str]] = None,
    ):
        self.catalog = catalog
        self.scheduler = scheduler or IntervalScheduler()
        self.sleep = sleep
        self.languages = set(languages if languages is not None else settings.trending_language_codes)

    async def _fetch(self, name: str, func, *args) -> Optional[List[Dict]]:
        await self.scheduler.wait()
        try:
            return await with_catalog_retry(func, *args, sleep=self.sleep)
        except UpstreamUnavailable as e:
            logger.warning(f"Trending pool '{name}' failed: {e}")
            return None

    def _in_language_set(self, entry: CatalogEntry) -> bool:
        return entry.original_language in self.languages

    async def talk_of_the_town(self, region: Optional[str] = None, today: Optional[date] = None) -> List[TrendingCandidate]:
        region = (region or settings.trending_region).upper()
        today = today or utc_today()
        if region != settings.trending_region.upper():
            return await self._regional_movies(region)

        logger.info(f"Fetching '{region}' talk of the town data")
        pools = [
            (SOURCE_TRENDING, self.catalog.trending, ("movie", "day")),
            ("upcoming", self.catalog.movie_list, ("upcoming", region)),
            ("now_playing", self.catalog.movie_list, ("now_playing", region)),
        ]
        entries: Dict[int, CatalogEntry] = {}
        failed = 0
        for source, func, args in pools:
            results = await self._fetch(source, func, *args)
            if results is None:
                failed += 1
                continue
            for item in results:
                if item.get("id") is not None and item["id"] not in entries:
                    entries[item["id"]] = CatalogEntry.from_tmdb(item, "movie", source=source)

        if failed == len(pools):
            results = await self._fetch("popular", self.catalog.movie_list, "popular", region)
            if results is None:
                await metrics.increment("trending.failed")
                raise SearchFailed("Every trending movie pool failed", service="tmdb_api")
            for item in results:
                if item.get("id") is not None:
                    entries.setdefault(item["id"], CatalogEntry.from_tmdb(item, "movie", source="popular"))

        regional = [e for e in entries.values() if self._in_language_set(e)]
        logger.info(f"Fetched {len(entries)} unique movies, {len(regional)} in regional languages")
        ranked = rank_movies(regional, today)
        await metrics.increment("trending.movies.requests")
        return ranked

    async def trending_tv(self, region: Optional[str] = None, today: Optional[date] = None) -> List[TrendingCandidate]:
        region = (region or settings.trending_region).upper()
        today = today or utc_today()
        if region != settings.trending_region.upper():
            return await self._regional_tv(region)

        filters = {
            "with_origin_country": region,
            "sort_by": "popularity.desc",
            "vote_count.gte": TV_MIN_VOTES,
            "first_air_date.gte": _years_before(today, TV_LOOKBACK_YEARS).isoformat(),
        }
        shows = await self._fetch("discover", self.catalog.discover, "tv", filters)
        if shows is None:
            shows = await self._fetch("trending_week", self.catalog.trending, "tv", "week")
            if shows is None:
                shows = await self._fetch("popular", self.catalog.tv_popular)
                if shows is None:
                    await metrics.increment("trending.failed")
                    raise SearchFailed("Every trending TV pool failed", service="tmdb_api")
            shows = [s for s in shows if region in (s.get("origin_country") or [])]

        entries = [CatalogEntry.from_tmdb(s, "series") for s in shows if s.get("id") is not None]
        regional = [e for e in entries if self._in_language_set(e)]
        logger.info(f"Fetched {len(entries)} TV shows, {len(regional)} in regional languages")
        ranked = rank_tv(regional, today)
        await metrics.increment("trending.tv.requests")
        return ranked

    async def _regional_movies(self, region: str) -> List[TrendingCandidate]:
        config = MOVIE_REGION_CONFIG.get(region, MOVIE_REGION_CONFIG["US"])
        filters = {
            **config,
            "sort_by": "popularity.desc",
            "vote_count.gte": 20,
            "primary_release_date.gte": MOVIE_RELEASE_FLOOR,
        }
        results = await self._fetch(f"discover_{region}", self.catalog.discover, "movie", filters)
        if results is None:
            raise SearchFailed(f"Trending movies unavailable for region {region}", service="tmdb_api")
        return [
            TrendingCandidate(entry=CatalogEntry.from_tmdb(r, "movie"), score=r.get("popularity") or 0.0, status=STATUS_TRENDING)
            for r in results[:MAX_RESULTS]
        ]

    async def _regional_tv(self, region: str) -> List[TrendingCandidate]:
        config = TV_REGION_CONFIG.get(region, TV_REGION_CONFIG["US"])
        filters = {
            **config,
            "sort_by": "popularity.desc",
            "watch_region": region,
            "vote_count.gte": 10,
            "first_air_date.gte": TV_AIR_FLOOR,
        }
        results = await self._fetch(f"discover_tv_{region}", self.catalog.discover, "tv", filters)
        if results is None:
            raise SearchFailed(f"Trending TV unavailable for region {region}", service="tmdb_api")
        return [
            TrendingCandidate(entry=CatalogEntry.from_tmdb(r, "series"), score=r.get("popularity") or 0.0, status=STATUS_TRENDING)
            for r in results[:MAX_RESULTS]
        ]
