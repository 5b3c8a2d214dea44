"""
vibe_search.py

Keyword/taxonomy driven description search (no AI required).

Three candidate pools are fetched sequentially through the shared scheduler:
1. genre discovery for the mapped genre ids
2. free-text search for the top extracted keywords
3. top-rated fallback when fewer than 10 unique entries were collected
Pools that fail after retries are skipped; if every attempted pool fails the
search fails.
"""
import asyncio
import logging
import time
from datetime import date
from typing import Dict, List, Optional

from cinematch.core import metrics
from cinematch.core.errors import InsufficientInput, SearchFailed, UpstreamUnavailable
from cinematch.models import CatalogEntry, ScoredCandidate
from cinematch.services.rate_limit import IntervalScheduler, Sleep, with_catalog_retry
from cinematch.services.taxonomy import TaxonomyMatch, map_to_taxonomy

logger = logging.getLogger(__name__)

MAX_DISCOVERY_GENRES = 3
MAX_QUERY_KEYWORDS = 5
DISCOVERY_MIN_VOTES = 50
FALLBACK_MIN_VOTES = 1000
FALLBACK_THRESHOLD = 10

# Additive score components
KEYWORD_HIT = 2
GENRE_HIT = 3
POPULARITY_DIVISOR = 100
RATING_DIVISOR = 2


def score_candidate(entry: CatalogEntry, match: TaxonomyMatch) -> float:
    """Unnormalized relevance of one candidate to the mapped description."""
    text = f"{entry.title} {entry.overview}".lower()
    score = 0.0
    for keyword in match.weighted_keywords:
        if keyword in text:
            score += KEYWORD_HIT
    score += GENRE_HIT * len(match.genre_set & entry.genre_ids)
    score += (entry.popularity or 0) / POPULARITY_DIVISOR
    score += (entry.rating or 0) / RATING_DIVISOR
    return score


class TextVibeEngine:
    """Rank catalog entries against a free-text description."""

    def __init__(self, catalog, scheduler: Optional[IntervalScheduler] = None, sleep: Sleep = asyncio.sleep):
        self.catalog = catalog
        self.scheduler = scheduler or IntervalScheduler()
        self.sleep = sleep

    async def _pool(self, name: str, func, *args, **kwargs) -> Optional[List[Dict]]:
        """Fetch one pool; None if it failed after retries."""
        await self.scheduler.wait()
        try:
            results = await with_catalog_retry(func, *args, sleep=self.sleep, **kwargs)
        except UpstreamUnavailable as e:
            logger.warning(f"Vibe search pool '{name}' failed: {e}")
            return None
        logger.debug(f"Vibe search pool '{name}' returned {len(results)} results")
        return results

    async def search_by_description(
        self,
        description: str,
        limit: int = 20,
        media_type: str = "movie",
        today: Optional[date] = None,
    ) -> List[ScoredCandidate]:
        if not description or not description.strip():
            raise InsufficientInput("Description is required")

        started = time.monotonic()
        match = map_to_taxonomy(description, today)
        date_params = match.date_constraint.to_params(media_type) if match.date_constraint else {}
        logger.info(
            f"Keyword-based search: '{description}' -> {len(match.weighted_keywords)} keywords, "
            f"{len(match.genre_ids)} genres"
        )

        raw: List[Dict] = []
        attempted = 0
        failed = 0

        if match.genre_ids:
            attempted += 1
            filters = {
                "with_genres": ",".join(str(g) for g in match.genre_ids[:MAX_DISCOVERY_GENRES]),
                "sort_by": "popularity.desc",
                "vote_count.gte": DISCOVERY_MIN_VOTES,
                **date_params,
            }
            results = await self._pool("genre_discovery", self.catalog.discover, media_type, filters)
            if results is None:
                failed += 1
            else:
                raw.extend(results)

        if match.weighted_keywords:
            attempted += 1
            query = " ".join(match.weighted_keywords[:MAX_QUERY_KEYWORDS])
            results = await self._pool("keyword_search", self.catalog.search_by_title, query, media_type)
            if results is None:
                failed += 1
            else:
                raw.extend(results)

        if len({r.get("id") for r in raw}) < FALLBACK_THRESHOLD:
            attempted += 1
            filters = {
                "sort_by": "vote_average.desc",
                "vote_count.gte": FALLBACK_MIN_VOTES,
                **date_params,
            }
            results = await self._pool("top_rated_fallback", self.catalog.discover, media_type, filters)
            if results is None:
                failed += 1
            else:
                raw.extend(results)

        if attempted and failed == attempted:
            await metrics.increment("vibe_search.failed")
            raise SearchFailed("All candidate pools failed for description search", service="tmdb_api")

        scored = []
        for candidate in self._dedupe(raw, media_type):
            scored.append(ScoredCandidate(entry=candidate, match_score=score_candidate(candidate, match)))
        scored.sort(key=lambda c: c.match_score, reverse=True)
        results = scored[:limit]

        await metrics.increment("vibe_search.requests")
        await metrics.timing("vibe_search", (time.monotonic() - started) * 1000)
        logger.info(f"Found {len(results)} keyword-matched results")
        return results

    @staticmethod
    def _dedupe(raw: List[Dict], media_type: str) -> List[CatalogEntry]:
        """First occurrence per id wins; entries without a synopsis are dropped."""
        seen = set()
        unique = []
        for item in raw:
            item_id = item.get("id")
            if item_id is None or item_id in seen or not item.get("overview"):
                continue
            seen.add(item_id)
            unique.append(CatalogEntry.from_tmdb(item, media_type))
        return unique
