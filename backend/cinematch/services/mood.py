"""
Mood search: a fixed mood label mapped onto a genre discovery query.
Results keep catalog order; there is no per-entry score.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from cinematch.core import metrics
from cinematch.core.errors import InsufficientInput, SearchFailed, UpstreamUnavailable
from cinematch.models import CatalogEntry
from cinematch.services.rate_limit import IntervalScheduler, Sleep, with_catalog_retry
from cinematch.services.taxonomy import (
    ACTION, ADVENTURE, ANIMATION, COMEDY, CRIME, DOCUMENTARY,
    DRAMA, FAMILY, HORROR, ROMANCE, THRILLER,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_VOTES = 20
MAX_RESULTS = 20


@dataclass(frozen=True)
class MoodProfile:
    genres: tuple
    sort_by: str = "popularity.desc"
    min_votes: int = DEFAULT_MIN_VOTES

    def filters(self) -> Dict[str, object]:
        return {
            "with_genres": ",".join(str(g) for g in self.genres),
            "sort_by": self.sort_by,
            "vote_count.gte": self.min_votes,
            "language": "en-US",
        }


MOOD_CONFIG: Dict[str, MoodProfile] = {
    "scary": MoodProfile((HORROR, THRILLER)),
    "nostalgic": MoodProfile((DRAMA, FAMILY), "vote_average.desc", 100),
    "relaxed": MoodProfile((COMEDY, ROMANCE, FAMILY)),
    "excited": MoodProfile((ACTION, ADVENTURE, THRILLER)),
    "happy": MoodProfile((COMEDY, ANIMATION, FAMILY)),
    "sad": MoodProfile((DRAMA, ROMANCE), "vote_average.desc", 50),
    "angry": MoodProfile((ACTION, CRIME, THRILLER)),
    "inspired": MoodProfile((DOCUMENTARY, DRAMA), "vote_average.desc", 50),
}


class MoodSearchService:
    def __init__(self, catalog, scheduler: Optional[IntervalScheduler] = None, sleep: Sleep = asyncio.sleep):
        self.catalog = catalog
        self.scheduler = scheduler or IntervalScheduler()
        self.sleep = sleep

    async def search(self, mood: Optional[str], media_type: str = "movie") -> List[CatalogEntry]:
        if not mood or not mood.strip():
            raise InsufficientInput("Mood parameter required")
        profile = MOOD_CONFIG.get(mood.strip().lower())
        if profile is None:
            raise InsufficientInput(f"Invalid mood: {mood}")

        await self.scheduler.wait()
        try:
            raw = await with_catalog_retry(self.catalog.discover, media_type, profile.filters(), sleep=self.sleep)
        except UpstreamUnavailable as e:
            raise SearchFailed(f"Mood search failed for '{mood}': {e}", service="tmdb_api") from e

        entries = [CatalogEntry.from_tmdb(r, media_type) for r in raw[:MAX_RESULTS] if r.get("id") is not None]
        await metrics.increment("mood_search.requests")
        logger.info(f"Mood search '{mood}' ({media_type}): {len(entries)} results")
        return entries
