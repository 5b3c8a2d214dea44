"""
Embedding-based description search.

Builds a pool from two discovery queries plus a keyword title search, then
ranks each candidate by cosine similarity between the description embedding
and an embedding of the candidate's composed profile (title, genres,
keywords, synopsis). Candidates are processed in small concurrent groups with
a pause between groups.
"""
import asyncio
import logging
import time
from typing import Dict, List, Optional, Sequence

import numpy as np

from cinematch.core import metrics
from cinematch.core.errors import InsufficientInput, SearchFailed, UpstreamUnavailable
from cinematch.core.providers import ProviderRegistry
from cinematch.models import CatalogEntry, ScoredCandidate
from cinematch.services.rate_limit import IntervalScheduler, Sleep, with_catalog_retry
from cinematch.services.taxonomy import extract_keywords

logger = logging.getLogger(__name__)

GROUP_SIZE = 3
GROUP_PAUSE = 0.5
MAX_CANDIDATES = 20
MIN_VOTE_COUNT = 10
MIN_QUERY_LENGTH = 3
QUERY_KEYWORDS = 5


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        return 0.0
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def compose_profile(entry: CatalogEntry) -> str:
    """Descriptive text embedded for a candidate."""
    parts = [f"Title: {entry.title}"]
    if entry.genre_names:
        parts.append(f"Genres: {', '.join(entry.genre_names)}")
    if entry.keywords:
        parts.append(f"Themes: {', '.join(sorted(entry.keywords))}")
    if entry.overview:
        parts.append(f"Story: {entry.overview}")
    return "\n".join(parts)


class SemanticVibeEngine:
    def __init__(
        self,
        catalog,
        providers: ProviderRegistry,
        scheduler: Optional[IntervalScheduler] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.catalog = catalog
        self.providers = providers
        self.scheduler = scheduler or IntervalScheduler()
        self.sleep = sleep

    async def _pool(self, name: str, func, *args) -> Optional[List[Dict]]:
        await self.scheduler.wait()
        try:
            return await with_catalog_retry(func, *args, sleep=self.sleep)
        except UpstreamUnavailable as e:
            logger.warning(f"Semantic pool '{name}' failed: {e}")
            return None

    async def _candidate_pool(self, description: str, media_type: str) -> List[Dict]:
        pools = [
            ("popular", self.catalog.discover, (media_type, {"sort_by": "popularity.desc", "vote_count.gte": 50})),
            ("top_rated", self.catalog.discover, (media_type, {"sort_by": "vote_average.desc", "vote_count.gte": 100})),
        ]
        query = " ".join(extract_keywords(description)[:QUERY_KEYWORDS])
        if len(query) > MIN_QUERY_LENGTH:
            # Title hits go first so they survive the cap
            pools.insert(0, ("keyword_search", self.catalog.search_by_title, (query, media_type)))

        raw: List[Dict] = []
        failed = 0
        for name, func, args in pools:
            results = await self._pool(name, func, *args)
            if results is None:
                failed += 1
            else:
                raw.extend(results)
        if failed == len(pools):
            raise SearchFailed("All candidate pools failed for semantic search", service="tmdb_api")

        seen = set()
        unique = []
        for item in raw:
            item_id = item.get("id")
            if item_id is None or item_id in seen:
                continue
            if (item.get("vote_count") or 0) <= MIN_VOTE_COUNT or not item.get("overview"):
                continue
            seen.add(item_id)
            unique.append(item)
        return unique[:MAX_CANDIDATES]

    async def _score(self, item: Dict, media_type: str, query_vec: List[float]) -> Optional[ScoredCandidate]:
        try:
            details = await with_catalog_retry(
                self.catalog.get_details, item["id"], media_type, append="keywords", sleep=self.sleep
            )
            entry = CatalogEntry.from_tmdb(details, media_type)
            vector = await self.providers.embed(compose_profile(entry))
        except UpstreamUnavailable as e:
            logger.debug(f"Skipping candidate {item.get('id')}: {e}")
            return None
        return ScoredCandidate(entry=entry, match_score=cosine_similarity(query_vec, vector))

    async def search(self, description: str, limit: int = 20, media_type: str = "movie") -> List[ScoredCandidate]:
        """Raises ProviderNotConfigured when no embedding provider is available."""
        if not description or not description.strip():
            raise InsufficientInput("Description is required")
        started = time.monotonic()

        query_vec = await self.providers.embed(description)
        candidates = await self._candidate_pool(description, media_type)
        logger.info(f"Semantic search: processing {len(candidates)} candidates")

        scored: List[ScoredCandidate] = []
        for start in range(0, len(candidates), GROUP_SIZE):
            group = candidates[start:start + GROUP_SIZE]
            await self.scheduler.wait()
            results = await asyncio.gather(*(self._score(item, media_type, query_vec) for item in group))
            scored.extend(r for r in results if r is not None)
            if start + GROUP_SIZE < len(candidates):
                await self.sleep(GROUP_PAUSE)

        scored.sort(key=lambda c: c.match_score, reverse=True)
        await metrics.increment("semantic_search.requests")
        await metrics.timing("semantic_search", (time.monotonic() - started) * 1000)
        logger.info(f"Semantic search found {len(scored)} matches")
        return scored[:limit]
