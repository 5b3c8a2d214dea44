"""
similarity.py

Multi-factor similarity between two catalog entries and the search-time
"find similar" flow built on it.

Scoring weights:
- 25% genre overlap
- 25% keyword overlap
- 15% cast overlap
- 15% rating closeness
- 20% vibe similarity (emotional/tonal buckets from genres and keywords)
"""
import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from cinematch.core import metrics
from cinematch.core.errors import InsufficientInput, SearchFailed, UpstreamUnavailable
from cinematch.models import CatalogEntry, ScoredCandidate, tmdb_media_type
from cinematch.services.rate_limit import IntervalScheduler, Sleep, with_catalog_retry
from cinematch.services.tmdb_client import SEARCH_TIMEOUT

logger = logging.getLogger(__name__)

GENRE_WEIGHT = 0.25
KEYWORD_WEIGHT = 0.25
CAST_WEIGHT = 0.15
RATING_WEIGHT = 0.15
VIBE_WEIGHT = 0.20

DEFAULT_RATING = 6.0
PHRASES_PER_VIBE = 5
NEUTRAL_VIBE_SCORE = 0.5

MAX_CANDIDATES = 30
MAX_RESULTS = 20

VIBE_KEYWORDS: Dict[str, List[str]] = {
    "emotional": ["emotional", "heartfelt", "touching", "moving", "passionate"],
    "wholesome": ["wholesome", "feel-good", "uplifting", "inspiring", "heartwarming"],
    "dark": ["dark", "gloomy", "bleak", "noir", "sinister"],
    "energetic": ["fast-paced", "energetic", "intense", "dynamic", "thrilling"],
    "suspenseful": ["suspenseful", "tense", "thrilling", "suspense", "mystery"],
    "nostalgic": ["nostalgic", "retro", "vintage", "classic", "timeless"],
    "romantic": ["romantic", "romance", "love", "passionate", "intimate"],
    "violent": ["violent", "brutal", "gory", "action-packed", "combat"],
    "family_friendly": ["family-friendly", "wholesome", "kids", "children", "animated"],
    "epic": ["epic", "grand", "sweeping", "monumental", "legendary"],
    "calm": ["calm", "peaceful", "serene", "meditative", "quiet"],
    "funny": ["funny", "comedy", "humorous", "comedic", "witty"],
    "sad": ["sad", "tragic", "melancholic", "sorrowful", "depressing"],
    "psychological": ["psychological", "mind-bending", "introspective", "cerebral", "philosophical"],
}

# Title search runs across these language/region pairs to reach regional catalogs
GLOBAL_SEARCH_CONFIGS: List[Tuple[str, str]] = [
    ("en", "US"),
    ("hi", "IN"),
    ("ta", "IN"),
    ("te", "IN"),
    ("kn", "IN"),
    ("ml", "IN"),
    ("ko", "KR"),
    ("ja", "JP"),
    ("zh", "CN"),
]
GLOBAL_SEARCH_INTERVAL = 0.1


def extract_vibes(entry: CatalogEntry) -> Dict[str, int]:
    """Count, per vibe label, the trigger phrases found in the entry's keywords or genre names."""
    terms = list(entry.keywords) + list(entry.genre_names)
    vibes = {}
    for vibe, phrases in VIBE_KEYWORDS.items():
        vibes[vibe] = sum(1 for phrase in phrases if any(phrase in term for term in terms))
    return vibes


def vibe_similarity(vibes_a: Dict[str, int], vibes_b: Dict[str, int]) -> float:
    total_diff = 0
    count = 0
    for vibe, value in vibes_a.items():
        if vibe in vibes_b:
            total_diff += abs(value - vibes_b[vibe])
            count += 1
    if count == 0:
        return NEUTRAL_VIBE_SCORE
    return max(0.0, min(1.0, 1 - total_diff / (count * PHRASES_PER_VIBE)))


def overlap_ratio(a: Iterable, b: Iterable) -> float:
    """|A ∩ B| / max(|A|, |B|); two empty sets overlap fully."""
    set_a, set_b = set(a), set(b)
    if not set_a and not set_b:
        return 1.0
    return len(set_a & set_b) / max(len(set_a), len(set_b))


def similarity_score(
    primary: CatalogEntry,
    candidate: CatalogEntry,
    primary_vibes: Optional[Dict[str, int]] = None,
    candidate_vibes: Optional[Dict[str, int]] = None,
) -> float:
    """Weighted similarity in [0, 1]."""
    if primary_vibes is None:
        primary_vibes = extract_vibes(primary)
    if candidate_vibes is None:
        candidate_vibes = extract_vibes(candidate)

    genre_score = overlap_ratio(primary.genre_ids, candidate.genre_ids)
    keyword_score = overlap_ratio(primary.keywords, candidate.keywords)
    cast_score = overlap_ratio(primary.cast_ids, candidate.cast_ids)
    rating_a = primary.rating or DEFAULT_RATING
    rating_b = candidate.rating or DEFAULT_RATING
    rating_score = 1 - abs(rating_a - rating_b) / 10
    vibe_score = vibe_similarity(primary_vibes, candidate_vibes)

    return (
        genre_score * GENRE_WEIGHT
        + keyword_score * KEYWORD_WEIGHT
        + cast_score * CAST_WEIGHT
        + rating_score * RATING_WEIGHT
        + vibe_score * VIBE_WEIGHT
    )


class SimilarTitlesService:
    """Search by title, then rank the catalog's similar + recommended titles against the top hit."""

    def __init__(self, catalog, scheduler: Optional[IntervalScheduler] = None, sleep: Sleep = asyncio.sleep):
        self.catalog = catalog
        self.scheduler = scheduler or IntervalScheduler()
        self.search_scheduler = IntervalScheduler(GLOBAL_SEARCH_INTERVAL, sleep=sleep)
        self.sleep = sleep

    async def global_search(self, query: str, media_type: str = "movie") -> List[Dict]:
        """Title search across regional catalogs, deduplicated by id in config order."""
        results: List[Dict] = []
        seen = set()
        failures = 0
        for language, region in GLOBAL_SEARCH_CONFIGS:
            await self.search_scheduler.wait()
            try:
                hits = await self.catalog.search_by_title(
                    query, media_type, language=language, region=region, timeout=SEARCH_TIMEOUT
                )
            except Exception as e:
                failures += 1
                logger.warning(f"Title search failed for {language}/{region}: {e}")
                continue
            for hit in hits:
                if hit.get("id") is not None and hit["id"] not in seen:
                    seen.add(hit["id"])
                    results.append(hit)
        if failures == len(GLOBAL_SEARCH_CONFIGS):
            raise SearchFailed(f"Title search failed in every region for '{query}'", service="tmdb_api")
        return results

    async def _details(self, tmdb_id: int, media_type: str) -> Dict:
        await self.scheduler.wait()
        return await with_catalog_retry(self.catalog.get_details, tmdb_id, media_type, sleep=self.sleep)

    async def _related(self, func, tmdb_id: int, media_type: str, name: str) -> List[Dict]:
        await self.scheduler.wait()
        try:
            return await with_catalog_retry(func, tmdb_id, media_type, sleep=self.sleep)
        except UpstreamUnavailable as e:
            logger.warning(f"Fetching {name} titles for {tmdb_id} failed: {e}")
            return []

    async def find_similar(self, query: str, media_type: str = "movie", limit: int = MAX_RESULTS) -> List[ScoredCandidate]:
        if not query or not query.strip():
            raise InsufficientInput("Query required")

        hits = await self.global_search(query.strip(), media_type)
        if not hits:
            return []

        primary_hit = hits[0]
        try:
            primary = CatalogEntry.from_tmdb(await self._details(primary_hit["id"], media_type), media_type)
        except UpstreamUnavailable as e:
            logger.warning(f"Primary details unavailable for {primary_hit['id']}, using search hit: {e}")
            primary = CatalogEntry.from_tmdb(primary_hit, media_type)
        primary_vibes = extract_vibes(primary)

        similar = await self._related(self.catalog.similar, primary.id, media_type, "similar")
        recommended = await self._related(self.catalog.recommendations, primary.id, media_type, "recommended")

        seen = set()
        candidates = []
        for item in similar + recommended:
            if item.get("id") is None or item["id"] in seen:
                continue
            seen.add(item["id"])
            candidates.append(item)

        scored = []
        for item in candidates[:MAX_CANDIDATES]:
            try:
                details = CatalogEntry.from_tmdb(await self._details(item["id"], media_type), media_type)
            except Exception as e:
                logger.debug(f"Skipping candidate {item.get('id')}: {e}")
                continue
            score = similarity_score(primary, details, primary_vibes, extract_vibes(details))
            # List fields (poster, synopsis, dates) come from the list hit
            scored.append(ScoredCandidate(entry=CatalogEntry.from_tmdb(item, media_type), match_score=score))

        scored.sort(key=lambda c: c.match_score, reverse=True)
        await metrics.increment("similar_titles.requests")
        logger.info(f"Similar titles for '{query}' ({tmdb_media_type(media_type)}): {len(scored)} scored")
        return scored[:min(limit, MAX_RESULTS)]
