"""
image_matching.py

Computer-vision matching of an uploaded image (or video frames) against the
posters of popular catalog entries.

The candidate corpus (pool + poster fingerprints) is built once per request;
video matching reuses it for every frame.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from cinematch.core import metrics
from cinematch.core.errors import InsufficientInput, SearchFailed, UpstreamUnavailable
from cinematch.models import CatalogEntry, ImageFingerprint, MatchResult, ScoredCandidate
from cinematch.services.perceptual_hash import (
    color_similarity,
    combined_score,
    fingerprint,
    hash_similarity,
)
from cinematch.services.poster_cache import PosterCache
from cinematch.services.rate_limit import IntervalScheduler, Sleep, with_catalog_retry

logger = logging.getLogger(__name__)

POOL_SIZE = 15
POOL_MIN_VOTES = 100
NOISE_FLOOR = 25

IMAGE_IDENTIFIED_THRESHOLD = 65
IMAGE_HIGH_THRESHOLD = 80
VIDEO_IDENTIFIED_THRESHOLD = 60
VIDEO_HIGH_THRESHOLD = 75
MAX_VIDEO_ALTERNATIVES = 10
MAX_VIDEO_FRAMES = 10


@dataclass
class PosterFingerprint:
    entry: CatalogEntry
    fingerprint: ImageFingerprint


def _confidence(score: float, high_threshold: float) -> str:
    return "high" if score > high_threshold else "medium"


class ImageMatchEngine:
    """Rank popular catalog posters by perceptual + colour similarity to a query image."""

    def __init__(
        self,
        catalog,
        poster_cache: PosterCache,
        scheduler: Optional[IntervalScheduler] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.catalog = catalog
        self.poster_cache = poster_cache
        self.scheduler = scheduler or IntervalScheduler()
        self.sleep = sleep

    async def load_corpus(self, media_type: str = "movie") -> List[PosterFingerprint]:
        """Fingerprint the posters of the top popular entries.

        Raises SearchFailed when the pool itself cannot be fetched. Candidates
        without a poster, or whose poster cannot be downloaded or decoded,
        are skipped.
        """
        filters = {"sort_by": "popularity.desc", "vote_count.gte": POOL_MIN_VOTES}
        await self.scheduler.wait()
        try:
            raw = await with_catalog_retry(self.catalog.discover, media_type, filters, sleep=self.sleep)
        except UpstreamUnavailable as e:
            await metrics.increment("image_match.failed")
            raise SearchFailed(f"Could not fetch candidate pool for image matching: {e}", service="tmdb_api") from e

        corpus: List[PosterFingerprint] = []
        for item in raw[:POOL_SIZE]:
            if item.get("id") is None or not item.get("poster_path"):
                continue
            entry = CatalogEntry.from_tmdb(item, media_type)
            cached = self.poster_cache.get(entry.id)
            if cached is None:
                await self.scheduler.wait()
                cached = await self.poster_cache.fetch(entry.id, entry.poster_path, self.catalog)
            if cached is None:
                continue
            try:
                corpus.append(PosterFingerprint(entry=entry, fingerprint=fingerprint(cached)))
            except InsufficientInput as e:
                logger.debug(f"Skipping poster for {entry.id}: {e}")
        logger.info(f"Fingerprinted {len(corpus)} posters for {media_type} matching")
        return corpus

    @staticmethod
    def rank(
        query: ImageFingerprint,
        corpus: Sequence[PosterFingerprint],
        limit: int = 20,
        exclude_id: Optional[int] = None,
    ) -> MatchResult:
        """Score one query fingerprint against a prepared corpus."""
        matches: List[ScoredCandidate] = []
        for poster in corpus:
            if exclude_id is not None and poster.entry.id == exclude_id:
                continue
            hash_sim = hash_similarity(query.hash, poster.fingerprint.hash)
            color_sim = color_similarity(query, poster.fingerprint)
            score = combined_score(hash_sim, color_sim)
            if score <= NOISE_FLOOR:
                continue
            matches.append(
                ScoredCandidate(
                    entry=poster.entry,
                    match_score=score,
                    hash_similarity=hash_sim,
                    color_similarity=color_sim,
                )
            )
        matches.sort(key=lambda c: c.match_score, reverse=True)
        matches = matches[:limit]

        if matches and matches[0].match_score > IMAGE_IDENTIFIED_THRESHOLD:
            top = matches[0]
            return MatchResult(
                identified=True,
                confidence=_confidence(top.match_score, IMAGE_HIGH_THRESHOLD),
                identified_movie=top,
                alternative_results=matches[1:],
            )
        return MatchResult(identified=False, confidence="low", alternative_results=matches)

    async def match_image(
        self,
        buffer: bytes,
        media_type: str = "movie",
        limit: int = 20,
        exclude_id: Optional[int] = None,
    ) -> MatchResult:
        started = time.monotonic()
        query = fingerprint(buffer)
        corpus = await self.load_corpus(media_type)
        result = self.rank(query, corpus, limit, exclude_id)
        await metrics.increment("image_match.requests")
        await metrics.timing("image_match", (time.monotonic() - started) * 1000)
        logger.info(f"Image match: identified={result.identified}, {len(result.alternative_results)} alternatives")
        return result

    async def match_video(
        self,
        frames: Sequence[bytes],
        media_type: str = "movie",
        limit: int = 20,
        exclude_id: Optional[int] = None,
    ) -> MatchResult:
        """Aggregate per-frame matches into one result.

        An identified hit contributes its full score, an alternative half of it;
        the final score is the mean over the frames where the entry appeared.
        """
        if not frames:
            raise InsufficientInput("At least one video frame is required")
        frames = list(frames)[:MAX_VIDEO_FRAMES]
        started = time.monotonic()

        queries: List[ImageFingerprint] = []
        for idx, frame in enumerate(frames):
            try:
                queries.append(fingerprint(frame))
            except InsufficientInput as e:
                logger.warning(f"Skipping undecodable frame {idx}: {e}")
        if not queries:
            raise InsufficientInput("None of the uploaded frames could be decoded")

        corpus = await self.load_corpus(media_type)

        totals: Dict[int, float] = {}
        counts: Dict[int, int] = {}
        entries: Dict[int, CatalogEntry] = {}

        def accumulate(candidate: ScoredCandidate, weight: float) -> None:
            totals[candidate.id] = totals.get(candidate.id, 0.0) + candidate.match_score * weight
            counts[candidate.id] = counts.get(candidate.id, 0) + 1
            entries[candidate.id] = candidate.entry

        for query in queries:
            result = self.rank(query, corpus, limit, exclude_id)
            if result.identified_movie is not None:
                accumulate(result.identified_movie, 1.0)
            for alt in result.alternative_results:
                accumulate(alt, 0.5)

        aggregated = [
            ScoredCandidate(entry=entries[cid], match_score=totals[cid] / counts[cid], frame_matches=counts[cid])
            for cid in totals
        ]
        aggregated.sort(key=lambda c: c.match_score, reverse=True)

        await metrics.increment("video_match.requests")
        await metrics.timing("video_match", (time.monotonic() - started) * 1000)
        logger.info(f"Video match over {len(queries)} frames: {len(aggregated)} candidates")

        if aggregated and aggregated[0].match_score > VIDEO_IDENTIFIED_THRESHOLD:
            top = aggregated[0]
            return MatchResult(
                identified=True,
                confidence=_confidence(top.match_score, VIDEO_HIGH_THRESHOLD),
                identified_movie=top,
                alternative_results=aggregated[1:MAX_VIDEO_ALTERNATIVES + 1],
                matching_method="computer_vision_video",
                frames_analyzed=len(queries),
            )
        return MatchResult(
            identified=False,
            confidence="low",
            alternative_results=aggregated[:MAX_VIDEO_ALTERNATIVES],
            matching_method="computer_vision_video",
            frames_analyzed=len(queries),
        )
