"""
AI identification adapter.

Asks the configured vision providers to name the title an image (or a few
video frames) comes from, then resolves that title to a catalog entry so the
visual matcher can exclude it from its own results.

Failures here never abort a scene search: with no providers the adapter
answers "not identified", and provider or lookup errors degrade to the same.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from cinematch.core.errors import UpstreamUnavailable
from cinematch.core.providers import ProviderRegistry
from cinematch.models import CatalogEntry, tmdb_media_type
from cinematch.services.rate_limit import Sleep, with_catalog_retry

logger = logging.getLogger(__name__)

IMAGE_PROMPT = """Analyze this image carefully and try to identify the specific movie or TV show it's from.

Provide your response in the following JSON format:
{
  "identified": true or false,
  "movieTitle": "Exact movie/show title" or null,
  "year": release year as number or null,
  "type": "movie" or "tv" or null,
  "scene": "Brief description of this specific scene",
  "characters": ["Character names if recognizable"],
  "confidence": "high" or "medium" or "low",
  "reasoning": "Explain what visual cues helped you identify it, or why you couldn't identify it"
}

Be honest about your confidence level. Only mark as "identified: true" if you're reasonably confident about the movie title."""

VIDEO_PROMPT = """Analyze these frames from a video clip and try to identify the specific movie or TV show.

Provide your response in the following JSON format:
{
  "identified": true or false,
  "movieTitle": "Exact movie/show title" or null,
  "year": release year as number or null,
  "type": "movie" or "tv" or null,
  "scene": "Brief description of this scene/sequence",
  "characters": ["Character names if recognizable"],
  "confidence": "high" or "medium" or "low",
  "reasoning": "Explain what visual cues across the frames helped you identify it, or why you couldn't"
}

Look for consistent elements across frames like characters, settings, cinematography style, or recognizable scenes."""


def _characters(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v]
    return []


@dataclass
class Identification:
    identified: bool = False
    title: Optional[str] = None
    year: Optional[int] = None
    type: Optional[str] = None
    confidence: str = "low"
    reasoning: Optional[str] = None
    scene: Optional[str] = None
    characters: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Identification":
        year = payload.get("year")
        try:
            year = int(year) if year else None
        except (TypeError, ValueError):
            year = None
        return cls(
            identified=bool(payload.get("identified")) and bool(payload.get("movieTitle")),
            title=payload.get("movieTitle"),
            year=year,
            type=payload.get("type"),
            confidence=payload.get("confidence") or "low",
            reasoning=payload.get("reasoning"),
            scene=payload.get("scene"),
            characters=_characters(payload.get("characters")),
        )


def select_frames(frames: Sequence[bytes]) -> List[bytes]:
    """First, middle and last frame when there are more than three."""
    frames = list(frames)
    if len(frames) <= 3:
        return frames
    return [frames[0], frames[len(frames) // 2], frames[-1]]


class AIIdentifier:
    def __init__(self, providers: ProviderRegistry, catalog, sleep: Sleep = asyncio.sleep):
        self.providers = providers
        self.catalog = catalog
        self.sleep = sleep

    async def identify_image(self, image: bytes) -> Identification:
        return await self._identify([image], IMAGE_PROMPT)

    async def identify_video(self, frames: Sequence[bytes]) -> Identification:
        return await self._identify(select_frames(frames), VIDEO_PROMPT)

    async def _identify(self, images: List[bytes], prompt: str) -> Identification:
        try:
            payload = await self.providers.identify(images, prompt)
        except UpstreamUnavailable as e:
            logger.warning(f"AI identification unavailable: {e}")
            return Identification(reasoning=str(e))
        return Identification.from_payload(payload)

    async def resolve(self, identification: Identification, media_type: str = "movie") -> Optional[CatalogEntry]:
        """Look the identified title up in the catalog; None when not found."""
        if not identification.identified:
            return None
        kind = identification.type or media_type
        try:
            hits = await with_catalog_retry(
                self.catalog.search_by_title,
                identification.title,
                kind,
                year=identification.year,
                sleep=self.sleep,
            )
        except UpstreamUnavailable as e:
            logger.warning(f"Could not resolve '{identification.title}' in catalog: {e}")
            return None
        if not hits:
            logger.info(f"'{identification.title}' not found in catalog")
            return None
        return CatalogEntry.from_tmdb(hits[0], "series" if tmdb_media_type(kind) == "tv" else "movie")
