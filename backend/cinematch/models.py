"""
models.py

Request-scoped value objects: normalized catalog entries and the scored
wrappers each engine returns.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, FrozenSet, Optional, Tuple

from cinematch.utils.timezone import parse_date

MEDIA_TYPES = ("movie", "tv", "series", "anime")


def tmdb_media_type(media_type: Optional[str]) -> str:
    """Map a public content type onto TMDB's endpoint family ('movie' or 'tv')."""
    return "tv" if media_type in ("tv", "series", "anime") else "movie"


def _names(items) -> Tuple[str, ...]:
    names = []
    for item in items or []:
        name = item if isinstance(item, str) else (item or {}).get("name")
        if name:
            names.append(str(name).lower())
    return tuple(names)


@dataclass(frozen=True)
class CatalogEntry:
    """Normalized view of one TMDB movie or show."""
    id: int
    title: str
    type: str = "movie"
    overview: str = ""
    genre_ids: FrozenSet[int] = frozenset()
    genre_names: Tuple[str, ...] = ()
    keywords: FrozenSet[str] = frozenset()
    cast_ids: FrozenSet[int] = frozenset()
    rating: float = 0.0
    vote_count: int = 0
    popularity: float = 0.0
    release_date: Optional[date] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    original_language: Optional[str] = None
    origin_country: Tuple[str, ...] = ()
    source: Optional[str] = None

    @classmethod
    def from_tmdb(cls, raw: Dict[str, Any], media_type: str = "movie", source: Optional[str] = None) -> "CatalogEntry":
        """Build an entry from a TMDB list hit or a detail payload.

        List hits carry `genre_ids`; detail payloads carry `genres` objects,
        `credits` and `keywords` (under `keywords` for movies, `results` for TV).
        """
        genre_ids = set(raw.get("genre_ids") or [])
        genres = raw.get("genres") or []
        for g in genres:
            if isinstance(g, dict) and g.get("id") is not None:
                genre_ids.add(int(g["id"]))
            elif isinstance(g, int):
                genre_ids.add(g)

        kw_block = raw.get("keywords") or {}
        if isinstance(kw_block, dict):
            kw_items = kw_block.get("keywords") or kw_block.get("results") or []
        else:
            kw_items = kw_block

        cast = ((raw.get("credits") or {}).get("cast") or [])[:10]

        return cls(
            id=int(raw["id"]),
            title=raw.get("title") or raw.get("name") or "",
            type=media_type,
            overview=raw.get("overview") or "",
            genre_ids=frozenset(genre_ids),
            genre_names=_names(g for g in genres if not isinstance(g, int)),
            keywords=frozenset(_names(kw_items)),
            cast_ids=frozenset(c["id"] for c in cast if c.get("id") is not None),
            rating=float(raw.get("vote_average") or 0.0),
            vote_count=int(raw.get("vote_count") or 0),
            popularity=float(raw.get("popularity") or 0.0),
            release_date=parse_date(raw.get("release_date") or raw.get("first_air_date")),
            poster_path=raw.get("poster_path"),
            backdrop_path=raw.get("backdrop_path"),
            original_language=raw.get("original_language"),
            origin_country=tuple(raw.get("origin_country") or ()),
            source=source,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "poster": self.poster_path,
            "backdrop": self.backdrop_path,
            "overview": self.overview,
            "rating": self.rating,
            "releaseDate": self.release_date.isoformat() if self.release_date else None,
            "type": self.type,
            "genres": sorted(self.genre_ids),
        }


@dataclass
class ScoredCandidate:
    """A catalog entry with an engine-specific match score.

    Scales: additive for keyword search, 0-1 for cosine-style scores,
    0-100 for perceptual/colour matching.
    """
    entry: CatalogEntry
    match_score: float
    hash_similarity: Optional[float] = None
    color_similarity: Optional[float] = None
    frame_matches: Optional[int] = None

    @property
    def id(self) -> int:
        return self.entry.id

    def to_dict(self) -> Dict[str, Any]:
        data = self.entry.to_dict()
        data["matchScore"] = self.match_score
        if self.hash_similarity is not None:
            data["hashSimilarity"] = self.hash_similarity
        if self.color_similarity is not None:
            data["colorSimilarity"] = self.color_similarity
        if self.frame_matches is not None:
            data["frameMatches"] = self.frame_matches
        return data


@dataclass
class TrendingCandidate:
    entry: CatalogEntry
    score: float
    status: str
    days_diff: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.entry.to_dict()
        data["score"] = self.score
        data["status"] = self.status
        return data


@dataclass(frozen=True)
class ImageFingerprint:
    """Average hash (64 chars of 0/1) plus dominant colour and its HSV transform."""
    hash: str
    rgb: Tuple[int, int, int]
    hsv: Tuple[float, float, float]

    @property
    def hex(self) -> str:
        return "#" + "".join(f"{c:02x}" for c in self.rgb)


@dataclass
class MatchResult:
    """Outcome of an image or video match."""
    identified: bool
    confidence: str
    identified_movie: Optional[ScoredCandidate] = None
    alternative_results: list = field(default_factory=list)
    matching_method: str = "computer_vision"
    frames_analyzed: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "identified": self.identified,
            "confidence": self.confidence,
            "identifiedMovie": self.identified_movie.to_dict() if self.identified_movie else None,
            "alternativeResults": [c.to_dict() for c in self.alternative_results],
            "matchingMethod": self.matching_method,
        }
        if self.frames_analyzed is not None:
            data["framesAnalyzed"] = self.frames_analyzed
        return data
