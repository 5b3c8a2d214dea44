"""
taxonomy.py

Maps free-text scene/vibe descriptions onto TMDB's genre taxonomy.
- Static mood and keyword trigger tables (substring presence, no weighting)
- Term-frequency keyword extraction over the single input document
- Release-date constraint from years, decades and relative words
"""
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Set

from sklearn.feature_extraction.text import CountVectorizer

from cinematch.models import tmdb_media_type
from cinematch.utils.timezone import utc_today

# TMDB genre ids
ACTION, ADVENTURE, ANIMATION, COMEDY, CRIME, DOCUMENTARY = 28, 12, 16, 35, 80, 99
DRAMA, FAMILY, FANTASY, HISTORY, HORROR, MUSIC = 18, 10751, 14, 36, 27, 10402
MYSTERY, ROMANCE, SCIFI, THRILLER, WAR, WESTERN = 9648, 10749, 878, 53, 10752, 37

MOOD_TO_GENRES: Dict[str, List[int]] = {
    # Emotional moods
    "happy": [COMEDY, FAMILY, ROMANCE],
    "sad": [DRAMA, ROMANCE],
    "scared": [HORROR, THRILLER],
    "excited": [ACTION, ADVENTURE, SCIFI],
    "relaxed": [FAMILY, ANIMATION, COMEDY],
    "tense": [THRILLER, CRIME, MYSTERY],
    "romantic": [ROMANCE, COMEDY, DRAMA],
    "nostalgic": [DRAMA, HISTORY, FAMILY],
    "inspired": [DRAMA, HISTORY, WAR],
    "adventurous": [ADVENTURE, ACTION, FANTASY],

    # Atmosphere
    "dark": [HORROR, THRILLER, CRIME],
    "light": [COMEDY, FAMILY, ANIMATION],
    "mysterious": [MYSTERY, THRILLER, SCIFI],
    "epic": [ADVENTURE, FANTASY, WAR],
    "intense": [ACTION, THRILLER, DRAMA],
    "funny": [COMEDY],
    "dramatic": [DRAMA],
    "thrilling": [THRILLER, ACTION, CRIME],
    "magical": [FANTASY, ANIMATION, FAMILY],
    "gritty": [CRIME, THRILLER, DRAMA],

    # Themes
    "crime": [CRIME, THRILLER],
    "war": [WAR, HISTORY],
    "space": [SCIFI, ADVENTURE],
    "fantasy": [FANTASY, ADVENTURE],
    "horror": [HORROR],
    "action": [ACTION, ADVENTURE],
    "family": [FAMILY, ANIMATION, COMEDY],
    "psychological": [THRILLER, DRAMA, MYSTERY],
    "superhero": [ACTION, ADVENTURE, FANTASY],
    "western": [WESTERN],
    "historical": [HISTORY, WAR],
    "documentary": [DOCUMENTARY],
    "music": [MUSIC],
    "animation": [ANIMATION],
}

KEYWORD_HINTS: Dict[str, List[int]] = {
    "zombie": [HORROR, THRILLER],
    "vampire": [HORROR, FANTASY],
    "detective": [MYSTERY, CRIME, THRILLER],
    "heist": [CRIME, THRILLER, ACTION],
    "spy": [ACTION, THRILLER, ADVENTURE],
    "alien": [SCIFI, HORROR, ADVENTURE],
    "robot": [SCIFI, ACTION],
    "time travel": [SCIFI, ADVENTURE, FANTASY],
    "dystopian": [SCIFI, DRAMA, THRILLER],
    "cyberpunk": [SCIFI, ACTION, THRILLER],
    "medieval": [FANTASY, ADVENTURE, HISTORY],
    "pirate": [ADVENTURE, ACTION, FANTASY],
    "monster": [HORROR, SCIFI, ACTION],
    "ghost": [HORROR, MYSTERY],
    "serial killer": [THRILLER, CRIME, HORROR],
    "apocalypse": [SCIFI, ACTION, DRAMA],
    "survival": [ACTION, THRILLER, DRAMA],
    "revenge": [ACTION, THRILLER, DRAMA],
    "coming of age": [DRAMA, COMEDY, ROMANCE],
    "sports": [DRAMA],
    "martial arts": [ACTION],
    "mafia": [CRIME, DRAMA],
    "prison": [DRAMA, THRILLER, CRIME],
    "school": [DRAMA, COMEDY, ROMANCE],
    "college": [COMEDY, DRAMA, ROMANCE],
}

MAX_KEYWORDS = 10
MIN_KEYWORD_LENGTH = 3
RECENT_YEARS = 3
CLASSIC_CUTOFF = "1990-12-31"

_YEAR_RE = re.compile(r"\b(19\d{2}|20\d{2})\b")
_DECADES = [
    (re.compile(r"\b(80s|eighties)\b", re.I), "1980-01-01", "1989-12-31"),
    (re.compile(r"\b(90s|nineties)\b", re.I), "1990-01-01", "1999-12-31"),
    (re.compile(r"\b(2000s)\b", re.I), "2000-01-01", "2009-12-31"),
]
_CLASSIC_RE = re.compile(r"\b(classic|old|vintage)\b", re.I)
_RECENT_RE = re.compile(r"\b(recent|new|latest|modern)\b", re.I)

_analyzer = CountVectorizer(stop_words="english").build_analyzer()


@dataclass(frozen=True)
class DateConstraint:
    """At most one of: exact year, closed range, upper bound, lower bound."""
    year: Optional[int] = None
    gte: Optional[str] = None
    lte: Optional[str] = None

    def to_params(self, media_type: str = "movie") -> Dict[str, object]:
        """Render as TMDB discover filters for the given content type."""
        is_tv = tmdb_media_type(media_type) == "tv"
        params: Dict[str, object] = {}
        if self.year is not None:
            params["first_air_date_year" if is_tv else "year"] = self.year
        prefix = "first_air_date" if is_tv else "primary_release_date"
        if self.gte:
            params[f"{prefix}.gte"] = self.gte
        if self.lte:
            params[f"{prefix}.lte"] = self.lte
        return params


@dataclass
class TaxonomyMatch:
    genre_ids: List[int] = field(default_factory=list)
    weighted_keywords: List[str] = field(default_factory=list)
    date_constraint: Optional[DateConstraint] = None

    @property
    def genre_set(self) -> Set[int]:
        return set(self.genre_ids)

    @property
    def empty(self) -> bool:
        return not self.genre_ids and not self.weighted_keywords


def map_description_to_genres(description: str) -> List[int]:
    """Union of genre ids for every trigger phrase contained in the text.

    Ids are unique and kept in table order so callers can take the first few.
    """
    lower = description.lower()
    genre_ids: Dict[int, None] = {}
    for table in (MOOD_TO_GENRES, KEYWORD_HINTS):
        for phrase, ids in table.items():
            if phrase in lower:
                genre_ids.update(dict.fromkeys(ids))
    return list(genre_ids)


def extract_keywords(description: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """Top terms by frequency in the text itself (stop words and terms of <= 2 chars dropped)."""
    tokens = [t for t in _analyzer(description.lower()) if len(t) >= MIN_KEYWORD_LENGTH]
    counts = Counter(tokens)
    first_seen = {}
    for idx, token in enumerate(tokens):
        first_seen.setdefault(token, idx)
    ranked = sorted(counts, key=lambda t: (-counts[t], first_seen[t]))
    return ranked[:limit]


def extract_date_constraint(description: str, today: Optional[date] = None) -> Optional[DateConstraint]:
    """First matching pattern wins: explicit year, decade, classic, recent."""
    year_match = _YEAR_RE.search(description)
    if year_match:
        return DateConstraint(year=int(year_match.group(1)))

    for pattern, start, end in _DECADES:
        if pattern.search(description):
            return DateConstraint(gte=start, lte=end)

    if _CLASSIC_RE.search(description):
        return DateConstraint(lte=CLASSIC_CUTOFF)

    if _RECENT_RE.search(description):
        current_year = (today or utc_today()).year
        return DateConstraint(gte=f"{current_year - RECENT_YEARS}-01-01")

    return None


def map_to_taxonomy(text: str, today: Optional[date] = None) -> TaxonomyMatch:
    """Genre ids, salient keywords and an optional date constraint for a description.

    An empty match means the caller should fall back to generic ranking.
    """
    text = text or ""
    return TaxonomyMatch(
        genre_ids=map_description_to_genres(text),
        weighted_keywords=extract_keywords(text),
        date_constraint=extract_date_constraint(text, today),
    )
