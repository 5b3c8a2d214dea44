"""CineMatch: fuzzy movie matching and ranking over the TMDB catalog."""

__version__ = "1.0.0"
