"""
errors.py

Error taxonomy shared by the ranking engines and the API layer.
"""
from typing import Optional


class CineMatchError(Exception):
    """Base class for all CineMatch errors."""


class UpstreamUnavailable(CineMatchError):
    """Catalog or AI provider call failed after retries."""

    def __init__(self, message: str, service: Optional[str] = None):
        super().__init__(message)
        self.service = service


class SearchFailed(UpstreamUnavailable):
    """Every candidate pool of a request failed; nothing can be ranked."""


class InsufficientInput(CineMatchError):
    """Empty description, missing or undecodable file, unknown mood label."""


class ProviderNotConfigured(CineMatchError):
    """No AI provider credentials are configured."""
