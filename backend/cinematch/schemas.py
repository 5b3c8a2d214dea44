"""
schemas.py

Pydantic request schemas for the scene-search API.
"""
from typing import Literal

from pydantic import BaseModel, Field

MediaType = Literal["movie", "tv", "series", "anime"]


class TextSearchRequest(BaseModel):
    description: str = Field(..., description="Free-text scene or vibe description")
    type: MediaType = "movie"
    limit: int = Field(20, ge=1, le=50)
    mode: Literal["keyword", "semantic"] = "keyword"
