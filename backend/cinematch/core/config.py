import os
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # TMDB catalog
    tmdb_api_key: Optional[str] = os.getenv("TMDB_API_KEY")
    tmdb_base_url: str = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
    tmdb_image_base: str = os.getenv("TMDB_IMAGE_BASE", "https://image.tmdb.org/t/p/w500")
    tmdb_timeout_seconds: float = float(os.getenv("TMDB_TIMEOUT_SECONDS", "10"))

    # Politeness and retry discipline for catalog calls and poster downloads
    catalog_request_interval: float = float(os.getenv("CATALOG_REQUEST_INTERVAL", "0.3"))
    catalog_max_retries: int = int(os.getenv("CATALOG_MAX_RETRIES", "3"))
    catalog_backoff_base: float = float(os.getenv("CATALOG_BACKOFF_BASE", "1.0"))
    catalog_backoff_cap: float = float(os.getenv("CATALOG_BACKOFF_CAP", "5.0"))

    # Poster bytes cache (write-once, no eviction)
    poster_cache_dir: str = os.getenv("POSTER_CACHE_DIR", "/app/data/poster_cache")

    # AI providers (optional). Order of preference: OpenAI, then Gemini.
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    openai_api_base: str = os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1")
    openai_vision_model: str = os.getenv("OPENAI_VISION_MODEL", "gpt-4o")
    openai_embedding_model: str = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-large")
    gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY")
    gemini_api_base: str = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
    gemini_vision_model: str = os.getenv("GEMINI_VISION_MODEL", "gemini-1.5-flash")
    gemini_embedding_model: str = os.getenv("GEMINI_EMBEDDING_MODEL", "text-embedding-004")
    ai_timeout_seconds: float = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))

    # Trending ("talk of the town")
    trending_region: str = os.getenv("TRENDING_REGION", "IN")
    trending_languages: str = os.getenv("TRENDING_LANGUAGES", "hi,ta,te,ml,kn,bn,mr,pa")

    # Metrics are recorded only when Redis is configured
    redis_url: Optional[str] = os.getenv("REDIS_URL")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def trending_language_codes(self) -> List[str]:
        return [code.strip() for code in self.trending_languages.split(",") if code.strip()]


settings = Settings()
