"""
poster_cache.py

Write-once disk cache of TMDB poster bytes keyed by catalog id.
Posters are immutable per catalog id, so concurrent writers of the same key
are harmless (last writer wins). No eviction, no TTL.
"""
import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from cinematch.core.config import settings
from cinematch.services.rate_limit import Sleep, with_backoff

logger = logging.getLogger(__name__)


class PosterCache:
    """Read-through poster byte cache."""

    def __init__(self, cache_dir: Optional[str] = None, sleep: Sleep = asyncio.sleep):
        self.cache_dir = Path(cache_dir or settings.poster_cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.sleep = sleep

    def _path(self, catalog_id: int) -> Path:
        return self.cache_dir / f"{int(catalog_id)}.jpg"

    def get(self, catalog_id: int) -> Optional[bytes]:
        path = self._path(catalog_id)
        if not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            logger.warning(f"Failed to read cached poster {catalog_id}: {e}")
            return None

    def put(self, catalog_id: int, data: bytes) -> None:
        # Write to a temp file and rename so readers never see a partial poster
        path = self._path(catalog_id)
        fd, tmp = tempfile.mkstemp(dir=self.cache_dir, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    async def fetch(self, catalog_id: int, poster_path: str, catalog) -> Optional[bytes]:
        """Return cached bytes or download through `catalog.fetch_image` with backoff.

        Returns None when the download keeps failing.
        """
        cached = self.get(catalog_id)
        if cached is not None:
            return cached
        try:
            data = await with_backoff(catalog.fetch_image, poster_path, sleep=self.sleep, service="tmdb_images")
        except Exception as e:
            logger.warning(f"Failed to download poster for {catalog_id}: {e}")
            return None
        try:
            self.put(catalog_id, data)
        except OSError as e:
            logger.warning(f"Failed to cache poster {catalog_id}: {e}")
        return data
