from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

import cinematch.utils.logger  # noqa: F401  configures the package logger
from cinematch import __version__
from cinematch.api import metrics_api, movies, scene_search, trending
from cinematch.core.providers import ProviderRegistry
from cinematch.services.poster_cache import PosterCache
from cinematch.services.tmdb_client import TMDBClient

logger = logging.getLogger(__name__)

app = FastAPI(title="CineMatch API", version=__version__)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(scene_search.router, prefix="/api/scene-search", tags=["Scene Search"])
app.include_router(movies.router, prefix="/api/movies", tags=["Movies"])
app.include_router(trending.router, prefix="/api/trending", tags=["Trending"])
app.include_router(metrics_api.router, prefix="/api", tags=["Metrics"])


@app.on_event("startup")
async def startup_event():
    # Collaborators may be pre-seeded (tests); only fill what is missing
    state = app.state
    if getattr(state, "catalog", None) is None:
        state.catalog = TMDBClient()
        if not state.catalog.configured:
            logger.warning("TMDB_API_KEY is not set; catalog calls will fail")
    if getattr(state, "providers", None) is None:
        state.providers = ProviderRegistry.from_settings()
    if getattr(state, "poster_cache", None) is None:
        state.poster_cache = PosterCache()


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": __version__}
