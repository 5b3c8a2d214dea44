"""
scene_search.py - Scene search endpoints (text, image, video)
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile

from cinematch.api import deps
from cinematch.core.errors import CineMatchError, ProviderNotConfigured
from cinematch.models import CatalogEntry, MatchResult
from cinematch.schemas import TextSearchRequest
from cinematch.services.ai_identification import AIIdentifier, Identification
from cinematch.services.image_matching import MAX_VIDEO_FRAMES, ImageMatchEngine
from cinematch.services.semantic import SemanticVibeEngine
from cinematch.services.vibe_search import TextVibeEngine
from cinematch.utils.image import optimize_image, validate_image

logger = logging.getLogger(__name__)
router = APIRouter()

SCALE_ADDITIVE = "additive"
SCALE_COSINE = "cosine"
SCALE_PERCENT = "percent"


@router.post("/text")
async def search_by_text(body: TextSearchRequest, request: Request) -> Dict[str, Any]:
    """Rank catalog entries against a free-text description.

    `mode=semantic` uses embeddings when an AI provider is configured and
    falls back to keyword matching otherwise.
    """
    catalog = deps.catalog(request)
    try:
        if body.mode == "semantic":
            engine = SemanticVibeEngine(catalog, deps.providers(request), deps.scheduler(request), deps.sleep(request))
            try:
                results = await engine.search(body.description, body.limit, body.type)
                return {
                    "results": [r.to_dict() for r in results],
                    "count": len(results),
                    "mode": "semantic",
                    "scoreScale": SCALE_COSINE,
                }
            except ProviderNotConfigured:
                logger.info("Semantic search requested without AI provider; using keyword search")

        engine = TextVibeEngine(catalog, deps.scheduler(request), deps.sleep(request))
        results = await engine.search_by_description(body.description, body.limit, body.type)
    except CineMatchError as e:
        raise deps.to_http_error(e)
    return {
        "results": [r.to_dict() for r in results],
        "count": len(results),
        "mode": "keyword",
        "scoreScale": SCALE_ADDITIVE,
    }


async def _read_upload(upload: UploadFile) -> bytes:
    data = await upload.read()
    validate_image(upload.content_type, len(data))
    return optimize_image(data)


def _ai_movie(entry: CatalogEntry, identification: Identification) -> Dict[str, Any]:
    data = entry.to_dict()
    data.update({
        "aiIdentified": True,
        "confidence": identification.confidence,
        "scene": identification.scene,
        "characters": identification.characters,
        "reasoning": identification.reasoning,
        "matchingMethod": "ai_vision",
    })
    return data


def _response(result: MatchResult, ai_entry: Optional[CatalogEntry], identification: Identification) -> Dict[str, Any]:
    data = result.to_dict()
    if ai_entry is not None:
        # The visual top hit becomes one more alternative behind the AI answer
        alternatives: List[Dict[str, Any]] = data["alternativeResults"]
        if data["identifiedMovie"] is not None:
            alternatives.insert(0, data["identifiedMovie"])
        data.update({
            "identified": True,
            "confidence": identification.confidence,
            "identifiedMovie": _ai_movie(ai_entry, identification),
            "alternativeResults": alternatives,
        })
    data["aiIdentified"] = ai_entry is not None
    data["scoreScale"] = SCALE_PERCENT
    return data


@router.post("/image")
async def search_by_image(
    request: Request,
    image: UploadFile = File(...),
    type: str = Form("movie"),
    limit: int = Form(20),
) -> Dict[str, Any]:
    """Identify the title an uploaded still comes from and list visually similar posters."""
    catalog = deps.catalog(request)
    try:
        buffer = await _read_upload(image)
        identifier = AIIdentifier(deps.providers(request), catalog, deps.sleep(request))
        identification = await identifier.identify_image(buffer)
        ai_entry = await identifier.resolve(identification, type)

        engine = ImageMatchEngine(catalog, deps.poster_cache(request), deps.scheduler(request), deps.sleep(request))
        result = await engine.match_image(
            buffer, type, max(1, limit), exclude_id=ai_entry.id if ai_entry else None
        )
    except CineMatchError as e:
        raise deps.to_http_error(e)
    return _response(result, ai_entry, identification)


@router.post("/video")
async def search_by_video(
    request: Request,
    frames: List[UploadFile] = File(...),
    type: str = Form("movie"),
    limit: int = Form(20),
) -> Dict[str, Any]:
    """Same as /image over 1-10 frames extracted from a clip."""
    if not frames:
        raise HTTPException(status_code=400, detail="At least one frame is required")
    if len(frames) > MAX_VIDEO_FRAMES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_VIDEO_FRAMES} frames are allowed")

    catalog = deps.catalog(request)
    try:
        buffers = [await _read_upload(f) for f in frames]
        identifier = AIIdentifier(deps.providers(request), catalog, deps.sleep(request))
        identification = await identifier.identify_video(buffers)
        ai_entry = await identifier.resolve(identification, type)

        engine = ImageMatchEngine(catalog, deps.poster_cache(request), deps.scheduler(request), deps.sleep(request))
        result = await engine.match_video(
            buffers, type, max(1, limit), exclude_id=ai_entry.id if ai_entry else None
        )
    except CineMatchError as e:
        raise deps.to_http_error(e)
    return _response(result, ai_entry, identification)
