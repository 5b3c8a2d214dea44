"""
AI provider registry.

Each provider exposes the same two capabilities over plain HTTP (httpx):
- identify(images, prompt) -> parsed JSON dict from a vision model
- embed(text) -> embedding vector of EMBEDDING_DIMENSIONS floats

The registry is built once at startup from settings and holds the configured
providers in priority order (OpenAI, then Gemini). Callers iterate it until one
provider succeeds.
"""
import base64
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from cinematch.core.config import settings
from cinematch.core.errors import ProviderNotConfigured, UpstreamUnavailable

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = 1536

SYSTEM_PROMPT = (
    "You are a movie and TV show expert with extensive knowledge of films, actors, "
    "scenes, and cinematography. Your task is to identify movies from images with high accuracy."
)

NOT_IDENTIFIED: Dict[str, Any] = {
    "identified": False,
    "movieTitle": None,
    "year": None,
    "type": None,
    "confidence": "low",
    "reasoning": "No AI provider configured",
}


def _b64(image: bytes) -> str:
    return base64.b64encode(image).decode("ascii")


def _json_object(text: str) -> Dict[str, Any]:
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def pad_embedding(vector: Sequence[float], size: int = EMBEDDING_DIMENSIONS) -> List[float]:
    """Zero-pad (or truncate) so every provider yields vectors of one shape."""
    values = [float(v) for v in vector][:size]
    return values + [0.0] * (size - len(values))


class OpenAIProvider:
    name = "openai"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        vision_model: Optional[str] = None,
        embedding_model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or settings.openai_api_base).rstrip("/")
        self.vision_model = vision_model or settings.openai_vision_model
        self.embedding_model = embedding_model or settings.openai_embedding_model
        self.timeout = timeout or settings.ai_timeout_seconds
        self.transport = transport

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.post(f"{self.base_url}/{path}", json=payload, headers=headers)
            resp.raise_for_status()
            return resp.json()

    async def identify(self, images: Sequence[bytes], prompt: str) -> Dict[str, Any]:
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        for image in images:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:image/jpeg;base64,{_b64(image)}", "detail": "high"},
            })
        data = await self._post("chat/completions", {
            "model": self.vision_model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ],
            "response_format": {"type": "json_object"},
            "max_tokens": 500,
            "temperature": 0.3,
        })
        return _json_object(data["choices"][0]["message"]["content"])

    async def embed(self, text: str) -> List[float]:
        data = await self._post("embeddings", {
            "model": self.embedding_model,
            "input": text,
            "dimensions": EMBEDDING_DIMENSIONS,
        })
        return pad_embedding(data["data"][0]["embedding"])


class GeminiProvider:
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        vision_model: Optional[str] = None,
        embedding_model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or settings.gemini_api_base).rstrip("/")
        self.vision_model = vision_model or settings.gemini_vision_model
        self.embedding_model = embedding_model or settings.gemini_embedding_model
        self.timeout = timeout or settings.ai_timeout_seconds
        self.transport = transport

    async def _post(self, model: str, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/models/{model}:{method}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.post(url, params={"key": self.api_key}, json=payload)
            resp.raise_for_status()
            return resp.json()

    async def identify(self, images: Sequence[bytes], prompt: str) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"text": prompt}]
        for image in images:
            parts.append({"inline_data": {"mime_type": "image/jpeg", "data": _b64(image)}})
        data = await self._post(self.vision_model, "generateContent", {
            "contents": [{"parts": parts}],
            "generationConfig": {"responseMimeType": "application/json"},
        })
        text = data["candidates"][0]["content"]["parts"][0]["text"]
        return _json_object(text)

    async def embed(self, text: str) -> List[float]:
        data = await self._post(self.embedding_model, "embedContent", {
            "model": f"models/{self.embedding_model}",
            "content": {"parts": [{"text": text}]},
        })
        # text-embedding-004 yields 768 dims; pad to match OpenAI vectors
        return pad_embedding(data["embedding"]["values"])


class ProviderRegistry:
    """Ordered AI providers behind one identify/embed interface."""

    def __init__(self, providers: Optional[Sequence[Any]] = None):
        self.providers = list(providers or [])

    @classmethod
    def from_settings(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "ProviderRegistry":
        providers: List[Any] = []
        if settings.openai_api_key:
            providers.append(OpenAIProvider(settings.openai_api_key, transport=transport))
        if settings.gemini_api_key:
            providers.append(GeminiProvider(settings.gemini_api_key, transport=transport))
        registry = cls(providers)
        if providers:
            logger.info(f"AI providers configured: {', '.join(p.name for p in providers)}")
        else:
            logger.info("No AI providers configured; AI identification disabled")
        return registry

    @property
    def configured(self) -> bool:
        return bool(self.providers)

    async def identify(self, images: Sequence[bytes], prompt: str) -> Dict[str, Any]:
        if not self.providers:
            return dict(NOT_IDENTIFIED)
        errors = []
        for provider in self.providers:
            try:
                result = await provider.identify(images, prompt)
                if not isinstance(result, dict):
                    raise ValueError(f"expected a JSON object, got {type(result).__name__}")
                logger.info(
                    f"Used {provider.name} for identification: "
                    f"{result.get('movieTitle') if result.get('identified') else 'not identified'}"
                )
                return result
            except (httpx.HTTPError, ValueError, KeyError, IndexError) as e:
                logger.warning(f"{provider.name} identification failed: {e}")
                errors.append(f"{provider.name}: {e}")
        raise UpstreamUnavailable(f"All AI providers failed: {'; '.join(errors)}", service="ai")

    async def embed(self, text: str) -> List[float]:
        if not self.providers:
            raise ProviderNotConfigured("Embeddings require OPENAI_API_KEY or GEMINI_API_KEY")
        errors = []
        for provider in self.providers:
            try:
                return await provider.embed(text)
            except (httpx.HTTPError, ValueError, KeyError, IndexError) as e:
                logger.warning(f"{provider.name} embedding failed: {e}")
                errors.append(f"{provider.name}: {e}")
        raise UpstreamUnavailable(f"All embedding providers failed: {'; '.join(errors)}", service="ai")
