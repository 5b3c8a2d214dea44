from redis import asyncio as aioredis  # Async client
from redis.asyncio.connection import ConnectionPool as AsyncConnectionPool
from ..core.config import settings
import asyncio
import threading
from typing import Dict, Optional

# Per-event-loop async Redis clients to avoid cross-loop issues
_redis_async_by_loop: Dict[str, aioredis.Redis] = {}


def _current_loop_key() -> str:
	"""Generate a stable key for the current async context.

	Prefer the running event loop identity; if none, fall back to thread id.
	"""
	try:
		loop = asyncio.get_running_loop()
		return f"loop-{id(loop)}"
	except RuntimeError:
		return f"thread-{threading.get_ident()}"


def get_redis() -> Optional[aioredis.Redis]:
	"""Get an async Redis client bound to the current event loop.

	Returns None when REDIS_URL is not configured.
	"""
	if not settings.redis_url:
		return None
	key = _current_loop_key()
	client = _redis_async_by_loop.get(key)
	if client is not None:
		return client

	pool = AsyncConnectionPool.from_url(
		settings.redis_url,
		decode_responses=True,
		max_connections=20,
		socket_connect_timeout=2,
		socket_timeout=2,
		retry_on_timeout=True,
	)
	client = aioredis.Redis(connection_pool=pool)
	_redis_async_by_loop[key] = client
	return client
