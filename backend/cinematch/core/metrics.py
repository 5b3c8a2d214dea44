"""
Request counters and latency aggregates for the ranking engines.

Stored in Redis hashes so several API workers share one view. Without
REDIS_URL every call is a no-op; Redis failures never fail a search.
"""
from __future__ import annotations
import logging
from typing import Dict

from cinematch.core.redis_client import get_redis

logger = logging.getLogger(__name__)

COUNTERS_KEY = "cinematch:metrics:counters"
LATENCY_PREFIX = "cinematch:metrics:latency:"


async def increment(name: str, amount: int = 1) -> None:
    r = get_redis()
    if r is None:
        return
    try:
        await r.hincrby(COUNTERS_KEY, name, amount)
    except Exception as e:
        logger.debug(f"Metric increment '{name}' dropped: {e}")


async def timing(name: str, milliseconds: float) -> None:
    """Record one latency sample as count/sum plus running max."""
    r = get_redis()
    if r is None:
        return
    key = f"{LATENCY_PREFIX}{name}"
    ms = round(float(milliseconds), 3)
    try:
        pipe = r.pipeline()
        pipe.hincrby(key, "count", 1)
        pipe.hincrbyfloat(key, "sum", ms)
        pipe.hget(key, "max")
        _, _, cur_max = await pipe.execute()
        if cur_max is None or ms > float(cur_max):
            await r.hset(key, "max", ms)
    except Exception as e:
        logger.debug(f"Metric timing '{name}' dropped: {e}")


async def counters_snapshot() -> Dict[str, int]:
    r = get_redis()
    if r is None:
        return {}
    try:
        data = await r.hgetall(COUNTERS_KEY) or {}
    except Exception as e:
        logger.debug(f"Reading metric counters failed: {e}")
        return {}
    return {str(k): int(v) for k, v in data.items()}


async def latency_snapshot() -> Dict[str, Dict[str, float]]:
    """Per-name latency count, mean and max in milliseconds."""
    r = get_redis()
    if r is None:
        return {}
    out: Dict[str, Dict[str, float]] = {}
    try:
        async for key in r.scan_iter(match=f"{LATENCY_PREFIX}*"):
            stats = await r.hgetall(key) or {}
            count = int(stats.get("count") or 0)
            total = float(stats.get("sum") or 0.0)
            out[str(key)[len(LATENCY_PREFIX):]] = {
                "count": count,
                "avg_ms": round(total / count, 3) if count else 0.0,
                "max_ms": float(stats.get("max") or 0.0),
            }
    except Exception as e:
        logger.debug(f"Reading latency metrics failed: {e}")
    return out
