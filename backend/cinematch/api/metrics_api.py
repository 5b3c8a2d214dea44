from typing import Any, Dict
from fastapi import APIRouter
import logging

from cinematch.core.metrics import counters_snapshot, latency_snapshot


router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/metrics/snapshot")
async def get_metrics_snapshot() -> Dict[str, Any]:
    counters = await counters_snapshot()
    latency = await latency_snapshot()
    logger.debug(f"Metrics snapshot: {len(counters)} counters, {len(latency)} timings")
    return {"counters": counters, "latency": latency}
