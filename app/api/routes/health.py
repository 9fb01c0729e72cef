from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.config import Settings
from app.core.rate_limit import RateLimiters
from app.deps import get_rate_limiters, get_settings

router = APIRouter(tags=["Health"])

_STARTED_AT = time.monotonic()


@router.get("/health")
def health_check(cfg: Annotated[Settings, Depends(get_settings)]) -> dict:
    """Liveness check.

    Used by load balancers and monitoring systems; never rate limited.
    """

    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round(time.monotonic() - _STARTED_AT, 3),
        "version": cfg.app.version,
    }


@router.get("/ready")
def readiness_check(limiters: Annotated[RateLimiters, Depends(get_rate_limiters)]) -> dict:
    """Readiness check: ready while every limiter's sweeper is running."""

    stats = {name: limiter.stats() for name, limiter in limiters.as_dict().items()}
    ready = all(item["sweeper_running"] for item in stats.values())
    return {"ready": ready, "rate_limiters": stats}
