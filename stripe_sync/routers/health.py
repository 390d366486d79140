"""Health check router.

Endpoints:
    GET /api/health          - Overall health status
    GET /api/health/firebase - Firestore connectivity
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends

from .. import __version__
from ..context import SyncContext
from ..dependencies import get_context

router = APIRouter()
logger = logging.getLogger("stripe_sync.health")


@router.get("/health")
async def health_check() -> dict:
    """Basic health check - no auth required."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/health/firebase")
async def firebase_health(ctx: SyncContext = Depends(get_context)) -> dict:
    """Firestore health check.

    Reads one configuration document; a missing document still proves
    connectivity.
    """
    try:
        ctx.config_collection().document("shipping_countries").get()
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat()
        }
    except Exception as e:
        logger.error(f"Firestore health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e) if ctx.settings.debug else "Firestore unreachable",
            "timestamp": datetime.utcnow().isoformat()
        }
