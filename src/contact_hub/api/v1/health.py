"""Liveness check.

/health only confirms the process is serving; database and CRM status are
reported by GET /api/v1/contact.
"""

from __future__ import annotations

from fastapi import APIRouter

from src.contact_hub.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are touched."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}
