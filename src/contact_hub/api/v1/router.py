"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.contact_hub.api.v1 import contact, integration

router = APIRouter(prefix="/api/v1")

router.include_router(contact.router)
router.include_router(integration.router)
