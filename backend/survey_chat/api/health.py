"""Health check endpoint for infrastructure monitoring."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from survey_chat.config import Settings, get_settings
from survey_chat.dependencies import get_blob_store
from survey_chat.transcripts.store import BlobStore

logger = logging.getLogger(__name__)
router = APIRouter()


async def _check_store(store: BlobStore) -> dict[str, Any]:
    """Ping the transcript blob store and return status."""
    try:
        await store.ping()
        return {"status": "healthy"}
    except Exception as exc:
        logger.warning("Blob store health check failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc)}


def _check_assistant(settings: Settings) -> dict[str, Any]:
    if settings.assistant_configured:
        return {"status": "healthy"}
    return {"status": "unhealthy", "error": "Assistant credentials not configured"}


@router.get("")
async def health_check(
    settings: Settings = Depends(get_settings),
    store: BlobStore = Depends(get_blob_store),
) -> dict[str, Any]:
    """Return aggregate health of all backend services."""
    services = {
        "transcript_store": await _check_store(store),
        "assistant": _check_assistant(settings),
    }

    overall = (
        "healthy"
        if all(s["status"] == "healthy" for s in services.values())
        else "degraded"
    )

    return {
        "status": overall,
        "services": services,
    }
