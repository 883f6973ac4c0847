"""Central API router that aggregates all route modules."""

from fastapi import APIRouter

from survey_chat.api.chat import router as chat_router
from survey_chat.api.health import router as health_router
from survey_chat.api.transcribe import router as transcribe_router
from survey_chat.api.transcripts import router as transcripts_router

api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["health"])
api_router.include_router(chat_router, prefix="/chat", tags=["chat"])
api_router.include_router(transcripts_router, prefix="/transcript", tags=["transcripts"])
api_router.include_router(transcribe_router, prefix="/transcribe", tags=["voice"])
