"""FastAPI application entry point with lifespan management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from survey_chat.api.router import api_router
from survey_chat.config import settings
from survey_chat.dependencies import get_assistant_client, get_blob_store, get_speech_to_text
from survey_chat.errors import ChatServiceError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    logger.info("Starting survey chat backend...")

    # Transcript blob store (MongoDB)
    store = get_blob_store()
    await store.initialize()
    logger.info("Transcript store initialized successfully")

    # Hosted assistant + speech-to-text REST clients
    assistant = get_assistant_client()
    await assistant.initialize()
    stt = get_speech_to_text()
    await stt.initialize()

    if not settings.assistant_configured:
        logger.warning("Assistant credentials missing; chat turns will fail")

    yield

    # Cleanup
    await stt.close()
    await assistant.close()
    await store.close()
    logger.info("Survey chat backend shut down cleanly")


app = FastAPI(
    title="Survey Chat API",
    description="Embedded survey chat: assistant turns, voice transcription and transcripts",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatServiceError)
async def chat_service_error_handler(request: Request, exc: ChatServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug("Rejected request to %s: %s", request.url.path, exc.errors())
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": str(exc) or "Server error"}, status_code=500)


# Mount API routes
app.include_router(api_router, prefix="/api")

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
