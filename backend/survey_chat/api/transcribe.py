"""Speech-to-text endpoint for recorded voice turns."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse

from survey_chat.dependencies import get_speech_to_text
from survey_chat.errors import InputValidationError
from survey_chat.voice.stt import SpeechToText

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("")
async def transcribe(
    audio: Optional[UploadFile] = File(default=None),
    stt: SpeechToText = Depends(get_speech_to_text),
) -> JSONResponse:
    """Transcribe one uploaded recording (multipart field ``audio``)."""
    if audio is None:
        raise InputValidationError("No audio file received.")

    audio_bytes = await audio.read()
    if not audio_bytes:
        raise InputValidationError("No audio file received.")

    try:
        await stt.initialize()
        transcript = await stt.transcribe(
            audio_bytes,
            filename=audio.filename or "recording.webm",
            content_type=audio.content_type or "audio/webm",
        )
    except Exception as exc:
        logger.exception("Transcription error")
        return JSONResponse({"error": str(exc) or "Transcription failed."}, status_code=500)

    return JSONResponse({"transcript": transcript})
