"""Transcript lifecycle endpoints: start, append and finalize."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from survey_chat.dependencies import get_transcript_writer
from survey_chat.errors import InputValidationError
from survey_chat.models.transcripts import (
    TranscriptStartRequest,
    TranscriptStartResponse,
    TranscriptWriteRequest,
    TranscriptWriteResponse,
    normalise_role,
)
from survey_chat.transcripts.writer import TranscriptWriter, format_line
from survey_chat.utils.text import now_iso

logger = logging.getLogger(__name__)
router = APIRouter()


async def _read_body(request: Request) -> dict[str, Any]:
    """Accept JSON or form bodies; anything else counts as empty."""
    raw = await request.body()
    if raw:
        try:
            data = json.loads(raw)
        except ValueError:
            data = None
        if isinstance(data, dict):
            return data
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}
    return {}


@router.post("/start", response_model=TranscriptStartResponse)
async def start_transcript(
    request: Request,
    transcripts: TranscriptWriter = Depends(get_transcript_writer),
) -> TranscriptStartResponse:
    """Create a transcript object and return its id.

    Identifiers may come from a JSON body, a form body or the query string;
    the body wins when both carry a value.
    """
    body = TranscriptStartRequest.model_validate(await _read_body(request))
    query = TranscriptStartRequest.model_validate(dict(request.query_params))
    fields = body.merged_with(query)

    transcript_id, started_at, path = await transcripts.start(
        started_at=fields.started_at,
        participant_id=fields.participant_id,
        prolific_id=fields.prolific_id,
        thread_id=fields.thread_id,
    )
    return TranscriptStartResponse(
        transcript_id=transcript_id,
        started_at=started_at,
        path=path,
        participant_id=fields.participant_id,
        prolific_id=fields.prolific_id,
        thread_id=fields.thread_id,
    )


@router.post("/append", response_model=TranscriptWriteResponse, response_model_exclude_none=True)
async def write_transcript(
    request: Request,
    transcripts: TranscriptWriter = Depends(get_transcript_writer),
) -> TranscriptWriteResponse:
    """Append one line (``mode=append``) or overwrite in full (``mode=finalize``)."""
    try:
        payload = TranscriptWriteRequest.model_validate(await _read_body(request))
    except ValidationError as exc:
        raise InputValidationError("Invalid transcript request", extra={"ok": False}) from exc

    if not payload.transcript_id:
        raise InputValidationError("Missing transcriptId", extra={"ok": False})

    if payload.mode == "finalize":
        return await _finalize(transcripts, payload)
    return await _append(transcripts, payload)


async def _finalize(
    transcripts: TranscriptWriter, payload: TranscriptWriteRequest
) -> TranscriptWriteResponse:
    if not payload.full_text:
        raise InputValidationError("Missing fullText for finalize", extra={"ok": False})

    result = await transcripts.finalize(
        payload.transcript_id,
        payload.full_text,
        participant_id=payload.participant_id,
        metadata=payload.metadata,
        started_at=payload.started_at,
    )
    if result.skipped:
        return TranscriptWriteResponse(skipped=True)
    return TranscriptWriteResponse(
        mode="finalize",
        participant_id_included=bool(result.participant_id),
        metadata_included=result.metadata_included,
    )


async def _append(
    transcripts: TranscriptWriter, payload: TranscriptWriteRequest
) -> TranscriptWriteResponse:
    participant = transcripts.extract_participant_id(
        payload.participant_id, payload.metadata, None
    )

    if payload.line and payload.line.strip():
        line = payload.line
    else:
        role = normalise_role(payload.role)
        if role is None:
            raise InputValidationError(
                "Invalid role",
                extra={
                    "ok": False,
                    "receivedRole": payload.role,
                    "hint": 'Expected role "user" or "assistant".',
                },
            )
        if not payload.text:
            raise InputValidationError("Missing text", extra={"ok": False})
        line = format_line(payload.ts or now_iso(), role, payload.text)

    result = await transcripts.append_line(payload.transcript_id, line, participant_id=participant)
    if result.skipped:
        return TranscriptWriteResponse(skipped=True)
    return TranscriptWriteResponse(mode="append", participant_id_included=bool(participant))
