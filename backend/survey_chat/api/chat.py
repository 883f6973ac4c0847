"""Chat turn endpoint: one participant message in, one assistant reply out."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from survey_chat.assistant.client import AssistantClient, AssistantServiceError
from survey_chat.assistant.context import PARTICIPANT_SOURCE, ContextInjector
from survey_chat.assistant.gate import GateResult, RunSerializationGate
from survey_chat.assistant.prompts import (
    build_run_instructions,
    placeholder_values,
    substitute_placeholders,
)
from survey_chat.config import Settings, get_settings
from survey_chat.dependencies import get_assistant_client, get_transcript_writer
from survey_chat.errors import (
    ConfigurationError,
    InputValidationError,
    ThreadBusyError,
    UpstreamRunError,
)
from survey_chat.models.assistant import Run, RunStatus, Thread
from survey_chat.models.chat import ChatRequest, ChatResponse, ErrorResponse
from survey_chat.models.session import Role
from survey_chat.transcripts.writer import TranscriptWriter

logger = logging.getLogger(__name__)
router = APIRouter()

NO_REPLY_TEXT = "No assistant reply found."
THREAD_BUSY_TEXT = (
    "The assistant is still answering your previous message. "
    "Please wait a few seconds and send it again."
)


@router.post(
    "",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat(
    request: ChatRequest,
    assistant: AssistantClient = Depends(get_assistant_client),
    transcripts: TranscriptWriter = Depends(get_transcript_writer),
    settings: Settings = Depends(get_settings),
) -> ChatResponse:
    """Submit one participant turn to the assistant thread.

    Responds 409 when an earlier run on the same thread is still active after
    the gate's wait budget; the participant should resend shortly.
    """
    message = request.message.strip()
    if not message:
        raise InputValidationError("No message provided")

    assistant_id = settings.openai_assistant_id
    if not assistant_id:
        raise ConfigurationError("Assistant ID missing in env vars")

    context = request.context_values()

    try:
        thread, new_thread = await _resolve_thread(assistant, request.thread_id)

        if not new_thread:
            gate = RunSerializationGate(
                assistant,
                poll_interval=settings.run_gate_poll_interval_seconds,
                timeout=settings.run_gate_timeout_seconds,
            )
            if await gate.wait_until_clear(thread.id) is GateResult.BLOCKED:
                raise ThreadBusyError(THREAD_BUSY_TEXT)

        logger.info(
            "New user message thread=%s new_thread=%s input_mode=%s transcript=%s context=%s",
            thread.id,
            new_thread,
            request.input_mode.value,
            request.transcript_id,
            sorted(context),
        )

        if context:
            await ContextInjector(assistant).inject(thread.id, context, new_thread=new_thread)

        await _record(transcripts, request, Role.USER, message)

        await assistant.create_message(
            thread.id,
            message,
            metadata={"inputMode": request.input_mode.value, "source": PARTICIPANT_SOURCE},
        )

        run_metadata = {"last_user_input_mode": request.input_mode.value}
        run_metadata.update(context)
        run = await assistant.create_and_poll(
            thread.id,
            assistant_id,
            additional_instructions=build_run_instructions(context),
            metadata=run_metadata,
        )
        if run.status != RunStatus.COMPLETED.value:
            if run.is_active:
                await assistant.cancel_quietly(run.thread_id, run.id)
            detail = run.last_error.message if run.last_error else None
            raise UpstreamRunError(detail or f"Run ended with status {run.status}")

        reply = await _latest_reply(assistant, run)
    except AssistantServiceError as exc:
        raise UpstreamRunError(exc.message) from exc

    reply = substitute_placeholders(
        reply, placeholder_values(context, request.participant_id)
    )
    await _record(transcripts, request, Role.ASSISTANT, reply)

    return ChatResponse(
        reply=reply,
        thread_id=run.thread_id,
        transcript_id=request.transcript_id,
        participant_id=request.participant_id,
    )


async def _resolve_thread(
    assistant: AssistantClient, thread_id: str | None
) -> tuple[Thread, bool]:
    """Reuse the pinned thread when it still exists; otherwise start a new one."""
    if thread_id:
        try:
            return await assistant.retrieve_thread(thread_id), False
        except AssistantServiceError as exc:
            logger.warning(
                "Thread %s could not be retrieved, starting a new one: %s", thread_id, exc
            )
    thread = await assistant.create_thread()
    logger.info("Created thread %s", thread.id)
    return thread, True


async def _latest_reply(assistant: AssistantClient, run: Run) -> str:
    messages = await assistant.list_messages(run.thread_id, limit=20)
    replies = [m for m in messages if m.role == Role.ASSISTANT.value]
    own = [m for m in replies if m.run_id == run.id]
    for candidate in own or replies[:1]:
        text = candidate.text()
        if text is not None:
            return text
    return NO_REPLY_TEXT


async def _record(
    transcripts: TranscriptWriter, request: ChatRequest, role: Role, text: str
) -> None:
    """Best-effort transcript append; never fails the turn."""
    if not request.transcript_id:
        return
    try:
        await transcripts.append_turn(
            request.transcript_id, role, text, participant_id=request.participant_id
        )
    except Exception:
        logger.exception(
            "Transcript write (%s) failed for %s", role.value, request.transcript_id
        )
