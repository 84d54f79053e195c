"""
Messages API.

Endpoints:
  GET  /api/sessions/{id}/messages   Session history (creation order)
  POST /api/sessions/{id}/messages   Send text / prescription / upload
  POST /api/sessions/{id}/voice      Send a voice note, optionally AI-processed
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from sutra.consult.content import VoiceContent, parse_content
from sutra.consult.identity import CallerIdentity
from sutra.dependencies import get_caller, get_services
from sutra.routers.responses import message_json, unwrap
from sutra.schemas.messages import SendMessageRequest, VoiceMessageRequest

logger = logging.getLogger("sutra.api.messages")

router = APIRouter(prefix="/api/sessions", tags=["messages"])


@router.get("/{session_id}/messages")
async def list_messages(
    session_id: str,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    result = await services.messenger.list_messages(caller, session_id)
    return {"messages": [message_json(m) for m in unwrap(result, caller)]}


@router.post("/{session_id}/messages", status_code=201)
async def send_message(
    session_id: str,
    request: SendMessageRequest,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    try:
        content = parse_content(request.message_type, request.content)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    result = await services.messenger.send_message(
        caller, session_id, request.sender_id, request.sender_type, content,
    )
    return message_json(unwrap(result, caller))


@router.post("/{session_id}/voice", status_code=201)
async def send_voice_message(
    session_id: str,
    request: VoiceMessageRequest,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    """
    Send a voice note.  When raw audio is attached and no AI block was
    supplied, the AI service is asked for one; if that fails the note is
    still sent, just without the AI block.
    """
    ai_processed = request.ai_processed
    if ai_processed is None and request.audio_base64:
        try:
            audio = base64.b64decode(request.audio_base64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=400, detail="audio_base64 is not valid base64")
        ai_processed = await services.voice.process(audio, request.language_hint)

    content = VoiceContent(audio_url=request.audio_url, duration_seconds=request.duration_seconds)
    result = await services.messenger.send_message(
        caller, session_id, request.sender_id, request.sender_type, content,
        ai_processed=ai_processed,
    )
    return message_json(unwrap(result, caller))
