"""
Sessions API — lifecycle, referrals and the live message feed.

Endpoints:
  POST /api/sessions                      Create a session (scanning doctor)
  POST /api/sessions/redeem               Open a scanned session / referral URL
  POST /api/sessions/{id}/participants    Admit a doctor (optionally by referral code)
  GET  /api/sessions/{id}/access          Access determination for the caller
  POST /api/sessions/{id}/referrals       Mint a referral inside the session
  POST /api/sessions/{id}/close           Administrative close (X-Admin-Key)
  WS   /ws/sessions/{id}                  History, then live inserts
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, WebSocket, WebSocketDisconnect

from sutra import settings
from sutra.consult.identity import CallerIdentity
from sutra.consult.lifecycle import AccessDecision
from sutra.consult.referrals import parse_redemption_url
from sutra.dependencies import get_caller, get_services
from sutra.routers.responses import message_json, session_json, status_for, unwrap
from sutra.schemas.sessions import (
    CloseSessionRequest,
    CreateReferralRequest,
    CreateSessionRequest,
    JoinSessionRequest,
    RedeemRequest,
)

logger = logging.getLogger("sutra.api.sessions")

router = APIRouter(tags=["sessions"])


def _access_json(decision: AccessDecision) -> dict:
    return {
        "outcome": decision.outcome.value,
        "granted": decision.granted,
        "doctor_id": decision.doctor_id,
        "reason": decision.reason,
        "session": session_json(decision.session) if decision.granted and decision.session else None,
    }


# ── Endpoints ──


@router.post("/api/sessions", status_code=201)
async def create_session(
    request: CreateSessionRequest,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    result = await services.lifecycle.create_session(caller, request.patient_id, request.doctor_id)
    return {"session_id": unwrap(result, caller)}


@router.post("/api/sessions/redeem")
async def redeem_session_url(
    request: RedeemRequest,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    """Resolve a scanned ``/{patient}/{session}?ref=CODE`` URL into an access decision."""
    try:
        link = parse_redemption_url(request.url)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await services.lifecycle.resolve_session_access(
        caller, link.session_id, referral_code=link.referral_code, patient_id=link.patient_id,
    )
    return _access_json(unwrap(result, caller))


@router.post("/api/sessions/{session_id}/participants")
async def add_doctor_to_session(
    session_id: str,
    request: JoinSessionRequest,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    result = await services.lifecycle.add_doctor_to_session(
        caller, session_id, request.doctor_id, request.referral_code,
    )
    outcome = unwrap(result, caller)
    return {
        "success": True,
        "joined": outcome.joined,
        "via_referral": outcome.via_referral,
        "referral_id": outcome.referral_id,
    }


@router.get("/api/sessions/{session_id}/access")
async def session_access(
    session_id: str,
    ref: Optional[str] = None,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    result = await services.lifecycle.resolve_session_access(caller, session_id, referral_code=ref)
    return _access_json(unwrap(result, caller))


@router.post("/api/sessions/{session_id}/referrals", status_code=201)
async def create_referral(
    session_id: str,
    request: CreateReferralRequest,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    result = await services.referrals.create_referral(
        caller, session_id, request.doctor_id, request.target_specialty, request.notes,
    )
    return message_json(unwrap(result, caller))


@router.post("/api/sessions/{session_id}/close")
async def close_session(
    session_id: str,
    request: CloseSessionRequest,
    x_admin_key: Optional[str] = Header(default=None),
    services=Depends(get_services),
):
    """Administrative active → closed transition."""
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Session close is disabled")
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        raise HTTPException(status_code=403, detail="Invalid admin key")

    result = await services.lifecycle.close_session(session_id, request.closed_by, request.reason)
    return session_json(unwrap(result, None))


# ── Live feed ──


@router.websocket("/ws/sessions/{session_id}")
async def session_feed(
    websocket: WebSocket,
    session_id: str,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    """
    Stream a session's messages: full history first, then each new insert.

    Subscribes before reading history so nothing inserted in between is
    lost; anything seen twice is dropped by message id.
    """
    await websocket.accept()
    feed = services.feed
    sub = feed.subscribe(session_id)
    try:
        result = await services.messenger.list_messages(caller, session_id)
        if not result.ok:
            await websocket.send_json({
                "type": "error",
                "status": status_for(result, caller),
                "error": result.error.value,
                "message": result.message,
            })
            await websocket.close(code=1008)
            return

        seen: set[str] = set()
        for message in result.value:
            seen.add(message.id)
            await websocket.send_json({"type": "message", "message": message_json(message)})

        async def pump() -> None:
            while True:
                message = await sub.get()
                if message.id in seen:
                    continue
                seen.add(message.id)
                await websocket.send_json({"type": "message", "message": message_json(message)})

        async def drain() -> None:
            # Client frames are ignored; this only notices the disconnect
            while True:
                await websocket.receive_text()

        tasks = {asyncio.create_task(pump()), asyncio.create_task(drain())}
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("Feed for session %s stopped: %s", session_id, exc)
    except WebSocketDisconnect:
        pass
    finally:
        feed.unsubscribe(sub)
        logger.debug("Feed viewer left session %s", session_id)
