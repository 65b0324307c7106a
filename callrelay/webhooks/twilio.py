"""Twilio webhook handlers"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Form, Response
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.twiml.voice_response import VoiceResponse, Start, Dial
import structlog

from callrelay.config import settings
from callrelay.database import get_db
from callrelay.models.call import Call, ENDED_STATUSES

router = APIRouter()
logger = structlog.get_logger()


def _normalize_direction(direction: Optional[str]) -> str:
    # Twilio reports outbound legs as outbound-api / outbound-dial
    if direction and direction.startswith("outbound"):
        return "outbound"
    return "inbound"


def _customer_number(direction: str, from_number: Optional[str], to_number: Optional[str]) -> Optional[str]:
    return to_number if direction == "outbound" else from_number


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-numeric webhook value", value=value)
        return None


async def _find_call(db: AsyncSession, call_sid: str) -> Optional[Call]:
    result = await db.execute(select(Call).where(Call.call_sid == call_sid))
    return result.scalar_one_or_none()


def build_voice_twiml(call_sid: str) -> str:
    """Stream both call legs to the relay and ring the agent's browser client"""
    response = VoiceResponse()

    start = Start()
    stream = start.stream(url=settings.relay_stream_url, track="both_tracks")
    stream.parameter(name="call_sid", value=call_sid)
    response.append(start)

    response.say("Connecting you to our agent.", voice="alice")

    dial = Dial(timeout=30, record="record-from-ringing")
    dial.client(settings.twilio_agent_client)
    response.append(dial)

    return str(response)


@router.post("/voice")
async def handle_voice_webhook(
    db: AsyncSession = Depends(get_db),
    CallSid: str = Form(...),
    CallStatus: str = Form(default="ringing"),
    From: Optional[str] = Form(default=None),
    To: Optional[str] = Form(default=None),
    Direction: Optional[str] = Form(default="inbound"),
):
    """
    Handle an incoming voice call from Twilio.
    Records the call and returns TwiML that starts the media stream.
    """
    logger.info(
        "Incoming call",
        call_sid=CallSid,
        from_number=From,
        to_number=To,
        status=CallStatus,
    )

    direction = _normalize_direction(Direction)
    call = await _find_call(db, CallSid)

    if call is None:
        call = Call(
            call_sid=CallSid,
            customer_number=_customer_number(direction, From, To),
            direction=direction,
            status=CallStatus,
            started_at=datetime.utcnow(),
        )
        db.add(call)
        try:
            await db.commit()
            logger.info("Call record created", call_id=str(call.id), call_sid=CallSid)
        except IntegrityError:
            # Created concurrently by the status callback
            await db.rollback()
            logger.info("Call record already exists", call_sid=CallSid)
    elif not call.is_terminal:
        call.status = CallStatus
        await db.commit()
        logger.info("Call record updated", call_id=str(call.id), status=CallStatus)

    return Response(content=build_voice_twiml(CallSid), media_type="application/xml")


@router.post("/status")
async def handle_status_webhook(
    db: AsyncSession = Depends(get_db),
    CallSid: str = Form(...),
    CallStatus: str = Form(...),
    From: Optional[str] = Form(default=None),
    To: Optional[str] = Form(default=None),
    Direction: Optional[str] = Form(default=None),
    CallDuration: Optional[str] = Form(default=None),
    RecordingUrl: Optional[str] = Form(default=None),
    RecordingDuration: Optional[str] = Form(default=None),
):
    """Handle call status updates from Twilio"""
    logger.info(
        "Call status update",
        call_sid=CallSid,
        status=CallStatus,
        duration=CallDuration,
    )

    call = await _find_call(db, CallSid)

    if call is None:
        direction = _normalize_direction(Direction)
        call = Call(
            call_sid=CallSid,
            customer_number=_customer_number(direction, From, To),
            direction=direction,
            status=CallStatus,
            started_at=datetime.utcnow(),
        )
        db.add(call)
        logger.info("Call record created from status update", call_sid=CallSid)
    elif call.is_terminal:
        logger.info(
            "Ignoring status update for finished call",
            call_id=str(call.id),
            current_status=call.status,
            status=CallStatus,
        )
        return {"status": "ignored"}
    else:
        call.status = CallStatus

    if CallStatus in ENDED_STATUSES:
        call.ended_at = call.ended_at or datetime.utcnow()

    duration = _to_int(CallDuration)
    if duration is not None:
        call.duration_seconds = duration

    if RecordingUrl:
        call.recording_url = RecordingUrl
        recording_duration = _to_int(RecordingDuration)
        if recording_duration is not None:
            call.recording_duration_seconds = recording_duration

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Call record created concurrently, status update skipped", call_sid=CallSid)
        return {"status": "conflict"}

    return {"status": "ok"}
