"""Call history API endpoints"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from callrelay.database import get_db
from callrelay.models.call import Call, Transcript, Suggestion
from callrelay.schemas.call import (
    CallListResponse,
    CallResponse,
    SuggestionListResponse,
    TranscriptListResponse,
)

router = APIRouter()


async def get_call_or_404(call_id: UUID, db: AsyncSession) -> Call:
    result = await db.execute(select(Call).where(Call.id == call_id))
    call = result.scalar_one_or_none()

    if not call:
        raise HTTPException(status_code=404, detail="Call not found")

    return call


@router.get("", response_model=CallListResponse)
async def list_calls(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """List calls, most recent first"""
    query = select(Call)
    count_query = select(func.count(Call.id))

    if status:
        query = query.where(Call.status == status)
        count_query = count_query.where(Call.status == status)

    total_result = await db.execute(count_query)
    total = total_result.scalar()

    offset = (page - 1) * page_size
    query = query.order_by(Call.started_at.desc()).offset(offset).limit(page_size)

    result = await db.execute(query)
    calls = result.scalars().all()

    return CallListResponse(
        items=calls,
        total=total,
        page=page,
        page_size=page_size,
        pages=(total + page_size - 1) // page_size,
    )


@router.get("/{call_id}", response_model=CallResponse)
async def get_call(
    call_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get call details"""
    return await get_call_or_404(call_id, db)


@router.get("/{call_id}/transcripts", response_model=TranscriptListResponse)
async def get_call_transcripts(
    call_id: UUID,
    role: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Get the call's transcripts in the order they were spoken"""
    await get_call_or_404(call_id, db)

    query = select(Transcript).where(Transcript.call_id == call_id)
    if role:
        query = query.where(Transcript.role == role)

    result = await db.execute(query.order_by(Transcript.created_at.asc()))

    return TranscriptListResponse(call_id=call_id, items=result.scalars().all())


@router.get("/{call_id}/suggestions", response_model=SuggestionListResponse)
async def get_call_suggestions(
    call_id: UUID,
    limit: int = Query(3, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    """Get the most recent suggestions for the call, newest first"""
    await get_call_or_404(call_id, db)

    result = await db.execute(
        select(Suggestion)
        .where(Suggestion.call_id == call_id)
        .order_by(Suggestion.created_at.desc())
        .limit(limit)
    )

    return SuggestionListResponse(call_id=call_id, items=result.scalars().all())
