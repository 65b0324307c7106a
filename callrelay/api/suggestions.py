"""On-demand suggestion generation"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from callrelay.api.calls import get_call_or_404
from callrelay.database import get_db
from callrelay.relay.errors import PersistenceError
from callrelay.schemas.call import GenerateSuggestionRequest, GenerateSuggestionResponse

router = APIRouter()
logger = structlog.get_logger()


@router.post("/generate", response_model=GenerateSuggestionResponse)
async def generate_suggestion(
    request: GenerateSuggestionRequest,
    http_request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Generate a reply suggestion for the agent from the call's conversation"""
    await get_call_or_404(request.call_id, db)

    if not request.customer_message.strip():
        raise HTTPException(status_code=422, detail="customer_message must not be empty")

    generator = http_request.app.state.generator

    try:
        suggestion = await generator.generate(request.call_id, request.customer_message)
    except (PersistenceError, ValueError) as e:
        logger.error("Suggestion generation failed", call_id=str(request.call_id), error=str(e))
        raise HTTPException(status_code=500, detail=f"Suggestion generation failed: {e}")
    except Exception as e:
        logger.exception("LLM provider error", call_id=str(request.call_id))
        raise HTTPException(status_code=500, detail=f"LLM provider error: {e}")

    return GenerateSuggestionResponse(suggestion=suggestion)
