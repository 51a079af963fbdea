from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from recapbot.api.deps import get_recaps, get_draft_service, get_dispatcher
from recapbot.core.exceptions import RecapConflictError
from recapbot.models.recap import RecapStatus, RecapTransition
from recapbot.schemas.recap import (
    DraftRequest, DraftResponse, RecapSubmitRequest, RecapFields,
    RecapResponse, RecapStatusResponse, RecapListResponse,
)
from recapbot.services.dispatcher import NotificationDispatcher
from recapbot.services.draft_cache import DraftCache, get_draft_cache
from recapbot.services.drafts import DraftService
from recapbot.services.recap import RecapService, recap_day


router = APIRouter(prefix="/recaps", tags=["recaps"])


@router.post("/draft", response_model=DraftResponse)
async def generate_draft(
    request: DraftRequest,
    drafts: DraftService = Depends(get_draft_service),
):
    """
    Generate today's AI draft for a user from their recent activity.

    No activity, or a summarizer failure, returns `draft: null` with a reason.
    """
    return await drafts.generate_draft(request.user_id, request.team_id)


@router.get("/draft/{user_id}", response_model=DraftResponse)
async def consume_draft(
    user_id: str,
    team_id: Optional[str] = None,
    cache: DraftCache = Depends(get_draft_cache),
):
    """Take the cached draft for a user. A draft can be taken only once."""
    draft = cache.pop(user_id, team_id)
    if draft is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No pending draft for this user",
        )
    return DraftResponse(user_id=user_id, team_id=team_id, draft=draft, message="Draft ready")


@router.post("/submit", response_model=RecapResponse)
async def submit_recap(
    request: RecapSubmitRequest,
    recaps: RecapService = Depends(get_recaps),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    cache: DraftCache = Depends(get_draft_cache),
):
    """Save a user's own recap for the day. This always wins over an AI draft."""
    day = recap_day(request.submitted_at)
    fields = RecapFields(
        progress=request.progress,
        blockers=request.blockers,
        plan=request.plan,
        notes=request.notes,
    )
    try:
        recap_id = await recaps.upsert_recap(
            request.user_id,
            request.team_id,
            day,
            fields,
            RecapTransition.CONFIRM,
            submitted_at=request.submitted_at,
        )
    except RecapConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    # A pending draft is stale once the user has submitted
    cache.pop(request.user_id, request.team_id)
    await dispatcher.send_saved_confirmation(request.user_id, day)

    return await recaps.get_recap_by_id(recap_id)


@router.get("/status", response_model=RecapStatusResponse)
async def get_recap_status(
    user_id: str,
    team_id: Optional[str] = None,
    recap_date: Optional[date] = None,
    recaps: RecapService = Depends(get_recaps),
):
    day = recap_date or recap_day()
    recap_status = await recaps.get_status(user_id, team_id, day)
    return RecapStatusResponse(
        user_id=user_id,
        team_id=team_id,
        recap_date=day,
        status=recap_status,
        has_recap=recap_status != RecapStatus.EMPTY,
    )


@router.get("", response_model=RecapListResponse)
async def list_recaps(
    team_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user_id: Optional[str] = None,
    recaps: RecapService = Depends(get_recaps),
):
    """List a team's recaps between two days, inclusive. Defaults to the last week."""
    end_day = end_date or recap_day()
    start_day = start_date or end_day - timedelta(days=7)
    if start_day > end_day:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must not be after end_date",
        )

    items = await recaps.list_recaps(
        team_id,
        start_day,
        end_day,
        user_ids=[user_id] if user_id else None,
        newest_first=True,
    )
    return RecapListResponse(
        recaps=[RecapResponse.model_validate(r) for r in items],
        count=len(items),
    )
