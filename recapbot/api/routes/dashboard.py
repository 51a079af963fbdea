from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from recapbot.api.deps import get_dashboard, get_dispatcher, get_tts
from recapbot.core.config import settings
from recapbot.core.exceptions import UpstreamError
from recapbot.schemas.dashboard import (
    GroupMembersResponse, SendNotificationRequest, SendPromptsRequest,
    NotificationResult, NotificationBatchResponse,
    StandupScriptRequest, StandupScriptResponse,
    ChatRequest, ChatResponse, AudioRequest,
)
from recapbot.services.dashboard import DashboardService
from recapbot.services.dispatcher import NotificationDispatcher
from recapbot.services.tts import TextToSpeechService


router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _upstream_failure(e: UpstreamError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.get("/group-members", response_model=GroupMembersResponse)
async def group_members(
    team_id: Optional[str] = None,
    channel_id: Optional[str] = None,
    recap_date: Optional[date] = None,
    dashboard: DashboardService = Depends(get_dashboard),
):
    """Members of a team or channel, their integrations and today's recap status."""
    if not team_id and not channel_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either team_id or channel_id is required",
        )
    try:
        return await dashboard.group_members(team_id=team_id, channel_id=channel_id, day=recap_date)
    except UpstreamError as e:
        raise _upstream_failure(e)


@router.post("/send-notification", response_model=NotificationResult)
async def send_notification(
    request: SendNotificationRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    if not request.slack_user_id or not request.message.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="slack_user_id and message are required",
        )
    result = await dispatcher.send_custom_notification(request.slack_user_id, request.message)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.error)
    return result


@router.post("/send-prompts", response_model=NotificationBatchResponse)
async def send_prompts(
    request: SendPromptsRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Send the daily recap prompt to one user or to every human in a channel.

    Each member gets a review prompt if a draft or recap already exists for
    today, otherwise a write prompt. Individual failures are reported in the
    results, not raised.
    """
    channel_id = request.channel_id or (None if request.user_id else settings.SLACK_CHANNEL_ID)
    if not request.user_id and not channel_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either user_id or channel_id is required",
        )
    try:
        return await dispatcher.send_prompts(
            team_id=request.team_id,
            user_id=request.user_id,
            channel_id=channel_id,
        )
    except UpstreamError as e:
        raise _upstream_failure(e)


@router.post("/standup-script", response_model=StandupScriptResponse)
async def standup_script(
    request: StandupScriptRequest,
    dashboard: DashboardService = Depends(get_dashboard),
):
    """First-person standup script per recap of the day, plus the combined script."""
    if not dashboard.ai.is_available():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service not configured",
        )
    try:
        return await dashboard.generate_standup_script(request.team_id, request.recap_date)
    except UpstreamError as e:
        raise _upstream_failure(e)


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    dashboard: DashboardService = Depends(get_dashboard),
):
    """Answer a question about the team from its last week of recaps."""
    if not request.question.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Question is required",
        )
    if not dashboard.ai.is_available():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service not configured",
        )
    try:
        return await dashboard.answer_question(request.question, request.team_id)
    except UpstreamError as e:
        raise _upstream_failure(e)


@router.post("/audio")
async def generate_audio(
    request: AudioRequest,
    tts: TextToSpeechService = Depends(get_tts),
):
    """Render a standup script to MP3."""
    if not request.script.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Script text is required",
        )
    if not tts.is_available():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="ElevenLabs API key is not configured",
        )
    try:
        audio = await tts.synthesize(request.script, request.voice_id)
    except UpstreamError as e:
        raise _upstream_failure(e)
    return Response(content=audio, media_type="audio/mpeg")


@router.get("/voices")
async def list_voices(
    tts: TextToSpeechService = Depends(get_tts),
):
    if not tts.is_available():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="ElevenLabs API key is not configured",
        )
    try:
        return {"voices": await tts.list_voices()}
    except UpstreamError as e:
        raise _upstream_failure(e)
