import logging
from typing import Optional, Callable

from fastapi import APIRouter, Depends, HTTPException, status

from recapbot.api.deps import (
    get_connections, get_calendar, get_slack, get_identity, get_github_factory,
)
from recapbot.core.exceptions import UpstreamError, ConnectionNotFoundError
from recapbot.core.security import create_state_token, decode_state_token
from recapbot.schemas.connection import (
    GitHubConnectRequest, GitHubConnectResponse,
    GoogleAuthUrlResponse, GoogleCallbackResponse, ConnectionResponse,
)
from recapbot.services.connections import ConnectionService
from recapbot.services.google_calendar import GoogleCalendarService
from recapbot.services.identity import IdentityResolver
from recapbot.services.slack import SlackService, display_name

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])


async def _remember_slack_name(
    slack: SlackService,
    connections: ConnectionService,
    slack_user_id: str,
    team_id: Optional[str],
) -> None:
    if not slack.is_available():
        return
    try:
        user = await slack.get_user_info(slack_user_id)
    except UpstreamError as e:
        logger.warning(f"Could not fetch Slack name for {slack_user_id}: {e}")
        return
    name = display_name(user)
    if name:
        await connections.save_slack_user_name(slack_user_id, team_id, name)


@router.get("/google/auth-url", response_model=GoogleAuthUrlResponse)
async def google_auth_url(
    slack_user_id: str,
    team_id: Optional[str] = None,
    calendar: GoogleCalendarService = Depends(get_calendar),
):
    """Consent URL for linking a Google Calendar to a Slack user."""
    if not calendar.is_available():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google OAuth not configured",
        )
    state = create_state_token(slack_user_id, team_id)
    return GoogleAuthUrlResponse(auth_url=calendar.generate_auth_url(state))


@router.get("/google/callback", response_model=GoogleCallbackResponse)
async def google_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    calendar: GoogleCalendarService = Depends(get_calendar),
    connections: ConnectionService = Depends(get_connections),
    identity: IdentityResolver = Depends(get_identity),
    slack: SlackService = Depends(get_slack),
):
    """OAuth redirect target: store the Google tokens on the user's connection."""
    if error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Google authorization failed: {error}",
        )
    if not code or not state:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing code or state",
        )

    decoded = decode_state_token(state)
    if decoded is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired state",
        )
    slack_user_id, team_id = decoded

    try:
        tokens = await calendar.exchange_code(code)
    except UpstreamError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        )

    await connections.save_google_tokens(slack_user_id, team_id, tokens)
    await _remember_slack_name(slack, connections, slack_user_id, team_id)
    email = await identity.extract_google_email(tokens)
    logger.info(f"Google Calendar connected for {slack_user_id} in team {team_id}")

    if slack.is_available():
        account = f" ({email})" if email else ""
        try:
            await slack.post_message(
                slack_user_id,
                f"✅ Google Calendar connected{account}. Your meetings will be included in your daily recap drafts.",
            )
        except UpstreamError as e:
            logger.warning(f"Could not send Google confirmation to {slack_user_id}: {e}")

    return GoogleCallbackResponse(
        slack_user_id=slack_user_id,
        team_id=team_id,
        email=email,
        saved=True,
    )


@router.post("/github", response_model=GitHubConnectResponse)
async def connect_github(
    request: GitHubConnectRequest,
    connections: ConnectionService = Depends(get_connections),
    github_factory: Callable = Depends(get_github_factory),
    slack: SlackService = Depends(get_slack),
):
    """Validate a personal access token and store it on the user's connection."""
    token = request.token.strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="GitHub token is required",
        )

    github = github_factory(token)
    try:
        user = await github.get_user()
    except UpstreamError as e:
        if e.status_code in (401, 403):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid GitHub token",
            )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        )

    await connections.save_github_token(
        request.slack_user_id,
        request.team_id,
        token,
        owner=request.owner,
        repo=request.repo,
    )
    await _remember_slack_name(slack, connections, request.slack_user_id, request.team_id)

    login = user.get("login")
    return GitHubConnectResponse(
        slack_user_id=request.slack_user_id,
        team_id=request.team_id,
        github_login=login,
        message=f"GitHub connected as {login}" if login else "GitHub connected",
    )


@router.get("/{slack_user_id}", response_model=ConnectionResponse)
async def get_connection(
    slack_user_id: str,
    team_id: Optional[str] = None,
    connections: ConnectionService = Depends(get_connections),
):
    try:
        return await connections.require_connection(slack_user_id, team_id)
    except ConnectionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
