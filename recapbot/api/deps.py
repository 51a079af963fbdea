"""
Request-scoped wiring of services.

Every external client comes from its own dependency so tests can swap it
with `app.dependency_overrides`.
"""
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from recapbot.core.database import get_db
from recapbot.services.activity import ActivityCollector
from recapbot.services.ai import AIService, get_ai_service
from recapbot.services.connections import ConnectionService, get_connection_service
from recapbot.services.dashboard import DashboardService
from recapbot.services.dispatcher import NotificationDispatcher
from recapbot.services.draft_cache import DraftCache, get_draft_cache
from recapbot.services.drafts import DraftService
from recapbot.services.github import GitHubService, get_github_service
from recapbot.services.google_calendar import GoogleCalendarService, get_google_calendar_service
from recapbot.services.identity import IdentityResolver
from recapbot.services.recap import RecapService, get_recap_service
from recapbot.services.slack import SlackService, get_slack_service
from recapbot.services.tts import TextToSpeechService, get_tts_service


def get_slack() -> SlackService:
    return get_slack_service()


def get_calendar() -> GoogleCalendarService:
    return get_google_calendar_service()


def get_github_factory() -> Callable[[Optional[str]], GitHubService]:
    return get_github_service


def get_tts() -> TextToSpeechService:
    return get_tts_service()


def get_recaps(db: AsyncSession = Depends(get_db)) -> RecapService:
    return get_recap_service(db)


def get_connections(db: AsyncSession = Depends(get_db)) -> ConnectionService:
    return get_connection_service(db)


def get_identity(
    slack: SlackService = Depends(get_slack),
    calendar: GoogleCalendarService = Depends(get_calendar),
) -> IdentityResolver:
    return IdentityResolver(slack, calendar)


def get_draft_service(
    connections: ConnectionService = Depends(get_connections),
    recaps: RecapService = Depends(get_recaps),
    slack: SlackService = Depends(get_slack),
    calendar: GoogleCalendarService = Depends(get_calendar),
    github_factory: Callable = Depends(get_github_factory),
    ai: AIService = Depends(get_ai_service),
    cache: DraftCache = Depends(get_draft_cache),
) -> DraftService:
    collector = ActivityCollector(connections, slack, calendar, github_factory=github_factory)
    return DraftService(collector, ai, recaps, cache)


def get_dispatcher(
    slack: SlackService = Depends(get_slack),
    recaps: RecapService = Depends(get_recaps),
    cache: DraftCache = Depends(get_draft_cache),
) -> NotificationDispatcher:
    return NotificationDispatcher(slack, recaps, cache)


def get_dashboard(
    db: AsyncSession = Depends(get_db),
    slack: SlackService = Depends(get_slack),
    ai: AIService = Depends(get_ai_service),
) -> DashboardService:
    return DashboardService(db, slack, ai)
