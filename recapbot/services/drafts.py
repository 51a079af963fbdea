import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from recapbot.core.exceptions import SummarizationError
from recapbot.models.recap import RecapStatus, RecapTransition
from recapbot.schemas.recap import DraftResponse
from recapbot.services.activity import ActivityCollector, DayWindow, build_activity_context
from recapbot.services.ai import AIService, get_ai_service
from recapbot.services.connections import ConnectionService
from recapbot.services.draft_cache import DraftCache, get_draft_cache
from recapbot.services.github import GitHubService, get_github_service
from recapbot.services.google_calendar import GoogleCalendarService, get_google_calendar_service
from recapbot.services.recap import RecapService, recap_day
from recapbot.services.slack import SlackService, get_slack_service

logger = logging.getLogger(__name__)


class DraftService:
    """Collect a user's activity, summarize it and store the result as the day's AI draft."""

    def __init__(
        self,
        collector: ActivityCollector,
        ai: AIService,
        recaps: RecapService,
        cache: DraftCache,
    ):
        self.collector = collector
        self.ai = ai
        self.recaps = recaps
        self.cache = cache

    async def generate_draft(
        self,
        user_id: str,
        team_id: Optional[str],
        window: Optional[DayWindow] = None,
        now: Optional[datetime] = None,
    ) -> DraftResponse:
        day = recap_day(now)

        existing = await self.recaps.get_recap(user_id, team_id, day)
        if existing is not None and existing.status == RecapStatus.CONFIRMED:
            return DraftResponse(
                user_id=user_id,
                team_id=team_id,
                recap_id=existing.id,
                message="Recap already submitted for today",
            )

        window = window or DayWindow.today_and_yesterday(now)
        activity = await self.collector.collect_activity(user_id, team_id, window)
        context = build_activity_context(activity, window)
        if context is None:
            logger.info(f"No activity for {user_id} in {window}; not requesting a summary")
            return DraftResponse(
                user_id=user_id,
                team_id=team_id,
                message="No activity found to summarize",
            )

        try:
            summary = await self.ai.generate_recap_summary(context)
        except SummarizationError as e:
            logger.warning(f"Summary unavailable for {user_id}: {e}")
            return DraftResponse(
                user_id=user_id,
                team_id=team_id,
                message="Summary unavailable",
            )

        recap_id = await self.recaps.upsert_recap(
            user_id, team_id, day, summary, RecapTransition.DRAFT
        )
        # The user may have submitted while activity was collected or summarized
        stored = await self.recaps.get_recap_by_id(recap_id)
        if stored is not None and stored.status == RecapStatus.CONFIRMED:
            logger.info(f"Discarding draft for {user_id}: recap was submitted during generation")
            return DraftResponse(
                user_id=user_id,
                team_id=team_id,
                recap_id=recap_id,
                message="Recap already submitted for today",
            )
        self.cache.put(user_id, team_id, summary)

        return DraftResponse(
            user_id=user_id,
            team_id=team_id,
            recap_id=recap_id,
            draft=summary,
            message="Draft ready",
        )


def build_draft_service(
    db: AsyncSession,
    slack: Optional[SlackService] = None,
    calendar: Optional[GoogleCalendarService] = None,
    ai: Optional[AIService] = None,
    cache: Optional[DraftCache] = None,
    github_factory: Optional[Callable[[Optional[str]], GitHubService]] = None,
    channel_ids: Optional[List[str]] = None,
) -> DraftService:
    """Wire a DraftService from a session, using the configured clients for anything not given."""
    connections = ConnectionService(db)
    collector = ActivityCollector(
        connections,
        slack or get_slack_service(),
        calendar or get_google_calendar_service(),
        github_factory=github_factory or get_github_service,
        channel_ids=channel_ids,
    )
    return DraftService(
        collector,
        ai or get_ai_service(),
        RecapService(db),
        cache or get_draft_cache(),
    )
