"""
Weekday daily recap prompt.

At the configured time every human member of SLACK_CHANNEL_ID gets an AI
draft generated from their activity, then a prompt DM: members with a
draft are asked to review it, the rest to write their recap.
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

from recapbot.core.config import settings
from recapbot.core.database import async_session_maker
from recapbot.core.exceptions import UpstreamError
from recapbot.schemas.dashboard import NotificationBatchResponse
from recapbot.services.dispatcher import NotificationDispatcher
from recapbot.services.draft_cache import get_draft_cache
from recapbot.services.drafts import build_draft_service
from recapbot.services.recap import RecapService
from recapbot.services.slack import SlackService, get_slack_service

logger = logging.getLogger(__name__)


async def run_daily_prompt(
    session_maker: async_sessionmaker = async_session_maker,
    slack: Optional[SlackService] = None,
    channel_id: Optional[str] = None,
    **draft_kwargs,
) -> Optional[NotificationBatchResponse]:
    """Pre-generate drafts for the channel, then prompt everyone in it."""
    channel_id = channel_id or settings.SLACK_CHANNEL_ID
    if not channel_id:
        logger.info("No SLACK_CHANNEL_ID set. Skipping daily prompt.")
        return None

    slack = slack or get_slack_service()
    cache = draft_kwargs.pop("cache", None) or get_draft_cache()

    async with session_maker() as db:
        dispatcher = NotificationDispatcher(slack, RecapService(db), cache)
        try:
            team_id = await dispatcher.resolve_team_id(None)
            targets = await dispatcher.resolve_targets(channel_id=channel_id)
        except UpstreamError as e:
            logger.error(f"Failed to fetch channel members: {e}")
            return None

        if not targets:
            logger.info(f"No users found in channel {channel_id}. Skipping daily prompt.")
            return None

        drafts = build_draft_service(db, slack=slack, cache=cache, **draft_kwargs)
        for user_id in targets:
            try:
                result = await drafts.generate_draft(user_id, team_id)
                logger.info(f"Draft for {user_id}: {result.message}")
            except Exception as e:
                # One user's draft must not stop the others from being prompted
                logger.error(f"Draft generation failed for {user_id}: {e}")
                await db.rollback()

        results = [await dispatcher.send_prompt(user_id, team_id) for user_id in targets]

    sent = sum(1 for r in results if r.success)
    logger.info(f"Daily prompt sent to {sent}/{len(results)} users in {channel_id}")
    return NotificationBatchResponse(sent=sent, failed=len(results) - sent, results=results)


class DailyPromptScheduler:
    """Runs the daily prompt on weekdays at DAILY_PROMPT_HOUR:DAILY_PROMPT_MINUTE."""

    JOB_ID = "daily_recap_prompt"

    def __init__(self):
        self.scheduler = AsyncIOScheduler()
        self.is_running = False

    def start(self):
        if self.is_running:
            logger.warning("Scheduler is already running")
            return

        self.scheduler.add_job(
            func=run_daily_prompt,
            trigger=CronTrigger(
                day_of_week="mon-fri",
                hour=settings.DAILY_PROMPT_HOUR,
                minute=settings.DAILY_PROMPT_MINUTE,
                timezone=settings.ACTIVITY_TIMEZONE,
            ),
            id=self.JOB_ID,
            name="Daily Recap Prompt",
            replace_existing=True,
        )
        self.scheduler.start()
        self.is_running = True

        for job in self.scheduler.get_jobs():
            logger.info(f"Scheduled {job.name} (ID: {job.id}) - next run: {job.next_run_time}")

    def stop(self):
        if not self.is_running:
            return
        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Daily prompt scheduler stopped")


daily_prompt_scheduler = DailyPromptScheduler()
