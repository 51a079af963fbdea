"""
Daily recap prompts.

Each target user gets one of two DMs: a "review" message when an AI draft
or a same-day recap already exists (the draft is shown so they can confirm
or edit it), otherwise the plain "write your recap" prompt. A failure for
one user is recorded and the batch moves on.
"""
import logging
from datetime import date
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy.exc import SQLAlchemyError

from recapbot.core.exceptions import UpstreamError
from recapbot.models.recap import RecapStatus
from recapbot.schemas.dashboard import NotificationResult, NotificationBatchResponse
from recapbot.schemas.recap import RecapSummary
from recapbot.services.draft_cache import DraftCache
from recapbot.services.recap import RecapService, recap_day
from recapbot.services.slack import SlackService

logger = logging.getLogger(__name__)

# Slack rejects section text over 3000 characters
SECTION_TEXT_LIMIT = 2900


class PromptPresentation(str, Enum):
    REVIEW = "review"
    WRITE = "write"


def _section(text: str) -> Dict[str, Any]:
    if len(text) > SECTION_TEXT_LIMIT:
        text = text[:SECTION_TEXT_LIMIT - 3] + "..."
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _button(label: str, action_id: str, style: Optional[str] = None) -> Dict[str, Any]:
    button = {
        "type": "button",
        "text": {"type": "plain_text", "text": label},
        "action_id": action_id,
    }
    if style:
        button["style"] = style
    return button


def build_write_prompt() -> Tuple[str, List[Dict[str, Any]]]:
    text = "Daily recap: Want to capture your day?"
    blocks = [
        _section("*Daily recap*\nCapture highlights, challenges, and tomorrow's plan."),
        {
            "type": "actions",
            "elements": [
                _button("Write recap", "open_recap_modal", style="primary"),
                _button("Skip today", "skip_today"),
            ],
        },
    ]
    return text, blocks


def build_review_prompt(
    draft: RecapSummary,
    confirmed: bool = False,
) -> Tuple[str, List[Dict[str, Any]]]:
    if confirmed:
        text = "Daily recap: here is what you submitted today"
        intro = "*Daily recap*\nYou already submitted today's recap. You can still edit it."
    else:
        text = "Daily recap: your draft is ready to review"
        intro = "*Daily recap*\nI drafted this from your activity. Review it, edit anything, then submit."

    blocks = [_section(intro), {"type": "divider"}]
    for title, value in (
        ("Progress", draft.progress),
        ("Blockers", draft.blockers),
        ("Plan", draft.plan),
    ):
        blocks.append(_section(f"*{title}*\n{value or '_Nothing yet_'}"))
    blocks.append({
        "type": "actions",
        "elements": [
            _button("Edit recap" if confirmed else "Review recap", "open_recap_modal", style="primary"),
            _button("Skip today", "skip_today"),
        ],
    })
    return text, blocks


class NotificationDispatcher:
    def __init__(
        self,
        slack: SlackService,
        recaps: RecapService,
        cache: DraftCache,
    ):
        self.slack = slack
        self.recaps = recaps
        self.cache = cache

    async def resolve_team_id(self, team_id: Optional[str]) -> Optional[str]:
        """Fall back to the bot's own workspace when no team was given."""
        if team_id:
            return team_id
        try:
            return (await self.slack.auth_test()).get("team_id")
        except UpstreamError as e:
            logger.warning(f"Could not determine Slack team: {e}")
            return None

    async def resolve_targets(
        self,
        user_id: Optional[str] = None,
        channel_id: Optional[str] = None,
    ) -> List[str]:
        """One explicit user, or every human member of the channel."""
        if user_id:
            return [user_id]
        if not channel_id:
            raise ValueError("Either a user_id or a channel_id is required")
        members = await self.slack.list_human_channel_members(channel_id)
        return [m["id"] for m in members if m.get("id")]

    async def choose_presentation(
        self,
        user_id: str,
        team_id: Optional[str],
        day: Optional[date] = None,
    ) -> Tuple[PromptPresentation, Optional[RecapSummary], bool]:
        """
        Pick the DM for a user: (presentation, draft to show, already confirmed).

        A confirmed recap is always shown as saved. Otherwise a pending cached
        draft wins, then today's stored draft.
        """
        recap = await self.recaps.get_recap(user_id, team_id, day or recap_day())
        if recap is None or recap.status != RecapStatus.CONFIRMED:
            draft = self.cache.peek(user_id, team_id)
            if draft is not None:
                return PromptPresentation.REVIEW, draft, False

        if recap is not None:
            summary = RecapSummary(
                progress=recap.progress or "",
                blockers=recap.blockers or "",
                plan=recap.plan or "",
            )
            return PromptPresentation.REVIEW, summary, recap.status == RecapStatus.CONFIRMED

        return PromptPresentation.WRITE, None, False

    async def send_prompt(
        self,
        user_id: str,
        team_id: Optional[str],
        day: Optional[date] = None,
    ) -> NotificationResult:
        try:
            presentation, draft, confirmed = await self.choose_presentation(user_id, team_id, day)
            if presentation == PromptPresentation.REVIEW:
                text, blocks = build_review_prompt(draft, confirmed=confirmed)
            else:
                text, blocks = build_write_prompt()
            await self.slack.post_message(user_id, text, blocks=blocks)
        except UpstreamError as e:
            logger.error(f"DM failed for {user_id}: {e}")
            return NotificationResult(user_id=user_id, success=False, error=str(e))
        except SQLAlchemyError as e:
            logger.error(f"Recap lookup failed for {user_id}: {e}")
            await self.recaps.db.rollback()
            return NotificationResult(user_id=user_id, success=False, error="Recap lookup failed")

        logger.info(f"Sent {presentation.value} prompt to {user_id}")
        return NotificationResult(user_id=user_id, success=True, presentation=presentation.value)

    async def send_prompts(
        self,
        team_id: Optional[str] = None,
        user_id: Optional[str] = None,
        channel_id: Optional[str] = None,
    ) -> NotificationBatchResponse:
        """Prompt every target; the response counts successes and failures."""
        team_id = await self.resolve_team_id(team_id)
        targets = await self.resolve_targets(user_id=user_id, channel_id=channel_id)
        logger.info(f"Sending recap prompts to {len(targets)} users in team {team_id}")

        day = recap_day()
        results = [await self.send_prompt(target, team_id, day) for target in targets]
        sent = sum(1 for r in results if r.success)
        return NotificationBatchResponse(sent=sent, failed=len(results) - sent, results=results)

    async def send_custom_notification(self, user_id: str, message: str) -> NotificationResult:
        """Free-form DM from the dashboard."""
        try:
            await self.slack.post_message(
                user_id,
                message,
                blocks=[_section(f"*Daily Recap*\n{message}")],
            )
        except UpstreamError as e:
            logger.error(f"Notification to {user_id} failed: {e}")
            return NotificationResult(user_id=user_id, success=False, error=str(e))
        return NotificationResult(user_id=user_id, success=True, presentation="custom")

    async def send_saved_confirmation(self, user_id: str, day: date) -> bool:
        """Best-effort DM after a recap is saved."""
        try:
            await self.slack.post_message(user_id, f"Saved ✅ Your recap for {day.isoformat()} is in.")
        except UpstreamError as e:
            logger.warning(f"Could not confirm saved recap to {user_id}: {e}")
            return False
        return True
