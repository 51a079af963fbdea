"""
Team-level views for the admin dashboard: who has done today's recap,
spoken standup scripts built from the day's recaps, and questions answered
from the last week of recaps.
"""
import logging
from datetime import date, timedelta
from typing import Optional, List, Dict, Tuple

import httpx
from openai import OpenAIError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recapbot.core.exceptions import UpstreamError
from recapbot.models.recap import DailyRecap
from recapbot.models.recap_script import DailyRecapScript
from recapbot.schemas.dashboard import (
    GitHubInfo, GroupMember, GroupMembersResponse, IntegrationFlags,
    ScriptSegment, StandupScriptResponse, ChatResponse,
)
from recapbot.services.ai import AIService
from recapbot.services.connections import ConnectionService
from recapbot.services.recap import RecapService, recap_day
from recapbot.services.slack import SlackService, display_name, profile_image

logger = logging.getLogger(__name__)

DEFAULT_MEMBER_NAME = "Team Member"
QA_LOOKBACK_DAYS = 7


class DashboardService:
    def __init__(
        self,
        db: AsyncSession,
        slack: SlackService,
        ai: AIService,
    ):
        self.db = db
        self.slack = slack
        self.ai = ai
        self.recaps = RecapService(db)
        self.connections = ConnectionService(db)

    async def group_members(
        self,
        team_id: Optional[str] = None,
        channel_id: Optional[str] = None,
        day: Optional[date] = None,
    ) -> GroupMembersResponse:
        """
        Members with their integrations and whether today's recap is confirmed.

        With a channel the member list comes from Slack and connection records
        only add names and integration flags. Without one, every connection
        stored for the team is a member.
        """
        if not team_id and not channel_id:
            raise ValueError("Either team_id or channel_id is required")
        day = day or recap_day()

        if channel_id:
            if not team_id:
                team_id = (await self.slack.auth_test()).get("team_id")
            slack_members = await self.slack.list_human_channel_members(channel_id)
            member_ids = [m["id"] for m in slack_members if m.get("id")]
            names = {m["id"]: display_name(m) for m in slack_members if m.get("id")}
            images = {m["id"]: profile_image(m) for m in slack_members if m.get("id")}
            connections = await self.connections.list_team_connections(team_id, member_ids)
        else:
            connections = await self.connections.list_team_connections(team_id)
            member_ids = [c.slack_user_id for c in connections]
            names = {}
            images = {}

        by_user = {c.slack_user_id: c for c in connections}
        completed = await self.recaps.completed_user_ids(team_id, day, member_ids)

        members = []
        for user_id in member_ids:
            connection = by_user.get(user_id)
            members.append(GroupMember(
                slack_user_id=user_id,
                name=(connection.slack_user_name if connection else None) or names.get(user_id) or user_id,
                has_completed_recap=user_id in completed,
                integrations=IntegrationFlags(
                    calendar=bool(connection and connection.has_google),
                    github=bool(connection and connection.has_github),
                ),
                github_info=(
                    GitHubInfo(owner=connection.github_owner, repo=connection.github_repo)
                    if connection and connection.has_github else None
                ),
                image_url=images.get(user_id),
            ))

        return GroupMembersResponse(
            team_id=team_id,
            recap_date=day,
            members=members,
            completed_count=sum(1 for m in members if m.has_completed_recap),
        )

    async def _names_for(self, recaps: List[DailyRecap], team_id: Optional[str]) -> Dict[str, str]:
        return await self.connections.get_user_names({r.user_id for r in recaps}, team_id)

    async def _save_script(self, recap: DailyRecap, script_text: str) -> None:
        result = await self.db.execute(
            select(DailyRecapScript).where(DailyRecapScript.recap_id == recap.id)
        )
        existing = result.scalar_one_or_none()
        if existing is None:
            self.db.add(DailyRecapScript(recap_id=recap.id, user_id=recap.user_id, script_text=script_text))
        else:
            existing.script_text = script_text
        await self.db.commit()

    async def generate_standup_script(
        self,
        team_id: str,
        day: Optional[date] = None,
    ) -> StandupScriptResponse:
        """One spoken segment per recap of the day, in submission order, plus a combined script."""
        day = day or recap_day()
        recaps = await self.recaps.list_recaps(team_id, day, day)
        if not recaps:
            return StandupScriptResponse(
                recap_date=day,
                recap_count=0,
                message=(
                    f"No daily recaps found for {day.isoformat()}. "
                    "Make sure team members have submitted their recaps."
                ),
            )

        names = await self._names_for(recaps, team_id)
        segments = []
        for order, recap in enumerate(recaps):
            name = names.get(recap.user_id) or DEFAULT_MEMBER_NAME
            try:
                script = await self.ai.generate_standup_script(
                    name,
                    recap.progress,
                    recap.blockers,
                    recap.plan,
                    notes=recap.notes,
                    is_first=order == 0,
                    is_last=order == len(recaps) - 1,
                )
            except (OpenAIError, httpx.HTTPError) as e:
                raise UpstreamError("OpenAI", f"standup script for {recap.user_id}: {e}") from e

            await self._save_script(recap, script)
            segments.append(ScriptSegment(
                user_id=recap.user_id,
                name=name,
                recap_id=recap.id,
                script=script,
                order=order,
            ))

        logger.info(f"Generated standup script for team {team_id} on {day}: {len(segments)} segments")
        combined = "\n\n---\n\n".join(f"**{s.name}:**\n{s.script}" for s in segments)
        return StandupScriptResponse(
            recap_date=day,
            recap_count=len(recaps),
            script=combined,
            segments=segments,
        )

    async def build_recaps_context(self, team_id: str, today: Optional[date] = None) -> Tuple[str, int]:
        """Readable dump of the team's recaps over the last week, newest first."""
        today = today or recap_day()
        recaps = await self.recaps.list_recaps(
            team_id, today - timedelta(days=QA_LOOKBACK_DAYS), today, newest_first=True
        )
        if not recaps:
            return f"No recaps found for this team in the last {QA_LOOKBACK_DAYS} days.", 0

        names = await self._names_for(recaps, team_id)
        entries = []
        for idx, r in enumerate(recaps, start=1):
            entries.append(
                f"Recap {idx}:\n"
                f"- User: {names.get(r.user_id) or r.user_id}\n"
                f"- Date: {r.recap_date.isoformat()}\n"
                f"- Progress: {r.progress or 'None'}\n"
                f"- Blockers: {r.blockers or 'None'}\n"
                f"- Plan: {r.plan or 'None'}\n"
                f"- Notes: {r.notes or 'None'}\n"
                f"- AI Generated: {'Yes' if r.is_ai_generated else 'No'}\n"
            )
        header = f"Here are the daily recaps from the team (last {QA_LOOKBACK_DAYS} days):\n\n"
        return header + "\n".join(entries), len(recaps)

    async def answer_question(self, question: str, team_id: str) -> ChatResponse:
        if not question or not question.strip():
            raise ValueError("Question is required")
        context, count = await self.build_recaps_context(team_id)
        try:
            answer = await self.ai.answer_team_question(question.strip(), context)
        except (OpenAIError, httpx.HTTPError) as e:
            raise UpstreamError("OpenAI", str(e)) from e
        return ChatResponse(answer=answer, recap_count=count)
