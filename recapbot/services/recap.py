"""
Daily recap store.

Holds the one rule the rest of the bot depends on: there is at most one
recap per (user, team, UTC day). Every write goes through `upsert_recap`,
which takes the lifecycle transition explicitly:

    EMPTY --DRAFT--> DRAFTED --DRAFT--> DRAFTED
      |                 |
      +----CONFIRM------+--CONFIRM--> CONFIRMED --CONFIRM--> CONFIRMED

A DRAFT against a CONFIRMED recap is ignored, so regenerating an AI draft
can never erase what the user wrote.
"""
import logging
from datetime import datetime, date, time, timezone
from typing import Optional, List, Set, Iterable, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from recapbot.core.exceptions import RecapConflictError
from recapbot.models.recap import DailyRecap, RecapStatus, RecapTransition
from recapbot.schemas.recap import RecapFields, RecapSummary

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Naive UTC, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def recap_day(moment: Optional[datetime] = None) -> date:
    """The UTC calendar day a submission time belongs to."""
    if moment is None:
        return utc_now().date()
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.date()


def _submitted_at_for(day: date, submitted_at: Optional[datetime]) -> datetime:
    """A naive UTC submission time that falls on `day`."""
    if submitted_at is not None:
        if submitted_at.tzinfo is not None:
            submitted_at = submitted_at.astimezone(timezone.utc).replace(tzinfo=None)
        if submitted_at.date() == day:
            return submitted_at
    now = utc_now()
    if now.date() == day:
        return now
    return datetime.combine(day, time.min)


def _team_filter(team_id: Optional[str]):
    if team_id is None:
        return DailyRecap.team_id.is_(None)
    return DailyRecap.team_id == team_id


class RecapService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_recap(self, user_id: str, team_id: Optional[str], day: date) -> Optional[DailyRecap]:
        result = await self.db.execute(
            select(DailyRecap).where(
                DailyRecap.user_id == user_id,
                _team_filter(team_id),
                DailyRecap.recap_date == day,
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_recap_by_id(self, recap_id: str) -> Optional[DailyRecap]:
        result = await self.db.execute(
            select(DailyRecap)
            .where(DailyRecap.id == recap_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_status(self, user_id: str, team_id: Optional[str], day: date) -> RecapStatus:
        recap = await self.get_recap(user_id, team_id, day)
        if recap is None:
            return RecapStatus.EMPTY
        return recap.status

    async def has_recap_today(
        self,
        user_id: str,
        team_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> bool:
        """True if a draft or a confirmed recap exists for the current UTC day."""
        return await self.get_recap(user_id, team_id, recap_day(now)) is not None

    async def upsert_recap(
        self,
        user_id: str,
        team_id: Optional[str],
        day: date,
        fields: Union[RecapFields, RecapSummary],
        transition: RecapTransition,
        submitted_at: Optional[datetime] = None,
    ) -> str:
        """
        Write the day's recap for a user and return its id.

        DRAFT updates progress / blockers / plan and keeps notes, unless the
        recap is already confirmed, in which case nothing changes. CONFIRM
        overwrites every field including notes, whatever was there before.
        """
        values = fields.model_dump()
        existing = await self.get_recap(user_id, team_id, day)
        if existing is not None:
            return await self._apply(existing, values, transition, submitted_at)

        recap = DailyRecap(
            user_id=user_id,
            team_id=team_id,
            recap_date=day,
            submitted_at=_submitted_at_for(day, submitted_at),
            progress=values.get("progress"),
            blockers=values.get("blockers"),
            plan=values.get("plan"),
            notes=values.get("notes") if transition == RecapTransition.CONFIRM else None,
            status=RecapStatus.CONFIRMED if transition == RecapTransition.CONFIRM else RecapStatus.DRAFTED,
            is_ai_generated=transition == RecapTransition.DRAFT,
        )
        self.db.add(recap)
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent writer inserted the same day first; retry once as an update
            await self.db.rollback()
            existing = await self.get_recap(user_id, team_id, day)
            if existing is None:
                raise RecapConflictError(
                    f"Recap for {user_id} in team {team_id} on {day} was rejected and could not be found"
                )
            return await self._apply(existing, values, transition, submitted_at)

        logger.info(f"Created {recap.status.value} recap {recap.id} for {user_id} on {day}")
        return recap.id

    async def _apply(
        self,
        recap: DailyRecap,
        values: dict,
        transition: RecapTransition,
        submitted_at: Optional[datetime],
    ) -> str:
        if transition == RecapTransition.DRAFT:
            if recap.status == RecapStatus.CONFIRMED:
                logger.info(f"Ignoring AI draft for {recap.user_id} on {recap.recap_date}: recap already confirmed")
                return recap.id
            recap.progress = values.get("progress")
            recap.blockers = values.get("blockers")
            recap.plan = values.get("plan")
            recap.status = RecapStatus.DRAFTED
            recap.is_ai_generated = True
        else:
            recap.progress = values.get("progress")
            recap.blockers = values.get("blockers")
            recap.plan = values.get("plan")
            recap.notes = values.get("notes")
            recap.status = RecapStatus.CONFIRMED
            recap.is_ai_generated = False

        recap.submitted_at = _submitted_at_for(recap.recap_date, submitted_at)
        await self.db.commit()
        logger.info(f"Updated recap {recap.id} for {recap.user_id} on {recap.recap_date} ({transition.value})")
        return recap.id

    async def list_recaps(
        self,
        team_id: Optional[str],
        start_day: date,
        end_day: date,
        user_ids: Optional[Iterable[str]] = None,
        newest_first: bool = False,
    ) -> List[DailyRecap]:
        """Recaps for a team between two UTC days, inclusive."""
        query = select(DailyRecap).where(
            _team_filter(team_id),
            DailyRecap.recap_date >= start_day,
            DailyRecap.recap_date <= end_day,
        )
        if user_ids is not None:
            query = query.where(DailyRecap.user_id.in_(list(user_ids)))
        order = DailyRecap.submitted_at.desc() if newest_first else DailyRecap.submitted_at.asc()
        result = await self.db.execute(query.order_by(order))
        return list(result.scalars().all())

    async def completed_user_ids(
        self,
        team_id: Optional[str],
        day: date,
        user_ids: Optional[Iterable[str]] = None,
        confirmed_only: bool = True,
    ) -> Set[str]:
        """Users who have completed `day`'s recap. An unreviewed AI draft does not count unless asked."""
        recaps = await self.list_recaps(team_id, day, day, user_ids=user_ids)
        return {
            r.user_id for r in recaps
            if not confirmed_only or r.status == RecapStatus.CONFIRMED
        }


def get_recap_service(db: AsyncSession) -> RecapService:
    return RecapService(db)
