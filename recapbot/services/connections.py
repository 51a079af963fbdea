import logging
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from recapbot.core.exceptions import ConnectionNotFoundError
from recapbot.models.connection import UserConnection

logger = logging.getLogger(__name__)

CONNECTION_FIELDS = {
    "slack_user_name",
    "google_tokens",
    "github_token",
    "github_owner",
    "github_repo",
}


def _team_filter(team_id: Optional[str]):
    if team_id is None:
        return UserConnection.team_id.is_(None)
    return UserConnection.team_id == team_id


class ConnectionService:
    """One row per (slack_user_id, team_id); reconnecting a service updates that row."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_connection(self, slack_user_id: str, team_id: Optional[str]) -> Optional[UserConnection]:
        result = await self.db.execute(
            select(UserConnection).where(
                UserConnection.slack_user_id == slack_user_id,
                _team_filter(team_id),
            )
        )
        return result.scalar_one_or_none()

    async def require_connection(self, slack_user_id: str, team_id: Optional[str]) -> UserConnection:
        connection = await self.get_connection(slack_user_id, team_id)
        if connection is None:
            raise ConnectionNotFoundError(slack_user_id, team_id)
        return connection

    async def upsert_connection(
        self,
        slack_user_id: str,
        team_id: Optional[str],
        **fields: Any,
    ) -> UserConnection:
        """Create the row or update only the given fields on the existing one."""
        unknown = set(fields) - CONNECTION_FIELDS
        if unknown:
            raise ValueError(f"Unknown connection fields: {', '.join(sorted(unknown))}")

        connection = await self.get_connection(slack_user_id, team_id)
        if connection is None:
            connection = UserConnection(slack_user_id=slack_user_id, team_id=team_id, **fields)
            self.db.add(connection)
            try:
                await self.db.commit()
            except IntegrityError:
                # Another request created the row first
                await self.db.rollback()
                connection = await self.get_connection(slack_user_id, team_id)
                if connection is None:
                    raise
                return await self._apply(connection, fields)
            await self.db.refresh(connection)
            logger.info(f"Created connection for {slack_user_id} in team {team_id}")
            return connection

        return await self._apply(connection, fields)

    async def _apply(self, connection: UserConnection, fields: Dict[str, Any]) -> UserConnection:
        for field, value in fields.items():
            setattr(connection, field, value)
        await self.db.commit()
        await self.db.refresh(connection)
        logger.info(
            f"Updated connection for {connection.slack_user_id} in team {connection.team_id}: "
            f"{', '.join(sorted(fields)) or 'no fields'}"
        )
        return connection

    async def save_google_tokens(
        self, slack_user_id: str, team_id: Optional[str], tokens: Dict[str, Any]
    ) -> UserConnection:
        return await self.upsert_connection(slack_user_id, team_id, google_tokens=tokens)

    async def save_github_token(
        self,
        slack_user_id: str,
        team_id: Optional[str],
        token: str,
        owner: Optional[str] = None,
        repo: Optional[str] = None,
    ) -> UserConnection:
        return await self.upsert_connection(
            slack_user_id, team_id, github_token=token, github_owner=owner, github_repo=repo
        )

    async def save_slack_user_name(
        self, slack_user_id: str, team_id: Optional[str], name: str
    ) -> UserConnection:
        return await self.upsert_connection(slack_user_id, team_id, slack_user_name=name)

    async def list_team_connections(
        self,
        team_id: Optional[str],
        slack_user_ids: Optional[Iterable[str]] = None,
    ) -> List[UserConnection]:
        query = select(UserConnection).where(_team_filter(team_id))
        if slack_user_ids is not None:
            query = query.where(UserConnection.slack_user_id.in_(list(slack_user_ids)))
        result = await self.db.execute(query.order_by(UserConnection.created_at))
        return list(result.scalars().all())

    async def get_user_names(
        self, slack_user_ids: Iterable[str], team_id: Optional[str] = None
    ) -> Dict[str, str]:
        """Map of slack_user_id -> stored display name, for users that have one."""
        ids = list(slack_user_ids)
        if not ids:
            return {}
        query = select(UserConnection).where(UserConnection.slack_user_id.in_(ids))
        if team_id is not None:
            query = query.where(UserConnection.team_id == team_id)
        result = await self.db.execute(query)
        return {
            c.slack_user_id: c.slack_user_name
            for c in result.scalars().all()
            if c.slack_user_name
        }


def get_connection_service(db: AsyncSession) -> ConnectionService:
    return ConnectionService(db)
