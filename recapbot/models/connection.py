import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Text, JSON, Index, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from recapbot.core.database import Base


class UserConnection(Base):
    """A Slack user's linked Google and GitHub accounts within one team."""
    __tablename__ = "user_connections"
    __table_args__ = (
        UniqueConstraint("slack_user_id", "team_id", name="uq_user_connections_user_team"),
        Index(
            "uq_user_connections_user_no_team",
            "slack_user_id",
            unique=True,
            sqlite_where=text("team_id IS NULL"),
            postgresql_where=text("team_id IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    slack_user_id: Mapped[str] = mapped_column(String(32), index=True)
    # Nullable for rows written before team scoping existed
    team_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    slack_user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # access_token, refresh_token, id_token, expiry_date (ms), scope
    google_tokens: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    github_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Legacy single-repo scope; newer connections scan every accessible repo
    github_owner: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    github_repo: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def has_google(self) -> bool:
        return bool(self.google_tokens)

    @property
    def has_github(self) -> bool:
        return bool(self.github_token)
