import uuid
from datetime import datetime, date
from enum import Enum
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, DateTime, Date, Text, Boolean, Index, UniqueConstraint, Enum as SQLEnum, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recapbot.core.database import Base

if TYPE_CHECKING:
    from recapbot.models.recap_script import DailyRecapScript


class RecapStatus(str, Enum):
    """Where a recap is in its day lifecycle. EMPTY is never stored: it means no row."""
    EMPTY = "empty"
    DRAFTED = "drafted"         # Written by the summarizer, not yet reviewed
    CONFIRMED = "confirmed"     # Submitted or edited by the user


class RecapTransition(str, Enum):
    """The write a caller is making against a day's recap."""
    DRAFT = "draft"             # AI pre-fill
    CONFIRM = "confirm"         # Manual submission


class DailyRecap(Base):
    __tablename__ = "daily_recaps"
    __table_args__ = (
        UniqueConstraint("user_id", "team_id", "recap_date", name="uq_daily_recaps_user_team_day"),
        # NULLs never collide in a unique constraint, so legacy rows get their own index
        Index(
            "uq_daily_recaps_user_day_no_team",
            "user_id",
            "recap_date",
            unique=True,
            sqlite_where=text("team_id IS NULL"),
            postgresql_where=text("team_id IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id: Mapped[str] = mapped_column(String(32), index=True)  # Slack user ID
    team_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)

    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    # UTC calendar day of submitted_at
    recap_date: Mapped[date] = mapped_column(Date, index=True)

    progress: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    blockers: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    plan: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[RecapStatus] = mapped_column(SQLEnum(RecapStatus), default=RecapStatus.DRAFTED)
    is_ai_generated: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    script: Mapped[Optional["DailyRecapScript"]] = relationship(
        "DailyRecapScript", back_populates="recap", uselist=False, cascade="all, delete-orphan"
    )
