import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, DateTime, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recapbot.core.database import Base

if TYPE_CHECKING:
    from recapbot.models.recap import DailyRecap


class DailyRecapScript(Base):
    """First-person spoken standup script derived from one recap."""
    __tablename__ = "daily_recap_scripts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    recap_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("daily_recaps.id", ondelete="CASCADE"), unique=True
    )
    user_id: Mapped[str] = mapped_column(String(32), index=True)
    script_text: Mapped[str] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    recap: Mapped["DailyRecap"] = relationship("DailyRecap", back_populates="script")
