from datetime import datetime, date
from typing import Optional, List

from pydantic import BaseModel

from recapbot.models.recap import RecapStatus


class RecapSummary(BaseModel):
    """The three fields the summarizer always returns, possibly empty."""
    progress: str = ""
    blockers: str = ""
    plan: str = ""


class RecapFields(BaseModel):
    progress: Optional[str] = None
    blockers: Optional[str] = None
    plan: Optional[str] = None
    notes: Optional[str] = None


class RecapSubmitRequest(RecapFields):
    user_id: str
    team_id: Optional[str] = None
    submitted_at: Optional[datetime] = None


class DraftRequest(BaseModel):
    user_id: str
    team_id: Optional[str] = None


class DraftResponse(BaseModel):
    user_id: str
    team_id: Optional[str] = None
    recap_id: Optional[str] = None
    draft: Optional[RecapSummary] = None
    message: str


class RecapResponse(BaseModel):
    id: str
    user_id: str
    team_id: Optional[str] = None
    submitted_at: datetime
    recap_date: date
    progress: Optional[str] = None
    blockers: Optional[str] = None
    plan: Optional[str] = None
    notes: Optional[str] = None
    status: RecapStatus
    is_ai_generated: bool

    class Config:
        from_attributes = True


class RecapStatusResponse(BaseModel):
    user_id: str
    team_id: Optional[str] = None
    recap_date: date
    status: RecapStatus
    has_recap: bool


class RecapListResponse(BaseModel):
    recaps: List[RecapResponse]
    count: int
