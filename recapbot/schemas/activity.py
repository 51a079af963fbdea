from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel


class CommitRecord(BaseModel):
    repository: str
    sha: str
    message: str
    author: str
    timestamp: datetime
    url: Optional[str] = None


class SlackMessageRecord(BaseModel):
    text: str
    sender_id: str
    channel_id: Optional[str] = None
    timestamp: datetime


class CalendarEventRecord(BaseModel):
    title: str
    start_time: datetime
    is_all_day: bool = False


class ActivityContext(BaseModel):
    """One user's normalized activity for a day window. Never persisted."""
    commits: List[CommitRecord] = []
    messages: List[SlackMessageRecord] = []
    events: List[CalendarEventRecord] = []

    def is_empty(self) -> bool:
        return not (self.commits or self.messages or self.events)
